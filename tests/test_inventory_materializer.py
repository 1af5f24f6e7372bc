import unittest

from lifecycle_engine.application.inventory_service import InventoryMaterializer
from lifecycle_engine.core.event_bus import EventBus, InventoryMaterialized, PurchaseOrderSubmitted
from lifecycle_engine.domain.timestamps import new_id, utc_now_iso
from lifecycle_engine.errors import ForbiddenError, InvalidStateError, NotFoundError
from lifecycle_engine.infrastructure.repositories import InventoryRepository, PurchaseOrderRepository
from tests.helpers.lifecycle_seed import BUYER_WORKSPACE, SELLER_WORKSPACE, Marketplace
from tests.helpers.temp_db import TempDbSandbox


class InventoryMaterializerTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="inventory")
        self.db = self._temp_db.connect()
        self.market = Marketplace(self.db)
        self.inventory = InventoryRepository()
        self.purchase_orders = PurchaseOrderRepository()

    def tearDown(self) -> None:
        self.db.close()
        self._temp_db.cleanup()

    def _accepted_purchase_order(self, line_items):
        quote = self.market.active_quote(line_items)
        return self.market.accept(quote["id"]).purchase_order

    def _empty_purchase_order(self, status: str) -> str:
        now = utc_now_iso()
        purchase_order_id = new_id()
        self.purchase_orders.insert(
            self.db,
            {
                "id": purchase_order_id,
                "workspace_id": BUYER_WORKSPACE,
                "project_id": None,
                "seller_id": SELLER_WORKSPACE,
                "quote_id": None,
                "quote_revision_id": None,
                "status": status,
                "created_by": "seed",
                "updated_by": "seed",
                "created_at": now,
                "updated_at": now,
            },
        )
        return purchase_order_id

    def _submit(self, purchase_order_id: str):
        return self.market.purchase_orders.submit_purchase_order(
            self.db, actor=self.market.buyer_manager, purchase_order_id=purchase_order_id
        )

    def test_three_rentals_and_sale_of_two_yield_five_units(self) -> None:
        submitted = []
        self.market.event_bus.subscribe(PurchaseOrderSubmitted, submitted.append)
        purchase_order = self._accepted_purchase_order([self.market.rental_line(3), self.market.sale_line(2)])

        result = self._submit(purchase_order["id"])

        self.assertEqual(result["status"], "SUBMITTED")
        self.assertEqual(result["inventory_units_created"], 5)
        units = self.inventory.list_for_purchase_order(self.db, purchase_order["id"])
        self.assertEqual(len(units), 5)
        self.assertTrue(all(unit["status"] == "ON_ORDER" for unit in units))
        self.assertTrue(all(unit["is_third_party_rental"] is False for unit in units))
        self.assertTrue(all(unit["workspace_id"] == BUYER_WORKSPACE for unit in units))
        self.assertEqual(len({unit["purchase_order_line_item_id"] for unit in units}), 4)
        self.assertEqual(len(submitted), 1)

    def test_draft_purchase_order_yields_nothing(self) -> None:
        purchase_order = self._accepted_purchase_order([self.market.rental_line(2), self.market.sale_line(5)])
        materializer = InventoryMaterializer(event_bus=EventBus())

        created = materializer.on_purchase_order_submitted(self.db, purchase_order["id"])

        self.assertEqual(created, 0)
        self.assertEqual(self.inventory.list_for_purchase_order(self.db, purchase_order["id"]), [])

    def test_empty_purchase_order_yields_nothing(self) -> None:
        purchase_order_id = self._empty_purchase_order("DRAFT")
        result = self._submit(purchase_order_id)
        self.assertEqual(result["inventory_units_created"], 0)
        self.assertEqual(result["line_items"], [])

    def test_reinvocation_does_not_duplicate_units(self) -> None:
        events = []
        bus = EventBus()
        bus.subscribe(InventoryMaterialized, events.append)
        purchase_order = self._accepted_purchase_order([self.market.rental_line(3), self.market.sale_line(2)])
        self._submit(purchase_order["id"])
        materializer = InventoryMaterializer(event_bus=bus)

        self.assertEqual(materializer.on_purchase_order_submitted(self.db, purchase_order["id"]), 0)
        self.assertEqual(materializer.on_purchase_order_submitted(self.db, purchase_order["id"]), 0)

        self.assertEqual(len(self.inventory.list_for_purchase_order(self.db, purchase_order["id"])), 5)
        self.assertEqual(events, [])

    def test_partially_materialized_order_is_completed(self) -> None:
        purchase_order = self._accepted_purchase_order([self.market.sale_line(3)])
        self._submit(purchase_order["id"])
        units = self.inventory.list_for_purchase_order(self.db, purchase_order["id"])
        self.db.execute("DELETE FROM inventory WHERE id = ?", (units[-1]["id"],))

        created = InventoryMaterializer(event_bus=EventBus()).on_purchase_order_submitted(self.db, purchase_order["id"])

        self.assertEqual(created, 1)
        self.assertEqual(len(self.inventory.list_for_purchase_order(self.db, purchase_order["id"])), 3)

    def test_resubmission_is_invalid_state(self) -> None:
        purchase_order = self._accepted_purchase_order([self.market.sale_line(2)])
        self._submit(purchase_order["id"])
        with self.assertRaises(InvalidStateError):
            self._submit(purchase_order["id"])
        self.assertEqual(len(self.inventory.list_for_purchase_order(self.db, purchase_order["id"])), 2)

    def test_submit_requires_buyer_manager(self) -> None:
        purchase_order = self._accepted_purchase_order([self.market.sale_line(1)])
        for actor in (self.market.buyer_user, self.market.seller_manager):
            with self.assertRaises(ForbiddenError):
                self.market.purchase_orders.submit_purchase_order(
                    self.db, actor=actor, purchase_order_id=purchase_order["id"]
                )

    def test_unknown_purchase_order_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            InventoryMaterializer(event_bus=EventBus()).on_purchase_order_submitted(self.db, "missing-po")

    def test_inventory_listing_is_scoped_to_buyer_workspace(self) -> None:
        purchase_order = self._accepted_purchase_order([self.market.rental_line(1)])
        self._submit(purchase_order["id"])
        listing = self.market.purchase_orders.list_inventory(
            self.db, actor=self.market.buyer_user, purchase_order_id=purchase_order["id"]
        )
        self.assertEqual(len(listing["items"]), 1)
        with self.assertRaises(ForbiddenError):
            self.market.purchase_orders.list_inventory(
                self.db, actor=self.market.outsider, purchase_order_id=purchase_order["id"]
            )


if __name__ == "__main__":
    unittest.main()
