from __future__ import annotations

import logging
from typing import Any, Dict

from lifecycle_engine.application.common import (
    publish_after_commit,
    record_transition,
    require_actor,
    require_permission,
)
from lifecycle_engine.authz import AuthorizationGate, WorkspaceAuthorizationGate
from lifecycle_engine.core.event_bus import EventBus, InventoryMaterialized, PurchaseOrderSubmitted, get_event_bus
from lifecycle_engine.db import integrity_errors
from lifecycle_engine.domain.contracts import Actor, ResourceRef
from lifecycle_engine.domain.line_items import RENTAL
from lifecycle_engine.domain.timestamps import new_id, utc_now_iso
from lifecycle_engine.errors import ConflictError, invalid_state, not_found
from lifecycle_engine.infrastructure.repositories import (
    InventoryRepository,
    PurchaseOrderRepository,
    SalesOrderRepository,
    StatusEventRepository,
)
from lifecycle_engine.lifecycle.flow_policy import action_allowed, flow_meta
from lifecycle_engine.observability import observe_inventory_units_created
from lifecycle_engine.policies import PURCHASE_ORDER_READ, PURCHASE_ORDER_SUBMIT, SALES_ORDER_READ


logger = logging.getLogger("lifecycle.inventory")

SYSTEM_ACTOR_ID = "system"


def order_payload(stage: str, order: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(order)
    payload["flow"] = flow_meta(stage, order.get("status"))
    return payload


class InventoryMaterializer:
    """Creates one ON_ORDER inventory unit per unit of quantity on a submitted purchase order."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self.event_bus = event_bus or get_event_bus()
        self.purchase_orders = PurchaseOrderRepository()
        self.inventory = InventoryRepository()

    def on_purchase_order_submitted(self, db, purchase_order_id: str, actor: Actor | None = None) -> int:
        """Returns the number of inventory rows created by this call."""
        purchase_order = self.purchase_orders.get(db, purchase_order_id)
        if not purchase_order:
            raise not_found("purchase_order", purchase_order_id)
        if purchase_order["status"] != "SUBMITTED":
            logger.info(
                "inventory_materialization_skipped",
                extra={"purchase_order_id": purchase_order_id, "status": purchase_order["status"]},
            )
            return 0

        actor_id = actor.user_id if actor else SYSTEM_ACTOR_ID
        created = 0
        with db.transaction():
            now = utc_now_iso()
            for line_item in self.purchase_orders.list_line_items(db, purchase_order_id):
                units = 1 if line_item["lineitem_type"] == RENTAL else max(int(line_item["quantity"] or 0), 0)
                for unit_index in range(units):
                    if self.inventory.unit_exists(db, line_item["id"], unit_index):
                        continue
                    try:
                        self.inventory.insert(
                            db,
                            {
                                "id": new_id(),
                                "workspace_id": purchase_order["workspace_id"],
                                "purchase_order_id": purchase_order_id,
                                "purchase_order_line_item_id": line_item["id"],
                                "unit_index": unit_index,
                                "status": "ON_ORDER",
                                "is_third_party_rental": False,
                                "pim_category_id": line_item.get("pim_category_id"),
                                "pim_product_id": None,
                                "created_by": actor_id,
                                "updated_by": actor_id,
                                "created_at": now,
                                "updated_at": now,
                            },
                        )
                    except integrity_errors() as exc:
                        raise ConflictError(
                            code="inventory_unit_conflict",
                            message="Inventory for this purchase order is being created concurrently.",
                            details=str(exc),
                            payload={"purchase_order_id": purchase_order_id},
                        ) from exc
                    created += 1
            if created:
                publish_after_commit(
                    db,
                    self.event_bus,
                    [
                        InventoryMaterialized(
                            workspace_id=purchase_order["workspace_id"],
                            actor_id=actor_id,
                            purchase_order_id=purchase_order_id,
                            units_created=created,
                        )
                    ],
                )
            db.on_commit(lambda: observe_inventory_units_created(created))

        logger.info(
            "inventory_materialized",
            extra={"purchase_order_id": purchase_order_id, "units_created": created},
        )
        return created


class PurchaseOrderService:
    def __init__(
        self,
        authorization_gate: AuthorizationGate | None = None,
        inventory_materializer: InventoryMaterializer | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.authorization_gate = authorization_gate or WorkspaceAuthorizationGate()
        self.event_bus = event_bus or get_event_bus()
        self.inventory_materializer = inventory_materializer or InventoryMaterializer(event_bus=self.event_bus)
        self.purchase_orders = PurchaseOrderRepository()
        self.sales_orders = SalesOrderRepository()
        self.inventory = InventoryRepository()
        self.status_events = StatusEventRepository()

    def submit_purchase_order(self, db, *, actor: Actor, purchase_order_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        purchase_order = self.purchase_orders.get(db, purchase_order_id)
        if not purchase_order:
            raise not_found("purchase_order", purchase_order_id)
        require_permission(
            self.authorization_gate,
            db,
            actor,
            PURCHASE_ORDER_SUBMIT,
            ResourceRef(kind="purchase_order", id=purchase_order_id),
        )
        if not action_allowed("purchase_order", purchase_order["status"], "submit_purchase_order"):
            raise invalid_state("purchase_order", purchase_order["status"], "submit_purchase_order")

        with db.transaction():
            now = utc_now_iso()
            updated = self.purchase_orders.update_fields(
                db,
                purchase_order_id,
                {"status": "SUBMITTED", "updated_by": actor.user_id, "updated_at": now},
                expected_status="DRAFT",
            )
            if updated != 1:
                current = self.purchase_orders.get(db, purchase_order_id)
                raise invalid_state("purchase_order", current["status"] if current else None, "submit_purchase_order")
            record_transition(
                self.status_events,
                db,
                entity="purchase_order",
                entity_id=purchase_order_id,
                from_status="DRAFT",
                to_status="SUBMITTED",
                reason="purchase_order_submitted",
                actor_id=actor.user_id,
                occurred_at=now,
            )
            publish_after_commit(
                db,
                self.event_bus,
                [
                    PurchaseOrderSubmitted(
                        workspace_id=purchase_order["workspace_id"],
                        actor_id=actor.user_id,
                        purchase_order_id=purchase_order_id,
                    )
                ],
            )
            units_created = self.inventory_materializer.on_purchase_order_submitted(db, purchase_order_id, actor=actor)

        payload = order_payload("purchase_order", self.purchase_orders.get_with_line_items(db, purchase_order_id))
        payload["inventory_units_created"] = units_created
        return payload

    def get_purchase_order(self, db, *, actor: Actor, purchase_order_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        purchase_order = self.purchase_orders.get_with_line_items(db, purchase_order_id)
        if not purchase_order:
            raise not_found("purchase_order", purchase_order_id)
        require_permission(
            self.authorization_gate,
            db,
            actor,
            PURCHASE_ORDER_READ,
            ResourceRef(kind="purchase_order", id=purchase_order_id),
        )
        return order_payload("purchase_order", purchase_order)

    def get_sales_order(self, db, *, actor: Actor, sales_order_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        sales_order = self.sales_orders.get_with_line_items(db, sales_order_id)
        if not sales_order:
            raise not_found("sales_order", sales_order_id)
        require_permission(
            self.authorization_gate,
            db,
            actor,
            SALES_ORDER_READ,
            ResourceRef(kind="sales_order", id=sales_order_id),
        )
        return order_payload("sales_order", sales_order)

    def list_inventory(self, db, *, actor: Actor, purchase_order_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        if not self.purchase_orders.get(db, purchase_order_id):
            raise not_found("purchase_order", purchase_order_id)
        require_permission(
            self.authorization_gate,
            db,
            actor,
            PURCHASE_ORDER_READ,
            ResourceRef(kind="purchase_order", id=purchase_order_id),
        )
        return {"items": self.inventory.list_for_purchase_order(db, purchase_order_id)}
