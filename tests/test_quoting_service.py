import unittest

from lifecycle_engine.core.event_bus import QuoteCreated, QuoteSent
from lifecycle_engine.domain.contracts import QuoteCreateInput
from lifecycle_engine.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from tests.helpers.lifecycle_seed import BUYER_WORKSPACE, SELLER_WORKSPACE, Marketplace
from tests.helpers.temp_db import TempDbSandbox


class QuotingServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="quoting_service")
        self.db = self._temp_db.connect()
        self.market = Marketplace(self.db)
        self.service = self.market.quoting

    def tearDown(self) -> None:
        self.db.close()
        self._temp_db.cleanup()

    def test_create_quote_for_rfq_inherits_buyer_workspace(self) -> None:
        created = []
        self.market.event_bus.subscribe(QuoteCreated, created.append)
        rfq = self.market.create_rfq(status="SENT")

        quote = self.market.create_quote(rfq_id=rfq["id"])

        self.assertEqual(quote["status"], "DRAFT")
        self.assertEqual(quote["buyer_workspace_id"], BUYER_WORKSPACE)
        self.assertEqual(quote["seller_workspace_id"], SELLER_WORKSPACE)
        self.assertEqual([event.quote_id for event in created], [quote["id"]])

    def test_create_quote_rejects_closed_or_missing_rfq(self) -> None:
        rfq = self.market.create_rfq(status="SENT")
        self.market.rfqs.update_rfq(self.db, actor=self.market.buyer_manager, rfq_id=rfq["id"], payload={"status": "EXPIRED"})
        with self.assertRaises(InvalidStateError):
            self.market.create_quote(rfq_id=rfq["id"])
        with self.assertRaises(NotFoundError):
            self.market.create_quote(rfq_id="missing-rfq")

    def test_create_quote_requires_seller_manager(self) -> None:
        with self.assertRaises(ForbiddenError):
            self.service.create_quote(
                self.db,
                actor=self.market.seller_member,
                create_input=QuoteCreateInput(
                    seller_workspace_id=SELLER_WORKSPACE,
                    sellers_buyer_contact_id=self.market.buyer_contact_id,
                ),
            )

    def test_revision_prices_line_items(self) -> None:
        quote = self.market.create_quote()
        revision = self.market.add_revision(quote, [self.market.sale_line(quantity=3)])

        self.assertEqual(revision["status"], "DRAFT")
        self.assertEqual(revision["line_items"][0]["subtotal_in_cents"], 150000)
        self.assertFalse(revision["has_unpriced_line_items"])
        self.assertEqual(revision["total_in_cents"], 150000)

    def test_unpriced_line_item_has_zero_subtotal(self) -> None:
        quote = self.market.create_quote()
        revision = self.market.add_revision(
            quote,
            [self.market.sale_line(quantity=3, sellers_price_id=None, subtotal_in_cents=999), self.market.rental_line(2)],
        )

        self.assertEqual(revision["line_items"][0]["subtotal_in_cents"], 0)
        self.assertTrue(revision["has_unpriced_line_items"])
        # 3-day rental at the day rate, two units.
        self.assertEqual(revision["line_items"][1]["subtotal_in_cents"], 600)

    def test_non_numeric_subtotal_is_rejected_before_pricing(self) -> None:
        quote = self.market.create_quote()
        with self.assertRaises(ValidationError) as ctx:
            self.market.add_revision(quote, [self.market.sale_line(1, subtotal_in_cents="abc")])
        self.assertEqual(ctx.exception.code, "line_item_invalid")
        self.assertEqual(self.service.list_quote_revisions(self.db, actor=self.market.seller_manager, quote_id=quote["id"])["items"], [])

    def test_revision_numbers_must_increase(self) -> None:
        quote = self.market.create_quote()
        self.market.add_revision(quote, [self.market.sale_line()], revision_number=1)
        with self.assertRaises(ValidationError) as ctx:
            self.market.add_revision(quote, [self.market.sale_line()], revision_number=1)
        self.assertEqual(ctx.exception.code, "revision_number_not_increasing")
        second = self.market.add_revision(quote, [self.market.sale_line()], revision_number=2)
        self.assertEqual(second["revision_number"], 2)

    def test_update_revision_reprices_and_carries_intake_ids(self) -> None:
        quote = self.market.create_quote()
        revision = self.market.add_revision(
            quote, [self.market.sale_line(id="li-1", intake_form_submission_line_item_id="intake-7")]
        )

        updated = self.service.update_quote_revision(
            self.db,
            actor=self.market.seller_manager,
            revision_id=revision["id"],
            payload={"line_items": [{**self.market.sale_line(quantity=2), "id": "li-1"}]},
        )
        item = updated["line_items"][0]
        self.assertEqual(item["subtotal_in_cents"], 100000)
        self.assertEqual(item["intake_form_submission_line_item_id"], "intake-7")

        cleared = self.service.update_quote_revision(
            self.db,
            actor=self.market.seller_manager,
            revision_id=revision["id"],
            payload={"line_items": [{**self.market.sale_line(), "id": "li-1", "intake_form_submission_line_item_id": None}]},
        )
        self.assertIsNone(cleared["line_items"][0]["intake_form_submission_line_item_id"])

    def test_send_quote_activates_and_locks_revision(self) -> None:
        sent_events = []
        self.market.event_bus.subscribe(QuoteSent, sent_events.append)
        quote = self.market.create_quote()
        revision = self.market.add_revision(quote, [self.market.sale_line()])

        sent = self.service.send_quote(
            self.db,
            actor=self.market.seller_manager,
            quote_id=quote["id"],
            revision_id=revision["id"],
            buyer_user_id=self.market.buyer_user.user_id,
        )

        self.assertEqual(sent["status"], "ACTIVE")
        self.assertEqual(sent["current_revision_id"], revision["id"])
        self.assertEqual(sent["buyer_user_id"], self.market.buyer_user.user_id)
        self.assertEqual(len(sent_events), 1)
        stored = self.service.get_quote_revision(self.db, actor=self.market.seller_manager, revision_id=revision["id"])
        self.assertEqual(stored["status"], "SENT")
        with self.assertRaises(InvalidStateError):
            self.service.update_quote_revision(
                self.db, actor=self.market.seller_manager, revision_id=revision["id"], payload={"valid_until": None}
            )

    def test_send_refuses_unpriced_revision(self) -> None:
        quote = self.market.create_quote()
        revision = self.market.add_revision(quote, [self.market.service_line(sellers_price_id=None)])
        with self.assertRaises(ValidationError) as ctx:
            self.market.send(quote, revision)
        self.assertEqual(ctx.exception.code, "quote_revision_unpriced")

    def test_send_refuses_revision_of_other_quote(self) -> None:
        first = self.market.create_quote()
        second = self.market.create_quote()
        revision = self.market.add_revision(first, [self.market.sale_line()])
        with self.assertRaises(ValidationError) as ctx:
            self.market.send(second, revision)
        self.assertEqual(ctx.exception.code, "revision_quote_mismatch")

    def test_new_revision_on_active_quote_can_be_sent(self) -> None:
        quote = self.market.active_quote([self.market.sale_line()])
        revision = self.market.add_revision(quote, [self.market.sale_line(quantity=2)], revision_number=2)
        resent = self.market.send(quote, revision)
        self.assertEqual(resent["status"], "ACTIVE")
        self.assertEqual(resent["current_revision_id"], revision["id"])

        detail = self.service.get_quote(self.db, actor=self.market.buyer_user, quote_id=quote["id"])
        self.assertEqual(detail["current_revision"]["revision_number"], 2)
        revisions = self.service.list_quote_revisions(self.db, actor=self.market.seller_manager, quote_id=quote["id"])
        self.assertEqual(sorted(item["revision_number"] for item in revisions["items"]), [1, 2])

    def test_list_quotes_by_rfq_hides_quotes_from_other_sellers(self) -> None:
        rfq = self.market.create_rfq(status="SENT")
        mine = self.market.create_quote(rfq_id=rfq["id"])
        theirs = self.market.create_quote(rfq_id=rfq["id"], seller="other")

        seller_view = self.service.list_quotes(self.db, actor=self.market.seller_manager, rfq_id=rfq["id"])
        self.assertEqual([item["id"] for item in seller_view["items"]], [mine["id"]])

        buyer_view = self.service.list_quotes(self.db, actor=self.market.buyer_manager, rfq_id=rfq["id"])
        self.assertEqual({item["id"] for item in buyer_view["items"]}, {mine["id"], theirs["id"]})

        with self.assertRaises(ValidationError):
            self.service.list_quotes(self.db, actor=self.market.buyer_manager)

    def test_list_quotes_reports_truncation(self) -> None:
        for _ in range(3):
            self.market.create_quote()

        page = self.service.list_quotes(self.db, actor=self.market.seller_manager, workspace_id=SELLER_WORKSPACE, limit=2)
        self.assertEqual(len(page["items"]), 2)
        self.assertEqual(page["limit"], 2)
        self.assertTrue(page["has_more"])

        everything = self.service.list_quotes(self.db, actor=self.market.seller_manager, workspace_id=SELLER_WORKSPACE)
        self.assertEqual(len(everything["items"]), 3)
        self.assertFalse(everything["has_more"])


if __name__ == "__main__":
    unittest.main()
