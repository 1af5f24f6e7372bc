import unittest

from lifecycle_engine.application.order_materializer import expand_line_items
from lifecycle_engine.application.quoting_service import carry_forward_intake_ids
from lifecycle_engine.domain.line_items import (
    RentalQuoteLineItem,
    RfqServiceLineItem,
    has_unpriced_line_items,
    line_items_to_dicts,
    parse_quote_line_items,
    parse_requirement_line_items,
)
from lifecycle_engine.errors import ValidationError


def _rental(quantity: int = 1, **extra):
    item = {
        "id": "li-rental",
        "type": "RENTAL",
        "description": "Boom lift",
        "quantity": quantity,
        "pim_category_id": "cat-boom",
        "rental_start": "2026-11-02T08:00:00Z",
        "rental_end": "2026-11-09T08:00:00Z",
        "sellers_price_id": "price-rental",
        "delivery_method": "DELIVERY",
        "delivery_location": "Gate 2",
        "delivery_notes": "Call on arrival",
    }
    item.update(extra)
    return item


class LineItemParsingTest(unittest.TestCase):
    def test_requirement_variants_are_tagged(self) -> None:
        items = parse_requirement_line_items(
            [
                {"type": "sale", "description": "Gloves", "pim_category_id": "cat-ppe", "quantity": 10},
                {"type": "SERVICE", "description": "Setup", "quantity": "2"},
            ]
        )
        self.assertEqual([item.type for item in items], ["SALE", "SERVICE"])
        self.assertIsInstance(items[1], RfqServiceLineItem)
        self.assertEqual(items[1].quantity, 2)

    def test_rejects_unknown_type_and_bad_quantity(self) -> None:
        with self.assertRaises(ValidationError):
            parse_requirement_line_items([{"type": "LEASE", "quantity": 1}])
        with self.assertRaises(ValidationError):
            parse_requirement_line_items([{"type": "SERVICE", "quantity": 0}])
        with self.assertRaises(ValidationError):
            parse_requirement_line_items([{"type": "SERVICE", "quantity": True}])
        with self.assertRaises(ValidationError):
            parse_requirement_line_items({"type": "SERVICE", "quantity": 1})

    def test_rental_requires_ordered_window(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_quote_line_items([_rental(rental_end="2026-11-01T08:00:00Z")])
        self.assertEqual(ctx.exception.payload.get("field"), "rental_end")

    def test_quote_line_items_get_ids_and_reject_duplicates(self) -> None:
        items = parse_quote_line_items([{"type": "SERVICE", "description": "Setup", "quantity": 1}])
        self.assertTrue(items[0].id)
        self.assertIsNone(items[0].sellers_price_id)
        self.assertTrue(has_unpriced_line_items(items))

        with self.assertRaises(ValidationError):
            parse_quote_line_items([_rental(), _rental()])

    def test_malformed_subtotal_is_a_validation_error(self) -> None:
        for bad in ("abc", -5, 1.5, True):
            with self.subTest(subtotal=bad):
                with self.assertRaises(ValidationError) as ctx:
                    parse_quote_line_items([_rental(subtotal_in_cents=bad)])
                self.assertEqual(ctx.exception.payload.get("field"), "subtotal_in_cents")
        self.assertEqual(parse_quote_line_items([_rental(subtotal_in_cents="700")])[0].subtotal_in_cents, 700)

    def test_round_trip_through_dicts_keeps_variant(self) -> None:
        items = parse_quote_line_items([_rental(quantity=2)])
        self.assertIsInstance(items[0], RentalQuoteLineItem)
        restored = parse_quote_line_items(line_items_to_dicts(items))
        self.assertEqual(restored, items)


class RentalFanOutTest(unittest.TestCase):
    def test_rental_quantity_expands_to_unit_lines(self) -> None:
        expanded = expand_line_items([_rental(quantity=3)])

        self.assertEqual(len(expanded), 3)
        self.assertTrue(all(line["quantity"] == 1 for line in expanded))
        self.assertTrue(all(line["quote_revision_line_item_id"] == "li-rental" for line in expanded))
        self.assertTrue(all(line["delivery_location"] == "Gate 2" for line in expanded))
        self.assertTrue(all(line["delivery_notes"] == "Call on arrival" for line in expanded))
        self.assertTrue(all(line["price_id"] == "price-rental" for line in expanded))
        self.assertEqual(len({line["id"] for line in expanded}), 3)

    def test_sale_and_service_keep_quantity(self) -> None:
        expanded = expand_line_items(
            [
                {"id": "li-sale", "type": "SALE", "description": "Harness", "quantity": 4, "pim_category_id": "cat"},
                {"id": "li-service", "type": "SERVICE", "description": "Training", "quantity": 2},
            ]
        )
        self.assertEqual([(line["lineitem_type"], line["quantity"]) for line in expanded], [("SALE", 4), ("SERVICE", 2)])


class IntakeCarryForwardTest(unittest.TestCase):
    def setUp(self) -> None:
        self.previous = [_rental(intake_form_submission_line_item_id="intake-1")]

    def test_omitted_key_inherits_previous_value(self) -> None:
        incoming = [_rental(quantity=2)]
        incoming[0].pop("intake_form_submission_line_item_id", None)
        merged = carry_forward_intake_ids(incoming, self.previous)
        self.assertEqual(merged[0]["intake_form_submission_line_item_id"], "intake-1")
        self.assertEqual(merged[0]["quantity"], 2)

    def test_explicit_null_clears_value(self) -> None:
        merged = carry_forward_intake_ids([_rental(intake_form_submission_line_item_id=None)], self.previous)
        self.assertIsNone(merged[0]["intake_form_submission_line_item_id"])

    def test_new_items_are_left_alone(self) -> None:
        merged = carry_forward_intake_ids([_rental(id="li-new")], self.previous)
        self.assertNotIn("intake_form_submission_line_item_id", merged[0])


if __name__ == "__main__":
    unittest.main()
