import unittest

from lifecycle_engine.errors import NotFoundError, ValidationError
from lifecycle_engine.pricing import PriceBookResolver, PriceEngine, RentalRates, rental_days
from tests.helpers.lifecycle_seed import SELLER_WORKSPACE, add_price
from tests.helpers.temp_db import TempDbSandbox


RATES = RentalRates(price_per_day_in_cents=100, price_per_week_in_cents=500, price_per_month_in_cents=1500)


class PriceEngineTest(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = PriceEngine()

    def test_short_rental_uses_day_rate(self) -> None:
        option = self.engine.calculate_optimal_cost(RATES, total_days=3)
        self.assertEqual(option.cost_in_cents, 300)
        self.assertEqual(option.strategy, "exact_split")
        self.assertEqual(option.rental_period.days1, 3)

    def test_rounds_up_to_week_when_cheaper(self) -> None:
        option = self.engine.calculate_optimal_cost(RATES, total_days=6)
        self.assertEqual(option.cost_in_cents, 500)
        self.assertEqual(option.strategy, "round_up_to_7_days")
        self.assertEqual(option.savings_compared_to_day_rate_in_cents, 100)

    def test_full_week_and_full_month(self) -> None:
        self.assertEqual(self.engine.calculate_optimal_cost(RATES, total_days=7).cost_in_cents, 500)
        self.assertEqual(self.engine.calculate_optimal_cost(RATES, total_days=28).cost_in_cents, 1500)
        self.assertEqual(self.engine.calculate_optimal_cost(RATES, total_days=35).cost_in_cents, 2000)

    def test_rounds_up_to_next_month_when_tail_is_expensive(self) -> None:
        # 3 weeks + 6 days exact = 1500 + 600, one more week = 2000, one month = 1500.
        option = self.engine.calculate_optimal_cost(RATES, total_days=27)
        self.assertEqual(option.cost_in_cents, 1500)
        self.assertEqual(option.strategy, "round_up_to_28_days")

    def test_tie_prefers_rounded_up_candidate(self) -> None:
        rates = RentalRates(price_per_day_in_cents=100, price_per_week_in_cents=500, price_per_month_in_cents=5000)
        option = self.engine.calculate_optimal_cost(rates, total_days=5)
        self.assertEqual(option.cost_in_cents, 500)
        self.assertEqual(option.strategy, "round_up_to_7_days")

    def test_plain_text_describes_split(self) -> None:
        option = self.engine.calculate_optimal_cost(RATES, total_days=30)
        self.assertEqual(option.cost_in_cents, 1700)
        self.assertEqual(option.plain_text, "2 x Day Rate (1.00) + 1 x 28 Day Rate (15.00)")

    def test_forecast_is_cumulative_by_day(self) -> None:
        rows = self.engine.forecast(RATES, days_to_forecast=8)
        self.assertEqual([row["day"] for row in rows], list(range(1, 9)))
        self.assertEqual(rows[0]["cost_in_cents"], 100)
        self.assertEqual(rows[6]["cost_in_cents"], 500)
        self.assertEqual(rows[7]["cost_in_cents"], 600)

    def test_rental_days_are_inclusive(self) -> None:
        self.assertEqual(rental_days("2026-11-02T08:00:00Z", "2026-11-02T17:00:00Z"), 1)
        self.assertEqual(rental_days("2026-11-02T08:00:00Z", "2026-11-04T08:00:00Z"), 3)
        with self.assertRaises(ValidationError):
            rental_days("2026-11-04T08:00:00Z", "2026-11-02T08:00:00Z")


class PriceBookResolverTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="pricing")
        self.db = self._temp_db.connect()
        self.resolver = PriceBookResolver()

    def tearDown(self) -> None:
        self.db.close()
        self._temp_db.cleanup()

    def test_sale_price_multiplies_by_quantity(self) -> None:
        price_id = add_price(self.db, workspace_id=SELLER_WORKSPACE, price_type="SALE", unit_cost_in_cents=50000)
        self.assertEqual(self.resolver.resolve_price(self.db, price_id, 3, lineitem_type="SALE"), 150000)

    def test_rental_price_uses_optimal_split_per_unit(self) -> None:
        price_id = add_price(
            self.db, workspace_id=SELLER_WORKSPACE, price_type="RENTAL", per_day=100, per_week=500, per_month=1500
        )
        subtotal = self.resolver.resolve_price(
            self.db,
            price_id,
            2,
            ("2026-11-01T00:00:00Z", "2026-11-07T00:00:00Z"),
            lineitem_type="RENTAL",
        )
        self.assertEqual(subtotal, 1000)

    def test_unknown_price_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            self.resolver.resolve_price(self.db, "missing-price", 1)
        self.assertEqual(ctx.exception.code, "price_not_found")

    def test_price_type_must_match_line_type(self) -> None:
        price_id = add_price(self.db, workspace_id=SELLER_WORKSPACE, price_type="SALE", unit_cost_in_cents=100)
        with self.assertRaises(ValidationError) as ctx:
            self.resolver.resolve_price(self.db, price_id, 1, lineitem_type="SERVICE")
        self.assertEqual(ctx.exception.code, "price_type_mismatch")

    def test_rental_price_requires_window_and_rates(self) -> None:
        incomplete = add_price(self.db, workspace_id=SELLER_WORKSPACE, price_type="RENTAL", per_day=100)
        with self.assertRaises(ValidationError) as ctx:
            self.resolver.resolve_price(self.db, incomplete, 1, lineitem_type="RENTAL")
        self.assertEqual(ctx.exception.code, "rental_window_required")

        with self.assertRaises(ValidationError) as ctx:
            self.resolver.resolve_price(
                self.db,
                incomplete,
                1,
                ("2026-11-01T00:00:00Z", "2026-11-02T00:00:00Z"),
                lineitem_type="RENTAL",
            )
        self.assertEqual(ctx.exception.code, "price_incomplete")


if __name__ == "__main__":
    unittest.main()
