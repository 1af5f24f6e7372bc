"""Line item pricing.

``PriceEngine`` holds the pure rental arithmetic: a rental window is split
into 28-day, 7-day and 1-day blocks and three candidate distributions are
priced (the exact split, the remainder rounded up to one more week, and the
whole tail rounded up to one more 28-day block). The cheapest candidate wins;
on a tie the rounded-up candidate is preferred.

``PriceBookResolver`` is the default pricing resolver used by the quoting
service. It reads the ``prices`` table and multiplies the per-unit amount by
the line quantity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Protocol, Tuple

from lifecycle_engine.domain.line_items import LINE_ITEM_TYPES, RENTAL
from lifecycle_engine.domain.timestamps import to_datetime
from lifecycle_engine.errors import ValidationError, not_found
from lifecycle_engine.infrastructure.repositories.price_repository import PriceRepository


logger = logging.getLogger("lifecycle.pricing")


@dataclass(frozen=True)
class RentalPeriod:
    days28: int
    days7: int
    days1: int
    total_days: int


@dataclass(frozen=True)
class RentalRates:
    price_per_day_in_cents: int
    price_per_week_in_cents: int
    price_per_month_in_cents: int


@dataclass(frozen=True)
class CostOption:
    strategy: str
    cost_in_cents: int
    rental_period: RentalPeriod
    savings_compared_to_day_rate_in_cents: int
    plain_text: str


def rental_days(start: Any, end: Any) -> int:
    """Inclusive day count of a rental window (same-day rental is one day)."""
    start_at = to_datetime(start)
    end_at = to_datetime(end)
    if start_at is None or end_at is None:
        raise ValidationError(code="rental_window_invalid", message="Rental window requires start and end.")
    if end_at < start_at:
        raise ValidationError(code="rental_window_invalid", message="Rental end must not be before rental start.")
    return (end_at - start_at).days + 1


def _format_plain_text(period: RentalPeriod, rates: RentalRates) -> str:
    parts: List[str] = []
    if period.days1 > 0:
        parts.append(f"{period.days1} x Day Rate ({rates.price_per_day_in_cents / 100:.2f})")
    if period.days7 > 0:
        parts.append(f"{period.days7} x Week Rate ({rates.price_per_week_in_cents / 100:.2f})")
    if period.days28 > 0:
        parts.append(f"{period.days28} x 28 Day Rate ({rates.price_per_month_in_cents / 100:.2f})")
    return " + ".join(parts)


class PriceEngine:
    @staticmethod
    def rental_period(total_days: int) -> RentalPeriod:
        total_days = max(int(total_days), 0)
        return RentalPeriod(
            days28=total_days // 28,
            days7=(total_days % 28) // 7,
            days1=total_days % 7,
            total_days=total_days,
        )

    @staticmethod
    def distribution_options(period: RentalPeriod) -> List[Tuple[str, RentalPeriod]]:
        return [
            ("exact_split", period),
            (
                "round_up_to_7_days",
                RentalPeriod(days28=period.days28, days7=period.days7 + 1, days1=0, total_days=period.total_days),
            ),
            (
                "round_up_to_28_days",
                RentalPeriod(days28=period.days28 + 1, days7=0, days1=0, total_days=period.total_days),
            ),
        ]

    @staticmethod
    def period_cost(period: RentalPeriod, rates: RentalRates) -> int:
        return (
            period.days28 * rates.price_per_month_in_cents
            + period.days7 * rates.price_per_week_in_cents
            + period.days1 * rates.price_per_day_in_cents
        )

    def calculate_optimal_cost(self, rates: RentalRates, *, total_days: int) -> CostOption:
        period = self.rental_period(total_days)
        day_rate_cost = period.total_days * rates.price_per_day_in_cents

        best: CostOption | None = None
        for strategy, candidate in self.distribution_options(period):
            cost = self.period_cost(candidate, rates)
            option = CostOption(
                strategy=strategy,
                cost_in_cents=cost,
                rental_period=candidate,
                savings_compared_to_day_rate_in_cents=day_rate_cost - cost,
                plain_text=_format_plain_text(candidate, rates),
            )
            if best is None or option.cost_in_cents <= best.cost_in_cents:
                best = option
        return best

    def forecast(self, rates: RentalRates, *, days_to_forecast: int) -> List[Dict[str, Any]]:
        """Cumulative optimal cost for each rental length from 1 to ``days_to_forecast`` days."""
        rows: List[Dict[str, Any]] = []
        for day in range(1, max(int(days_to_forecast), 0) + 1):
            option = self.calculate_optimal_cost(rates, total_days=day)
            rows.append(
                {
                    "day": day,
                    "cost_in_cents": option.cost_in_cents,
                    "strategy": option.strategy,
                    "plain_text": option.plain_text,
                }
            )
        return rows


class PricingResolver(Protocol):
    def resolve_price(
        self,
        db,
        price_id: str,
        quantity: int,
        duration: Tuple[Any, Any] | None = None,
        *,
        lineitem_type: str | None = None,
    ) -> int: ...


def _rates_from_price(price: Dict[str, Any]) -> RentalRates:
    missing = [
        column
        for column in ("price_per_day_in_cents", "price_per_week_in_cents", "price_per_month_in_cents")
        if price.get(column) is None
    ]
    if missing:
        raise ValidationError(
            code="price_incomplete",
            message="Rental price is missing rates.",
            payload={"price_id": price.get("id"), "missing": missing},
        )
    return RentalRates(
        price_per_day_in_cents=int(price["price_per_day_in_cents"]),
        price_per_week_in_cents=int(price["price_per_week_in_cents"]),
        price_per_month_in_cents=int(price["price_per_month_in_cents"]),
    )


class PriceBookResolver:
    def __init__(
        self,
        price_repository: PriceRepository | None = None,
        price_engine: PriceEngine | None = None,
    ) -> None:
        self._prices = price_repository or PriceRepository()
        self._engine = price_engine or PriceEngine()

    def resolve_price(
        self,
        db,
        price_id: str,
        quantity: int,
        duration: Tuple[Any, Any] | None = None,
        *,
        lineitem_type: str | None = None,
    ) -> int:
        price = self._prices.get(db, price_id)
        if not price:
            raise not_found("price", price_id)

        price_type = str(price.get("price_type") or "").upper()
        if lineitem_type and price_type != lineitem_type:
            raise ValidationError(
                code="price_type_mismatch",
                message=f"Price {price_id} is a {price_type} price and cannot price a {lineitem_type} line item.",
                payload={"price_id": price_id, "price_type": price_type, "lineitem_type": lineitem_type},
            )
        if price_type not in LINE_ITEM_TYPES:
            raise ValidationError(code="price_type_invalid", message="Unknown price type.", payload={"price_id": price_id})

        if price_type == RENTAL:
            if duration is None:
                raise ValidationError(
                    code="rental_window_required",
                    message="Rental prices require a rental window.",
                    payload={"price_id": price_id},
                )
            option = self._engine.calculate_optimal_cost(
                _rates_from_price(price),
                total_days=rental_days(*duration),
            )
            unit_cost = option.cost_in_cents
        else:
            if price.get("unit_cost_in_cents") is None:
                raise ValidationError(
                    code="price_incomplete",
                    message="Price has no unit cost.",
                    payload={"price_id": price_id, "missing": ["unit_cost_in_cents"]},
                )
            unit_cost = int(price["unit_cost_in_cents"])

        return unit_cost * int(quantity)


def price_totals(line_items: Iterable[Any]) -> int:
    return sum(int(getattr(item, "subtotal_in_cents", 0) or 0) for item in line_items)
