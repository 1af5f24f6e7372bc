"""Tagged line item variants for RFQs and quote revisions.

Each variant is its own frozen dataclass carrying a ``type`` discriminant
(``RENTAL``, ``SALE`` or ``SERVICE``). Payloads arrive as plain dicts and are
parsed here; stored JSON documents go through the same parsers so a row read
back from the database has exactly the shape that was validated on write.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Union

from lifecycle_engine.domain.timestamps import new_id, to_datetime, to_iso
from lifecycle_engine.errors import ValidationError


RENTAL = "RENTAL"
SALE = "SALE"
SERVICE = "SERVICE"
LINE_ITEM_TYPES = (RENTAL, SALE, SERVICE)


@dataclass(frozen=True)
class RfqRentalLineItem:
    description: str
    pim_category_id: str
    quantity: int
    rental_start: str
    rental_end: str
    type: str = field(default=RENTAL, init=False)


@dataclass(frozen=True)
class RfqSaleLineItem:
    description: str
    pim_category_id: str
    quantity: int
    type: str = field(default=SALE, init=False)


@dataclass(frozen=True)
class RfqServiceLineItem:
    description: str
    quantity: int
    type: str = field(default=SERVICE, init=False)


RequirementLineItem = Union[RfqRentalLineItem, RfqSaleLineItem, RfqServiceLineItem]


@dataclass(frozen=True)
class RentalQuoteLineItem:
    id: str
    description: str
    quantity: int
    pim_category_id: str
    rental_start: str
    rental_end: str
    sellers_price_id: str | None = None
    subtotal_in_cents: int = 0
    delivery_method: str | None = None
    delivery_location: str | None = None
    delivery_notes: str | None = None
    intake_form_submission_line_item_id: str | None = None
    type: str = field(default=RENTAL, init=False)


@dataclass(frozen=True)
class SaleQuoteLineItem:
    id: str
    description: str
    quantity: int
    pim_category_id: str
    sellers_price_id: str | None = None
    subtotal_in_cents: int = 0
    delivery_method: str | None = None
    delivery_location: str | None = None
    delivery_notes: str | None = None
    intake_form_submission_line_item_id: str | None = None
    type: str = field(default=SALE, init=False)


@dataclass(frozen=True)
class ServiceQuoteLineItem:
    id: str
    description: str
    quantity: int
    sellers_price_id: str | None = None
    subtotal_in_cents: int = 0
    delivery_method: str | None = None
    delivery_location: str | None = None
    delivery_notes: str | None = None
    intake_form_submission_line_item_id: str | None = None
    type: str = field(default=SERVICE, init=False)


QuoteLineItem = Union[RentalQuoteLineItem, SaleQuoteLineItem, ServiceQuoteLineItem]


def _invalid(index: int, field_name: str, reason: str) -> ValidationError:
    return ValidationError(
        code="line_item_invalid",
        message=f"Line item {index}: {field_name} {reason}.",
        payload={"line_item_index": index, "field": field_name},
    )


def _text(raw: Mapping[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def _required_text(raw: Mapping[str, Any], key: str, index: int) -> str:
    value = _text(raw, key)
    if not value:
        raise _invalid(index, key, "is required")
    return value


def _quantity(raw: Mapping[str, Any], index: int) -> int:
    value = raw.get("quantity")
    if value is None or isinstance(value, bool):
        raise _invalid(index, "quantity", "must be a positive integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise _invalid(index, "quantity", "must be a positive integer")
        value = int(value)
    try:
        quantity = value if isinstance(value, int) else int(str(value).strip())
    except ValueError:
        raise _invalid(index, "quantity", "must be a positive integer") from None
    if quantity < 1:
        raise _invalid(index, "quantity", "must be a positive integer")
    return quantity


def _cents(raw: Mapping[str, Any], key: str, index: int) -> int:
    value = raw.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise _invalid(index, key, "must be a whole number of cents")
    try:
        cents = int(value) if isinstance(value, (int, float)) else int(str(value).strip())
    except ValueError:
        raise _invalid(index, key, "must be a whole number of cents") from None
    if cents < 0:
        raise _invalid(index, key, "must not be negative")
    return cents


def _rental_window(raw: Mapping[str, Any], index: int) -> tuple[str, str]:
    start = to_datetime(raw.get("rental_start"))
    end = to_datetime(raw.get("rental_end"))
    if start is None:
        raise _invalid(index, "rental_start", "must be an ISO-8601 timestamp")
    if end is None:
        raise _invalid(index, "rental_end", "must be an ISO-8601 timestamp")
    if end < start:
        raise _invalid(index, "rental_end", "must not be before rental_start")
    return to_iso(start), to_iso(end)


def _line_type(raw: Mapping[str, Any], index: int) -> str:
    if not isinstance(raw, Mapping):
        raise ValidationError(
            code="line_item_invalid",
            message=f"Line item {index} must be an object.",
            payload={"line_item_index": index},
        )
    line_type = str(raw.get("type") or "").strip().upper()
    if line_type not in LINE_ITEM_TYPES:
        raise _invalid(index, "type", f"must be one of {', '.join(LINE_ITEM_TYPES)}")
    return line_type


def parse_requirement_line_item(raw: Mapping[str, Any], index: int = 0) -> RequirementLineItem:
    line_type = _line_type(raw, index)
    description = _text(raw, "description") or ""
    quantity = _quantity(raw, index)
    if line_type == RENTAL:
        rental_start, rental_end = _rental_window(raw, index)
        return RfqRentalLineItem(
            description=description,
            pim_category_id=_required_text(raw, "pim_category_id", index),
            quantity=quantity,
            rental_start=rental_start,
            rental_end=rental_end,
        )
    if line_type == SALE:
        return RfqSaleLineItem(
            description=description,
            pim_category_id=_required_text(raw, "pim_category_id", index),
            quantity=quantity,
        )
    return RfqServiceLineItem(description=description, quantity=quantity)


def parse_quote_line_item(raw: Mapping[str, Any], index: int = 0) -> QuoteLineItem:
    line_type = _line_type(raw, index)
    common: Dict[str, Any] = {
        "id": _text(raw, "id") or new_id(),
        "description": _text(raw, "description") or "",
        "quantity": _quantity(raw, index),
        "sellers_price_id": _text(raw, "sellers_price_id"),
        "subtotal_in_cents": _cents(raw, "subtotal_in_cents", index),
        "delivery_method": _text(raw, "delivery_method"),
        "delivery_location": _text(raw, "delivery_location"),
        "delivery_notes": _text(raw, "delivery_notes"),
        "intake_form_submission_line_item_id": _text(raw, "intake_form_submission_line_item_id"),
    }
    if line_type == RENTAL:
        rental_start, rental_end = _rental_window(raw, index)
        return RentalQuoteLineItem(
            pim_category_id=_required_text(raw, "pim_category_id", index),
            rental_start=rental_start,
            rental_end=rental_end,
            **common,
        )
    if line_type == SALE:
        return SaleQuoteLineItem(pim_category_id=_required_text(raw, "pim_category_id", index), **common)
    return ServiceQuoteLineItem(**common)


def parse_requirement_line_items(raw_items: Any) -> List[RequirementLineItem]:
    if not isinstance(raw_items, list):
        raise ValidationError(code="line_items_invalid", message="line_items must be a list.")
    return [parse_requirement_line_item(raw, index) for index, raw in enumerate(raw_items)]


def parse_quote_line_items(raw_items: Any) -> List[QuoteLineItem]:
    if not isinstance(raw_items, list):
        raise ValidationError(code="line_items_invalid", message="line_items must be a list.")
    items = [parse_quote_line_item(raw, index) for index, raw in enumerate(raw_items)]
    seen: set[str] = set()
    for index, item in enumerate(items):
        if item.id in seen:
            raise _invalid(index, "id", "is duplicated")
        seen.add(item.id)
    return items


def has_unpriced_line_items(items: List[QuoteLineItem]) -> bool:
    return any(item.sellers_price_id is None for item in items)


def line_item_to_dict(item: Union[RequirementLineItem, QuoteLineItem]) -> Dict[str, Any]:
    return asdict(item)


def line_items_to_dicts(items: List[Any]) -> List[Dict[str, Any]]:
    return [line_item_to_dict(item) for item in items]
