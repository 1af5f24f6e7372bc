from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, List, Type

from lifecycle_engine.observability import observe_domain_event_emitted


EventHandler = Callable[["DomainEvent"], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=_utc_now)
    workspace_id: str = ""
    actor_id: str | None = None

    def __post_init__(self) -> None:
        normalized_event_id = str(self.event_id or "").strip() or uuid.uuid4().hex
        normalized_occurred_at = self.occurred_at if isinstance(self.occurred_at, datetime) else _utc_now()
        if normalized_occurred_at.tzinfo is None:
            normalized_occurred_at = normalized_occurred_at.replace(tzinfo=timezone.utc)
        normalized_occurred_at = normalized_occurred_at.astimezone(timezone.utc)
        normalized_workspace = str(self.workspace_id or "").strip() or "unknown"

        object.__setattr__(self, "event_id", normalized_event_id)
        object.__setattr__(self, "occurred_at", normalized_occurred_at)
        object.__setattr__(self, "workspace_id", normalized_workspace)

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"event_type": type(self).__name__}
        for key, value in asdict(self).items():
            if isinstance(value, datetime):
                payload[key] = value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
            else:
                payload[key] = value
        return payload


@dataclass(frozen=True, kw_only=True)
class RfqCreated(DomainEvent):
    rfq_id: str
    status: str


@dataclass(frozen=True, kw_only=True)
class RfqStatusChanged(DomainEvent):
    rfq_id: str
    from_status: str
    to_status: str


@dataclass(frozen=True, kw_only=True)
class QuoteCreated(DomainEvent):
    quote_id: str
    rfq_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class QuoteSent(DomainEvent):
    quote_id: str
    revision_id: str
    buyer_user_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class QuoteAccepted(DomainEvent):
    quote_id: str
    rfq_id: str | None = None
    sales_order_id: str
    purchase_order_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class QuoteRejected(DomainEvent):
    quote_id: str
    rfq_id: str | None = None
    reason: str = "rejected_by_buyer"


@dataclass(frozen=True, kw_only=True)
class SalesOrderCreated(DomainEvent):
    sales_order_id: str
    quote_id: str
    line_item_count: int = 0


@dataclass(frozen=True, kw_only=True)
class PurchaseOrderCreated(DomainEvent):
    purchase_order_id: str
    quote_id: str
    line_item_count: int = 0


@dataclass(frozen=True, kw_only=True)
class PurchaseOrderSubmitted(DomainEvent):
    purchase_order_id: str


@dataclass(frozen=True, kw_only=True)
class InventoryMaterialized(DomainEvent):
    purchase_order_id: str
    units_created: int = 0


class EventBus:
    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}
        self._logger = logging.getLogger("lifecycle.events")

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        observe_domain_event_emitted(type(event).__name__)
        self._logger.info(
            "domain_event_published",
            extra={"event_type": type(event).__name__, "event_id": event.event_id},
        )
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                self._logger.exception("event_handler_failed", extra={"event_type": type(event).__name__})

    def publish_all(self, events: List[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


_DEFAULT_EVENT_BUS = EventBus()


def get_event_bus() -> EventBus:
    return _DEFAULT_EVENT_BUS


def reset_event_bus_for_tests() -> None:
    _DEFAULT_EVENT_BUS.clear()
