from lifecycle_engine.core.event_bus import (
    DomainEvent,
    EventBus,
    InventoryMaterialized,
    PurchaseOrderCreated,
    PurchaseOrderSubmitted,
    QuoteAccepted,
    QuoteCreated,
    QuoteRejected,
    QuoteSent,
    RfqCreated,
    RfqStatusChanged,
    SalesOrderCreated,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "RfqCreated",
    "RfqStatusChanged",
    "QuoteCreated",
    "QuoteSent",
    "QuoteAccepted",
    "QuoteRejected",
    "SalesOrderCreated",
    "PurchaseOrderCreated",
    "PurchaseOrderSubmitted",
    "InventoryMaterialized",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
