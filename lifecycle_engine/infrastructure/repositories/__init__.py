from .directory_repository import ContactRepository, WorkspaceMemberRepository
from .inventory_repository import InventoryRepository
from .order_repository import PurchaseOrderRepository, SalesOrderRepository
from .price_repository import PriceRepository
from .quote_repository import QuoteRepository
from .quote_revision_repository import QuoteRevisionRepository
from .rfq_repository import RfqRepository
from .status_event_repository import StatusEventRepository

__all__ = [
    "ContactRepository",
    "InventoryRepository",
    "PriceRepository",
    "PurchaseOrderRepository",
    "QuoteRepository",
    "QuoteRevisionRepository",
    "RfqRepository",
    "SalesOrderRepository",
    "StatusEventRepository",
    "WorkspaceMemberRepository",
]
