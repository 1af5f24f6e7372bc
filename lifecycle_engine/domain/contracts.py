from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class Actor:
    user_id: str
    display_name: str | None = None


@dataclass(frozen=True)
class ResourceRef:
    kind: str
    id: str


@dataclass(frozen=True)
class RfqCreateInput:
    buyers_workspace_id: str
    line_items: List[Dict[str, Any]]
    invited_seller_contact_ids: List[str] = field(default_factory=list)
    title: str | None = None
    status: str = "DRAFT"
    response_deadline: str | None = None


@dataclass(frozen=True)
class QuoteCreateInput:
    seller_workspace_id: str
    sellers_buyer_contact_id: str
    sellers_project_id: str | None = None
    rfq_id: str | None = None
    buyer_workspace_id: str | None = None


@dataclass(frozen=True)
class QuoteRevisionCreateInput:
    quote_id: str
    revision_number: int
    line_items: List[Dict[str, Any]]
    valid_until: str | None = None


@dataclass(frozen=True)
class AcceptQuoteInput:
    quote_id: str
    approval_confirmation: str | None = None
    buyer_accepted_full_legal_name: str | None = None


@dataclass(frozen=True)
class AcceptQuoteResult:
    quote: Dict[str, Any]
    sales_order: Dict[str, Any]
    purchase_order: Dict[str, Any] | None = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "quote": self.quote,
            "sales_order": self.sales_order,
            "purchase_order": self.purchase_order,
        }
