from __future__ import annotations

from typing import Dict, FrozenSet, Set


VALID_ROLES: Set[str] = {"admin", "manager", "member"}
MANAGER_ROLES: FrozenSet[str] = frozenset({"admin", "manager"})

RFQ_MANAGE = "rfq:manage"
RFQ_UPDATE = "rfq:update"
RFQ_READ = "rfq:read"
QUOTE_MANAGE = "quote:manage"
QUOTE_UPDATE = "quote:update"
QUOTE_READ = "quote:read"
PURCHASE_ORDER_SUBMIT = "purchase_order:submit"
PURCHASE_ORDER_READ = "purchase_order:read"
SALES_ORDER_READ = "sales_order:read"

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "admin": frozenset(
        {
            RFQ_MANAGE,
            RFQ_UPDATE,
            RFQ_READ,
            QUOTE_MANAGE,
            QUOTE_UPDATE,
            QUOTE_READ,
            PURCHASE_ORDER_SUBMIT,
            PURCHASE_ORDER_READ,
            SALES_ORDER_READ,
        }
    ),
    "manager": frozenset(
        {
            RFQ_MANAGE,
            RFQ_UPDATE,
            RFQ_READ,
            QUOTE_MANAGE,
            QUOTE_UPDATE,
            QUOTE_READ,
            PURCHASE_ORDER_SUBMIT,
            PURCHASE_ORDER_READ,
            SALES_ORDER_READ,
        }
    ),
    "member": frozenset(
        {
            RFQ_READ,
            RFQ_UPDATE,
            QUOTE_READ,
            QUOTE_UPDATE,
            PURCHASE_ORDER_READ,
            SALES_ORDER_READ,
        }
    ),
}


def normalize_role(role: str | None, default: str = "member") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def is_manager_role(role: str | None) -> bool:
    return normalize_role(role, default="") in MANAGER_ROLES


def role_grants(role: str | None, permission: str) -> bool:
    normalized = normalize_role(role, default="")
    if not normalized:
        return False
    return permission in ROLE_PERMISSIONS.get(normalized, frozenset())
