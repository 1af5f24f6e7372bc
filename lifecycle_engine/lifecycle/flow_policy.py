from __future__ import annotations

from typing import Dict, FrozenSet, List


RFQ_STATUSES = ("DRAFT", "SENT", "ACCEPTED", "REJECTED", "CANCELLED", "EXPIRED")
RFQ_TERMINAL_STATUSES = frozenset({"ACCEPTED", "REJECTED", "CANCELLED", "EXPIRED"})
QUOTE_STATUSES = ("DRAFT", "ACTIVE", "ACCEPTED", "REJECTED")
REVISION_STATUSES = ("DRAFT", "SENT")
ORDER_STATUSES = ("DRAFT", "SUBMITTED")


# Direct (caller-requested) RFQ status edges. ACCEPTED is additionally reached
# through quote acceptance, which does not consult this table.
RFQ_STATUS_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "DRAFT": frozenset({"SENT"}),
    "SENT": RFQ_TERMINAL_STATUSES,
}


FLOW_POLICY: Dict[str, Dict[str, Dict[str, object]]] = {
    "rfq": {
        "DRAFT": {
            "allowed_actions": ["view_rfq", "edit_rfq", "update_rfq_status", "receive_quote"],
            "primary_action": "update_rfq_status",
        },
        "SENT": {
            "allowed_actions": ["view_rfq", "edit_rfq", "update_rfq_status", "receive_quote"],
            "primary_action": "receive_quote",
        },
        "ACCEPTED": {"allowed_actions": ["view_rfq"], "primary_action": "view_rfq"},
        "REJECTED": {"allowed_actions": ["view_rfq"], "primary_action": "view_rfq"},
        "CANCELLED": {"allowed_actions": ["view_rfq"], "primary_action": "view_rfq"},
        "EXPIRED": {"allowed_actions": ["view_rfq"], "primary_action": "view_rfq"},
    },
    "quote": {
        "DRAFT": {
            "allowed_actions": ["view_quote", "create_revision", "send_quote"],
            "primary_action": "send_quote",
        },
        "ACTIVE": {
            "allowed_actions": ["view_quote", "create_revision", "send_quote", "accept_quote", "reject_quote"],
            "primary_action": "accept_quote",
        },
        "ACCEPTED": {"allowed_actions": ["view_quote", "view_orders"], "primary_action": "view_orders"},
        "REJECTED": {"allowed_actions": ["view_quote"], "primary_action": "view_quote"},
    },
    "quote_revision": {
        "DRAFT": {
            "allowed_actions": ["view_revision", "edit_revision", "send_revision"],
            "primary_action": "send_revision",
        },
        "SENT": {"allowed_actions": ["view_revision"], "primary_action": "view_revision"},
    },
    "sales_order": {
        "DRAFT": {"allowed_actions": ["view_order"], "primary_action": "view_order"},
        "SUBMITTED": {"allowed_actions": ["view_order"], "primary_action": "view_order"},
    },
    "purchase_order": {
        "DRAFT": {
            "allowed_actions": ["view_order", "submit_purchase_order"],
            "primary_action": "submit_purchase_order",
        },
        "SUBMITTED": {
            "allowed_actions": ["view_order", "view_inventory"],
            "primary_action": "view_inventory",
        },
    },
}


def _fallback_policy() -> Dict[str, object]:
    return {"allowed_actions": [], "primary_action": None}


def status_policy(stage: str, status: str | None) -> Dict[str, object]:
    if not status:
        return _fallback_policy()
    return FLOW_POLICY.get(stage, {}).get(str(status), _fallback_policy())


def allowed_actions(stage: str, status: str | None) -> List[str]:
    actions = status_policy(stage, status).get("allowed_actions") or []
    if not isinstance(actions, list):
        return []
    return [str(action) for action in actions]


def primary_action(stage: str, status: str | None) -> str | None:
    action = status_policy(stage, status).get("primary_action")
    if not action:
        return None
    return str(action)


def action_allowed(stage: str, status: str | None, action: str) -> bool:
    if not action:
        return False
    return action in set(allowed_actions(stage, status))


def flow_meta(stage: str, status: str | None) -> Dict[str, object]:
    return {
        "stage": stage,
        "status": status,
        "allowed_actions": allowed_actions(stage, status),
        "primary_action": primary_action(stage, status),
    }


def rfq_transition_allowed(from_status: str | None, to_status: str | None) -> bool:
    if not from_status or not to_status:
        return False
    return to_status in RFQ_STATUS_TRANSITIONS.get(from_status, frozenset())
