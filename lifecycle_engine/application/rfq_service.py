from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from lifecycle_engine.application.common import (
    DEFAULT_LIST_LIMIT,
    publish_after_commit,
    record_transition,
    require_actor,
    require_permission,
)
from lifecycle_engine.authz import AuthorizationGate, WorkspaceAuthorizationGate
from lifecycle_engine.core.event_bus import DomainEvent, EventBus, RfqCreated, RfqStatusChanged, get_event_bus
from lifecycle_engine.domain.contracts import Actor, ResourceRef, RfqCreateInput
from lifecycle_engine.domain.line_items import line_items_to_dicts, parse_requirement_line_items
from lifecycle_engine.domain.timestamps import new_id, to_iso, utc_now_iso
from lifecycle_engine.errors import ConflictError, InvalidStateError, ValidationError, invalid_state, not_found
from lifecycle_engine.infrastructure.repositories import QuoteRepository, RfqRepository, StatusEventRepository
from lifecycle_engine.lifecycle.flow_policy import (
    RFQ_STATUSES,
    action_allowed,
    flow_meta,
    rfq_transition_allowed,
)
from lifecycle_engine.policies import RFQ_MANAGE, RFQ_READ, RFQ_UPDATE


logger = logging.getLogger("lifecycle.rfq")


def _normalize_contact_ids(raw: Any) -> List[str]:
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(code="invited_seller_contact_ids_invalid", message="invited_seller_contact_ids must be a list.")
    ordered: List[str] = []
    for value in raw:
        contact_id = str(value or "").strip()
        if contact_id and contact_id not in ordered:
            ordered.append(contact_id)
    return ordered


def _normalize_deadline(raw: Any) -> str | None:
    if raw is None or str(raw).strip() == "":
        return None
    resolved = to_iso(raw)
    if resolved is None:
        raise ValidationError(code="response_deadline_invalid", message="response_deadline must be an ISO-8601 timestamp.")
    return resolved


def _normalize_status(raw: Any) -> str:
    status = str(raw or "").strip().upper()
    if status not in RFQ_STATUSES:
        raise ValidationError(
            code="rfq_status_invalid",
            message=f"Unknown RFQ status: {raw}.",
            payload={"allowed_statuses": list(RFQ_STATUSES)},
        )
    return status


def rfq_payload(rfq: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(rfq)
    payload["flow"] = flow_meta("rfq", rfq.get("status"))
    return payload


class RfqService:
    def __init__(
        self,
        authorization_gate: AuthorizationGate | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.authorization_gate = authorization_gate or WorkspaceAuthorizationGate()
        self.event_bus = event_bus or get_event_bus()
        self.rfqs = RfqRepository()
        self.quotes = QuoteRepository()
        self.status_events = StatusEventRepository()

    def create_rfq(self, db, *, actor: Actor, create_input: RfqCreateInput) -> Dict[str, Any]:
        actor = require_actor(actor)
        workspace_id = str(create_input.buyers_workspace_id or "").strip()
        if not workspace_id:
            raise ValidationError(code="buyers_workspace_id_required", message="buyers_workspace_id is required.")
        require_permission(
            self.authorization_gate, db, actor, RFQ_MANAGE, ResourceRef(kind="workspace", id=workspace_id)
        )

        status = _normalize_status(create_input.status or "DRAFT")
        if status not in {"DRAFT", "SENT"}:
            raise ValidationError(
                code="rfq_status_invalid",
                message="A new RFQ must start as DRAFT or SENT.",
                payload={"allowed_statuses": ["DRAFT", "SENT"]},
            )
        line_items = parse_requirement_line_items(create_input.line_items)
        now = utc_now_iso()
        record = {
            "id": new_id(),
            "buyers_workspace_id": workspace_id,
            "title": (create_input.title or "").strip() or None,
            "status": status,
            "invited_seller_contact_ids": _normalize_contact_ids(create_input.invited_seller_contact_ids),
            "line_items": line_items_to_dicts(line_items),
            "response_deadline": _normalize_deadline(create_input.response_deadline),
            "created_by": actor.user_id,
            "updated_by": actor.user_id,
            "created_at": now,
            "updated_at": now,
        }

        with db.transaction():
            self.rfqs.insert(db, record)
            record_transition(
                self.status_events,
                db,
                entity="rfq",
                entity_id=record["id"],
                from_status=None,
                to_status=status,
                reason="rfq_created",
                actor_id=actor.user_id,
                occurred_at=now,
            )
            publish_after_commit(
                db,
                self.event_bus,
                [RfqCreated(workspace_id=workspace_id, actor_id=actor.user_id, rfq_id=record["id"], status=status)],
            )

        logger.info(
            "rfq_created",
            extra={"rfq_id": record["id"], "workspace_id": workspace_id, "line_items": len(line_items)},
        )
        return rfq_payload(record)

    def update_rfq(self, db, *, actor: Actor, rfq_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply a partial update; only keys present in ``payload`` are touched."""
        actor = require_actor(actor)
        rfq = self.rfqs.get(db, rfq_id)
        if not rfq:
            raise not_found("rfq", rfq_id)
        require_permission(self.authorization_gate, db, actor, RFQ_UPDATE, ResourceRef(kind="rfq", id=rfq_id))
        if not action_allowed("rfq", rfq["status"], "edit_rfq"):
            raise invalid_state("rfq", rfq["status"], "update")

        fields: Dict[str, Any] = {}
        if "title" in payload:
            fields["title"] = (str(payload.get("title") or "")).strip() or None
        if "response_deadline" in payload:
            fields["response_deadline"] = _normalize_deadline(payload.get("response_deadline"))
        if "invited_seller_contact_ids" in payload:
            fields["invited_seller_contact_ids"] = _normalize_contact_ids(payload.get("invited_seller_contact_ids"))
        if "line_items" in payload:
            fields["line_items"] = line_items_to_dicts(parse_requirement_line_items(payload.get("line_items")))
        requested_status = _normalize_status(payload.get("status")) if payload.get("status") is not None else None

        events: List[DomainEvent] = []
        with db.transaction():
            current = self.rfqs.get(db, rfq_id, for_update=True)
            if not current:
                raise not_found("rfq", rfq_id)
            from_status = current["status"]
            if not action_allowed("rfq", from_status, "edit_rfq"):
                raise invalid_state("rfq", from_status, "update")

            to_status = from_status
            if requested_status and requested_status != from_status:
                if not rfq_transition_allowed(from_status, requested_status):
                    raise InvalidStateError(
                        code="rfq_transition_not_allowed",
                        message=f"RFQ cannot move from {from_status} to {requested_status}.",
                        payload={"from_status": from_status, "to_status": requested_status},
                    )
                if requested_status == "ACCEPTED" and self.quotes.has_active_for_rfq(db, rfq_id):
                    raise InvalidStateError(
                        code="rfq_has_active_quotes",
                        message="Accept one of the RFQ's active quotes instead of accepting the RFQ directly.",
                        payload={"rfq_id": rfq_id},
                    )
                to_status = requested_status
                fields["status"] = to_status

            now = utc_now_iso()
            fields["updated_by"] = actor.user_id
            fields["updated_at"] = now
            updated = self.rfqs.update_fields(db, rfq_id, fields, expected_status=from_status)
            if updated != 1:
                raise ConflictError(payload={"entity": "rfq", "entity_id": rfq_id})

            if to_status != from_status:
                record_transition(
                    self.status_events,
                    db,
                    entity="rfq",
                    entity_id=rfq_id,
                    from_status=from_status,
                    to_status=to_status,
                    reason="rfq_status_updated",
                    actor_id=actor.user_id,
                    occurred_at=now,
                )
                events.append(
                    RfqStatusChanged(
                        workspace_id=current["buyers_workspace_id"],
                        actor_id=actor.user_id,
                        rfq_id=rfq_id,
                        from_status=from_status,
                        to_status=to_status,
                    )
                )
            publish_after_commit(db, self.event_bus, events)

        logger.info(
            "rfq_updated",
            extra={"rfq_id": rfq_id, "fields": sorted(key for key in fields if key not in {"updated_by", "updated_at"})},
        )
        return rfq_payload(self.rfqs.get(db, rfq_id))

    def get_rfq(self, db, *, actor: Actor, rfq_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        rfq = self.rfqs.get(db, rfq_id)
        if not rfq:
            raise not_found("rfq", rfq_id)
        require_permission(self.authorization_gate, db, actor, RFQ_READ, ResourceRef(kind="rfq", id=rfq_id))
        return rfq_payload(rfq)

    def list_rfqs(
        self,
        db,
        *,
        actor: Actor,
        buyers_workspace_id: str,
        status: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Dict[str, Any]:
        actor = require_actor(actor)
        require_permission(
            self.authorization_gate, db, actor, RFQ_READ, ResourceRef(kind="workspace", id=buyers_workspace_id)
        )
        normalized_status = _normalize_status(status) if status else None
        items = self.rfqs.list_for_workspace(db, buyers_workspace_id, status=normalized_status, limit=limit + 1)
        return {
            "items": [rfq_payload(item) for item in items[:limit]],
            "limit": limit,
            "has_more": len(items) > limit,
        }
