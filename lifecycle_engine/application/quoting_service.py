from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping

from lifecycle_engine.application.common import (
    DEFAULT_LIST_LIMIT,
    publish_after_commit,
    record_transition,
    require_actor,
    require_permission,
)
from lifecycle_engine.authz import AuthorizationGate, WorkspaceAuthorizationGate
from lifecycle_engine.core.event_bus import DomainEvent, EventBus, QuoteCreated, QuoteSent, get_event_bus
from lifecycle_engine.db import integrity_errors
from lifecycle_engine.domain.contracts import Actor, QuoteCreateInput, QuoteRevisionCreateInput, ResourceRef
from lifecycle_engine.domain.line_items import (
    RENTAL,
    QuoteLineItem,
    has_unpriced_line_items,
    line_items_to_dicts,
    parse_quote_line_items,
)
from lifecycle_engine.domain.timestamps import new_id, to_iso, utc_now_iso
from lifecycle_engine.errors import ConflictError, ValidationError, invalid_state, not_found
from lifecycle_engine.infrastructure.repositories import (
    QuoteRepository,
    QuoteRevisionRepository,
    RfqRepository,
    StatusEventRepository,
)
from lifecycle_engine.lifecycle.flow_policy import QUOTE_STATUSES, action_allowed, flow_meta
from lifecycle_engine.policies import QUOTE_MANAGE, QUOTE_READ, QUOTE_UPDATE
from lifecycle_engine.pricing import PriceBookResolver, PricingResolver, price_totals


logger = logging.getLogger("lifecycle.quoting")

INTAKE_KEY = "intake_form_submission_line_item_id"


def quote_payload(quote: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(quote)
    payload["flow"] = flow_meta("quote", quote.get("status"))
    return payload


def revision_payload(revision: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(revision)
    payload["total_in_cents"] = sum(int(item.get("subtotal_in_cents") or 0) for item in revision.get("line_items") or [])
    payload["flow"] = flow_meta("quote_revision", revision.get("status"))
    return payload


def carry_forward_intake_ids(
    raw_items: Any,
    previous_items: List[Mapping[str, Any]],
) -> Any:
    """Keep intake traceability on items whose payload omits the key.

    An incoming item matching a previous item by ``id`` inherits the previous
    ``intake_form_submission_line_item_id`` unless the key is present in the
    payload; an explicit ``None`` clears it.
    """
    if not isinstance(raw_items, list):
        return raw_items
    previous_by_id = {str(item.get("id")): item for item in previous_items if item.get("id")}
    merged: List[Any] = []
    for raw in raw_items:
        if isinstance(raw, Mapping) and INTAKE_KEY not in raw:
            previous = previous_by_id.get(str(raw.get("id") or ""))
            if previous is not None and previous.get(INTAKE_KEY) is not None:
                raw = {**raw, INTAKE_KEY: previous.get(INTAKE_KEY)}
        merged.append(raw)
    return merged


def _normalize_valid_until(raw: Any) -> str | None:
    if raw is None or str(raw).strip() == "":
        return None
    resolved = to_iso(raw)
    if resolved is None:
        raise ValidationError(code="valid_until_invalid", message="valid_until must be an ISO-8601 timestamp.")
    return resolved


def _revision_number(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError(code="revision_number_invalid", message="revision_number must be a positive integer.")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(
            code="revision_number_invalid", message="revision_number must be a positive integer."
        ) from None
    if value < 1:
        raise ValidationError(code="revision_number_invalid", message="revision_number must be a positive integer.")
    return value


class QuotingService:
    def __init__(
        self,
        authorization_gate: AuthorizationGate | None = None,
        pricing_resolver: PricingResolver | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.authorization_gate = authorization_gate or WorkspaceAuthorizationGate()
        self.pricing_resolver = pricing_resolver or PriceBookResolver()
        self.event_bus = event_bus or get_event_bus()
        self.rfqs = RfqRepository()
        self.quotes = QuoteRepository()
        self.revisions = QuoteRevisionRepository()
        self.status_events = StatusEventRepository()

    def price_line_items(self, db, line_items: List[QuoteLineItem]) -> List[QuoteLineItem]:
        priced: List[QuoteLineItem] = []
        for item in line_items:
            if item.sellers_price_id is None:
                priced.append(replace(item, subtotal_in_cents=0))
                continue
            duration = (item.rental_start, item.rental_end) if item.type == RENTAL else None
            subtotal = self.pricing_resolver.resolve_price(
                db,
                item.sellers_price_id,
                item.quantity,
                duration,
                lineitem_type=item.type,
            )
            priced.append(replace(item, subtotal_in_cents=int(subtotal)))
        return priced

    def create_quote(self, db, *, actor: Actor, create_input: QuoteCreateInput) -> Dict[str, Any]:
        actor = require_actor(actor)
        seller_workspace_id = str(create_input.seller_workspace_id or "").strip()
        contact_id = str(create_input.sellers_buyer_contact_id or "").strip()
        if not seller_workspace_id:
            raise ValidationError(code="seller_workspace_id_required", message="seller_workspace_id is required.")
        if not contact_id:
            raise ValidationError(
                code="sellers_buyer_contact_id_required", message="sellers_buyer_contact_id is required."
            )
        require_permission(
            self.authorization_gate, db, actor, QUOTE_MANAGE, ResourceRef(kind="workspace", id=seller_workspace_id)
        )

        buyer_workspace_id = str(create_input.buyer_workspace_id or "").strip() or None
        rfq_id = str(create_input.rfq_id or "").strip() or None
        if rfq_id:
            rfq = self.rfqs.get(db, rfq_id)
            if not rfq:
                raise not_found("rfq", rfq_id)
            if not action_allowed("rfq", rfq["status"], "receive_quote"):
                raise invalid_state("rfq", rfq["status"], "receive_quote")
            buyer_workspace_id = buyer_workspace_id or rfq["buyers_workspace_id"]

        now = utc_now_iso()
        record = {
            "id": new_id(),
            "rfq_id": rfq_id,
            "seller_workspace_id": seller_workspace_id,
            "buyer_workspace_id": buyer_workspace_id,
            "sellers_buyer_contact_id": contact_id,
            "sellers_project_id": str(create_input.sellers_project_id or "").strip() or None,
            "status": "DRAFT",
            "created_by": actor.user_id,
            "updated_by": actor.user_id,
            "created_at": now,
            "updated_at": now,
        }
        with db.transaction():
            self.quotes.insert(db, record)
            record_transition(
                self.status_events,
                db,
                entity="quote",
                entity_id=record["id"],
                from_status=None,
                to_status="DRAFT",
                reason="quote_created",
                actor_id=actor.user_id,
                occurred_at=now,
            )
            publish_after_commit(
                db,
                self.event_bus,
                [QuoteCreated(workspace_id=seller_workspace_id, actor_id=actor.user_id, quote_id=record["id"], rfq_id=rfq_id)],
            )

        logger.info("quote_created", extra={"quote_id": record["id"], "rfq_id": rfq_id})
        return quote_payload(self.quotes.get(db, record["id"]))

    def create_quote_revision(self, db, *, actor: Actor, create_input: QuoteRevisionCreateInput) -> Dict[str, Any]:
        actor = require_actor(actor)
        quote_id = create_input.quote_id
        quote = self.quotes.get(db, quote_id)
        if not quote:
            raise not_found("quote", quote_id)
        require_permission(self.authorization_gate, db, actor, QUOTE_UPDATE, ResourceRef(kind="quote", id=quote_id))
        if not action_allowed("quote", quote["status"], "create_revision"):
            raise invalid_state("quote", quote["status"], "create_revision")

        revision_number = _revision_number(create_input.revision_number)
        line_items = self.price_line_items(db, parse_quote_line_items(create_input.line_items))
        now = utc_now_iso()
        record = {
            "id": new_id(),
            "quote_id": quote_id,
            "revision_number": revision_number,
            "status": "DRAFT",
            "valid_until": _normalize_valid_until(create_input.valid_until),
            "line_items": line_items_to_dicts(line_items),
            "has_unpriced_line_items": has_unpriced_line_items(line_items),
            "created_by": actor.user_id,
            "updated_by": actor.user_id,
            "created_at": now,
            "updated_at": now,
        }

        with db.transaction():
            latest = self.revisions.max_revision_number(db, quote_id)
            if revision_number <= latest:
                raise ValidationError(
                    code="revision_number_not_increasing",
                    message=f"revision_number must be greater than {latest}.",
                    payload={"quote_id": quote_id, "latest_revision_number": latest},
                )
            try:
                self.revisions.insert(db, record)
            except integrity_errors() as exc:
                raise ConflictError(
                    code="revision_number_conflict",
                    message="Another revision with this number was created concurrently.",
                    details=str(exc),
                    payload={"quote_id": quote_id, "revision_number": revision_number},
                ) from exc
            record_transition(
                self.status_events,
                db,
                entity="quote_revision",
                entity_id=record["id"],
                from_status=None,
                to_status="DRAFT",
                reason="quote_revision_created",
                actor_id=actor.user_id,
                occurred_at=now,
            )

        logger.info(
            "quote_revision_created",
            extra={
                "quote_id": quote_id,
                "revision_id": record["id"],
                "revision_number": revision_number,
                "has_unpriced_line_items": record["has_unpriced_line_items"],
                "total_in_cents": price_totals(line_items),
            },
        )
        return revision_payload(self.revisions.get(db, record["id"]))

    def update_quote_revision(
        self,
        db,
        *,
        actor: Actor,
        revision_id: str,
        payload: Mapping[str, Any],
    ) -> Dict[str, Any]:
        actor = require_actor(actor)
        revision = self.revisions.get(db, revision_id)
        if not revision:
            raise not_found("quote_revision", revision_id)
        require_permission(
            self.authorization_gate, db, actor, QUOTE_UPDATE, ResourceRef(kind="quote_revision", id=revision_id)
        )
        if not action_allowed("quote_revision", revision["status"], "edit_revision"):
            raise invalid_state("quote_revision", revision["status"], "edit_revision")

        fields: Dict[str, Any] = {}
        if "line_items" in payload:
            raw_items = carry_forward_intake_ids(payload.get("line_items"), revision.get("line_items") or [])
            line_items = self.price_line_items(db, parse_quote_line_items(raw_items))
            fields["line_items"] = line_items_to_dicts(line_items)
            fields["has_unpriced_line_items"] = has_unpriced_line_items(line_items)
        if "valid_until" in payload:
            fields["valid_until"] = _normalize_valid_until(payload.get("valid_until"))
        if not fields:
            return revision_payload(revision)

        with db.transaction():
            current = self.revisions.get(db, revision_id, for_update=True)
            if not current:
                raise not_found("quote_revision", revision_id)
            if not action_allowed("quote_revision", current["status"], "edit_revision"):
                raise invalid_state("quote_revision", current["status"], "edit_revision")
            fields["updated_by"] = actor.user_id
            fields["updated_at"] = utc_now_iso()
            if self.revisions.update_fields(db, revision_id, fields, expected_status="DRAFT") != 1:
                raise ConflictError(payload={"entity": "quote_revision", "entity_id": revision_id})

        logger.info(
            "quote_revision_updated",
            extra={"revision_id": revision_id, "fields": sorted(key for key in fields if key not in {"updated_by", "updated_at"})},
        )
        return revision_payload(self.revisions.get(db, revision_id))

    def send_quote(
        self,
        db,
        *,
        actor: Actor,
        quote_id: str,
        revision_id: str,
        buyer_user_id: str | None = None,
    ) -> Dict[str, Any]:
        actor = require_actor(actor)
        quote = self.quotes.get(db, quote_id)
        if not quote:
            raise not_found("quote", quote_id)
        require_permission(self.authorization_gate, db, actor, QUOTE_UPDATE, ResourceRef(kind="quote", id=quote_id))

        revision = self.revisions.get(db, revision_id)
        if not revision:
            raise not_found("quote_revision", revision_id)
        if revision["quote_id"] != quote_id:
            raise ValidationError(
                code="revision_quote_mismatch",
                message="The revision does not belong to this quote.",
                payload={"quote_id": quote_id, "revision_id": revision_id},
            )
        if revision["has_unpriced_line_items"]:
            raise ValidationError(
                code="quote_revision_unpriced",
                message="Every line item must be priced before the quote is sent.",
                payload={"revision_id": revision_id},
            )
        if not action_allowed("quote", quote["status"], "send_quote"):
            raise invalid_state("quote", quote["status"], "send_quote")

        buyer_user_id = str(buyer_user_id or "").strip() or None
        events: List[DomainEvent] = []
        with db.transaction():
            current = self.quotes.get(db, quote_id, for_update=True)
            from_status = current["status"]
            if not action_allowed("quote", from_status, "send_quote"):
                raise invalid_state("quote", from_status, "send_quote")

            now = utc_now_iso()
            if revision["status"] == "DRAFT":
                if self.revisions.update_fields(
                    db,
                    revision_id,
                    {"status": "SENT", "updated_by": actor.user_id, "updated_at": now},
                    expected_status="DRAFT",
                ) != 1:
                    raise ConflictError(payload={"entity": "quote_revision", "entity_id": revision_id})
                record_transition(
                    self.status_events,
                    db,
                    entity="quote_revision",
                    entity_id=revision_id,
                    from_status="DRAFT",
                    to_status="SENT",
                    reason="quote_sent",
                    actor_id=actor.user_id,
                    occurred_at=now,
                )

            fields: Dict[str, Any] = {
                "status": "ACTIVE",
                "current_revision_id": revision_id,
                "updated_by": actor.user_id,
                "updated_at": now,
            }
            if buyer_user_id:
                fields["buyer_user_id"] = buyer_user_id
            if self.quotes.update_fields(db, quote_id, fields, expected_status=from_status) != 1:
                raise ConflictError(payload={"entity": "quote", "entity_id": quote_id})
            if from_status != "ACTIVE":
                record_transition(
                    self.status_events,
                    db,
                    entity="quote",
                    entity_id=quote_id,
                    from_status=from_status,
                    to_status="ACTIVE",
                    reason="quote_sent",
                    actor_id=actor.user_id,
                    occurred_at=now,
                )
            events.append(
                QuoteSent(
                    workspace_id=current["seller_workspace_id"],
                    actor_id=actor.user_id,
                    quote_id=quote_id,
                    revision_id=revision_id,
                    buyer_user_id=buyer_user_id or current.get("buyer_user_id"),
                )
            )
            publish_after_commit(db, self.event_bus, events)

        logger.info(
            "quote_sent",
            extra={"quote_id": quote_id, "revision_id": revision_id, "revision_number": revision["revision_number"]},
        )
        return quote_payload(self.quotes.get(db, quote_id))

    def get_quote(self, db, *, actor: Actor, quote_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        quote = self.quotes.get(db, quote_id)
        if not quote:
            raise not_found("quote", quote_id)
        require_permission(self.authorization_gate, db, actor, QUOTE_READ, ResourceRef(kind="quote", id=quote_id))
        payload = quote_payload(quote)
        current_revision = self.revisions.get(db, quote.get("current_revision_id"))
        payload["current_revision"] = revision_payload(current_revision) if current_revision else None
        return payload

    def get_quote_revision(self, db, *, actor: Actor, revision_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        revision = self.revisions.get(db, revision_id)
        if not revision:
            raise not_found("quote_revision", revision_id)
        require_permission(
            self.authorization_gate, db, actor, QUOTE_READ, ResourceRef(kind="quote_revision", id=revision_id)
        )
        return revision_payload(revision)

    def list_quotes(
        self,
        db,
        *,
        actor: Actor,
        rfq_id: str | None = None,
        workspace_id: str | None = None,
        status: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Dict[str, Any]:
        actor = require_actor(actor)
        if not rfq_id and not workspace_id:
            raise ValidationError(code="quote_filter_required", message="Filter quotes by rfq_id or workspace_id.")
        normalized_status = str(status or "").strip().upper() or None
        if normalized_status and normalized_status not in QUOTE_STATUSES:
            raise ValidationError(
                code="quote_status_invalid",
                message=f"Unknown quote status: {status}.",
                payload={"allowed_statuses": list(QUOTE_STATUSES)},
            )
        if workspace_id:
            require_permission(
                self.authorization_gate, db, actor, QUOTE_READ, ResourceRef(kind="workspace", id=workspace_id)
            )
        quotes = self.quotes.list_quotes(
            db, rfq_id=rfq_id, workspace_id=workspace_id, status=normalized_status, limit=limit + 1
        )
        has_more = len(quotes) > limit
        quotes = quotes[:limit]
        if not workspace_id:
            # Without a workspace scope, only return quotes this actor may read.
            quotes = [
                quote
                for quote in quotes
                if self.authorization_gate.can(db, actor, QUOTE_READ, ResourceRef(kind="quote", id=quote["id"]))
            ]
        return {"items": [quote_payload(quote) for quote in quotes], "limit": limit, "has_more": has_more}

    def list_quote_revisions(self, db, *, actor: Actor, quote_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        quote = self.quotes.get(db, quote_id)
        if not quote:
            raise not_found("quote", quote_id)
        require_permission(self.authorization_gate, db, actor, QUOTE_READ, ResourceRef(kind="quote", id=quote_id))
        return {"items": [revision_payload(revision) for revision in self.revisions.list_for_quote(db, quote_id)]}
