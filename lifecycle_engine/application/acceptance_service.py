"""Quote acceptance and rejection.

Acceptance is the one place where several aggregates move together: the
quote, its RFQ, every competing quote on that RFQ and the new orders. All of
it happens in a single transaction. Guards are evaluated twice: once up front
so callers get precise errors cheaply, and again on the locked rows inside
the transaction, where a status that changed in between surfaces as a
``ConflictError``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from lifecycle_engine.application.common import publish_after_commit, record_transition, require_actor
from lifecycle_engine.application.order_materializer import OrderMaterializer
from lifecycle_engine.application.quoting_service import quote_payload
from lifecycle_engine.authz import DatabaseWorkspaceDirectory, WorkspaceDirectory
from lifecycle_engine.core.event_bus import DomainEvent, EventBus, QuoteAccepted, QuoteRejected, get_event_bus
from lifecycle_engine.domain.contracts import AcceptQuoteInput, AcceptQuoteResult, Actor
from lifecycle_engine.domain.timestamps import to_datetime, utc_now, utc_now_iso
from lifecycle_engine.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    invalid_state,
    not_found,
)
from lifecycle_engine.infrastructure.repositories import (
    QuoteRepository,
    QuoteRevisionRepository,
    RfqRepository,
    StatusEventRepository,
)
from lifecycle_engine.lifecycle.flow_policy import action_allowed


logger = logging.getLogger("lifecycle.acceptance")

BUYER_USER = "buyer_user"
BUYER_WORKSPACE_MANAGER = "buyer_workspace_manager"
SELLER_ON_BEHALF_OF_BUYER = "seller_on_behalf_of_buyer"


class QuoteAcceptanceService:
    def __init__(
        self,
        directory: WorkspaceDirectory | None = None,
        order_materializer: OrderMaterializer | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.directory = directory or DatabaseWorkspaceDirectory()
        self.order_materializer = order_materializer or OrderMaterializer()
        self.event_bus = event_bus or get_event_bus()
        self.rfqs = RfqRepository()
        self.quotes = QuoteRepository()
        self.revisions = QuoteRevisionRepository()
        self.status_events = StatusEventRepository()

    def authorize_buyer_decision(
        self,
        db,
        actor: Actor,
        quote: Dict[str, Any],
        *,
        approval_confirmation: str | None = None,
        require_confirmation: bool = False,
    ) -> str:
        """Return the capacity in which ``actor`` may decide on the quote, or raise ``ForbiddenError``."""
        buyer_user_ids = {
            quote.get("buyer_user_id"),
            self.directory.contact_user_id(db, quote.get("sellers_buyer_contact_id")),
        }
        if actor.user_id in buyer_user_ids:
            return BUYER_USER
        if self.directory.is_workspace_manager(db, actor.user_id, quote.get("buyer_workspace_id")):
            return BUYER_WORKSPACE_MANAGER
        if self.directory.is_workspace_manager(db, actor.user_id, quote.get("seller_workspace_id")):
            if require_confirmation and not str(approval_confirmation or "").strip():
                raise ForbiddenError(
                    code="approval_confirmation_required",
                    message="Accepting on the buyer's behalf requires an approval confirmation.",
                    payload={"quote_id": quote["id"]},
                )
            return SELLER_ON_BEHALF_OF_BUYER
        raise ForbiddenError(code="permission_denied", payload={"quote_id": quote["id"]})

    def _load_sent_revision(self, db, quote: Dict[str, Any]) -> Dict[str, Any]:
        revision = self.revisions.get(db, quote.get("current_revision_id"))
        if not revision or revision["quote_id"] != quote["id"]:
            raise InvalidStateError(
                code="quote_revision_missing",
                message="The quote has no current revision to accept.",
                payload={"quote_id": quote["id"]},
            )
        if revision["status"] != "SENT":
            raise invalid_state("quote_revision", revision["status"], "accept_quote")
        valid_until = to_datetime(revision.get("valid_until"))
        if valid_until is not None and valid_until < utc_now():
            raise ExpiredError(
                code="quote_revision_expired",
                payload={"quote_id": quote["id"], "revision_id": revision["id"], "valid_until": revision["valid_until"]},
            )
        return revision

    def accept_quote(self, db, *, actor: Actor, accept_input: AcceptQuoteInput) -> AcceptQuoteResult:
        actor = require_actor(actor)
        quote_id = accept_input.quote_id
        quote = self.quotes.get(db, quote_id)
        if not quote:
            raise not_found("quote", quote_id)

        capacity = self.authorize_buyer_decision(
            db,
            actor,
            quote,
            approval_confirmation=accept_input.approval_confirmation,
            require_confirmation=True,
        )
        if not action_allowed("quote", quote["status"], "accept_quote"):
            raise invalid_state("quote", quote["status"], "accept_quote")
        self._load_sent_revision(db, quote)
        rfq_id = quote.get("rfq_id")

        events: List[DomainEvent] = []
        with db.transaction():
            current = self.quotes.get(db, quote_id, for_update=True)
            if not current or current["status"] != "ACTIVE":
                raise ConflictError(
                    code="quote_state_changed",
                    message="The quote was changed by another request before it could be accepted.",
                    payload={"quote_id": quote_id, "status": current["status"] if current else None},
                )
            # The seller may have sent a newer revision since the pre-check.
            revision = self._load_sent_revision(db, current)
            rfq = self.rfqs.get(db, rfq_id, for_update=True) if rfq_id else None

            now = utc_now_iso()
            accepted_fields = {
                "status": "ACCEPTED",
                "buyer_accepted_full_legal_name": str(accept_input.buyer_accepted_full_legal_name or "").strip() or None,
                "approval_confirmation": str(accept_input.approval_confirmation or "").strip() or None,
                "accepted_by": actor.user_id,
                "accepted_at": now,
                "updated_by": actor.user_id,
                "updated_at": now,
            }
            if self.quotes.update_fields(db, quote_id, accepted_fields, expected_status="ACTIVE") != 1:
                raise ConflictError(code="quote_state_changed", payload={"quote_id": quote_id})
            record_transition(
                self.status_events,
                db,
                entity="quote",
                entity_id=quote_id,
                from_status="ACTIVE",
                to_status="ACCEPTED",
                reason=f"accepted_by_{capacity}",
                actor_id=actor.user_id,
                occurred_at=now,
            )

            sales_order, purchase_order, order_events = self.order_materializer.materialize(
                db,
                quote=current,
                revision=revision,
                actor=actor,
                now=now,
            )

            rejected_ids: List[str] = []
            if rfq_id:
                if rfq and rfq["status"] != "ACCEPTED":
                    if self.rfqs.update_fields(
                        db,
                        rfq_id,
                        {"status": "ACCEPTED", "updated_by": actor.user_id, "updated_at": now},
                        expected_status=rfq["status"],
                    ) != 1:
                        raise ConflictError(code="rfq_state_changed", payload={"rfq_id": rfq_id})
                    record_transition(
                        self.status_events,
                        db,
                        entity="rfq",
                        entity_id=rfq_id,
                        from_status=rfq["status"],
                        to_status="ACCEPTED",
                        reason="quote_accepted",
                        actor_id=actor.user_id,
                        occurred_at=now,
                    )
                rejected_ids = self._reject_siblings(db, rfq_id=rfq_id, accepted_quote_id=quote_id, actor=actor, now=now)

            events.append(
                QuoteAccepted(
                    workspace_id=current["seller_workspace_id"],
                    actor_id=actor.user_id,
                    quote_id=quote_id,
                    rfq_id=rfq_id,
                    sales_order_id=sales_order["id"],
                    purchase_order_id=purchase_order["id"] if purchase_order else None,
                )
            )
            events.extend(
                QuoteRejected(
                    workspace_id=current["seller_workspace_id"],
                    actor_id=actor.user_id,
                    quote_id=sibling_id,
                    rfq_id=rfq_id,
                    reason="sibling_quote_accepted",
                )
                for sibling_id in rejected_ids
            )
            events.extend(order_events)
            publish_after_commit(db, self.event_bus, events)

        logger.info(
            "quote_accepted",
            extra={
                "quote_id": quote_id,
                "rfq_id": rfq_id,
                "capacity": capacity,
                "sales_order_id": sales_order["id"],
                "purchase_order_id": purchase_order["id"] if purchase_order else None,
                "siblings_rejected": len(rejected_ids),
            },
        )
        return AcceptQuoteResult(
            quote=quote_payload(self.quotes.get(db, quote_id)),
            sales_order=sales_order,
            purchase_order=purchase_order,
        )

    def _reject_siblings(self, db, *, rfq_id: str, accepted_quote_id: str, actor: Actor, now: str) -> List[str]:
        rejected: List[str] = []
        siblings = self.quotes.list_active_siblings(db, rfq_id, exclude_quote_id=accepted_quote_id, for_update=True)
        for sibling in siblings:
            updated = self.quotes.update_fields(
                db,
                sibling["id"],
                {"status": "REJECTED", "rejected_by": actor.user_id, "rejected_at": now, "updated_by": actor.user_id, "updated_at": now},
                expected_status="ACTIVE",
            )
            if updated != 1:
                continue
            record_transition(
                self.status_events,
                db,
                entity="quote",
                entity_id=sibling["id"],
                from_status="ACTIVE",
                to_status="REJECTED",
                reason="sibling_quote_accepted",
                actor_id=actor.user_id,
                occurred_at=now,
            )
            rejected.append(sibling["id"])
        return rejected

    def reject_quote(self, db, *, actor: Actor, quote_id: str) -> Dict[str, Any]:
        actor = require_actor(actor)
        quote = self.quotes.get(db, quote_id)
        if not quote:
            raise not_found("quote", quote_id)
        capacity = self.authorize_buyer_decision(db, actor, quote)
        if not action_allowed("quote", quote["status"], "reject_quote"):
            raise invalid_state("quote", quote["status"], "reject_quote")

        with db.transaction():
            now = utc_now_iso()
            updated = self.quotes.update_fields(
                db,
                quote_id,
                {"status": "REJECTED", "rejected_by": actor.user_id, "rejected_at": now, "updated_by": actor.user_id, "updated_at": now},
                expected_status="ACTIVE",
            )
            if updated != 1:
                raise ConflictError(
                    code="quote_state_changed",
                    message="The quote was changed by another request before it could be rejected.",
                    payload={"quote_id": quote_id},
                )
            record_transition(
                self.status_events,
                db,
                entity="quote",
                entity_id=quote_id,
                from_status="ACTIVE",
                to_status="REJECTED",
                reason=f"rejected_by_{capacity}",
                actor_id=actor.user_id,
                occurred_at=now,
            )
            publish_after_commit(
                db,
                self.event_bus,
                [
                    QuoteRejected(
                        workspace_id=quote["seller_workspace_id"],
                        actor_id=actor.user_id,
                        quote_id=quote_id,
                        rfq_id=quote.get("rfq_id"),
                    )
                ],
            )

        logger.info("quote_rejected", extra={"quote_id": quote_id, "capacity": capacity})
        return quote_payload(self.quotes.get(db, quote_id))
