from __future__ import annotations

from typing import Iterable

from lifecycle_engine.authz import AuthorizationGate
from lifecycle_engine.core.event_bus import DomainEvent, EventBus
from lifecycle_engine.domain.contracts import Actor, ResourceRef
from lifecycle_engine.errors import AuthenticationRequiredError, ForbiddenError
from lifecycle_engine.infrastructure.repositories import StatusEventRepository
from lifecycle_engine.observability import observe_lifecycle_transition


DEFAULT_LIST_LIMIT = 120
MAX_LIST_LIMIT = 300


def require_actor(actor: Actor | None) -> Actor:
    if actor is None or not str(actor.user_id or "").strip():
        raise AuthenticationRequiredError()
    return actor


def require_permission(gate: AuthorizationGate, db, actor: Actor, permission: str, resource: ResourceRef) -> None:
    if gate.can(db, actor, permission, resource):
        return
    raise ForbiddenError(
        code="permission_denied",
        payload={"permission": permission, "resource_kind": resource.kind, "resource_id": resource.id},
    )


def record_transition(
    status_events: StatusEventRepository,
    db,
    *,
    entity: str,
    entity_id: str,
    from_status: str | None,
    to_status: str | None,
    reason: str,
    actor_id: str | None,
    occurred_at: str | None = None,
) -> None:
    status_events.add_event(
        db,
        entity=entity,
        entity_id=entity_id,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        actor_id=actor_id,
        occurred_at=occurred_at,
    )
    db.on_commit(lambda: observe_lifecycle_transition(entity, from_status, to_status))


def publish_after_commit(db, event_bus: EventBus, events: Iterable[DomainEvent]) -> None:
    pending = list(events)
    if not pending:
        return
    db.on_commit(lambda: event_bus.publish_all(pending))
