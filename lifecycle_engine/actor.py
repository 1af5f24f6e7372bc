from __future__ import annotations

from flask import current_app, g, request

from lifecycle_engine.domain.contracts import Actor
from lifecycle_engine.errors import AuthenticationRequiredError


def current_actor() -> Actor:
    cached = getattr(g, "actor", None)
    if cached is not None:
        return cached
    header = current_app.config.get("ACTOR_HEADER", "X-User-Id")
    user_id = str(request.headers.get(header) or "").strip()
    if not user_id:
        raise AuthenticationRequiredError(payload={"header": header})
    display_name = str(request.headers.get("X-User-Name") or "").strip() or None
    g.actor = Actor(user_id=user_id, display_name=display_name)
    return g.actor
