"""Workspace directory and authorization gate.

The engine only ever asks two narrow questions: "who manages or belongs to
this workspace" and "may this actor do X to this resource". Both are
protocols so a host application can plug in its own identity provider; the
defaults below answer them from the ``workspace_members`` and ``contacts``
tables.
"""

from __future__ import annotations

import logging
from typing import Protocol

from lifecycle_engine.domain.contracts import Actor, ResourceRef
from lifecycle_engine.infrastructure.repositories import (
    ContactRepository,
    PurchaseOrderRepository,
    QuoteRepository,
    QuoteRevisionRepository,
    RfqRepository,
    SalesOrderRepository,
    WorkspaceMemberRepository,
)
from lifecycle_engine.policies import RFQ_READ, QUOTE_READ, is_manager_role, role_grants


logger = logging.getLogger("lifecycle.authz")


class WorkspaceDirectory(Protocol):
    def is_workspace_manager(self, db, user_id: str, workspace_id: str | None) -> bool: ...

    def is_workspace_member(self, db, user_id: str, workspace_id: str | None) -> bool: ...

    def workspace_role(self, db, user_id: str, workspace_id: str | None) -> str | None: ...

    def contact_user_id(self, db, contact_id: str | None) -> str | None: ...


class AuthorizationGate(Protocol):
    def can(self, db, actor: Actor, permission: str, resource: ResourceRef) -> bool: ...


class DatabaseWorkspaceDirectory:
    def __init__(
        self,
        members: WorkspaceMemberRepository | None = None,
        contacts: ContactRepository | None = None,
    ) -> None:
        self._members = members or WorkspaceMemberRepository()
        self._contacts = contacts or ContactRepository()

    def workspace_role(self, db, user_id: str, workspace_id: str | None) -> str | None:
        if not user_id or not workspace_id:
            return None
        return self._members.get_role(db, workspace_id, user_id)

    def is_workspace_manager(self, db, user_id: str, workspace_id: str | None) -> bool:
        return is_manager_role(self.workspace_role(db, user_id, workspace_id))

    def is_workspace_member(self, db, user_id: str, workspace_id: str | None) -> bool:
        return self.workspace_role(db, user_id, workspace_id) is not None

    def contact_user_id(self, db, contact_id: str | None) -> str | None:
        contact = self._contacts.get(db, contact_id)
        if not contact:
            return None
        user_id = str(contact.get("user_id") or "").strip()
        return user_id or None

    def contact_user_ids(self, db, contact_ids: list[str]) -> list[str]:
        return self._contacts.user_ids_for_contacts(db, contact_ids)


class WorkspaceAuthorizationGate:
    """Role-based gate: the actor's role in the owning workspace must grant the permission.

    Read permissions are widened for the counterparty: invited sellers may read
    the RFQ they were invited to, and the buyer side may read a quote addressed
    to it.
    """

    def __init__(self, directory: DatabaseWorkspaceDirectory | None = None) -> None:
        self.directory = directory or DatabaseWorkspaceDirectory()
        self._rfqs = RfqRepository()
        self._quotes = QuoteRepository()
        self._revisions = QuoteRevisionRepository()
        self._sales_orders = SalesOrderRepository()
        self._purchase_orders = PurchaseOrderRepository()

    def can(self, db, actor: Actor, permission: str, resource: ResourceRef) -> bool:
        if actor is None or not actor.user_id:
            return False
        allowed = self._evaluate(db, actor, permission, resource)
        if not allowed:
            logger.info(
                "authorization_denied",
                extra={
                    "user_id": actor.user_id,
                    "permission": permission,
                    "resource_kind": resource.kind,
                    "resource_id": resource.id,
                },
            )
        return allowed

    def _evaluate(self, db, actor: Actor, permission: str, resource: ResourceRef) -> bool:
        kind = resource.kind
        if kind == "workspace":
            return self._role_allows(db, actor, permission, resource.id)

        if kind == "rfq":
            rfq = self._rfqs.get(db, resource.id)
            if not rfq:
                return False
            if self._role_allows(db, actor, permission, rfq["buyers_workspace_id"]):
                return True
            if permission == RFQ_READ:
                invited = rfq.get("invited_seller_contact_ids") or []
                return actor.user_id in self.directory.contact_user_ids(db, list(invited))
            return False

        if kind == "quote_revision":
            revision = self._revisions.get(db, resource.id)
            if not revision:
                return False
            return self._evaluate(db, actor, permission, ResourceRef(kind="quote", id=revision["quote_id"]))

        if kind == "quote":
            quote = self._quotes.get(db, resource.id)
            if not quote:
                return False
            if self._role_allows(db, actor, permission, quote["seller_workspace_id"]):
                return True
            if permission == QUOTE_READ:
                return self._is_buyer_side(db, actor, quote)
            return False

        if kind == "sales_order":
            order = self._sales_orders.get(db, resource.id)
            return bool(order) and self._role_allows(db, actor, permission, order["workspace_id"])

        if kind == "purchase_order":
            order = self._purchase_orders.get(db, resource.id)
            return bool(order) and self._role_allows(db, actor, permission, order["workspace_id"])

        return False

    def _role_allows(self, db, actor: Actor, permission: str, workspace_id: str | None) -> bool:
        role = self.directory.workspace_role(db, actor.user_id, workspace_id)
        return role_grants(role, permission)

    def _is_buyer_side(self, db, actor: Actor, quote: dict) -> bool:
        if quote.get("buyer_user_id") == actor.user_id:
            return True
        if self.directory.contact_user_id(db, quote.get("sellers_buyer_contact_id")) == actor.user_id:
            return True
        return self.directory.is_workspace_member(db, actor.user_id, quote.get("buyer_workspace_id"))
