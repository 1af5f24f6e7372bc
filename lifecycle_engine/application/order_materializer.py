"""Sales and purchase order creation from an accepted quote revision.

Rental lines fan out to one order line per unit so each physical asset can be
tracked on its own; sale and service lines keep their quantity. The sales
order and the purchase order get independent copies of the expansion, linked
to the same quote revision line items.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

from lifecycle_engine.application.common import record_transition
from lifecycle_engine.core.event_bus import DomainEvent, PurchaseOrderCreated, SalesOrderCreated
from lifecycle_engine.domain.contracts import Actor
from lifecycle_engine.domain.line_items import RENTAL, parse_quote_line_items
from lifecycle_engine.domain.timestamps import new_id, utc_now_iso
from lifecycle_engine.infrastructure.repositories import (
    PurchaseOrderRepository,
    SalesOrderRepository,
    StatusEventRepository,
)


logger = logging.getLogger("lifecycle.orders")


def expand_line_items(quote_line_items: List[Mapping[str, Any]], *, now: str | None = None) -> List[Dict[str, Any]]:
    timestamp = now or utc_now_iso()
    expanded: List[Dict[str, Any]] = []
    for item in parse_quote_line_items(list(quote_line_items)):
        base = {
            "lineitem_type": item.type,
            "description": item.description,
            "pim_category_id": getattr(item, "pim_category_id", None),
            "price_id": item.sellers_price_id,
            "rental_start": getattr(item, "rental_start", None),
            "rental_end": getattr(item, "rental_end", None),
            "delivery_method": item.delivery_method,
            "delivery_location": item.delivery_location,
            "delivery_notes": item.delivery_notes,
            "quote_revision_line_item_id": item.id,
            "intake_form_submission_line_item_id": item.intake_form_submission_line_item_id,
            "status": None,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        copies = item.quantity if item.type == RENTAL else 1
        quantity = 1 if item.type == RENTAL else item.quantity
        for _ in range(copies):
            expanded.append({"id": new_id(), "quantity": quantity, **base})
    return expanded


class OrderMaterializer:
    def __init__(self) -> None:
        self.sales_orders = SalesOrderRepository()
        self.purchase_orders = PurchaseOrderRepository()
        self.status_events = StatusEventRepository()

    def materialize(
        self,
        db,
        *,
        quote: Mapping[str, Any],
        revision: Mapping[str, Any],
        actor: Actor,
        now: str | None = None,
    ) -> Tuple[Dict[str, Any], Dict[str, Any] | None, List[DomainEvent]]:
        """Create the sales order and, when the buyer has a workspace, the purchase order.

        Runs inside the caller's transaction when there is one.
        """
        timestamp = now or utc_now_iso()
        events: List[DomainEvent] = []
        with db.transaction():
            sales_order = self._create_order(
                db,
                self.sales_orders,
                entity="sales_order",
                header={
                    "workspace_id": quote["seller_workspace_id"],
                    "project_id": quote.get("sellers_project_id"),
                    "buyer_id": quote.get("sellers_buyer_contact_id"),
                },
                quote=quote,
                revision=revision,
                actor=actor,
                now=timestamp,
            )
            events.append(
                SalesOrderCreated(
                    workspace_id=sales_order["workspace_id"],
                    actor_id=actor.user_id,
                    sales_order_id=sales_order["id"],
                    quote_id=quote["id"],
                    line_item_count=len(sales_order["line_items"]),
                )
            )

            purchase_order = None
            if quote.get("buyer_workspace_id"):
                purchase_order = self._create_order(
                    db,
                    self.purchase_orders,
                    entity="purchase_order",
                    header={
                        "workspace_id": quote["buyer_workspace_id"],
                        "project_id": None,
                        "seller_id": quote["seller_workspace_id"],
                    },
                    quote=quote,
                    revision=revision,
                    actor=actor,
                    now=timestamp,
                )
                events.append(
                    PurchaseOrderCreated(
                        workspace_id=purchase_order["workspace_id"],
                        actor_id=actor.user_id,
                        purchase_order_id=purchase_order["id"],
                        quote_id=quote["id"],
                        line_item_count=len(purchase_order["line_items"]),
                    )
                )

        logger.info(
            "orders_materialized",
            extra={
                "quote_id": quote["id"],
                "sales_order_id": sales_order["id"],
                "purchase_order_id": purchase_order["id"] if purchase_order else None,
                "order_line_items": len(sales_order["line_items"]),
            },
        )
        return sales_order, purchase_order, events

    def _create_order(
        self,
        db,
        repository,
        *,
        entity: str,
        header: Dict[str, Any],
        quote: Mapping[str, Any],
        revision: Mapping[str, Any],
        actor: Actor,
        now: str,
    ) -> Dict[str, Any]:
        order = {
            "id": new_id(),
            **header,
            "quote_id": quote["id"],
            "quote_revision_id": revision["id"],
            "status": "DRAFT",
            "created_by": actor.user_id,
            "updated_by": actor.user_id,
            "created_at": now,
            "updated_at": now,
        }
        repository.insert(db, order)
        line_items = repository.insert_line_items(
            db,
            order["id"],
            expand_line_items(revision.get("line_items") or [], now=now),
        )
        record_transition(
            self.status_events,
            db,
            entity=entity,
            entity_id=order["id"],
            from_status=None,
            to_status="DRAFT",
            reason="quote_accepted",
            actor_id=actor.user_id,
            occurred_at=now,
        )
        return {**order, "line_items": line_items}
