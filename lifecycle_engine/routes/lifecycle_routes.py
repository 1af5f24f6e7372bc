from __future__ import annotations

from typing import Any, Dict, List

from flask import Blueprint, jsonify, request

from lifecycle_engine.actor import current_actor
from lifecycle_engine.application.acceptance_service import QuoteAcceptanceService
from lifecycle_engine.application.common import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from lifecycle_engine.application.inventory_service import PurchaseOrderService
from lifecycle_engine.application.quoting_service import QuotingService
from lifecycle_engine.application.rfq_service import RfqService
from lifecycle_engine.db import get_db
from lifecycle_engine.domain.contracts import (
    AcceptQuoteInput,
    QuoteCreateInput,
    QuoteRevisionCreateInput,
    RfqCreateInput,
)
from lifecycle_engine.errors import ValidationError


lifecycle_bp = Blueprint("lifecycle", __name__, url_prefix="/api")


_RFQ_SERVICE = RfqService()
_QUOTING_SERVICE = QuotingService()
_ACCEPTANCE_SERVICE = QuoteAcceptanceService()
_PURCHASE_ORDER_SERVICE = PurchaseOrderService()


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError(code="payload_invalid", message="Request body must be a JSON object.")
    return payload


def _parse_int(value: str | None, default: int, min_value: int, max_value: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return max(min_value, min(parsed, max_value))


def _list_field(payload: Dict[str, Any], key: str) -> List[Any]:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(code=f"{key}_invalid", message=f"{key} must be a list.")
    return value


@lifecycle_bp.route("/rfqs", methods=["POST"])
def api_create_rfq():
    payload = _json_body()
    create_input = RfqCreateInput(
        buyers_workspace_id=str(payload.get("buyers_workspace_id") or "").strip(),
        line_items=_list_field(payload, "line_items"),
        invited_seller_contact_ids=_list_field(payload, "invited_seller_contact_ids"),
        title=payload.get("title"),
        status=str(payload.get("status") or "DRAFT"),
        response_deadline=payload.get("response_deadline"),
    )
    result = _RFQ_SERVICE.create_rfq(get_db(), actor=current_actor(), create_input=create_input)
    return jsonify(result), 201


@lifecycle_bp.route("/rfqs", methods=["GET"])
def api_list_rfqs():
    result = _RFQ_SERVICE.list_rfqs(
        get_db(),
        actor=current_actor(),
        buyers_workspace_id=str(request.args.get("buyers_workspace_id") or "").strip(),
        status=request.args.get("status") or None,
        limit=_parse_int(request.args.get("limit"), default=DEFAULT_LIST_LIMIT, min_value=1, max_value=MAX_LIST_LIMIT),
    )
    return jsonify(result)


@lifecycle_bp.route("/rfqs/<rfq_id>", methods=["GET"])
def api_get_rfq(rfq_id: str):
    return jsonify(_RFQ_SERVICE.get_rfq(get_db(), actor=current_actor(), rfq_id=rfq_id))


@lifecycle_bp.route("/rfqs/<rfq_id>", methods=["PATCH"])
def api_update_rfq(rfq_id: str):
    result = _RFQ_SERVICE.update_rfq(get_db(), actor=current_actor(), rfq_id=rfq_id, payload=_json_body())
    return jsonify(result)


@lifecycle_bp.route("/quotes", methods=["POST"])
def api_create_quote():
    payload = _json_body()
    create_input = QuoteCreateInput(
        seller_workspace_id=str(payload.get("seller_workspace_id") or "").strip(),
        sellers_buyer_contact_id=str(payload.get("sellers_buyer_contact_id") or "").strip(),
        sellers_project_id=payload.get("sellers_project_id"),
        rfq_id=payload.get("rfq_id"),
        buyer_workspace_id=payload.get("buyer_workspace_id"),
    )
    result = _QUOTING_SERVICE.create_quote(get_db(), actor=current_actor(), create_input=create_input)
    return jsonify(result), 201


@lifecycle_bp.route("/quotes", methods=["GET"])
def api_list_quotes():
    result = _QUOTING_SERVICE.list_quotes(
        get_db(),
        actor=current_actor(),
        rfq_id=request.args.get("rfq_id") or None,
        workspace_id=request.args.get("workspace_id") or None,
        status=request.args.get("status") or None,
        limit=_parse_int(request.args.get("limit"), default=DEFAULT_LIST_LIMIT, min_value=1, max_value=MAX_LIST_LIMIT),
    )
    return jsonify(result)


@lifecycle_bp.route("/quotes/<quote_id>", methods=["GET"])
def api_get_quote(quote_id: str):
    return jsonify(_QUOTING_SERVICE.get_quote(get_db(), actor=current_actor(), quote_id=quote_id))


@lifecycle_bp.route("/quotes/<quote_id>/revisions", methods=["GET"])
def api_list_quote_revisions(quote_id: str):
    return jsonify(_QUOTING_SERVICE.list_quote_revisions(get_db(), actor=current_actor(), quote_id=quote_id))


@lifecycle_bp.route("/quotes/<quote_id>/revisions", methods=["POST"])
def api_create_quote_revision(quote_id: str):
    payload = _json_body()
    create_input = QuoteRevisionCreateInput(
        quote_id=quote_id,
        revision_number=payload.get("revision_number"),
        line_items=_list_field(payload, "line_items"),
        valid_until=payload.get("valid_until"),
    )
    result = _QUOTING_SERVICE.create_quote_revision(get_db(), actor=current_actor(), create_input=create_input)
    return jsonify(result), 201


@lifecycle_bp.route("/quote-revisions/<revision_id>", methods=["GET"])
def api_get_quote_revision(revision_id: str):
    return jsonify(_QUOTING_SERVICE.get_quote_revision(get_db(), actor=current_actor(), revision_id=revision_id))


@lifecycle_bp.route("/quote-revisions/<revision_id>", methods=["PATCH"])
def api_update_quote_revision(revision_id: str):
    result = _QUOTING_SERVICE.update_quote_revision(
        get_db(),
        actor=current_actor(),
        revision_id=revision_id,
        payload=_json_body(),
    )
    return jsonify(result)


@lifecycle_bp.route("/quotes/<quote_id>/send", methods=["POST"])
def api_send_quote(quote_id: str):
    payload = _json_body()
    revision_id = str(payload.get("revision_id") or "").strip()
    if not revision_id:
        raise ValidationError(code="revision_id_required", message="revision_id is required.")
    result = _QUOTING_SERVICE.send_quote(
        get_db(),
        actor=current_actor(),
        quote_id=quote_id,
        revision_id=revision_id,
        buyer_user_id=payload.get("buyer_user_id"),
    )
    return jsonify(result)


@lifecycle_bp.route("/quotes/<quote_id>/accept", methods=["POST"])
def api_accept_quote(quote_id: str):
    payload = _json_body()
    accept_input = AcceptQuoteInput(
        quote_id=quote_id,
        approval_confirmation=payload.get("approval_confirmation"),
        buyer_accepted_full_legal_name=payload.get("buyer_accepted_full_legal_name"),
    )
    result = _ACCEPTANCE_SERVICE.accept_quote(get_db(), actor=current_actor(), accept_input=accept_input)
    return jsonify(result.to_payload())


@lifecycle_bp.route("/quotes/<quote_id>/reject", methods=["POST"])
def api_reject_quote(quote_id: str):
    return jsonify(_ACCEPTANCE_SERVICE.reject_quote(get_db(), actor=current_actor(), quote_id=quote_id))


@lifecycle_bp.route("/sales-orders/<sales_order_id>", methods=["GET"])
def api_get_sales_order(sales_order_id: str):
    return jsonify(
        _PURCHASE_ORDER_SERVICE.get_sales_order(get_db(), actor=current_actor(), sales_order_id=sales_order_id)
    )


@lifecycle_bp.route("/purchase-orders/<purchase_order_id>", methods=["GET"])
def api_get_purchase_order(purchase_order_id: str):
    return jsonify(
        _PURCHASE_ORDER_SERVICE.get_purchase_order(get_db(), actor=current_actor(), purchase_order_id=purchase_order_id)
    )


@lifecycle_bp.route("/purchase-orders/<purchase_order_id>/submit", methods=["POST"])
def api_submit_purchase_order(purchase_order_id: str):
    result = _PURCHASE_ORDER_SERVICE.submit_purchase_order(
        get_db(),
        actor=current_actor(),
        purchase_order_id=purchase_order_id,
    )
    return jsonify(result)


@lifecycle_bp.route("/purchase-orders/<purchase_order_id>/inventory", methods=["GET"])
def api_list_inventory(purchase_order_id: str):
    return jsonify(
        _PURCHASE_ORDER_SERVICE.list_inventory(get_db(), actor=current_actor(), purchase_order_id=purchase_order_id)
    )
