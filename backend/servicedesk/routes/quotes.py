# Overview: Flask API routes for quotes; parses input and returns JSON responses.

"""
Quote API Routes

Quotes are priced documents with no stock effects. Converting a quote
creates its invoice and deducts stock in one transaction.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import error_response, internal_error_response, query_int, require_tenant
from ..errors import LedgerError
from ..services import invoice_service, quote_service


quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/quotes")


@quotes_bp.post("")
@require_tenant
def create_quote_route():
    """
    Create a DRAFT quote.

    Request body:
    {
        "client_id": 1,
        "items": [{"product_id": 3, "quantity": 2, "unit_price": 50.0, "description": "..."}],
        "discount_percent": 10,
        "tax_percent": 16,          (optional, tenant default otherwise)
        "valid_until": "2026-12-31", (optional)
        "notes": "..."               (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        quote = quote_service.create_quote(
            g.tenant_id,
            client_id=data.get("client_id"),
            items=data.get("items"),
            discount_percent=data.get("discount_percent", 0),
            tax_percent=data.get("tax_percent"),
            valid_until=data.get("valid_until"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"quote": quote.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create quote")
        return internal_error_response()


@quotes_bp.get("")
@require_tenant
def list_quotes_route():
    try:
        page = query_int("page", 1)
        limit = query_int("limit", 50)
        rows, total = quote_service.list_quotes(
            g.tenant_id,
            status=request.args.get("status"),
            client_id=query_int("client_id"),
            search=request.args.get("search"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "quotes": [q.to_dict(include_items=False) for q in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list quotes")
        return internal_error_response()


@quotes_bp.get("/<int:quote_id>")
@require_tenant
def get_quote_route(quote_id: int):
    try:
        quote = quote_service.get_quote(g.tenant_id, quote_id)
        return jsonify({"quote": quote.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get quote")
        return internal_error_response()


@quotes_bp.put("/<int:quote_id>")
@require_tenant
def update_quote_route(quote_id: int):
    """Replace items and recompute totals (DRAFT and SENT only)."""
    try:
        data = request.get_json(silent=True) or {}
        quote = quote_service.update_quote(
            g.tenant_id,
            quote_id,
            items=data.get("items"),
            discount_percent=data.get("discount_percent"),
            tax_percent=data.get("tax_percent"),
            valid_until=data.get("valid_until"),
            notes=data.get("notes"),
        )
        return jsonify({"quote": quote.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update quote")
        return internal_error_response()


@quotes_bp.delete("/<int:quote_id>")
@require_tenant
def delete_quote_route(quote_id: int):
    try:
        quote_service.delete_quote(g.tenant_id, quote_id)
        return jsonify({"deleted": True, "quote_id": quote_id}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete quote")
        return internal_error_response()


@quotes_bp.post("/<int:quote_id>/duplicate")
@require_tenant
def duplicate_quote_route(quote_id: int):
    try:
        quote = quote_service.duplicate_quote(g.tenant_id, quote_id, actor_id=g.actor_id)
        return jsonify({"quote": quote.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to duplicate quote")
        return internal_error_response()


@quotes_bp.patch("/<int:quote_id>/status")
@require_tenant
def set_quote_status_route(quote_id: int):
    """
    Request body: {"status": "SENT"}

    Forbidden: ACCEPTED -> DRAFT, REJECTED -> DRAFT, REJECTED -> ACCEPTED.
    """
    try:
        data = request.get_json(silent=True) or {}
        quote = quote_service.set_quote_status(g.tenant_id, quote_id, data.get("status"))
        return jsonify({"quote": quote.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set quote status")
        return internal_error_response()


@quotes_bp.post("/<int:quote_id>/convert")
@require_tenant
def convert_quote_route(quote_id: int):
    """Invoice the quote: deducts stock and accepts the quote atomically."""
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.convert_quote_to_invoice(
            g.tenant_id,
            quote_id,
            invoice_type=data.get("type"),
            date=data.get("date"),
            due_date=data.get("due_date"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        alerts = invoice_service.invoice_low_stock_alerts(invoice)
        for alert in alerts:
            current_app.logger.warning("Low stock: %s", alert["message"])
        return jsonify({"invoice": invoice.to_dict(), "alerts": alerts}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to convert quote")
        return internal_error_response()
