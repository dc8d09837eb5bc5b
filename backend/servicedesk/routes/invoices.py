# Overview: Flask API routes for invoices and their payments; parses input and returns JSON responses.

"""
Invoice & Payment API Routes

DESIGN:
- Creating an invoice deducts stock for product lines (all-or-nothing)
- Cancel/delete restore stock exactly once
- Payments reconcile against the invoice total with a 0.01 tolerance
- X-Actor-Role: ADMIN may edit non-PENDING invoices and override paid_amount
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import (
    error_response,
    internal_error_response,
    query_int,
    require_admin,
    require_tenant,
)
from ..errors import LedgerError
from ..services import invoice_service, payment_service


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _log_alerts(alerts: list[dict]) -> None:
    for alert in alerts:
        current_app.logger.warning("Low stock: %s", alert["message"])


@invoices_bp.post("")
@require_tenant
def create_invoice_route():
    """
    Create a PENDING invoice.

    Request body:
    {
        "client_id": 1,
        "items": [{"product_id": 3, "quantity": 2, "unit_price": 50.0}],
        "quote_id": 7,              (optional; without items the quote is converted)
        "discount_percent": 0,
        "tax_percent": 16,          (optional)
        "type": "SERVICE",          (SERVICE | PRODUCT)
        "date": "2026-05-01",       (optional)
        "due_date": "2026-05-31",   (optional, date + payment terms otherwise)
        "notes": "..."
    }

    Returns:
        201: invoice plus low-stock alerts
        409: INSUFFICIENT_STOCK / INVALID_STATE (nothing was written)
    """
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.create_invoice(
            g.tenant_id,
            client_id=data.get("client_id"),
            items=data.get("items"),
            quote_id=data.get("quote_id"),
            discount_percent=data.get("discount_percent", 0),
            tax_percent=data.get("tax_percent"),
            invoice_type=data.get("type"),
            date=data.get("date"),
            due_date=data.get("due_date"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        alerts = invoice_service.invoice_low_stock_alerts(invoice)
        _log_alerts(alerts)
        return jsonify({"invoice": invoice.to_dict(), "alerts": alerts}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return internal_error_response()


@invoices_bp.get("")
@require_tenant
def list_invoices_route():
    try:
        page = query_int("page", 1)
        limit = query_int("limit", 50)
        rows, total = invoice_service.list_invoices(
            g.tenant_id,
            status=request.args.get("status"),
            client_id=query_int("client_id"),
            search=request.args.get("search"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "invoices": [i.to_dict(include_items=False) for i in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return internal_error_response()


@invoices_bp.get("/<int:invoice_id>")
@require_tenant
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(g.tenant_id, invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return internal_error_response()


@invoices_bp.put("/<int:invoice_id>")
@require_tenant
def update_invoice_route(invoice_id: int):
    """Replace items and recompute totals. Stock is not re-balanced."""
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.update_invoice(
            g.tenant_id,
            invoice_id,
            items=data.get("items"),
            discount_percent=data.get("discount_percent"),
            tax_percent=data.get("tax_percent"),
            invoice_type=data.get("type"),
            due_date=data.get("due_date"),
            notes=data.get("notes"),
            is_admin=g.is_admin,
        )
        return jsonify({"invoice": invoice.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return internal_error_response()


@invoices_bp.delete("/<int:invoice_id>")
@require_tenant
def delete_invoice_route(invoice_id: int):
    try:
        invoice_service.delete_invoice(g.tenant_id, invoice_id, actor_id=g.actor_id)
        return jsonify({"deleted": True, "invoice_id": invoice_id}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return internal_error_response()


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_tenant
def cancel_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.cancel_invoice(g.tenant_id, invoice_id, actor_id=g.actor_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel invoice")
        return internal_error_response()


@invoices_bp.patch("/<int:invoice_id>/status")
@require_tenant
def set_invoice_status_route(invoice_id: int):
    """Request body: {"status": "CANCELLED" | "PAID" | "PENDING"}"""
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.set_invoice_status(
            g.tenant_id, invoice_id, data.get("status"), actor_id=g.actor_id
        )
        return jsonify({"invoice": invoice.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set invoice status")
        return internal_error_response()


@invoices_bp.put("/<int:invoice_id>/paid-amount")
@require_tenant
@require_admin
def mark_paid_amount_route(invoice_id: int):
    """Administrative override. Request body: {"amount": 100.0}"""
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.mark_paid_amount(g.tenant_id, invoice_id, data.get("amount"))
        return jsonify({"invoice": invoice.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set paid amount")
        return internal_error_response()


# =============================================================================
# PAYMENTS
# =============================================================================

@invoices_bp.post("/<int:invoice_id>/payments")
@require_tenant
def record_payment_route(invoice_id: int):
    """
    Record a payment.

    Request body:
    {
        "amount": 60.0,
        "method": "CASH",          (CASH | CARD | CHECK | TRANSFER | OTHER)
        "paid_at": "2026-05-02",   (optional)
        "notes": "..."
    }

    Returns:
        201: payment plus updated summary
        422: OVERPAYMENT_REJECTED
    """
    try:
        data = request.get_json(silent=True) or {}
        payment = payment_service.record_payment(
            g.tenant_id,
            invoice_id,
            data.get("amount"),
            method=data.get("method"),
            paid_at=data.get("paid_at"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        summary = payment_service.get_payment_summary(g.tenant_id, invoice_id)
        return jsonify({"payment": payment.to_dict(), "summary": summary}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return internal_error_response()


@invoices_bp.get("/<int:invoice_id>/payments")
@require_tenant
def get_payment_summary_route(invoice_id: int):
    try:
        summary = payment_service.get_payment_summary(g.tenant_id, invoice_id)
        return jsonify(summary), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get payment summary")
        return internal_error_response()
