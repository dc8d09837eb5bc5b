# Overview: Flask API routes for the inventory movement ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import error_response, internal_error_response, query_int, require_tenant
from ..errors import LedgerError
from ..services import inventory_service
from ..validation import coerce_optional_datetime


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/movements")
@require_tenant
def list_movements_route():
    """
    Movement history with filters.

    Query params: type, product_id, search (reason / reference / product),
    date_from, date_to (inclusive of the whole day), page, limit.
    """
    try:
        filters = dict(
            movement_type=(request.args.get("type") or "").upper() or None,
            product_id=query_int("product_id"),
            search=request.args.get("search"),
            date_from=coerce_optional_datetime(request.args.get("date_from"), "date_from"),
            date_to=coerce_optional_datetime(request.args.get("date_to"), "date_to"),
        )
        page = query_int("page", 1)
        limit = query_int("limit", 50)
        rows, total = inventory_service.list_movements(g.tenant_id, page=page, limit=limit, **filters)
        stats = inventory_service.movement_stats(g.tenant_id, **filters)
        return jsonify({
            "movements": [m.to_dict() for m in rows],
            "total": total,
            "page": page,
            "limit": limit,
            "stats": stats,
        }), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list inventory movements")
        return internal_error_response()


@inventory_bp.get("/products/<int:product_id>/ledger-stock")
@require_tenant
def reconstruct_stock_route(product_id: int):
    try:
        ledger_stock = inventory_service.reconstruct_stock(g.tenant_id, product_id)
        return jsonify({"product_id": product_id, "ledger_stock": ledger_stock}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reconstruct stock")
        return internal_error_response()


@inventory_bp.get("/verify")
@require_tenant
def verify_ledger_route():
    try:
        mismatches = inventory_service.verify_stock_ledger(g.tenant_id)
        return jsonify({"ok": not mismatches, "mismatches": mismatches}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify stock ledger")
        return internal_error_response()
