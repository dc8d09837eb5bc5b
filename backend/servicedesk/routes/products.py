# Overview: Flask API routes for products and clients; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import error_response, internal_error_response, require_tenant
from ..errors import LedgerError
from ..services import clients_service, inventory_service, products_service


products_bp = Blueprint("products", __name__, url_prefix="/api")


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").lower() in {"1", "true", "yes"}


@products_bp.post("/products")
@require_tenant
def create_product_route():
    """
    Create a product. "stock" is booked as an initial IN movement.

    Request body:
    {"code": "SKU-1", "name": "Widget", "price": 25.0, "cost": 10.0,
     "stock": 10, "min_stock": 2, "unit": "pcs"}
    """
    try:
        product = products_service.create_product(
            g.tenant_id, request.get_json(silent=True) or {}, actor_id=g.actor_id
        )
        return jsonify({"product": product.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error_response()


@products_bp.get("/products")
@require_tenant
def list_products_route():
    try:
        products = products_service.list_products(
            g.tenant_id,
            search=request.args.get("search"),
            include_archived=_flag("include_archived"),
            low_stock_only=_flag("low_stock"),
        )
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return internal_error_response()


@products_bp.get("/products/<int:product_id>")
@require_tenant
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(g.tenant_id, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return internal_error_response()


@products_bp.patch("/products/<int:product_id>")
@require_tenant
def update_product_route(product_id: int):
    """Catalogue fields only; stock changes go through /stock."""
    try:
        product = products_service.update_product(
            g.tenant_id, product_id, request.get_json(silent=True) or {}
        )
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return internal_error_response()


@products_bp.delete("/products/<int:product_id>")
@require_tenant
def archive_product_route(product_id: int):
    try:
        product = products_service.archive_product(g.tenant_id, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to archive product")
        return internal_error_response()


@products_bp.post("/products/<int:product_id>/stock")
@require_tenant
def apply_stock_movement_route(product_id: int):
    """
    Manual stock movement.

    Request body:
    {"type": "IN" | "OUT" | "ADJUSTMENT", "quantity": 5,
     "reason": "...", "notes": "...", "reference": "..."}

    For ADJUSTMENT, quantity is the new absolute stock.
    """
    try:
        data = request.get_json(silent=True) or {}
        movement, alert = inventory_service.apply_stock_movement(
            g.tenant_id,
            product_id,
            movement_type=(data.get("type") or "").upper(),
            quantity=data.get("quantity"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            reference=data.get("reference"),
            actor_id=g.actor_id,
        )
        if alert:
            current_app.logger.warning("Low stock: %s", alert["message"])
        return jsonify({
            "movement": movement.to_dict(),
            "product": movement.product.to_dict(),
            "alert": alert,
        }), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply stock movement")
        return internal_error_response()


# =============================================================================
# CLIENTS
# =============================================================================

@products_bp.post("/clients")
@require_tenant
def create_client_route():
    try:
        client = clients_service.create_client(g.tenant_id, request.get_json(silent=True) or {})
        return jsonify({"client": client.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create client")
        return internal_error_response()


@products_bp.get("/clients")
@require_tenant
def list_clients_route():
    try:
        clients = clients_service.list_clients(g.tenant_id, include_archived=_flag("include_archived"))
        return jsonify({"clients": [c.to_dict() for c in clients]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list clients")
        return internal_error_response()


@products_bp.delete("/clients/<int:client_id>")
@require_tenant
def archive_client_route(client_id: int):
    try:
        client = clients_service.archive_client(g.tenant_id, client_id)
        return jsonify({"client": client.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to archive client")
        return internal_error_response()
