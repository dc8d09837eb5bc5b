# Overview: Request decorators and error responses for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Company


ROLE_ADMIN = "ADMIN"


def _header_int(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw.strip())


def require_tenant(f):
    """
    Establish tenant and actor context from the identity gateway headers.

    Sets the following Flask g attributes:
    - g.tenant_id: Company ID (tenant context) - REQUIRED
    - g.actor_id: acting user ID (may be None)
    - g.is_admin: True when X-Actor-Role is ADMIN

    Returns 401 if X-Tenant-Id is missing, malformed or not an active company.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = _header_int("X-Tenant-Id")
        if tenant_id is None:
            return jsonify({"error": "UNAUTHORIZED", "message": "Tenant context required", "details": {}}), 401

        company = db.session.query(Company.id).filter_by(id=tenant_id, is_active=True).first()
        if company is None:
            return jsonify({"error": "UNAUTHORIZED", "message": "Unknown tenant", "details": {}}), 401

        g.tenant_id = tenant_id
        g.actor_id = _header_int("X-Actor-Id")
        g.is_admin = (request.headers.get("X-Actor-Role") or "").strip().upper() == ROLE_ADMIN

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Must be applied after require_tenant."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, "is_admin", False):
            return jsonify({"error": "FORBIDDEN", "message": "Administrator role required", "details": {}}), 403
        return f(*args, **kwargs)

    return decorated_function


def error_response(exc):
    """Serialize a LedgerError as {"error", "message", "details"} with its status."""
    return jsonify(exc.to_dict()), exc.http_status


def internal_error_response():
    return jsonify({"error": "INTERNAL", "message": "Internal server error", "details": {}}), 500


def query_int(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default
