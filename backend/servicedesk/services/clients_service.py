# Overview: Client records; archived clients stay for document history.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Client, Invoice, Quote
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import in_write_transaction
from .lifecycle_service import INVOICE_PENDING, QUOTE_ACCEPTED, STATE_ACTIVE, guard_delete
from .tenant_service import get_scoped


CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"first_name", "last_name", "company_name", "email"},
    required_on_create={"first_name"},
)


def create_client(tenant_id: int, payload: dict) -> Client:
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)

    def _op():
        client = Client(tenant_id=tenant_id, lifecycle_state=STATE_ACTIVE, **patch)
        db.session.add(client)
        db.session.flush()
        return client

    return in_write_transaction(_op)


def get_client(tenant_id: int, client_id: int) -> Client:
    return get_scoped(Client, client_id, tenant_id)


def require_active_client(tenant_id: int, client_id) -> Client:
    """Documents can only be issued to ACTIVE clients of the tenant."""
    client = get_scoped(Client, client_id, tenant_id)
    if client.lifecycle_state != STATE_ACTIVE:
        raise NotFoundError("Client not found", details={"id": client_id})
    return client


def archive_client(tenant_id: int, client_id: int) -> Client:
    """Refused while the client has ACCEPTED quotes or PENDING invoices."""
    def _op():
        client = get_scoped(Client, client_id, tenant_id, lock=True)
        client.lifecycle_state = guard_delete("client", f"Client {client.display_name}", [
            ("it has accepted quotes",
             lambda: db.session.query(Quote.id).filter_by(
                 tenant_id=tenant_id, client_id=client.id, status=QUOTE_ACCEPTED).first() is not None),
            ("it has pending invoices",
             lambda: db.session.query(Invoice.id).filter_by(
                 tenant_id=tenant_id, client_id=client.id, status=INVOICE_PENDING).first() is not None),
        ])
        db.session.flush()
        return client

    return in_write_transaction(_op)


def list_clients(tenant_id: int, *, include_archived: bool = False) -> list[Client]:
    query = db.session.query(Client).filter(Client.tenant_id == tenant_id)
    if not include_archived:
        query = query.filter(Client.lifecycle_state == STATE_ACTIVE)
    return query.order_by(Client.id.asc()).all()
