# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

Prove that every lookup, listing and mutation is confined to the caller's
company, and that a foreign row is reported exactly like a missing one.
"""

import pytest

from servicedesk.errors import NotFoundError
from servicedesk.extensions import db
from servicedesk.models import Invoice, Product
from servicedesk.services import (
    clients_service,
    inventory_service,
    invoice_service,
    payment_service,
    products_service,
    quote_service,
)
from servicedesk.services.tenant_service import get_scoped


class TestScopedLookup:

    def test_own_row_is_returned(self, db_session, tenant_a, product_a):
        assert get_scoped(Product, product_a.id, tenant_a.id).id == product_a.id

    def test_foreign_row_reads_as_missing(self, db_session, tenant_a, product_b):
        with pytest.raises(NotFoundError) as foreign:
            get_scoped(Product, product_b.id, tenant_a.id)
        with pytest.raises(NotFoundError) as missing:
            get_scoped(Product, 99999, tenant_a.id)
        assert foreign.value.message == missing.value.message


class TestCatalogueIsolation:

    def test_product_listing_is_scoped(self, db_session, tenant_a, tenant_b, product_a, product_b):
        assert [p.id for p in products_service.list_products(tenant_a.id)] == [product_a.id]
        assert [p.id for p in products_service.list_products(tenant_b.id)] == [product_b.id]

    def test_same_code_allowed_in_two_tenants(self, db_session, tenant_b, product_a):
        twin = products_service.create_product(tenant_b.id, {"code": "WID-1", "name": "Widget B"})
        assert twin.tenant_id == tenant_b.id

    def test_foreign_product_stock_untouchable(self, db_session, tenant_a, product_b):
        with pytest.raises(NotFoundError):
            inventory_service.deduct_stock(tenant_a.id, product_b.id, 1)
        with pytest.raises(NotFoundError):
            inventory_service.apply_stock_movement(tenant_a.id, product_b.id, movement_type="IN", quantity=5)
        assert db.session.get(Product, product_b.id).stock == 3

    def test_client_listing_is_scoped(self, db_session, tenant_a, client_a, client_b):
        assert [c.id for c in clients_service.list_clients(tenant_a.id)] == [client_a.id]

    def test_movement_history_is_scoped(self, db_session, tenant_a, tenant_b, product_a, product_b):
        rows, total = inventory_service.list_movements(tenant_b.id)
        assert total == 1
        assert rows[0].product_id == product_b.id


class TestDocumentIsolation:

    def test_foreign_product_on_line_rejected(self, db_session, tenant_a, client_a, product_b):
        with pytest.raises(NotFoundError):
            invoice_service.create_invoice(
                tenant_a.id,
                client_id=client_a.id,
                items=[{"product_id": product_b.id, "quantity": 1, "unit_price": 20}],
            )
        assert db.session.query(Invoice).count() == 0
        assert db.session.get(Product, product_b.id).stock == 3

    def test_foreign_quote_cannot_be_converted(self, db_session, tenant_a, tenant_b, client_a, product_a):
        quote = quote_service.create_quote(
            tenant_a.id,
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 1, "unit_price": 10}],
        )
        with pytest.raises(NotFoundError):
            invoice_service.convert_quote_to_invoice(tenant_b.id, quote.id)
        assert quote_service.get_quote(tenant_a.id, quote.id).status == "DRAFT"

    def test_foreign_invoice_cannot_be_cancelled(self, db_session, tenant_a, tenant_b, client_a, product_a):
        invoice = invoice_service.create_invoice(
            tenant_a.id,
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 4, "unit_price": 10}],
        )
        with pytest.raises(NotFoundError):
            invoice_service.cancel_invoice(tenant_b.id, invoice.id)
        with pytest.raises(NotFoundError):
            payment_service.get_payment_summary(tenant_b.id, invoice.id)
        assert invoice_service.get_invoice(tenant_a.id, invoice.id).status == "PENDING"
        assert db.session.get(Product, product_a.id).stock == 6

    def test_numbering_is_per_tenant(self, db_session, tenant_a, tenant_b, client_a, client_b):
        items = [{"description": "Visit", "quantity": 1, "unit_price": 10}]
        first_a = quote_service.create_quote(tenant_a.id, client_id=client_a.id, items=items)
        first_b = quote_service.create_quote(tenant_b.id, client_id=client_b.id, items=items)
        assert first_a.number == first_b.number
        assert first_a.number.endswith("-00001")


class TestApiIsolation:

    def test_foreign_invoice_is_404_over_http(self, client, db_session, tenant_a, client_a, product_a, headers_b):
        invoice = invoice_service.create_invoice(
            tenant_a.id,
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 1, "unit_price": 10}],
        )
        response = client.get(f"/api/invoices/{invoice.id}", headers=headers_b)
        assert response.status_code == 404
        assert response.get_json()["error"] == "NOT_FOUND"

    def test_listing_only_shows_own_products(self, client, db_session, product_a, product_b, headers_b):
        response = client.get("/api/products", headers=headers_b)
        assert response.status_code == 200
        assert [p["code"] for p in response.get_json()["products"]] == ["GAD-1"]
