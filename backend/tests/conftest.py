"""
Pytest fixtures for servicedesk backend tests.

Provides the test database, tenant fixtures, catalogue fixtures and the
header helpers the HTTP tests authenticate with.
"""

import pytest
from servicedesk import create_app
from servicedesk.extensions import db
from servicedesk.models import Company, Client
from servicedesk.services import products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_TAX_RATE': 16.0,
        'DEFAULT_PAYMENT_TERMS_DAYS': 30,
        'LEDGER_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Company A (first tenant), tax-free so totals stay round."""
    company = Company(name="Acme Services", code="ACME", tax_rate=0.0, is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Company B (second tenant)."""
    company = Company(name="Beta Repairs", code="BETA", tax_rate=0.0, is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def client_a(db_session, tenant_a):
    customer = Client(tenant_id=tenant_a.id, first_name="Ana", last_name="Lopez", email="ana@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def client_b(db_session, tenant_b):
    customer = Client(tenant_id=tenant_b.id, company_name="Beta Customer")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    """Stock 10, min stock 5, booked through the ledger."""
    return products_service.create_product(tenant_a.id, {
        "code": "WID-1",
        "name": "Widget",
        "price": 10.0,
        "cost": 4.0,
        "stock": 10,
        "min_stock": 5,
    })


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    return products_service.create_product(tenant_b.id, {
        "code": "GAD-1",
        "name": "Gadget",
        "price": 20.0,
        "stock": 3,
    })


def _headers(tenant_id: int, role: str | None = None) -> dict:
    headers = {"X-Tenant-Id": str(tenant_id), "X-Actor-Id": "1"}
    if role:
        headers["X-Actor-Role"] = role
    return headers


@pytest.fixture(scope="function")
def headers_a(tenant_a):
    """Identity gateway headers for a regular user of tenant A."""
    return _headers(tenant_a.id)


@pytest.fixture(scope="function")
def admin_headers_a(tenant_a):
    return _headers(tenant_a.id, role="ADMIN")


@pytest.fixture(scope="function")
def headers_b(tenant_b):
    return _headers(tenant_b.id)
