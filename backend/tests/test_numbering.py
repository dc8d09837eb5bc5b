# Overview: Pytest coverage for per-tenant, per-year document numbering.

from servicedesk.extensions import db
from servicedesk.models import DocumentSequence, Quote
from servicedesk.services import quote_service
from servicedesk.services.numbering_service import (
    DOCUMENT_INVOICE,
    DOCUMENT_QUOTE,
    format_document_number,
    next_document_number,
    parse_sequence,
)
from servicedesk.time_utils import utcnow


ITEMS = [{"description": "Diagnosis", "quantity": 1, "unit_price": 30.0}]


def test_format_and_parse():
    assert format_document_number("FAC", 2026, 42) == "FAC-2026-00042"
    assert parse_sequence("FAC-2026-00042") == 42
    assert parse_sequence("COT-2026-123456") == 123456
    assert parse_sequence("no digits") == 0
    assert parse_sequence(None) == 0


def test_sequential_numbers_per_type(db_session, tenant_a):
    first = next_document_number(tenant_id=tenant_a.id, document_type=DOCUMENT_QUOTE, prefix="COT", year=2026)
    second = next_document_number(tenant_id=tenant_a.id, document_type=DOCUMENT_QUOTE, prefix="COT", year=2026)
    invoice = next_document_number(tenant_id=tenant_a.id, document_type=DOCUMENT_INVOICE, prefix="FAC", year=2026)
    db_session.commit()

    assert first == "COT-2026-00001"
    assert second == "COT-2026-00002"
    assert invoice == "FAC-2026-00001"


def test_sequences_are_per_tenant_and_year(db_session, tenant_a, tenant_b):
    a = next_document_number(tenant_id=tenant_a.id, document_type=DOCUMENT_QUOTE, prefix="COT", year=2026)
    b = next_document_number(tenant_id=tenant_b.id, document_type=DOCUMENT_QUOTE, prefix="COT", year=2026)
    next_year = next_document_number(tenant_id=tenant_a.id, document_type=DOCUMENT_QUOTE, prefix="COT", year=2027)
    db_session.commit()

    assert a == "COT-2026-00001"
    assert b == "COT-2026-00001"
    assert next_year == "COT-2027-00001"


def test_sequence_seeds_from_highest_existing_number(db_session, tenant_a, client_a):
    year = utcnow().year
    db_session.add(Quote(tenant_id=tenant_a.id, client_id=client_a.id, number=f"COT-{year}-00041"))
    db_session.add(Quote(tenant_id=tenant_a.id, client_id=client_a.id, number=f"COT-{year}-00007"))
    db_session.commit()

    quote = quote_service.create_quote(tenant_a.id, client_id=client_a.id, items=ITEMS)

    assert quote.number == f"COT-{year}-00042"


def test_rolled_back_document_does_not_consume_a_number(db_session, tenant_a, client_a):
    next_document_number(tenant_id=tenant_a.id, document_type=DOCUMENT_QUOTE, prefix="COT", year=2026)
    db_session.rollback()

    assert db.session.query(DocumentSequence).count() == 0
    again = next_document_number(tenant_id=tenant_a.id, document_type=DOCUMENT_QUOTE, prefix="COT", year=2026)
    db_session.commit()
    assert again == "COT-2026-00001"


def test_quotes_get_unique_consecutive_numbers(db_session, tenant_a, client_a):
    numbers = [
        quote_service.create_quote(tenant_a.id, client_id=client_a.id, items=ITEMS).number
        for _ in range(5)
    ]
    assert len(set(numbers)) == 5
    assert [parse_sequence(n) for n in numbers] == [1, 2, 3, 4, 5]
