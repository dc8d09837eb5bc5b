# Overview: Per-tenant, per-year document numbering backed by an atomic counter row.

from __future__ import annotations

import re

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite

from ..extensions import db
from ..models import DocumentSequence, Invoice, Quote
from ..time_utils import utcnow


DOCUMENT_QUOTE = "QUOTE"
DOCUMENT_INVOICE = "INVOICE"

_DOCUMENT_MODELS = {
    DOCUMENT_QUOTE: Quote,
    DOCUMENT_INVOICE: Invoice,
}

NUMBER_PAD = 5

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def format_document_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:0{NUMBER_PAD}d}"


def parse_sequence(number: str | None) -> int:
    """Trailing digit run of a document number, 0 when there is none."""
    if not number:
        return 0
    match = _TRAILING_DIGITS.search(number)
    return int(match.group(1)) if match else 0


def _highest_existing(tenant_id: int, document_type: str, prefix: str, year: int) -> int:
    model = _DOCUMENT_MODELS.get(document_type)
    if model is None:
        return 0
    numbers = (
        db.session.query(model.number)
        .filter(model.tenant_id == tenant_id, model.number.like(f"{prefix}-{year}-%"))
        .all()
    )
    return max((parse_sequence(n) for (n,) in numbers), default=0)


def _seed_sequence(tenant_id: int, document_type: str, year: int, start: int) -> None:
    values = dict(tenant_id=tenant_id, document_type=document_type, year=year, next_number=start)
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        stmt = sqlite.insert(DocumentSequence).values(**values).on_conflict_do_nothing()
    elif dialect == "postgresql":
        stmt = postgresql.insert(DocumentSequence).values(**values).on_conflict_do_nothing()
    else:
        exists = (
            db.session.query(DocumentSequence.id)
            .filter_by(tenant_id=tenant_id, document_type=document_type, year=year)
            .first()
        )
        if exists:
            return
        db.session.add(DocumentSequence(**values))
        db.session.flush()
        return
    db.session.execute(stmt)


def next_document_number(
    *,
    tenant_id: int,
    document_type: str,
    prefix: str,
    year: int | None = None,
) -> str:
    """
    Allocate the next document number (PREFIX-YYYY-NNNNN) for a tenant/year.

    Must run inside the caller's write transaction: the counter increment
    commits or rolls back together with the document that consumes it.
    A rolled-back sequence write leaves no gap; a failure after commit may.

    The counter row is seeded once per year from the highest number already
    issued, so numbers continue across a migration from suffix scanning.
    """
    if year is None:
        year = utcnow().year

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        start = _highest_existing(tenant_id, document_type, prefix, year) + 1
        _seed_sequence(tenant_id, document_type, year, start)
        db.session.execute(stmt)

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(tenant_id=tenant_id, document_type=document_type, year=year)
        .scalar()
    )
    return format_document_number(prefix, year, current - 1)
