# Overview: Document state machines and the uniform entity delete guard.

"""
Lifecycle rules for quotes, invoices and catalogue entities.

QUOTE STATE MACHINE:
    DRAFT <-> SENT -> ACCEPTED
    DRAFT/SENT -> REJECTED

    Only a small set of moves is forbidden outright:
        ACCEPTED -> DRAFT
        REJECTED -> DRAFT, REJECTED -> ACCEPTED
    Everything else is allowed, including REJECTED -> SENT (reopening).

INVOICE STATE MACHINE:
    PENDING -> PAID | CANCELLED

    PAID and CANCELLED are terminal for inventory. Stock is deducted at
    creation (PENDING) and restored exactly once on CANCELLED.

ENTITY LIFECYCLE:
    Every entity is ACTIVE, ARCHIVED or DELETED. Clients and products are
    archived (the row stays for history); quotes and invoices are deleted
    (the row goes away). Either way, deletion runs through guard_delete,
    which raises InvalidStateError naming every blocker found.
"""

from __future__ import annotations

from typing import Callable

from ..errors import InvalidStateError
from ..validation import ValidationError


QUOTE_DRAFT = "DRAFT"
QUOTE_SENT = "SENT"
QUOTE_ACCEPTED = "ACCEPTED"
QUOTE_REJECTED = "REJECTED"

QUOTE_STATUSES = {QUOTE_DRAFT, QUOTE_SENT, QUOTE_ACCEPTED, QUOTE_REJECTED}
QUOTE_EDITABLE_STATUSES = {QUOTE_DRAFT, QUOTE_SENT}

FORBIDDEN_QUOTE_TRANSITIONS = {
    QUOTE_ACCEPTED: {QUOTE_DRAFT},
    QUOTE_REJECTED: {QUOTE_DRAFT, QUOTE_ACCEPTED},
}

INVOICE_PENDING = "PENDING"
INVOICE_PAID = "PAID"
INVOICE_CANCELLED = "CANCELLED"

INVOICE_STATUSES = {INVOICE_PENDING, INVOICE_PAID, INVOICE_CANCELLED}

INVOICE_TYPES = {"SERVICE", "PRODUCT"}

STATE_ACTIVE = "ACTIVE"
STATE_ARCHIVED = "ARCHIVED"
STATE_DELETED = "DELETED"

ENTITY_STATES = {STATE_ACTIVE, STATE_ARCHIVED, STATE_DELETED}

# How each entity leaves the ACTIVE state
DELETE_POLICIES = {
    "client": STATE_ARCHIVED,
    "product": STATE_ARCHIVED,
    "quote": STATE_DELETED,
    "invoice": STATE_DELETED,
}


def validate_quote_status(status: str) -> None:
    if status not in QUOTE_STATUSES:
        raise ValidationError(
            f"Invalid quote status '{status}'. Must be one of: {', '.join(sorted(QUOTE_STATUSES))}"
        )


def validate_invoice_status(status: str) -> None:
    if status not in INVOICE_STATUSES:
        raise ValidationError(
            f"Invalid invoice status '{status}'. Must be one of: {', '.join(sorted(INVOICE_STATUSES))}"
        )


def can_transition_quote(current: str, target: str) -> bool:
    return target not in FORBIDDEN_QUOTE_TRANSITIONS.get(current, set())


def require_quote_transition(current: str, target: str) -> None:
    validate_quote_status(target)
    if not can_transition_quote(current, target):
        raise InvalidStateError(
            f"Cannot change quote status from {current} to {target}",
            details={"from": current, "to": target},
        )


def require_quote_editable(quote) -> None:
    if quote.status not in QUOTE_EDITABLE_STATUSES:
        raise InvalidStateError(
            f"Quote {quote.number} is {quote.status} and can no longer be edited",
            details={"quote_id": quote.id, "status": quote.status},
        )


def require_invoice_editable(invoice, *, is_admin: bool) -> None:
    """Non-admins may only edit PENDING invoices; admins may edit any."""
    if invoice.status != INVOICE_PENDING and not is_admin:
        raise InvalidStateError(
            f"Invoice {invoice.number} is {invoice.status}; only PENDING invoices can be edited",
            details={"invoice_id": invoice.id, "status": invoice.status},
        )


def guard_delete(entity: str, label: str, blockers: list[tuple[str, Callable[[], bool]]]) -> str:
    """
    Uniform delete guard.

    blockers: (reason, predicate) pairs; every predicate that returns True
    blocks the deletion. Returns the target lifecycle state from
    DELETE_POLICIES when nothing blocks.
    """
    target = DELETE_POLICIES[entity]
    reasons = [reason for reason, predicate in blockers if predicate()]
    if reasons:
        raise InvalidStateError(
            f"{label} cannot be {'archived' if target == STATE_ARCHIVED else 'deleted'}: {'; '.join(reasons)}",
            details={"entity": entity, "blockers": reasons},
        )
    return target
