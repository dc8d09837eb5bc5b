# Overview: Pure money math shared by quotes, invoices and payments.

"""
Document totals and tolerance comparisons.

Amounts are plain floats (the store's native numeric type). Line totals
are not rounded individually; every equality test on money goes through
TOLERANCE so float noise never flips a paid/unpaid decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


TOLERANCE = 0.01


@dataclass(frozen=True)
class DocumentTotals:
    line_totals: tuple[float, ...]
    subtotal: float
    discount: float
    tax: float
    total: float

    @property
    def taxable_base(self) -> float:
        return self.subtotal - self.discount


def line_total(quantity, unit_price) -> float:
    return quantity * unit_price


def compute_totals(items: Iterable[dict], discount_percent: float, tax_percent: float) -> DocumentTotals:
    """
    Compute document totals from line items.

    items: iterables of dicts with "quantity" and "unit_price" (product_id is
    ignored here; it only matters to inventory).
    """
    line_totals = tuple(line_total(item["quantity"], item["unit_price"]) for item in items)
    subtotal = sum(line_totals, 0.0)
    discount = subtotal * discount_percent / 100
    taxable_base = subtotal - discount
    tax = taxable_base * tax_percent / 100
    return DocumentTotals(
        line_totals=line_totals,
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total=taxable_base + tax,
    )


def amounts_equal(a: float, b: float) -> bool:
    return abs(a - b) < TOLERANCE


def is_fully_paid(paid_amount: float, total: float) -> bool:
    return amounts_equal(paid_amount, total) or paid_amount >= total


def exceeds_remaining(amount: float, remaining: float) -> bool:
    return amount > remaining + TOLERANCE
