# Overview: Pytest coverage for document totals and tolerance comparisons.

import pytest

from servicedesk.money import (
    TOLERANCE,
    amounts_equal,
    compute_totals,
    exceeds_remaining,
    is_fully_paid,
)


class TestComputeTotals:

    def test_discount_then_tax(self):
        totals = compute_totals(
            [{"quantity": 2, "unit_price": 50.0}, {"quantity": 1, "unit_price": 100.0}],
            discount_percent=10,
            tax_percent=16,
        )
        assert totals.line_totals == (100.0, 100.0)
        assert totals.subtotal == pytest.approx(200.0)
        assert totals.discount == pytest.approx(20.0)
        assert totals.taxable_base == pytest.approx(180.0)
        assert totals.tax == pytest.approx(28.8)
        assert totals.total == pytest.approx(208.8)

    def test_line_totals_are_not_rounded(self):
        totals = compute_totals([{"quantity": 3, "unit_price": 0.333}], 0, 0)
        assert totals.line_totals[0] == pytest.approx(0.999)
        assert totals.total == pytest.approx(0.999)

    def test_zero_percents(self):
        totals = compute_totals([{"quantity": 4, "unit_price": 25.0}], 0, 0)
        assert totals.discount == 0
        assert totals.tax == 0
        assert totals.total == pytest.approx(100.0)

    def test_product_reference_is_ignored(self):
        with_product = compute_totals([{"quantity": 1, "unit_price": 9.5, "product_id": 7}], 5, 10)
        without = compute_totals([{"quantity": 1, "unit_price": 9.5}], 5, 10)
        assert with_product == without


class TestTolerance:

    def test_tolerance_value(self):
        assert TOLERANCE == 0.01

    def test_amounts_equal_absorbs_float_noise(self):
        assert amounts_equal(0.1 + 0.2, 0.3)
        assert not amounts_equal(100.0, 100.02)

    def test_fully_paid(self):
        assert is_fully_paid(100.0, 100.0)
        assert is_fully_paid(99.995, 100.0)
        assert is_fully_paid(150.0, 100.0)
        assert not is_fully_paid(99.98, 100.0)

    def test_exceeds_remaining(self):
        assert not exceeds_remaining(40.005, 40.0)
        assert exceeds_remaining(40.02, 40.0)
