# Overview: Pytest coverage for payment reconciliation.

import pytest

from servicedesk.errors import InvalidStateError, NotFoundError, OverpaymentRejectedError
from servicedesk.extensions import db
from servicedesk.models import Payment
from servicedesk.services import invoice_service, payment_service
from servicedesk.validation import ValidationError


@pytest.fixture
def invoice(db_session, tenant_a, client_a, product_a):
    """PENDING invoice with a total of exactly 100.00."""
    return invoice_service.create_invoice(
        tenant_a.id,
        client_id=client_a.id,
        items=[{"product_id": product_a.id, "quantity": 10, "unit_price": 10.0}],
    )


def _reload(tenant, invoice):
    return invoice_service.get_invoice(tenant.id, invoice.id)


class TestRecordPayment:

    def test_partial_then_full_payment(self, tenant_a, invoice):
        payment_service.record_payment(tenant_a.id, invoice.id, 60)
        current = _reload(tenant_a, invoice)
        assert current.status == "PENDING"
        assert current.paid_amount == pytest.approx(60.0)

        payment_service.record_payment(tenant_a.id, invoice.id, 40, method="transfer")
        current = _reload(tenant_a, invoice)
        assert current.status == "PAID"
        assert current.paid_amount == pytest.approx(100.0)

        with pytest.raises(OverpaymentRejectedError):
            payment_service.record_payment(tenant_a.id, invoice.id, 0.01)
        assert db.session.query(Payment).count() == 2

    def test_overpayment_rejected_with_remaining(self, tenant_a, invoice):
        payment_service.record_payment(tenant_a.id, invoice.id, 70)
        with pytest.raises(OverpaymentRejectedError) as exc:
            payment_service.record_payment(tenant_a.id, invoice.id, 31)
        assert exc.value.details["remaining"] == pytest.approx(30.0)
        assert _reload(tenant_a, invoice).paid_amount == pytest.approx(70.0)

    def test_payment_within_tolerance_accepted(self, tenant_a, invoice):
        payment_service.record_payment(tenant_a.id, invoice.id, 100.005)
        assert _reload(tenant_a, invoice).status == "PAID"

    def test_payment_beyond_tolerance_rejected(self, tenant_a, invoice):
        with pytest.raises(OverpaymentRejectedError):
            payment_service.record_payment(tenant_a.id, invoice.id, 100.02)
        assert _reload(tenant_a, invoice).status == "PENDING"

    def test_cancelled_invoice_refuses_payments(self, tenant_a, invoice):
        invoice_service.cancel_invoice(tenant_a.id, invoice.id)
        with pytest.raises(InvalidStateError):
            payment_service.record_payment(tenant_a.id, invoice.id, 10)

    @pytest.mark.parametrize("amount", [0, -5, "abc", None])
    def test_invalid_amounts(self, tenant_a, invoice, amount):
        with pytest.raises(ValidationError):
            payment_service.record_payment(tenant_a.id, invoice.id, amount)

    def test_unknown_method_rejected(self, tenant_a, invoice):
        with pytest.raises(ValidationError):
            payment_service.record_payment(tenant_a.id, invoice.id, 10, method="BARTER")

    def test_payment_on_other_tenant_invoice_not_found(self, tenant_b, invoice):
        with pytest.raises(NotFoundError):
            payment_service.record_payment(tenant_b.id, invoice.id, 10)
        assert db.session.query(Payment).count() == 0


class TestPaidAmountReconciliation:

    def test_paid_amount_equals_sum_of_payments(self, tenant_a, invoice):
        for amount in (10, 20.5, 30.25):
            payment_service.record_payment(tenant_a.id, invoice.id, amount)
        total = sum(p.amount for p in db.session.query(Payment).all())
        assert _reload(tenant_a, invoice).paid_amount == pytest.approx(total)

    def test_next_payment_recomputes_after_override(self, tenant_a, invoice):
        invoice_service.mark_paid_amount(tenant_a.id, invoice.id, 100)
        assert _reload(tenant_a, invoice).status == "PAID"

        payment_service.record_payment(tenant_a.id, invoice.id, 30)
        current = _reload(tenant_a, invoice)
        assert current.paid_amount == pytest.approx(30.0)
        assert current.status == "PENDING"


class TestPaymentSummary:

    def test_summary_lists_newest_first(self, tenant_a, invoice):
        payment_service.record_payment(tenant_a.id, invoice.id, 25, paid_at="2026-01-10")
        payment_service.record_payment(tenant_a.id, invoice.id, 15, paid_at="2026-02-10", method="CARD")

        summary = payment_service.get_payment_summary(tenant_a.id, invoice.id)
        assert summary["number"] == invoice.number
        assert summary["total"] == pytest.approx(100.0)
        assert summary["paid_amount"] == pytest.approx(40.0)
        assert summary["payments_total"] == pytest.approx(40.0)
        assert summary["remaining"] == pytest.approx(60.0)
        assert [p["amount"] for p in summary["payments"]] == [15, 25]
        assert summary["payments"][0]["method"] == "CARD"

    def test_remaining_follows_payment_rows_after_override(self, tenant_a, invoice):
        invoice_service.mark_paid_amount(tenant_a.id, invoice.id, 100)

        summary = payment_service.get_payment_summary(tenant_a.id, invoice.id)
        assert summary["status"] == "PAID"
        assert summary["paid_amount"] == pytest.approx(100.0)
        assert summary["payments_total"] == 0.0
        assert summary["remaining"] == pytest.approx(100.0)
