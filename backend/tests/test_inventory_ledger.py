# Overview: Pytest coverage for the inventory ledger engine and product catalogue.

import pytest
from sqlalchemy import update

from servicedesk.errors import (
    DuplicateConstraintError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
)
from servicedesk.extensions import db
from servicedesk.models import InventoryMovement, Product
from servicedesk.services import inventory_service, products_service, quote_service
from servicedesk.services.inventory_service import (
    adjust_stock,
    apply_stock_movement,
    check_low_stock,
    deduct_stock,
    reconstruct_stock,
    restore_stock,
    verify_stock_ledger,
)
from servicedesk.validation import ValidationError


def _movements(product_id):
    return (
        db.session.query(InventoryMovement)
        .filter_by(product_id=product_id)
        .order_by(InventoryMovement.id)
        .all()
    )


def _stock(product_id):
    return db.session.get(Product, product_id).stock


class TestProductCreation:

    def test_initial_stock_is_booked_as_in_movement(self, db_session, tenant_a, product_a):
        movements = _movements(product_a.id)
        assert product_a.stock == 10
        assert len(movements) == 1
        assert movements[0].type == "IN"
        assert movements[0].quantity == 10
        assert movements[0].previous_stock == 0
        assert movements[0].new_stock == 10
        assert movements[0].reason == "Initial stock"

    def test_zero_initial_stock_writes_no_movement(self, db_session, tenant_a):
        product = products_service.create_product(tenant_a.id, {"name": "Labour hour", "price": 35})
        assert product.stock == 0
        assert _movements(product.id) == []

    def test_duplicate_code_rejected(self, db_session, tenant_a, product_a):
        with pytest.raises(DuplicateConstraintError):
            products_service.create_product(tenant_a.id, {"code": "wid-1", "name": "Another widget"})

    def test_same_code_allowed_in_other_tenant(self, db_session, tenant_a, tenant_b, product_a):
        other = products_service.create_product(tenant_b.id, {"code": "WID-1", "name": "Widget B"})
        assert other.code == "WID-1"

    def test_negative_initial_stock_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            products_service.create_product(tenant_a.id, {"name": "Bad", "stock": -1})

    def test_update_cannot_write_stock(self, db_session, tenant_a, product_a):
        with pytest.raises(ValidationError):
            products_service.update_product(tenant_a.id, product_a.id, {"stock": 99})

    def test_update_catalogue_fields(self, db_session, tenant_a, product_a):
        product = products_service.update_product(tenant_a.id, product_a.id, {"price": 12.5, "min_stock": 2})
        assert product.price == 12.5
        assert product.min_stock == 2
        assert product.stock == 10


class TestPrimitives:

    def test_deduct_writes_out_movement(self, db_session, tenant_a, product_a):
        movement = deduct_stock(tenant_a.id, product_a.id, 4, reason="Manual", reference="REF-1")
        assert movement.type == "OUT"
        assert movement.quantity == 4
        assert movement.previous_stock == 10
        assert movement.new_stock == 6
        assert movement.reference == "REF-1"
        assert _stock(product_a.id) == 6

    def test_deduct_insufficient_stock_changes_nothing(self, db_session, tenant_a, product_a):
        with pytest.raises(InsufficientStockError) as exc:
            deduct_stock(tenant_a.id, product_a.id, 11)
        assert exc.value.details["available"] == 10
        assert _stock(product_a.id) == 10
        assert len(_movements(product_a.id)) == 1

    def test_deduct_exact_stock_reaches_zero(self, db_session, tenant_a, product_a):
        deduct_stock(tenant_a.id, product_a.id, 10)
        assert _stock(product_a.id) == 0

    def test_deduct_rejects_non_positive_quantity(self, db_session, tenant_a, product_a):
        with pytest.raises(ValidationError):
            deduct_stock(tenant_a.id, product_a.id, 0)

    def test_deduct_then_restore_round_trip(self, db_session, tenant_a, product_a):
        deduct_stock(tenant_a.id, product_a.id, 7)
        restore_stock(tenant_a.id, product_a.id, 7)

        movements = _movements(product_a.id)
        assert _stock(product_a.id) == 10
        assert [m.type for m in movements[1:]] == ["OUT", "IN"]
        assert len(movements) == 3

    def test_restore_has_no_ceiling(self, db_session, tenant_a, product_a):
        restore_stock(tenant_a.id, product_a.id, 1_000_000)
        assert _stock(product_a.id) == 1_000_010

    def test_adjust_to_absolute_value(self, db_session, tenant_a, product_a):
        movement = adjust_stock(tenant_a.id, product_a.id, new_stock=3, reason="Count")
        assert movement.type == "ADJUSTMENT"
        assert movement.quantity == 7
        assert movement.signed_quantity == -7
        assert _stock(product_a.id) == 3

    def test_adjust_by_delta(self, db_session, tenant_a, product_a):
        movement = adjust_stock(tenant_a.id, product_a.id, delta=5)
        assert movement.quantity == 5
        assert movement.new_stock == 15

    def test_adjust_below_zero_rejected(self, db_session, tenant_a, product_a):
        with pytest.raises(InsufficientStockError):
            adjust_stock(tenant_a.id, product_a.id, delta=-11)
        assert _stock(product_a.id) == 10

    def test_adjust_requires_exactly_one_target(self, db_session, tenant_a, product_a):
        with pytest.raises(ValidationError):
            adjust_stock(tenant_a.id, product_a.id)
        with pytest.raises(ValidationError):
            adjust_stock(tenant_a.id, product_a.id, new_stock=1, delta=1)

    def test_other_tenant_product_not_found(self, db_session, tenant_a, tenant_b, product_b):
        with pytest.raises(NotFoundError):
            deduct_stock(tenant_a.id, product_b.id, 1)

    def test_low_stock_predicate(self, db_session, tenant_a, product_a):
        assert check_low_stock(product_a) is None
        deduct_stock(tenant_a.id, product_a.id, 5)
        alert = check_low_stock(db.session.get(Product, product_a.id))
        assert alert["type"] == "LOW_STOCK"
        assert alert["stock"] == 5


class TestApplyStockMovement:

    def test_in_out_adjustment(self, db_session, tenant_a, product_a):
        m_in, _ = apply_stock_movement(tenant_a.id, product_a.id, movement_type="IN", quantity=5)
        m_out, _ = apply_stock_movement(tenant_a.id, product_a.id, movement_type="OUT", quantity=3)
        m_adj, alert = apply_stock_movement(tenant_a.id, product_a.id, movement_type="ADJUSTMENT", quantity=4)

        assert (m_in.previous_stock, m_in.new_stock) == (10, 15)
        assert (m_out.previous_stock, m_out.new_stock) == (15, 12)
        assert (m_adj.previous_stock, m_adj.new_stock, m_adj.quantity) == (12, 4, 8)
        assert alert is not None and alert["type"] == "LOW_STOCK"

    def test_unknown_type_rejected(self, db_session, tenant_a, product_a):
        with pytest.raises(ValidationError):
            apply_stock_movement(tenant_a.id, product_a.id, movement_type="TRANSFER", quantity=1)

    def test_archived_product_cannot_be_deducted(self, db_session, tenant_a, product_a):
        products_service.archive_product(tenant_a.id, product_a.id)
        with pytest.raises(InvalidStateError):
            apply_stock_movement(tenant_a.id, product_a.id, movement_type="OUT", quantity=1)


class TestMovementImmutability:

    def test_update_refused(self, db_session, tenant_a, product_a):
        movement = _movements(product_a.id)[0]
        movement.quantity = 99
        with pytest.raises(InvalidStateError):
            db_session.flush()
        db_session.rollback()
        assert _movements(product_a.id)[0].quantity == 10

    def test_delete_refused(self, db_session, tenant_a, product_a):
        movement = _movements(product_a.id)[0]
        db_session.delete(movement)
        with pytest.raises(InvalidStateError):
            db_session.flush()
        db_session.rollback()
        assert len(_movements(product_a.id)) == 1


class TestMovementHistory:

    def test_filters_and_stats(self, db_session, tenant_a, product_a):
        other = products_service.create_product(tenant_a.id, {"name": "Cable", "code": "CAB", "stock": 4})
        deduct_stock(tenant_a.id, product_a.id, 2, reason="Invoice FAC-X", reference="FAC-X")
        adjust_stock(tenant_a.id, other.id, new_stock=1)

        rows, total = inventory_service.list_movements(tenant_a.id)
        assert total == 4

        rows, total = inventory_service.list_movements(tenant_a.id, movement_type="OUT")
        assert total == 1 and rows[0].reference == "FAC-X"

        rows, total = inventory_service.list_movements(tenant_a.id, product_id=other.id)
        assert total == 2

        rows, total = inventory_service.list_movements(tenant_a.id, search="cable")
        assert total == 2

        rows, total = inventory_service.list_movements(tenant_a.id, search="FAC-X")
        assert total == 1

        stats = inventory_service.movement_stats(tenant_a.id)
        assert stats["IN"] == {"count": 2, "quantity": 14}
        assert stats["OUT"] == {"count": 1, "quantity": 2}
        assert stats["ADJUSTMENT"] == {"count": 1, "quantity": 3}

    def test_pagination_newest_first(self, db_session, tenant_a, product_a):
        for _ in range(3):
            deduct_stock(tenant_a.id, product_a.id, 1)

        rows, total = inventory_service.list_movements(tenant_a.id, page=1, limit=2)
        assert total == 4
        assert len(rows) == 2
        assert rows[0].id > rows[1].id

        rows, _ = inventory_service.list_movements(tenant_a.id, page=2, limit=2)
        assert len(rows) == 2

    def test_history_is_tenant_scoped(self, db_session, tenant_a, tenant_b, product_a, product_b):
        rows, total = inventory_service.list_movements(tenant_b.id)
        assert total == 1
        assert rows[0].product_id == product_b.id


class TestLedgerVerification:

    def test_stock_equals_ledger_after_mixed_activity(self, db_session, tenant_a, product_a):
        deduct_stock(tenant_a.id, product_a.id, 3)
        restore_stock(tenant_a.id, product_a.id, 1)
        adjust_stock(tenant_a.id, product_a.id, new_stock=20)
        deduct_stock(tenant_a.id, product_a.id, 6)

        assert reconstruct_stock(tenant_a.id, product_a.id) == _stock(product_a.id) == 14
        assert verify_stock_ledger(tenant_a.id) == []

    def test_drift_is_reported(self, db_session, tenant_a, product_a):
        db_session.execute(update(Product).where(Product.id == product_a.id).values(stock=99))
        db_session.commit()

        mismatches = verify_stock_ledger(tenant_a.id)
        assert len(mismatches) == 1
        assert mismatches[0]["stock"] == 99
        assert mismatches[0]["ledger_stock"] == 10
        assert mismatches[0]["difference"] == 89


class TestArchiveProduct:

    def test_archive_unreferenced_product(self, db_session, tenant_a, product_a):
        product = products_service.archive_product(tenant_a.id, product_a.id)
        assert product.lifecycle_state == "ARCHIVED"
        assert products_service.list_products(tenant_a.id) == []
        assert len(products_service.list_products(tenant_a.id, include_archived=True)) == 1

    def test_archive_refused_when_quoted(self, db_session, tenant_a, client_a, product_a):
        quote_service.create_quote(
            tenant_a.id,
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 1, "unit_price": 10.0}],
        )
        with pytest.raises(InvalidStateError) as exc:
            products_service.archive_product(tenant_a.id, product_a.id)
        assert "it is used in quotes" in exc.value.details["blockers"]

    def test_archived_code_can_be_reused(self, db_session, tenant_a, product_a):
        products_service.archive_product(tenant_a.id, product_a.id)
        product = products_service.create_product(tenant_a.id, {"code": "WID-1", "name": "Widget v2"})
        assert product.lifecycle_state == "ACTIVE"
