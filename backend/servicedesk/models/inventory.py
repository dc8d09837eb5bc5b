from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import InvalidStateError
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data with its current stock level.

    MULTI-TENANT: Products are scoped to a tenant via tenant_id.

    STOCK DISCIPLINE:
    Product.stock is written only by the inventory service primitives
    (deduct / restore / adjust). Each of those writes exactly one
    InventoryMovement in the same transaction, so
        stock == sum(movement.signed_quantity)
    holds for every product at every commit.

    CODE: unique within a tenant among ACTIVE products. Archived products
    release their code (enforced in products_service, not by the schema,
    because partial unique indexes are not portable).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_tenant_code", "tenant_id", "code"),
        db.Index("ix_products_tenant_state", "tenant_id", "lifecycle_state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    price = db.Column(db.Float, nullable=False, default=0.0)
    cost = db.Column(db.Float, nullable=False, default=0.0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    lifecycle_state = db.Column(db.String(16), nullable=False, default="ACTIVE")

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Company", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "price": self.price,
            "cost": self.cost,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "lifecycle_state": self.lifecycle_state,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only stock ledger row.

    quantity is a non-negative magnitude; direction comes from type
    (IN adds, OUT removes, ADJUSTMENT follows new_stock - previous_stock).
    previous_stock/new_stock are captured from the same locked read that
    produced the product update.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inv_movements_quantity_magnitude"),
        db.CheckConstraint("new_stock >= 0", name="ck_inv_movements_new_stock_non_negative"),
        db.Index("ix_inv_movements_tenant_product_created", "tenant_id", "product_id", "created_at"),
        db.Index("ix_inv_movements_tenant_type_created", "tenant_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    # Business reference, e.g. the invoice number that caused the movement
    reference = db.Column(db.String(64), nullable=True, index=True)

    actor_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    @property
    def signed_quantity(self) -> int:
        if self.type == "IN":
            return self.quantity
        if self.type == "OUT":
            return -self.quantity
        return self.new_stock - self.previous_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "notes": self.notes,
            "reference": self.reference,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(InventoryMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise InvalidStateError(
        "Inventory movements are immutable",
        details={"movement_id": target.id, "operation": "UPDATE"},
    )


@event.listens_for(InventoryMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise InvalidStateError(
        "Inventory movements cannot be deleted",
        details={"movement_id": target.id, "operation": "DELETE"},
    )
