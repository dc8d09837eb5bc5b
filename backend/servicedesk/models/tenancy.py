from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company.

    All clients, products, documents and ledger rows carry tenant_id and
    every query in the services filters on it. A row from another tenant is
    reported exactly like a missing row.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    # Default tax percent for new documents (e.g. 11.5 = 11.5%)
    tax_rate = db.Column(db.Float, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "tax_rate": self.tax_rate,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Client(db.Model):
    """
    Billable customer of a tenant.

    Clients are never hard-deleted: lifecycle_state moves ACTIVE -> ARCHIVED
    so historical quotes and invoices keep their client reference.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_tenant_state", "tenant_id", "lifecycle_state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    first_name = db.Column(db.String(120), nullable=True)
    last_name = db.Column(db.String(120), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    lifecycle_state = db.Column(db.String(16), nullable=False, default="ACTIVE")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Company", backref=db.backref("clients", lazy=True))

    @property
    def display_name(self) -> str:
        if self.company_name:
            return self.company_name
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.display_name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company_name": self.company_name,
            "display_name": self.display_name,
            "email": self.email,
            "lifecycle_state": self.lifecycle_state,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
