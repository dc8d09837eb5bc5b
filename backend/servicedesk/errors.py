# Overview: Business error taxonomy shared by services and routes.

"""
Ledger error taxonomy.

Every error carries a machine-readable kind, a human-readable message and an
optional details dict. Routes serialize them with to_dict() and respond with
http_status. Business errors are never retried by the core; only
InternalLedgerError is safe for the caller to retry.
"""


class LedgerError(Exception):
    """Base for all errors reported to callers."""

    kind = "INTERNAL"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(LedgerError):
    """Entity missing or outside the caller's tenant (indistinguishable on purpose)."""

    kind = "NOT_FOUND"
    http_status = 404


class InvalidStateError(LedgerError):
    """Status transition or edit-permission violation."""

    kind = "INVALID_STATE"
    http_status = 409


class InsufficientStockError(LedgerError):
    """Deduction or adjustment would make stock negative."""

    kind = "INSUFFICIENT_STOCK"
    http_status = 409


class OverpaymentRejectedError(LedgerError):
    """Payment exceeds the remaining balance beyond tolerance."""

    kind = "OVERPAYMENT_REJECTED"
    http_status = 422


class DuplicateConstraintError(LedgerError):
    """Unique business key collision (e.g. product code)."""

    kind = "DUPLICATE_CONSTRAINT"
    http_status = 409


class InternalLedgerError(LedgerError):
    """Store or transport failure. No partial state is observable."""

    kind = "INTERNAL"
    http_status = 500
