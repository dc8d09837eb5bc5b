from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import LedgerError
from .time_utils import coerce_datetime


# Largest accepted unit price / payment: 9,999,999.99
MAX_AMOUNT = 9_999_999.99


class ValidationError(LedgerError):
    """400-level input problem."""

    kind = "VALIDATION"
    http_status = 400


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer: rejects floats, bools, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValidationError(f"{field} must be an integer")


def coerce_amount(value: Any, field: str, *, allow_zero: bool = True) -> float:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if amount != amount or amount in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT:,.2f}")
    return amount


def coerce_percent(value: Any, field: str) -> float:
    percent = coerce_amount(value, field)
    if percent > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return percent


def coerce_optional_datetime(value: Any, field: str):
    try:
        return coerce_datetime(value, field)
    except ValueError as exc:
        raise ValidationError(str(exc))


def normalize_line_items(items: Any) -> list[dict]:
    """
    Validate document line items.

    Each item: {"quantity": int > 0, "unit_price": number >= 0,
    "product_id": int | None, "description": str | None}.
    A document needs at least one item.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if "quantity" not in raw or "unit_price" not in raw:
            raise ValidationError(f"items[{index}] requires quantity and unit_price")

        quantity = coerce_int(raw["quantity"], f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")

        product_id = raw.get("product_id")
        if product_id is not None:
            product_id = coerce_int(product_id, f"items[{index}].product_id")

        description = raw.get("description")
        if description is not None:
            description = str(description).strip()[:255] or None

        if product_id is None and description is None:
            raise ValidationError(f"items[{index}] needs a product_id or a description")

        normalized.append({
            "product_id": product_id,
            "description": description,
            "quantity": quantity,
            "unit_price": coerce_amount(raw["unit_price"], f"items[{index}].unit_price"),
        })
    return normalized


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Float):
        return coerce_amount(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, DateTime):
        dt = coerce_optional_datetime(value, col.key)
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Product rules not captured by column metadata."""
    for field in ("stock", "min_stock"):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")
