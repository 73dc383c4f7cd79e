from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from inventra.time_utils import parse_date, parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Numbers beyond this (in currency units) never reach an INTEGER column
MAX_NUMERIC_AMOUNT = Decimal(10) ** 15

EMAIL_RE = re.compile(r".+@.+\..+")


class InventraError(Exception):
    """Base for errors that cross the API boundary as a failed result."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(InventraError, ValueError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(InventraError, LookupError):
    """404: record absent or owned by someone else (never distinguished)."""
    status_code = 404


class ConflictError(InventraError, ValueError):
    """409-level business rule conflict (e.g., duplicate product code)."""
    status_code = 409


class InsufficientStockError(InventraError):
    """Requested quantity exceeds what is on hand."""
    status_code = 409


class InvalidStateError(InventraError):
    """Operation not allowed in the record's current state (e.g., expired product)."""
    status_code = 409


class StorageError(InventraError):
    """Persistence collaborator failed."""
    status_code = 500


class PartialFailureError(InventraError):
    """
    A multi-record mutation failed halfway and could not be rolled back.
    Requires manual reconciliation.
    """
    status_code = 500


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - stripped_fields: silently dropped before validation (server-owned values)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    stripped_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        try:
            return parse_date(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    stripped = policy.stripped_fields or set()
    payload = {k: v for k, v in payload.items() if k not in stripped}

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def parse_money_to_cents(value: Any, field: str = "price") -> int:
    """
    Convert a currency amount ("12.50", 12.5, 12) to integer cents.

    Rounds half-up to the nearest cent.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount.copy_abs() > MAX_NUMERIC_AMOUNT:
        raise ValidationError(f"{field} is out of range")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_search_number(search: str) -> Decimal | None:
    """Numeric reading of a search term; None unless it is a finite number in storable range."""
    try:
        number = Decimal(search)
    except InvalidOperation:
        return None
    if not number.is_finite() or number.copy_abs() > MAX_NUMERIC_AMOUNT:
        return None
    return number


def _require_non_negative_int(patch: dict, key: str, *, maximum: int | None = None) -> None:
    if key not in patch or patch[key] is None:
        return
    value = patch[key]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} cannot exceed {maximum}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _require_non_negative_int(patch, "price_cents", maximum=MAX_PRICE_CENTS)
    _require_non_negative_int(patch, "quantity")
    _require_non_negative_int(patch, "threshold_value")


def enforce_rules_invoice(patch: dict, *, allowed_statuses) -> None:
    _require_non_negative_int(patch, "discount_cents", maximum=MAX_PRICE_CENTS)
    _require_non_negative_int(patch, "paid_cents")

    if "status" in patch and patch["status"] not in allowed_statuses:
        raise ValidationError(f"status must be one of: {', '.join(allowed_statuses)}")

    email = patch.get("customer_email")
    if email:
        email = email.lower()
        if not EMAIL_RE.fullmatch(email):
            raise ValidationError("Please enter a valid email address")
        patch["customer_email"] = email
