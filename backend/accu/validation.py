from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime, Date
from sqlalchemy.orm import DeclarativeMeta

from .models import (
    CLASSIFICATIONS,
    USER_ROLES,
    PROJECT_METHODS,
    PROJECT_METHOD_TYPES,
)
from .time_utils import parse_iso_datetime, parse_iso_date, today


# Upper bound for currency amounts: 999,999,999,999.99
MAX_AMOUNT = Decimal("999999999999.99")


class LedgerError(ValueError):
    """
    Base for domain errors surfaced to API clients.

    kind is the machine-readable error name returned as {"error": kind}.
    """
    kind = "LedgerError"
    http_status = 400

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": str(self)}


class ValidationError(LedgerError):
    """400-level input problem."""
    kind = "ValidationError"
    http_status = 400


class ClassificationMismatch(ValidationError):
    """from_class does not match the batch's current classification."""
    kind = "ClassificationMismatch"


class NotFoundError(LedgerError):
    """Unknown identifier."""
    kind = "NotFound"
    http_status = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., duplicate batch number, delete of a referenced row)."""
    kind = "ConflictError"
    http_status = 409


class InvalidStateTransition(LedgerError):
    """Workflow transition attempted from a terminal or wrong state."""
    kind = "InvalidStateTransition"
    http_status = 409


class InsufficientCollateral(LedgerError):
    """Loan quantity exceeds what the batch can still pledge."""
    kind = "InsufficientCollateral"
    http_status = 409


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


def _coerce_integer(col, value: Any) -> int:
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
    raise ValidationError(f"{col.key} must be an integer")


def _coerce_decimal(col, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{col.key} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float, str)):
        # str() keeps 28.1 as 28.1 instead of its binary float expansion
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{col.key} must be a number")
    else:
        raise ValidationError(f"{col.key} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{col.key} must be a finite number")

    scale = col.type.scale
    if scale is not None and -dec.as_tuple().exponent > scale:
        raise ValidationError(f"{col.key} allows at most {scale} decimal places")
    return dec


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return _coerce_integer(col, value)

    # Fixed-point amounts (currency, rates)
    if isinstance(coltype, Numeric):
        return _coerce_decimal(col, value)

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

    # Business dates (YYYY-MM-DD)
    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
            return d
        raise ValidationError(f"{col.key} must be a date")

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
    - SQLAlchemy column metadata (nullable, type, String length, Numeric scale)
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

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
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
            if not col.nullable or (not partial and k in required):
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


def _check_choice(patch: dict, field: str, choices: tuple[str, ...]) -> None:
    if field in patch and patch[field] is not None and patch[field] not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")


def _check_amount(patch: dict, field: str, *, allow_zero: bool) -> None:
    if field not in patch or patch[field] is None:
        return
    amount = patch[field]
    if allow_zero and amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if not allow_zero and amount <= 0:
        raise ValidationError(f"{field} must be > 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT:,}")


def _is_digit_string(value: str) -> bool:
    # str.isdigit also accepts superscripts and other non-ASCII digits
    return value.isascii() and value.isdigit()


def check_serial_range(serial_start: str | None, serial_end: str | None, quantity: int) -> None:
    """
    Serial range invariant: end - start + 1 == quantity.

    Both bounds are optional, but only together.
    """
    if serial_start is None and serial_end is None:
        return
    if serial_start is None or serial_end is None:
        raise ValidationError("serial_range_start and serial_range_end must be provided together")
    if not _is_digit_string(serial_start) or not _is_digit_string(serial_end):
        raise ValidationError("serial range bounds must contain digits only")

    start, end = int(serial_start), int(serial_end)
    if end < start:
        raise ValidationError("serial_range_end must not be below serial_range_start")
    span = end - start + 1
    if span != quantity:
        raise ValidationError(
            f"serial range {serial_start}-{serial_end} covers {span} units but quantity is {quantity}"
        )


def enforce_rules_batch(patch: dict) -> None:
    """
    Single-field business rules for batches.
    Cross-field rules (serial range vs quantity) run in batch_service against
    the merged record so partial updates are checked too.
    """
    if "quantity" in patch and patch["quantity"] is not None:
        if patch["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")

    _check_amount(patch, "acquisition_cost", allow_zero=True)
    _check_choice(patch, "classification", CLASSIFICATIONS)

    vintage = patch.get("vintage")
    if vintage is not None and not (len(vintage) == 4 and _is_digit_string(vintage)):
        raise ValidationError("vintage must be a four-digit year")

    for field in ("serial_range_start", "serial_range_end"):
        value = patch.get(field)
        if value is not None and not _is_digit_string(value):
            raise ValidationError(f"{field} must contain digits only")

    acquired = patch.get("acquisition_date")
    if acquired is not None and acquired > today():
        raise ValidationError("acquisition_date cannot be in the future")

    issued = patch.get("issuance_date")
    if issued is not None and issued > today():
        raise ValidationError("issuance_date cannot be in the future")


def enforce_rules_loan(patch: dict) -> None:
    if "quantity" in patch and patch["quantity"] is not None:
        if patch["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")

    _check_amount(patch, "loan_amount", allow_zero=False)
    _check_amount(patch, "collateral_value", allow_zero=True)

    rate = patch.get("buyback_rate")
    if rate is not None and (rate < 0 or rate > 100):
        raise ValidationError("buyback_rate must be between 0 and 100")


def enforce_rules_market_price(patch: dict) -> None:
    if "price" not in patch or patch["price"] is None:
        raise ValidationError("price is required")
    _check_amount(patch, "price", allow_zero=False)

    observed = patch.get("date")
    if observed is None:
        raise ValidationError("date is required")
    if observed > today():
        raise ValidationError("date cannot be in the future")


def enforce_rules_reclassification(patch: dict) -> None:
    _check_choice(patch, "from_class", CLASSIFICATIONS)
    _check_choice(patch, "to_class", CLASSIFICATIONS)
    if patch.get("from_class") is not None and patch.get("from_class") == patch.get("to_class"):
        raise ValidationError("to_class must differ from from_class")


def enforce_rules_user(patch: dict) -> None:
    _check_choice(patch, "role", USER_ROLES)
    email = patch.get("email")
    if email is not None:
        local, sep, domain = email.partition("@")
        if not local or not sep or "." not in domain:
            raise ValidationError("email must be a valid address")
        patch["email"] = email.lower()


def enforce_rules_project(patch: dict) -> None:
    _check_choice(patch, "method", PROJECT_METHODS)
    _check_choice(patch, "method_type", PROJECT_METHOD_TYPES)
