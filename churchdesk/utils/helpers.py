"""Shared parsing and time helpers used by services and blueprints.

parse_date:    returns None on bad input (lenient, for optional filters)
parse_date_input: raises ValidationError on bad input (strict, for payloads)
parse_amount:  Decimal money parsing with a positivity check
as_utc:        normalise naive datetimes coming back from SQLite
"""
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from churchdesk.core.exceptions import ValidationError

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("1000000000000")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return ``value`` as an aware UTC datetime.

    SQLite drops tzinfo on ``DateTime(timezone=True)`` columns, so values read
    back are naive but were written as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value):
    """ISO-8601 string for a date/datetime, None-safe."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value.isoformat()


def parse_date(value):
    """Parse a date string (YYYY-MM-DD or full ISO datetime) to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field: str):
    """Strict variant of parse_date: missing or malformed input is a ValidationError."""
    if value in (None, ""):
        raise ValidationError(f"{field} is required", details={field: "required"})
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"{field} must be a date in YYYY-MM-DD format",
            details={field: "invalid date"},
        )
    return parsed


def parse_amount(value, field: str) -> Decimal:
    """Parse a positive money amount with two decimal places."""
    if value in (None, "") or isinstance(value, bool):
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", details={field: "not a number"})
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number", details={field: "not a number"})
    # Numeric(14, 2) column
    if abs(amount) >= MAX_AMOUNT:
        raise ValidationError(f"{field} must be less than {MAX_AMOUNT:,}", details={field: "too large"})
    if amount != amount.quantize(CENT):
        raise ValidationError(
            f"{field} must have at most two decimal places",
            details={field: "too many decimal places"},
        )
    amount = amount.quantize(CENT)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", details={field: "must be > 0"})
    return amount


def clean_text(value, field: str, *, required: bool = True, max_length: int | None = None):
    """Strip a text field and enforce presence / length."""
    text = (value or "").strip() if isinstance(value, str) else ("" if value is None else str(value).strip())
    if required and not text:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if max_length and len(text) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters",
            details={field: "too long"},
        )
    return text or None


def to_float(value) -> float:
    """Decimal/None → float for JSON output."""
    if value is None:
        return 0.0
    return float(value)
