from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import request

from app.crm.errors import ValidationError

# Largest value a NUMERIC(14, 2) column holds.
MAX_AMOUNT = Decimal("999999999999.99")
# Signed 64-bit range of an INTEGER/BIGINT key.
MAX_INT = 2**63 - 1


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def request_payload() -> dict[str, Any]:
    """Body of the current request as a dict: JSON first, then form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def clean_str(value: Any) -> str | None:
    """Trimmed string, or None for missing/blank input."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_date(value: Any, field: str, errors: list[str]) -> date | None:
    """Parse YYYY-MM-DD; appends to `errors` on bad input."""
    s = clean_str(value)
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        errors.append(f"{field} must be a date in YYYY-MM-DD format.")
        return None


def parse_int(value: Any, field: str, errors: list[str]) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        errors.append(f"{field} must be an integer.")
        return None
    try:
        as_float = float(value)
    except (TypeError, ValueError, OverflowError):
        errors.append(f"{field} must be an integer.")
        return None
    if not as_float.is_integer():
        errors.append(f"{field} must be an integer.")
        return None
    n = int(value) if isinstance(value, int) else int(as_float)
    if not -MAX_INT - 1 <= n <= MAX_INT:
        errors.append(f"{field} is out of range.")
        return None
    return n


def parse_amount(value: Any, field: str, errors: list[str]) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        errors.append(f"{field} must be a number.")
        return None
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation:
        errors.append(f"{field} must be a number.")
        return None
    if not d.is_finite():
        errors.append(f"{field} must be a number.")
        return None
    if abs(d) > MAX_AMOUNT:
        errors.append(f"{field} must not exceed {MAX_AMOUNT}.")
        return None
    try:
        return float(d.quantize(Decimal("0.01")))
    except InvalidOperation:
        errors.append(f"{field} must be a number.")
        return None


def iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(microsecond=0).isoformat(sep=" ")
    return value.isoformat()


def human_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def query_int(name: str) -> int | None:
    """Integer query-string filter; bad or out-of-range input is a ValidationError."""
    errors: list[str] = []
    value = parse_int(request.args.get(name), name, errors)
    if errors:
        raise ValidationError.from_errors(errors)
    return value
