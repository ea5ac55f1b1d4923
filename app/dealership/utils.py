from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation


def clean_str(raw: object | None) -> str:
    return str(raw).strip() if raw is not None else ""


def parse_int(raw: object | None) -> int | None:
    """Parse an integer form value. Blank → None; junk raises ValueError."""
    if isinstance(raw, bool):
        raise ValueError("not an integer")
    if isinstance(raw, int):
        return raw
    s = clean_str(raw).replace(",", "")
    if not s:
        return None
    return int(s)


def parse_decimal(raw: object | None) -> Decimal | None:
    """Parse a money form value ("24,999.00", "$18500"). Blank → None."""
    if isinstance(raw, Decimal):
        return raw
    s = clean_str(raw).replace(",", "").lstrip("$")
    if not s:
        return None
    try:
        value = Decimal(s)
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {raw!r}") from e
    if not value.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return value


def parse_date(raw: object | None) -> date | None:
    """Parse YYYY-MM-DD. Blank → None."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    s = clean_str(raw)
    if not s:
        return None
    return date.fromisoformat(s)


def parse_bool(raw: object | None) -> bool:
    if isinstance(raw, bool):
        return raw
    return clean_str(raw).lower() in ("1", "true", "yes", "on", "y")


def digits_only(raw: object | None) -> str:
    return "".join(ch for ch in clean_str(raw) if ch.isdigit())
