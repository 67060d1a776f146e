"""Canonicalization of raw statement fields into typed values."""
from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime, timezone
from decimal import Decimal

from dateutil import parser as date_parser

from ledger_import.services.exceptions import InvalidAmountError, InvalidDateError

from .models import ParsedDraftTransaction

_DAY_FIRST_PATTERNS = (
    (re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), "%d/%m/%Y"),
    (re.compile(r"^(\d{2})/(\d{2})/(\d{2})$"), "%d/%m/%y"),
    (re.compile(r"^(\d{2})-(\d{2})-(\d{4})$"), "%d-%m-%Y"),
    (re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$"), "%d.%m.%Y"),
)
_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_OFX_COMPACT = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:(\d{2})(\d{2})(\d{2})?)?(?:\.\d+)?(?:\[[^\]]*\])?$")

_DEBIT_HINTS = ("deb", "saida", "desp")
_CREDIT_HINTS = ("cred", "entrada", "rece")


def normalize_description(value: str | None) -> str:
    """Uppercase, accent-free, whitespace-collapsed form of a description."""

    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return " ".join(stripped.split()).upper()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_flexible_date(value: str | date | datetime | None) -> datetime:
    """Parse a statement date into a timezone-aware UTC datetime.

    Date-only inputs resolve to UTC midnight. Raises InvalidDateError when the
    value is empty or does not describe a real calendar date.
    """

    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if value is None:
        raise InvalidDateError("Missing date")

    text = str(value).strip()
    if not text:
        raise InvalidDateError("Missing date")

    try:
        for pattern, fmt in _DAY_FIRST_PATTERNS:
            if pattern.match(text):
                return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)

        if _ISO_PREFIX.match(text):
            return _as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))

        compact = _OFX_COMPACT.match(text)
        if compact:
            year, month, day, hour, minute, second = compact.groups()
            return datetime(
                int(year),
                int(month),
                int(day),
                int(hour or 0),
                int(minute or 0),
                int(second or 0),
                tzinfo=timezone.utc,
            )

        return _as_utc(date_parser.parse(text, dayfirst=True))
    except (ValueError, OverflowError) as exc:
        raise InvalidDateError(f"Invalid date: {text}") from exc


def _split_separators(base: str) -> str:
    last_comma = base.rfind(",")
    last_dot = base.rfind(".")

    if last_comma > -1 and last_dot > -1:
        decimal_sep = "," if last_comma > last_dot else "."
        thousands_sep = "." if decimal_sep == "," else ","
        integer_part, _, fraction = base.rpartition(decimal_sep)
        if decimal_sep in integer_part:
            raise InvalidAmountError(f"Ambiguous amount: {base}")
        return f"{integer_part.replace(thousands_sep, '')}.{fraction}"

    separator = "," if last_comma > -1 else "." if last_dot > -1 else ""
    if not separator:
        return base
    if base.count(separator) == 1:
        return base.replace(separator, ".")

    groups = base.lstrip("-").split(separator)
    if not groups[0] or any(len(group) != 3 for group in groups[1:]):
        raise InvalidAmountError(f"Ambiguous amount: {base}")
    return base.replace(separator, "")


def parse_money(value: str | int | float | Decimal | None) -> float:
    """Parse a money string in major units.

    Handles either separator as decimal mark (the last one wins), currency
    symbols, trailing minus and parentheses as negative. Raises
    InvalidAmountError for empty, digit-less or ambiguous input.
    """

    if value is None:
        raise InvalidAmountError("Missing amount")
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        number = float(value)
        if not math.isfinite(number):
            raise InvalidAmountError(f"Non-finite amount: {value}")
        return number

    text = str(value).strip().replace("−", "-")
    if not text:
        raise InvalidAmountError("Missing amount")
    if not any(char.isdigit() for char in text):
        raise InvalidAmountError(f"Invalid amount: {text}")

    compact = "".join(text.split())
    negative = (compact.startswith("(") and compact.endswith(")")) or compact.endswith("-")
    base = compact.removeprefix("(").removesuffix(")").rstrip("-")
    base = re.sub(r"[^\d,.\-]", "", base)

    if base.count("-") > 1 or ("-" in base and not base.startswith("-")):
        raise InvalidAmountError(f"Invalid amount: {text}")

    normalized = _split_separators(base)
    try:
        number = float(normalized)
    except ValueError as exc:
        raise InvalidAmountError(f"Invalid amount: {text}") from exc
    if not math.isfinite(number):
        raise InvalidAmountError(f"Non-finite amount: {text}")
    if negative and number > 0:
        return -number
    return number


def parse_money_lenient(value: str | int | float | Decimal | None) -> float:
    """Legacy variant of parse_money that maps empty input to zero."""

    if value is None or (isinstance(value, str) and not value.strip()):
        return 0.0
    return parse_money(value)


def infer_type_from_amount(amount: float) -> str:
    return "income" if amount >= 0 else "expense"


def apply_type_hint(amount: float, type_hint: str | None) -> float:
    """Force the sign of an amount from a textual debit/credit hint."""

    lowered = normalize_description(type_hint).lower()
    if any(hint in lowered for hint in _DEBIT_HINTS) and amount > 0:
        amount = -amount
    if any(hint in lowered for hint in _CREDIT_HINTS) and amount < 0:
        amount = abs(amount)
    return amount


def normalize_transaction(
    date_value: str | date | datetime,
    description: str,
    amount: str | int | float | Decimal,
    type_hint: str | None = None,
    *,
    external_id: str | None = None,
    raw: dict[str, str] | None = None,
) -> ParsedDraftTransaction:
    """Build a draft transaction from raw statement fields.

    Raises InvalidDateError or InvalidAmountError; callers treat both as per-row
    failures.
    """

    parsed_date = parse_flexible_date(date_value)
    parsed_amount = apply_type_hint(parse_money(amount), type_hint)
    cleaned = " ".join((description or "").split())
    return ParsedDraftTransaction(
        date=parsed_date,
        description=cleaned,
        normalized_description=normalize_description(cleaned),
        amount=parsed_amount,
        external_id=external_id.strip() if external_id and external_id.strip() else None,
        raw=dict(raw or {}),
    )
