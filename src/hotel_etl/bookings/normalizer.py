"""Per-field cleansing of raw booking values.

Every helper here degrades instead of raising: malformed input becomes ``None``
("no value") or, for e-mail addresses, the configured sentinel. Record-level
accept/reject decisions live in :mod:`hotel_etl.bookings.validator`.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%m/%d/%Y", "%d-%b-%Y")
DEFAULT_EMAIL_SENTINEL = "unknown"
DEFAULT_STATUS_CANONICALIZATION: Mapping[str, str] = MappingProxyType(
    {
        "confirmeeed": "Confirmed",
        "confirmd": "Confirmed",
    }
)

_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_EMAIL_SHAPE = re.compile(r"@.*\.", re.DOTALL)
# Letters and digits continue a word; anything else starts a new one.
_WORD = re.compile(r"[^\W_]+")
# Typed integers are stored as SQLite INTEGER (signed 64-bit).
_INT_MIN = Decimal(-(2**63))
_INT_MAX = Decimal(2**63 - 1)


@dataclass(frozen=True)
class NormalizationRules:
    """Immutable lookup tables and formats used by :class:`FieldNormalizer`."""

    status_canonicalization: Mapping[str, str] = field(
        default_factory=lambda: DEFAULT_STATUS_CANONICALIZATION
    )
    email_sentinel: str = DEFAULT_EMAIL_SENTINEL
    date_formats: tuple[str, ...] = DEFAULT_DATE_FORMATS

    def __post_init__(self) -> None:
        table = {key.strip().lower(): value for key, value in self.status_canonicalization.items()}
        object.__setattr__(self, "status_canonicalization", MappingProxyType(table))
        object.__setattr__(self, "date_formats", tuple(self.date_formats))


def _log_failure(field_name: str, raw: str) -> None:
    logger.debug("Field parse failure: %s=%r degraded to no value", field_name, raw)


def clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def title_case(value: Optional[str]) -> Optional[str]:
    """Trim and capitalise each word, lower-casing the remaining letters."""
    text = clean_text(value)
    if text is None:
        return None
    return _WORD.sub(lambda match: match.group(0)[:1].upper() + match.group(0)[1:].lower(), text)


def upper_text(value: Optional[str]) -> Optional[str]:
    text = clean_text(value)
    return text.upper() if text is not None else None


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    text = clean_text(value)
    if text is None or not _NUMBER.match(text):
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _to_int(number: Decimal, field_name: str, raw: Optional[str]) -> Optional[int]:
    rounded = number.to_integral_value(rounding=ROUND_HALF_UP)
    if not _INT_MIN <= rounded <= _INT_MAX:
        _log_failure(field_name, raw or "")
        return None
    return int(rounded)


def parse_integer(value: Optional[str], *, field_name: str = "integer") -> Optional[int]:
    number = parse_decimal(value)
    if number is None:
        if clean_text(value) is not None:
            _log_failure(field_name, value or "")
        return None
    return _to_int(number, field_name, value)


def parse_nonzero_integer(value: Optional[str], *, field_name: str = "integer") -> Optional[int]:
    """Parse an integer, treating a literal zero as no value."""
    number = parse_decimal(value)
    if number is None:
        if clean_text(value) is not None:
            _log_failure(field_name, value or "")
        return None
    if number == 0:
        return None
    return _to_int(number, field_name, value)


def parse_amount(value: Optional[str], *, field_name: str = "total_amount") -> Optional[float]:
    """Parse a money amount: zero becomes no value, then the absolute value is taken.

    Amounts beyond the float range are parse failures rather than infinities.
    """
    number = parse_decimal(value)
    if number is None:
        if clean_text(value) is not None:
            _log_failure(field_name, value or "")
        return None
    if number == 0:
        return None
    amount = float(abs(number))
    if not math.isfinite(amount):
        _log_failure(field_name, value or "")
        return None
    return amount


def parse_date(
    value: Optional[str],
    formats: Iterable[str] = DEFAULT_DATE_FORMATS,
    *,
    field_name: str = "date",
) -> Optional[date]:
    text = clean_text(value)
    if text is None:
        return None
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    _log_failure(field_name, text)
    return None


def looks_like_email(value: Optional[str]) -> bool:
    return value is not None and bool(_EMAIL_SHAPE.search(value))


class FieldNormalizer:
    """Applies the per-field cleansing contract using injected rules."""

    def __init__(self, rules: Optional[NormalizationRules] = None) -> None:
        self._rules = rules or NormalizationRules()

    @property
    def rules(self) -> NormalizationRules:
        return self._rules

    def hotel_id(self, value: Optional[str]) -> Optional[int]:
        return parse_integer(value, field_name="hotel_id")

    def text(self, value: Optional[str]) -> Optional[str]:
        return title_case(value)

    def currency(self, value: Optional[str]) -> Optional[str]:
        return upper_text(value)

    def email(self, value: Optional[str]) -> str:
        if not looks_like_email(value):
            if clean_text(value) is not None:
                logger.debug("Malformed customer_email %r replaced by sentinel", value)
            return self._rules.email_sentinel
        return value.strip().lower()  # type: ignore[union-attr]

    def num_guests(self, value: Optional[str]) -> Optional[int]:
        return parse_nonzero_integer(value, field_name="num_guests")

    def total_amount(self, value: Optional[str]) -> Optional[float]:
        return parse_amount(value, field_name="total_amount")

    def stay_date(self, value: Optional[str], *, field_name: str = "date") -> Optional[date]:
        return parse_date(value, self._rules.date_formats, field_name=field_name)

    def booking_status(self, value: Optional[str]) -> Optional[str]:
        text = clean_text(value)
        if text is None:
            return None
        canonical = self._rules.status_canonicalization.get(text.lower())
        if canonical is not None:
            return canonical
        return title_case(text)


__all__ = [
    "DEFAULT_DATE_FORMATS",
    "DEFAULT_EMAIL_SENTINEL",
    "DEFAULT_STATUS_CANONICALIZATION",
    "FieldNormalizer",
    "NormalizationRules",
    "clean_text",
    "looks_like_email",
    "parse_amount",
    "parse_date",
    "parse_decimal",
    "parse_integer",
    "parse_nonzero_integer",
    "title_case",
    "upper_text",
]
