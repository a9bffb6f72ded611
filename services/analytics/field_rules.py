"""Field-name driven validity rules used by the data quality scorer."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, Sequence, Tuple

from services.analytics.records import is_empty

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DATE_PREFIX_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")
_CAMEL_HUMP = re.compile(r"([a-z0-9])([A-Z])")
_WORD = re.compile(r"[a-z]+|[0-9]+")

_DATE_FORMATS: Tuple[str, ...] = (
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%Y/%m/%d %H:%M:%S",
    "%d %b %Y",
    "%b %d, %Y",
)

Validator = Callable[[Any], bool]


def is_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_PATTERN.match(value))


def parse_date(value: Any) -> Optional[datetime]:
    """Best-effort conversion of ``value`` into a datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def is_date(value: Any) -> bool:
    return parse_date(value) is not None


def is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_present(value: Any) -> bool:
    return not is_empty(value)


def _field_words(field: str) -> Tuple[str, ...]:
    return tuple(_WORD.findall(_CAMEL_HUMP.sub(r"\1_\2", field).lower()))


@dataclass(frozen=True)
class FieldRule:
    """Validator applied to fields whose name has a keyword as one of its words.

    Names are split on underscores, dashes, spaces and camelCase humps, so
    ``itemCount`` and ``unit_price`` match while ``country`` or ``account`` do not.
    A trailing plural ``s`` is accepted.
    """

    name: str
    keywords: Tuple[str, ...]
    validator: Validator

    def matches(self, field: str) -> bool:
        words = _field_words(field)
        return any(keyword in words or f"{keyword}s" in words for keyword in self.keywords)


DEFAULT_RULES: Tuple[FieldRule, ...] = (
    FieldRule("email", ("email", "mail"), is_email),
    FieldRule("date", ("date", "fecha", "timestamp"), is_date),
    FieldRule("numeric", ("amount", "price", "quantity", "count"), is_finite_number),
)


class FieldRuleTable:
    """Ordered rule table; the first matching rule wins, otherwise presence is enough."""

    def __init__(self, rules: Sequence[FieldRule] = DEFAULT_RULES, default: Validator = is_present) -> None:
        self._rules = tuple(rules)
        self._default = default

    @property
    def rules(self) -> Tuple[FieldRule, ...]:
        return self._rules

    def validator_for(self, field: str) -> Validator:
        for rule in self._rules:
            if rule.matches(field):
                return rule.validator
        return self._default

    def is_valid(self, field: str, value: Any) -> bool:
        if is_empty(value):
            return False
        return bool(self.validator_for(field)(value))


def classify_value(value: Any) -> str:
    """Coarse type bucket used for consistency scoring."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, str):
        if DATE_PREFIX_PATTERN.match(value):
            return "date_string"
        if EMAIL_PATTERN.match(value):
            return "email"
        return "string"
    return "object"


DEFAULT_RULE_TABLE = FieldRuleTable()

__all__ = [
    "DEFAULT_RULES",
    "DEFAULT_RULE_TABLE",
    "FieldRule",
    "FieldRuleTable",
    "classify_value",
    "is_date",
    "is_email",
    "is_finite_number",
    "is_present",
    "parse_date",
]
