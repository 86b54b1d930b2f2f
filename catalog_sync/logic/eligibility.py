"""Eligibility rules for incoming feed records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from catalog_sync.ingest.models import IncomingRecord

NO_PRICE = "no price data"
PRICE_BELOW_MIN = "price below minimum"
PRICE_ABOVE_MAX = "price above maximum"
LINE_NOT_IN_CRITERIA = "line not in criteria"
EXCLUDED_BY_CONTENT = "excluded by content rule"
EXCLUDED_STATUS = "excluded status"
MISSING_REQUIRED_FIELD = "missing required field"
MULTIPLE_CRITERIA = "multiple criteria failed"

PRICE_CHARS_RE = re.compile(r"[^\d.\-]")


def parse_price(value: Any) -> Decimal | None:
    """Parse a price tolerantly, ignoring currency symbols and separators."""
    if value is None:
        return None
    cleaned = PRICE_CHARS_RE.sub("", str(value))
    if not cleaned:
        return None
    try:
        price = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not price.is_finite():
        return None
    return price


def normalize_label(value: str | None) -> str:
    return (value or "").strip().casefold()


@dataclass(frozen=True, slots=True)
class EligibilityCriteria:
    price_min: Decimal
    price_max: Decimal
    acceptable_lines: frozenset[str]
    exclusion_substrings: frozenset[str] = frozenset()
    excluded_statuses: frozenset[str] = frozenset()
    required_fields: tuple[str, ...] = ()
    _lines: tuple[str, ...] = field(init=False, repr=False, compare=False)
    _exclusions: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        lines = sorted({normalize_label(line) for line in self.acceptable_lines} - {""})
        exclusions = sorted({normalize_label(s) for s in self.exclusion_substrings} - {""})
        object.__setattr__(self, "_lines", tuple(lines))
        object.__setattr__(self, "_exclusions", tuple(exclusions))

    @classmethod
    def build(
        cls,
        *,
        price_min: Any,
        price_max: Any,
        acceptable_lines: Iterable[str],
        exclusion_substrings: Iterable[str] = (),
        excluded_statuses: Iterable[str] = (),
        required_fields: Iterable[str] = (),
    ) -> "EligibilityCriteria":
        return cls(
            price_min=Decimal(str(price_min)),
            price_max=Decimal(str(price_max)),
            acceptable_lines=frozenset(acceptable_lines),
            exclusion_substrings=frozenset(exclusion_substrings),
            excluded_statuses=frozenset(normalize_label(s) for s in excluded_statuses),
            required_fields=tuple(required_fields),
        )

    def line_matches(self, line: str | None) -> bool:
        label = normalize_label(line)
        if not label:
            return False
        return any(label == ref or label in ref or ref in label for ref in self._lines)

    def excluded_by_content(self, record: IncomingRecord) -> bool:
        haystacks = [
            normalize_label(record.category_path),
            normalize_label(record.item_type),
            normalize_label(record.description),
        ]
        return any(needle in text for needle in self._exclusions for text in haystacks if text)


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    matches: bool
    reasons: tuple[str, ...]
    price: Decimal | None = None


def evaluate(record: IncomingRecord, criteria: EligibilityCriteria) -> EvaluationResult:
    """Check one record against the criteria.

    Every triggered reason is returned in evaluation order: price, line,
    content exclusions, status, required fields.
    """
    reasons: list[str] = []

    price = parse_price(record.price)
    if price is None:
        reasons.append(NO_PRICE)
    elif price < criteria.price_min:
        reasons.append(PRICE_BELOW_MIN)
    elif price > criteria.price_max:
        reasons.append(PRICE_ABOVE_MAX)

    if not criteria.line_matches(record.line):
        reasons.append(LINE_NOT_IN_CRITERIA)

    if criteria.excluded_by_content(record):
        reasons.append(EXCLUDED_BY_CONTENT)

    if criteria.excluded_statuses and normalize_label(record.status) in criteria.excluded_statuses:
        reasons.append(EXCLUDED_STATUS)

    for name in criteria.required_fields:
        if not getattr(record, name, None) and not record.attribute(name):
            reasons.append(MISSING_REQUIRED_FIELD)
            break

    return EvaluationResult(matches=not reasons, reasons=tuple(reasons), price=price)


def collapse_reasons(reasons: Iterable[str]) -> str | None:
    """Reduce a reason list to the single label used in rejection counts."""
    reasons = tuple(reasons)
    if not reasons:
        return None
    if len(reasons) == 1:
        return reasons[0]
    return MULTIPLE_CRITERIA
