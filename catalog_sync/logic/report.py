"""Run outcome aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping

from catalog_sync.ingest.models import IncomingRecord
from catalog_sync.logic.eligibility import EvaluationResult, collapse_reasons
from catalog_sync.logic.reconcile import Action

DEFAULT_ERROR_SAMPLE = 10
DEFAULT_MATCHING_SAMPLE = 10


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    identifier: str
    action: Action
    success: bool
    remote_id: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ItemError:
    identifier: str
    action: Action
    message: str


@dataclass(frozen=True, slots=True)
class RunReport:
    considered: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    errors: tuple[ItemError, ...] = ()
    error_sample_size: int = DEFAULT_ERROR_SAMPLE

    @property
    def error_count(self) -> int:
        return self.errored

    @property
    def truncated_errors(self) -> int:
        return self.errored - len(self.errors)

    def with_skip(self) -> "RunReport":
        return replace(self, considered=self.considered + 1, skipped=self.skipped + 1)

    def with_outcome(self, outcome: ItemOutcome) -> "RunReport":
        if not outcome.success:
            errors = self.errors
            if len(errors) < self.error_sample_size:
                errors = errors + (
                    ItemError(outcome.identifier, outcome.action, outcome.error or "unknown error"),
                )
            return replace(self, considered=self.considered + 1, errored=self.errored + 1, errors=errors)
        if outcome.action is Action.CREATE:
            return replace(self, considered=self.considered + 1, created=self.created + 1)
        if outcome.action is Action.UPDATE:
            return replace(self, considered=self.considered + 1, updated=self.updated + 1)
        return self.with_skip()

    def with_outcomes(self, outcomes: Iterable[ItemOutcome]) -> "RunReport":
        report = self
        for outcome in outcomes:
            report = report.with_outcome(outcome)
        return report

    @property
    def balanced(self) -> bool:
        return self.created + self.updated + self.skipped + self.errored == self.considered


def build_report(
    outcomes: Iterable[ItemOutcome], skipped: int = 0, *, error_sample_size: int = DEFAULT_ERROR_SAMPLE
) -> RunReport:
    report = RunReport(considered=skipped, skipped=skipped, error_sample_size=error_sample_size)
    return report.with_outcomes(outcomes)


@dataclass(frozen=True, slots=True)
class FilterSummary:
    total: int = 0
    matching: int = 0
    rejected: int = 0
    rejection_reasons: Mapping[str, int] = field(default_factory=dict)
    price_distribution: Mapping[str, int] = field(default_factory=dict)
    line_distribution: Mapping[str, int] = field(default_factory=dict)
    status_distribution: Mapping[str, int] = field(default_factory=dict)
    matching_sample: tuple[IncomingRecord, ...] = ()

    @property
    def match_rate(self) -> float:
        return self.matching / self.total if self.total else 0.0

    def with_result(
        self,
        record: IncomingRecord,
        result: EvaluationResult,
        *,
        sample_size: int = DEFAULT_MATCHING_SAMPLE,
    ) -> "FilterSummary":
        if not result.matches:
            reason = collapse_reasons(result.reasons)
            return replace(
                self,
                total=self.total + 1,
                rejected=self.rejected + 1,
                rejection_reasons=_bump(self.rejection_reasons, reason),
            )
        sample = self.matching_sample
        if len(sample) < sample_size:
            sample = sample + (record,)
        return replace(
            self,
            total=self.total + 1,
            matching=self.matching + 1,
            price_distribution=_bump(self.price_distribution, price_bucket(result.price)),
            line_distribution=_bump(self.line_distribution, (record.line or "Unknown").strip().upper()),
            status_distribution=_bump(self.status_distribution, record.status or "Unknown"),
            matching_sample=sample,
        )


def summarize_filtering(
    evaluated: Iterable[tuple[IncomingRecord, EvaluationResult]],
) -> FilterSummary:
    summary = FilterSummary()
    for record, result in evaluated:
        summary = summary.with_result(record, result)
    return summary


def price_bucket(price: Decimal | None) -> str | None:
    if price is None:
        return None
    low = int(price // 100) * 100
    return f"${low}-{low + 99}"


def _bump(counts: Mapping[str, int], key: str | None) -> Mapping[str, int]:
    if key is None:
        return counts
    updated = dict(counts)
    updated[key] = updated.get(key, 0) + 1
    return MappingProxyType(updated)

