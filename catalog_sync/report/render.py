"""Plain-text summaries of sync runs."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from catalog_sync.logic.report import FilterSummary
from catalog_sync.utils.dates import format_duration, format_timestamp

if TYPE_CHECKING:
    from catalog_sync.jobs.sync import SyncResult

TEMPLATE_DIR = Path(__file__).parent
ENV = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)
RULE = "=" * 50


def _percent(part: int, whole: int) -> str:
    return f"{part / whole * 100:.1f}%" if whole else "0.0%"


def _price_sort_key(bucket: str) -> int:
    return int(bucket.split("-")[0].lstrip("$"))


def _filter_context(summary: FilterSummary) -> dict[str, Any]:
    return {
        "summary": summary,
        "match_rate": _percent(summary.matching, summary.total),
        "reasons": [
            (reason, count, _percent(count, summary.rejected))
            for reason, count in summary.rejection_reasons.items()
            if count
        ],
        "lines": [
            (line, count, _percent(count, summary.matching))
            for line, count in sorted(summary.line_distribution.items(), key=lambda item: item[1], reverse=True)
        ],
        "prices": [
            (bucket, count, _percent(count, summary.matching))
            for bucket, count in sorted(summary.price_distribution.items(), key=lambda item: _price_sort_key(item[0]))
        ],
        "statuses": [
            (status, count, _percent(count, summary.matching))
            for status, count in summary.status_distribution.items()
        ],
        "rule": RULE,
    }


def render_filter_summary(summary: FilterSummary) -> str:
    return ENV.get_template("filter_summary.txt").render(**_filter_context(summary))


def render_summary(result: "SyncResult") -> str:
    report = result.report
    context = {
        **_filter_context(result.filter_summary),
        "report": report,
        "dry_run": result.dry_run,
        "started": format_timestamp(result.started_at),
        "duration": format_duration(result.started_at, result.finished_at),
    }
    return ENV.get_template("run_summary.txt").render(**context)
