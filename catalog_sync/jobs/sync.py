"""Catalog sync job orchestration."""

from __future__ import annotations

import argparse
import asyncio
import logging
import pathlib
from dataclasses import dataclass
from typing import Iterable, Protocol

import pendulum

from catalog_sync.config import ConfigurationError, SyncSettings, load_settings
from catalog_sync.ingest.feed import CsvFeed
from catalog_sync.ingest.models import IncomingRecord, RemoteRecord
from catalog_sync.ingest.payload import ProductPayloadBuilder
from catalog_sync.ingest.shopify import DryRunWriter, ShopifyCatalogClient
from catalog_sync.jobs.executor import BatchExecutor, CatalogWriter, PayloadBuilder, PlannedOperation
from catalog_sync.logic.eligibility import evaluate
from catalog_sync.logic.reconcile import Action, ReconciliationIndex, decide
from catalog_sync.logic.report import FilterSummary, RunReport, build_report, summarize_filtering
from catalog_sync.logic.taxonomy import CATEGORIES_PATH, TaxonomyResolver, load_vocabulary
from catalog_sync.report.render import render_filter_summary, render_summary
from catalog_sync.utils.dates import now_in_tz
from catalog_sync.utils.logs import configure_logging
from catalog_sync.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class CatalogReader(Protocol):
    async def fetch_all(self) -> list[RemoteRecord]: ...


@dataclass(slots=True)
class SyncPlan:
    filter_summary: FilterSummary
    operations: list[PlannedOperation]
    skipped: int


@dataclass(slots=True)
class SyncResult:
    filter_summary: FilterSummary
    report: RunReport
    started_at: pendulum.DateTime
    finished_at: pendulum.DateTime
    dry_run: bool = False


def plan_operations(
    records: Iterable[IncomingRecord],
    settings: SyncSettings,
    index: ReconciliationIndex,
) -> SyncPlan:
    criteria = settings.criteria
    summary = FilterSummary()
    operations: list[PlannedOperation] = []
    skipped = 0
    for record in records:
        result = evaluate(record, criteria)
        summary = summary.with_result(record, result)
        if not result.matches:
            logger.debug("Filtered out %s: %s", record.label, ", ".join(result.reasons))
            continue
        decision = decide(record, index.lookup(record), enable_updates=settings.enable_updates)
        if decision.action is Action.SKIP:
            skipped += 1
            logger.debug("Product up to date or updates disabled: %s", record.label)
            continue
        if decision.action is Action.UPDATE:
            logger.debug("Product needs update: %s - Changes: %s", record.label, ", ".join(sorted(decision.changed_fields)))
        operations.append(PlannedOperation(record, decision))
    return SyncPlan(summary, operations, skipped)


def build_resolver(settings: SyncSettings) -> TaxonomyResolver:
    path = pathlib.Path(settings.categories_path) if settings.categories_path else CATEGORIES_PATH
    return TaxonomyResolver(load_vocabulary(path))


async def run_sync(
    settings: SyncSettings,
    records: Iterable[IncomingRecord],
    reader: CatalogReader,
    writer: CatalogWriter,
    builder: PayloadBuilder,
    *,
    executor: BatchExecutor | None = None,
) -> SyncResult:
    settings.validate()
    started_at = now_in_tz()
    logger.info("=== STARTING CATALOG SYNC ===")
    logger.info(
        "Criteria: price %s-%s, %s lines, %s exclusions; batches of %s, %s concurrent, %.1fs pacing",
        settings.price_min,
        settings.price_max,
        len(settings.acceptable_lines),
        len(settings.exclusion_substrings),
        settings.batch_size,
        settings.max_concurrent_batches,
        settings.delay_between_batch_windows,
    )

    remote = await reader.fetch_all()
    index = ReconciliationIndex.build(remote)

    plan = plan_operations(records, settings, index)
    creates = sum(1 for op in plan.operations if op.action is Action.CREATE)
    logger.info(
        "Filtered %s of %s records; to create: %s, to update: %s, unchanged: %s",
        plan.filter_summary.matching,
        plan.filter_summary.total,
        creates,
        len(plan.operations) - creates,
        plan.skipped,
    )

    executor = executor or BatchExecutor(
        writer,
        builder,
        batch_size=settings.batch_size,
        max_concurrent_batches=settings.max_concurrent_batches,
        delay=settings.delay_between_batch_windows,
        batch_timeout=settings.batch_timeout,
    )
    outcomes = await executor.execute(plan.operations)
    report = build_report(outcomes, plan.skipped, error_sample_size=settings.error_sample_size)
    result = SyncResult(plan.filter_summary, report, started_at, now_in_tz(), dry_run=settings.dry_run)
    logger.info(
        "=== SYNC COMPLETE: %s created, %s updated, %s skipped, %s errors ===",
        report.created,
        report.updated,
        report.skipped,
        report.errored,
    )
    for error in report.errors:
        logger.error("%s (%s): %s", error.identifier, error.action.value, error.message)
    if report.truncated_errors:
        logger.info("... and %s more errors", report.truncated_errors)
    return result


async def run(settings: SyncSettings) -> SyncResult:
    settings.validate()
    builder = ProductPayloadBuilder(build_resolver(settings), vendor=settings.vendor)
    feed = CsvFeed(settings.feed_path)
    client: ShopifyCatalogClient | None = None
    if settings.store_url and settings.access_token:
        client = ShopifyCatalogClient(
            settings.admin_base_url,
            settings.access_token,
            timeout=settings.request_timeout,
            rate_limiter=RateLimiter(rate=settings.requests_per_second),
        )
    reader: CatalogReader = client or _EmptyCatalog()
    writer: CatalogWriter = DryRunWriter() if settings.dry_run or client is None else client
    try:
        result = await run_sync(settings, feed, reader, writer, builder)
    finally:
        if client:
            await client.close()
    if feed.stats.errors:
        logger.warning("%s feed rows could not be read", feed.stats.errors)
    return result


def analyze(settings: SyncSettings) -> FilterSummary:
    criteria = settings.criteria
    return summarize_filtering((record, evaluate(record, criteria)) for record in CsvFeed(settings.feed_path))


class _EmptyCatalog:
    async def fetch_all(self) -> list[RemoteRecord]:
        logger.info("No store configured; treating the remote catalog as empty")
        return []


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sync a catalog feed into Shopify")
    parser.add_argument("command", nargs="?", choices=("run", "analyze"), default="run")
    parser.add_argument("--config", help="Path to the YAML settings file")
    parser.add_argument("--dry-run", action="store_true", help="Plan and log writes without sending them")
    args = parser.parse_args(argv)

    configure_logging()
    try:
        settings = load_settings(args.config)
        if args.dry_run:
            settings.dry_run = True
        if args.command == "analyze":
            if not settings.acceptable_lines:
                raise ConfigurationError("acceptable_lines must not be empty")
            print(render_filter_summary(analyze(settings)))
            return 0
        result = asyncio.run(run(settings))
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    print(render_summary(result))
    return 0 if result.report.errored == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
