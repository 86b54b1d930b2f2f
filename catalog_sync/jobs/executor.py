"""Batched create/update execution against the remote catalog."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from catalog_sync.ingest.models import IncomingRecord, RemoteRecord
from catalog_sync.logic.reconcile import Action, ReconciliationDecision
from catalog_sync.logic.report import ItemOutcome

logger = logging.getLogger(__name__)


class CatalogWriter(Protocol):
    async def create(self, payload: dict[str, Any]) -> RemoteRecord: ...

    async def update(self, identifier: str, payload: dict[str, Any]) -> RemoteRecord: ...

    async def delete(self, identifier: str) -> None: ...


class PayloadBuilder(Protocol):
    def build(self, record: IncomingRecord) -> dict[str, Any]: ...

    def build_update(
        self, record: IncomingRecord, remote: RemoteRecord, changed_fields: Any
    ) -> dict[str, Any]: ...


@dataclass(frozen=True, slots=True)
class PlannedOperation:
    record: IncomingRecord
    decision: ReconciliationDecision

    @property
    def action(self) -> Action:
        return self.decision.action

    @property
    def identifier(self) -> str:
        return self.record.label


def partition(operations: Sequence[PlannedOperation], batch_size: int) -> list[list[PlannedOperation]]:
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    return [list(operations[i : i + batch_size]) for i in range(0, len(operations), batch_size)]


def windows(batches: Sequence[list[PlannedOperation]], size: int) -> list[list[list[PlannedOperation]]]:
    if size < 1:
        raise ValueError("window size must be positive")
    return [list(batches[i : i + size]) for i in range(0, len(batches), size)]


class BatchTimeoutError(RuntimeError):
    pass


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


class BatchExecutor:
    """Run planned operations in fixed-size batches.

    Batches run in windows of ``max_concurrent_batches``; every batch in a
    window runs at once and the next window starts ``delay`` seconds after the
    previous one finished. Items inside a batch are issued together and each
    resolves to its own ``ItemOutcome``: an item failure is recorded, never
    raised, and never cancels its siblings. A batch that fails as a whole
    yields an error outcome for each of its items.
    """

    def __init__(
        self,
        writer: CatalogWriter,
        builder: PayloadBuilder,
        *,
        batch_size: int = 10,
        max_concurrent_batches: int = 3,
        delay: float = 2.0,
        batch_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1 or max_concurrent_batches < 1:
            raise ValueError("batch_size and max_concurrent_batches must be positive")
        if delay < 0:
            raise ValueError("delay must not be negative")
        self.writer = writer
        self.builder = builder
        self.batch_size = batch_size
        self.max_concurrent_batches = max_concurrent_batches
        self.delay = delay
        self.batch_timeout = batch_timeout
        self._sleep = sleep
        self.state = "idle"
        self.windows_run = 0
        self.pauses = 0

    async def execute(self, operations: Sequence[PlannedOperation]) -> list[ItemOutcome]:
        pending = [op for op in operations if op.action is not Action.SKIP]
        self.state = "partitioning"
        batches = partition(pending, self.batch_size)
        groups = windows(batches, self.max_concurrent_batches)
        total = len(batches)
        logger.info(
            "Created %s batches of up to %s operations (%s windows)", total, self.batch_size, len(groups)
        )

        self.state = "executing"
        outcomes: list[ItemOutcome] = []
        offset = 0
        for window_index, group in enumerate(groups):
            first, last = offset + 1, offset + len(group)
            logger.info("Processing %s batches concurrently (batches %s-%s of %s)", len(group), first, last, total)
            results = await asyncio.gather(
                *(self._guarded_batch(batch, offset + i + 1, total) for i, batch in enumerate(group)),
                return_exceptions=True,
            )
            for batch, result in zip(group, results):
                if isinstance(result, BaseException):
                    outcomes.extend(self._batch_failed(batch, result))
                else:
                    outcomes.extend(result)
            offset += len(group)
            self.windows_run += 1
            if window_index < len(groups) - 1 and self.delay:
                logger.info("Waiting %.1fs before next batch window...", self.delay)
                self.pauses += 1
                await self._sleep(self.delay)

        self.state = "draining"
        logger.debug("Collected %s outcomes for %s operations", len(outcomes), len(pending))
        self.state = "done"
        return outcomes

    async def _guarded_batch(self, batch: list[PlannedOperation], index: int, total: int) -> list[ItemOutcome]:
        try:
            if self.batch_timeout:
                return await asyncio.wait_for(self.run_batch(batch, index, total), self.batch_timeout)
            return await self.run_batch(batch, index, total)
        except asyncio.TimeoutError as exc:
            raise BatchTimeoutError(f"batch {index} exceeded {self.batch_timeout}s") from exc

    async def run_batch(self, batch: list[PlannedOperation], index: int, total: int) -> list[ItemOutcome]:
        logger.info("Processing batch %s/%s (%s operations)", index, total, len(batch))
        results = await asyncio.gather(*(self.run_item(op) for op in batch), return_exceptions=True)
        outcomes: list[ItemOutcome] = []
        for op, result in zip(batch, results):
            if isinstance(result, BaseException):
                outcomes.append(ItemOutcome(op.identifier, op.action, False, error=_describe(result)))
            else:
                outcomes.append(result)
        created = sum(1 for o in outcomes if o.success and o.action is Action.CREATE)
        updated = sum(1 for o in outcomes if o.success and o.action is Action.UPDATE)
        errors = sum(1 for o in outcomes if not o.success)
        logger.info("Batch %s completed: %s created, %s updated, %s errors", index, created, updated, errors)
        return outcomes

    async def run_item(self, op: PlannedOperation) -> ItemOutcome:
        try:
            if op.action is Action.CREATE:
                remote = await self.writer.create(self.builder.build(op.record))
            elif op.action is Action.UPDATE:
                matched = op.decision.matched_remote
                if matched is None:
                    raise ValueError("update planned without a matched remote record")
                payload = self.builder.build_update(op.record, matched, op.decision.changed_fields)
                remote = await self.writer.update(matched.id, payload)
            else:
                raise ValueError(f"unsupported action {op.action.value}")
        except Exception as exc:
            logger.error("Failed to %s %s: %s", op.action.value, op.identifier, exc)
            return ItemOutcome(op.identifier, op.action, False, error=_describe(exc))
        logger.debug("%s %s -> %s", op.action.value, op.identifier, remote.id)
        return ItemOutcome(op.identifier, op.action, True, remote_id=remote.id)

    def _batch_failed(self, batch: list[PlannedOperation], exc: BaseException) -> list[ItemOutcome]:
        logger.error("Batch of %s operations failed: %s", len(batch), exc)
        message = f"batch failed: {_describe(exc)}"
        return [ItemOutcome(op.identifier, op.action, False, error=message) for op in batch]

