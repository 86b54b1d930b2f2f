import asyncio

import pytest

from catalog_sync.jobs.executor import BatchExecutor, PlannedOperation, partition, windows
from catalog_sync.logic.reconcile import Action, decide

from conftest import FakeWriter, make_record, make_remote


def _creates(count):
    records = [make_record(f"QG-{i}") for i in range(count)]
    return [PlannedOperation(record, decide(record, None)) for record in records]


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class TrackingWriter(FakeWriter):
    def __init__(self, slow=(), **kwargs):
        super().__init__(**kwargs)
        self.slow = set(slow)
        self.in_flight = 0
        self.max_in_flight = 0

    async def create(self, payload):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            sku = payload["variants"][0]["sku"]
            await asyncio.sleep(5 if sku in self.slow else 0)
            return await super().create(payload)
        finally:
            self.in_flight -= 1


def test_partition_and_windows():
    ops = _creates(23)
    batches = partition(ops, 10)
    assert [len(b) for b in batches] == [10, 10, 3]
    assert [len(w) for w in windows(batches, 3)] == [3]
    assert [len(w) for w in windows(partition(ops, 2), 5)] == [5, 5, 2]
    assert partition([], 10) == []
    with pytest.raises(ValueError):
        partition(ops, 0)
    with pytest.raises(ValueError):
        windows(batches, 0)


@pytest.mark.asyncio
async def test_single_window_needs_no_pause(builder):
    sleep = RecordingSleep()
    writer = FakeWriter()
    executor = BatchExecutor(writer, builder, batch_size=10, max_concurrent_batches=3, delay=2.0, sleep=sleep)
    outcomes = await executor.execute(_creates(23))
    assert len(outcomes) == 23
    assert all(o.success for o in outcomes)
    assert len(writer.created) == 23
    assert executor.windows_run == 1
    assert executor.pauses == 0
    assert sleep.calls == []
    assert executor.state == "done"


@pytest.mark.asyncio
async def test_pauses_only_between_windows(builder):
    sleep = RecordingSleep()
    executor = BatchExecutor(FakeWriter(), builder, batch_size=2, max_concurrent_batches=2, delay=1.5, sleep=sleep)
    outcomes = await executor.execute(_creates(7))
    assert len(outcomes) == 7
    assert executor.windows_run == 2
    assert sleep.calls == [1.5]


@pytest.mark.asyncio
async def test_in_flight_items_are_bounded(builder):
    writer = TrackingWriter()
    executor = BatchExecutor(writer, builder, batch_size=2, max_concurrent_batches=3, delay=0)
    await executor.execute(_creates(20))
    assert writer.max_in_flight == 6
    assert len(writer.created) == 20


@pytest.mark.asyncio
async def test_item_failure_is_isolated(builder):
    writer = FakeWriter(fail={"QG-3"})
    executor = BatchExecutor(writer, builder, batch_size=4, max_concurrent_batches=2, delay=0)
    outcomes = await executor.execute(_creates(8))
    failed = [o for o in outcomes if not o.success]
    assert [o.identifier for o in failed] == ["QG-3"]
    assert "create rejected for QG-3" in failed[0].error
    assert len(writer.created) == 7


@pytest.mark.asyncio
async def test_failed_batch_marks_all_its_items(builder):
    class ExplodingExecutor(BatchExecutor):
        async def run_batch(self, batch, index, total):
            if index == 2:
                raise RuntimeError("connection pool exhausted")
            return await super().run_batch(batch, index, total)

    executor = ExplodingExecutor(FakeWriter(), builder, batch_size=3, max_concurrent_batches=3, delay=0)
    outcomes = await executor.execute(_creates(9))
    assert len(outcomes) == 9
    failed = [o for o in outcomes if not o.success]
    assert [o.identifier for o in failed] == ["QG-3", "QG-4", "QG-5"]
    assert all(o.error.startswith("batch failed: RuntimeError") for o in failed)


@pytest.mark.asyncio
async def test_batch_timeout(builder):
    writer = TrackingWriter(slow={"QG-0"})
    executor = BatchExecutor(writer, builder, batch_size=2, max_concurrent_batches=2, delay=0, batch_timeout=0.05)
    outcomes = await executor.execute(_creates(4))
    by_id = {o.identifier: o for o in outcomes}
    assert not by_id["QG-0"].success
    assert not by_id["QG-1"].success
    assert "BatchTimeoutError" in by_id["QG-1"].error
    assert by_id["QG-2"].success and by_id["QG-3"].success


@pytest.mark.asyncio
async def test_updates_and_skips(builder):
    writer = FakeWriter()
    changed = make_record("QG-100", price="1600")
    same = make_record("QG-200", name="14K Gold Ring QG-200")
    ops = [
        PlannedOperation(changed, decide(changed, make_remote("1001"))),
        PlannedOperation(same, decide(same, make_remote("1002", title="14K Gold Ring QG-200", sku="QG-200"))),
    ]
    assert ops[1].action is Action.SKIP
    executor = BatchExecutor(writer, builder, delay=0)
    outcomes = await executor.execute(ops)
    assert len(outcomes) == 1
    assert outcomes[0].action is Action.UPDATE
    assert outcomes[0].remote_id == "1001"
    identifier, payload = writer.updated[0]
    assert identifier == "1001"
    assert payload["variants"] == [{"id": "v1001", "price": "1600.00"}]


@pytest.mark.asyncio
async def test_empty_run(builder):
    sleep = RecordingSleep()
    executor = BatchExecutor(FakeWriter(), builder, sleep=sleep)
    assert await executor.execute([]) == []
    assert executor.windows_run == 0
    assert sleep.calls == []


def test_rejects_bad_arguments(builder):
    with pytest.raises(ValueError):
        BatchExecutor(FakeWriter(), builder, batch_size=0)
    with pytest.raises(ValueError):
        BatchExecutor(FakeWriter(), builder, delay=-1)


def _assert_each_once(outcomes, ops):
    identifiers = [o.identifier for o in outcomes]
    assert len(identifiers) == len(set(identifiers))
    assert sorted(identifiers) == sorted(op.identifier for op in ops)


@pytest.mark.asyncio
async def test_every_operation_resolves_once_across_windows(builder):
    ops = _creates(23)
    writer = FakeWriter(fail={"QG-4", "QG-17"})
    executor = BatchExecutor(writer, builder, batch_size=4, max_concurrent_batches=2, delay=0)
    outcomes = await executor.execute(ops)
    assert executor.windows_run == 3
    _assert_each_once(outcomes, ops)
    assert sorted(o.identifier for o in outcomes if not o.success) == ["QG-17", "QG-4"]


@pytest.mark.asyncio
async def test_every_operation_resolves_once_when_a_batch_fails(builder):
    class ExplodingExecutor(BatchExecutor):
        async def run_batch(self, batch, index, total):
            if index == 3:
                raise RuntimeError("connection pool exhausted")
            return await super().run_batch(batch, index, total)

    ops = _creates(11)
    writer = FakeWriter(fail={"QG-1"})
    executor = ExplodingExecutor(writer, builder, batch_size=3, max_concurrent_batches=2, delay=0)
    outcomes = await executor.execute(ops)
    _assert_each_once(outcomes, ops)
    failed = sorted(o.identifier for o in outcomes if not o.success)
    assert failed == ["QG-1", "QG-6", "QG-7", "QG-8"]
    assert len(writer.created) == 7
