"""Unit tests for paginated batch collection."""

from __future__ import annotations

import asyncio
import math

import pytest

from core.errors import BatchFetchError, CohortConfigError, StaleResultDiscarded
from core.types import RecordQuery
from fetch.batch_collector import BatchCollector, plan_pages
from tests.record_helpers import FakeRecordStore, numbered_records

PAGE_SIZE = 10


def _collector(store: FakeRecordStore, **overrides: object) -> BatchCollector:
    settings: dict[str, object] = {"page_size": PAGE_SIZE, "retries": 0, "retry_base_delay": 0}
    settings.update(overrides)
    return BatchCollector(store, **settings)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "total", [0, 1, PAGE_SIZE - 1, PAGE_SIZE, PAGE_SIZE + 1, 5 * PAGE_SIZE + 37]
)
def test_fetch_all_issues_exactly_ceil_pages(total: int) -> None:
    """Collector should issue ceil(N/P) page requests and return N unique records."""
    store = FakeRecordStore(numbered_records(total))

    result = asyncio.run(_collector(store).fetch_all(RecordQuery()))

    record_ids = [record.record_id for record in result.records]
    assert len(store.page_calls) == math.ceil(total / PAGE_SIZE)
    assert len(record_ids) == total and len(set(record_ids)) == total
    assert result.total_count == total and result.complete


def test_fetch_all_requests_contiguous_ranges() -> None:
    """Page windows should start at multiples of the page size."""
    store = FakeRecordStore(numbered_records(25))

    asyncio.run(_collector(store).fetch_all(RecordQuery()))

    assert sorted(store.page_calls) == [(0, 10), (10, 10), (20, 10)]


def test_fetch_all_preserves_batch_order_under_concurrency() -> None:
    """Concurrent pages should concatenate in batch order within the bound."""
    records = numbered_records(47)
    store = FakeRecordStore(records)

    result = asyncio.run(_collector(store, concurrency=3).fetch_all(RecordQuery()))

    assert list(result.records) == records
    assert 1 < store.max_in_flight <= 3


def test_sequential_collector_keeps_one_request_in_flight() -> None:
    """Default concurrency should fetch pages one at a time."""
    store = FakeRecordStore(numbered_records(30))

    asyncio.run(_collector(store).fetch_all(RecordQuery()))

    assert store.max_in_flight == 1


def test_page_size_is_clamped_to_store_maximum() -> None:
    """Requested page size above the store cap should be clamped."""
    store = FakeRecordStore(numbered_records(12), max_page_size=5)
    collector = _collector(store, page_size=50)

    result = asyncio.run(collector.fetch_all(RecordQuery()))

    assert collector.page_size == 5 and len(store.page_calls) == 3 and len(result.records) == 12


def test_failed_page_is_retried_until_success() -> None:
    """A transient page failure should be retried within the retry budget."""
    store = FakeRecordStore(numbered_records(20), failures={10: 2})

    result = asyncio.run(_collector(store, retries=2).fetch_all(RecordQuery()))

    assert len(result.records) == 20
    assert store.page_calls.count((10, 10)) == 3


def test_strict_policy_aborts_on_exhausted_page() -> None:
    """Strict policy should raise with the failed batch index."""
    store = FakeRecordStore(numbered_records(30), failures={10: math.inf})

    with pytest.raises(BatchFetchError) as error:
        asyncio.run(_collector(store, retries=1).fetch_all(RecordQuery(), "strict"))

    assert error.value.batch_index == 1 and error.value.offset == 10
    assert store.page_calls.count((10, 10)) == 2


def test_best_effort_policy_reports_missing_pages() -> None:
    """Best-effort policy should skip the failed page and name it."""
    store = FakeRecordStore(numbered_records(30), failures={10: math.inf})

    result = asyncio.run(_collector(store, retries=1).fetch_all(RecordQuery(), "best_effort"))

    assert len(result.records) == 20 and not result.complete
    assert [page.batch_index for page in result.missing_pages] == [1]
    assert result.missing_pages[0].offset == 10 and result.missing_pages[0].end == 19


def test_count_failure_raises_batch_fetch_error() -> None:
    """A failed count query should raise regardless of policy."""
    store = FakeRecordStore([], count_error=ConnectionError("count timed out"))

    with pytest.raises(BatchFetchError, match="count"):
        asyncio.run(_collector(store, retries=1).fetch_all(RecordQuery(), "best_effort"))

    assert store.count_calls == 2


def test_duplicate_records_across_pages_are_dropped() -> None:
    """Records repeated by a shifting store should appear once."""
    records = numbered_records(15)
    store = FakeRecordStore(records[:10] + records[9:14])

    result = asyncio.run(_collector(store).fetch_all(RecordQuery()))

    record_ids = [record.record_id for record in result.records]
    assert len(record_ids) == len(set(record_ids)) == 14


def test_superseded_fetch_is_discarded() -> None:
    """Only the newest fetch should deliver results; the older one is dropped."""

    async def scenario():
        store = FakeRecordStore(numbered_records(5))
        collector = _collector(store)
        gate = asyncio.Event()
        original_fetch_page = store.fetch_page
        calls = {"count": 0}

        async def gated_fetch_page(query, offset, limit):
            calls["count"] += 1
            if calls["count"] == 1:
                await gate.wait()
            return await original_fetch_page(query, offset, limit)

        store.fetch_page = gated_fetch_page  # type: ignore[method-assign]
        first = asyncio.create_task(collector.fetch_all(RecordQuery()))
        while calls["count"] == 0:
            await asyncio.sleep(0)
        second = await collector.fetch_all(RecordQuery(search_term="r000"))
        gate.set()
        with pytest.raises(StaleResultDiscarded) as stale:
            await first
        return second, stale.value

    second, stale = asyncio.run(scenario())

    assert second.generation == 2 and len(second.records) == 5
    assert stale.generation == 1 and stale.current_generation == 2


def test_cancel_invalidates_in_flight_fetch() -> None:
    """Cancelling should make the running fetch raise instead of returning."""

    async def scenario() -> int:
        store = FakeRecordStore(numbered_records(5))
        collector = _collector(store)
        gate = asyncio.Event()
        original_fetch_page = store.fetch_page

        async def gated_fetch_page(query, offset, limit):
            await gate.wait()
            return await original_fetch_page(query, offset, limit)

        store.fetch_page = gated_fetch_page  # type: ignore[method-assign]
        running = asyncio.create_task(collector.fetch_all(RecordQuery()))
        await asyncio.sleep(0)
        new_generation = collector.cancel()
        gate.set()
        with pytest.raises(StaleResultDiscarded):
            await running
        return new_generation

    assert asyncio.run(scenario()) == 2


def test_plan_pages_rejects_zero_page_size() -> None:
    """Page planning should reject a non-positive page size."""
    with pytest.raises(CohortConfigError):
        plan_pages(10, 0)


def test_collector_rejects_invalid_settings() -> None:
    """Collector construction should validate its bounds."""
    with pytest.raises(CohortConfigError):
        BatchCollector(FakeRecordStore([]), concurrency=0)
