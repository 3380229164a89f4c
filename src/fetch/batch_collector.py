"""Paginated batch collection with retries and generation tokens.

The collector counts matching rows, splits the range into capped pages,
and fetches them with bounded concurrency. Each call takes a new
generation; pages that arrive for a superseded generation are dropped.
"""

from __future__ import annotations

import asyncio
import math

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.constants import (
    DEFAULT_FETCH_CONCURRENCY,
    DEFAULT_FETCH_RETRIES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
)
from core.errors import BatchFetchError, CohortConfigError, StaleResultDiscarded
from core.logging_config import get_logger
from core.types import FetchPolicy, FetchResult, PageRange, Record, RecordQuery
from fetch.record_store import RecordStore

_LOGGER = get_logger(__name__)


def plan_pages(total_count: int, page_size: int) -> tuple[PageRange, ...]:
    """Split ``total_count`` rows into ``ceil(total_count / page_size)`` pages.

    Args:
        total_count: Number of rows reported by the store.
        page_size: Rows per page, at least 1.

    Returns:
        Page windows in batch order.
    """
    if page_size < 1:
        raise CohortConfigError(f"Page size must be at least 1, got {page_size}.")
    batch_count = math.ceil(max(total_count, 0) / page_size)
    return tuple(
        PageRange(batch_index=index, offset=index * page_size, limit=page_size)
        for index in range(batch_count)
    )


class BatchCollector:
    """Assemble a full record set from a row-capped paginated store."""

    def __init__(
        self,
        store: RecordStore,
        page_size: int = DEFAULT_PAGE_SIZE,
        retries: int = DEFAULT_FETCH_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        concurrency: int = DEFAULT_FETCH_CONCURRENCY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    ) -> None:
        """Create a collector.

        Args:
            store: Paginated record source.
            page_size: Requested rows per page, clamped to the store cap.
            retries: Extra attempts per failed request.
            retry_base_delay: Exponential backoff multiplier in seconds.
            concurrency: Maximum page requests in flight.
            retry_max_delay: Upper bound for one backoff sleep.

        Raises:
            CohortConfigError: If sizes or counts are out of range.
        """
        if page_size < 1 or concurrency < 1 or retries < 0:
            raise CohortConfigError(
                "Invalid collector settings: page_size and concurrency must be >= 1 "
                f"and retries >= 0, got page_size={page_size}, concurrency={concurrency}, "
                f"retries={retries}."
            )
        self._store = store
        self._page_size = min(page_size, store.max_page_size)
        if self._page_size != page_size:
            _LOGGER.warning(
                "page_size_clamped", requested=page_size, max_page_size=store.max_page_size
            )
        self._retries = retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._concurrency = concurrency
        self._generation = 0

    @property
    def page_size(self) -> int:
        """Return the effective page size."""
        return self._page_size

    @property
    def generation(self) -> int:
        """Return the current generation token."""
        return self._generation

    def cancel(self) -> int:
        """Invalidate any in-flight fetch and return the new generation."""
        self._generation += 1
        _LOGGER.info("fetch_cancelled", generation=self._generation)
        return self._generation

    async def fetch_all(self, query: RecordQuery, policy: FetchPolicy = "strict") -> FetchResult:
        """Collect every record matching a base query.

        Args:
            query: Base predicate pushed down to the store.
            policy: ``strict`` aborts on the first failed page after
                retries; ``best_effort`` skips it and reports it in
                ``missing_pages``.

        Returns:
            Records in batch order, deduplicated by record id.

        Raises:
            BatchFetchError: If the count fails, or a page fails under
                ``strict`` policy.
            StaleResultDiscarded: If a newer fetch started before this one
                finished.
        """
        self._generation += 1
        generation = self._generation
        total_count = await self._count(query)
        self._ensure_current(generation, batch_index=None)
        pages = plan_pages(total_count, self._page_size)
        _LOGGER.info(
            "fetch_started",
            generation=generation,
            total_count=total_count,
            batches=len(pages),
            page_size=self._page_size,
            policy=policy,
        )
        semaphore = asyncio.Semaphore(self._concurrency)
        tasks = [
            asyncio.create_task(self._collect_page(query, page, policy, generation, semaphore))
            for page in pages
        ]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        self._ensure_current(generation, batch_index=None)
        records: list[Record] = []
        missing: list[PageRange] = []
        for page, page_records in outcomes:
            if page_records is None:
                missing.append(page)
            else:
                records.extend(page_records)
        unique_records = _dedupe(records, generation)
        _LOGGER.info(
            "fetch_completed",
            generation=generation,
            records=len(unique_records),
            missing_pages=len(missing),
        )
        return FetchResult(
            records=tuple(unique_records),
            total_count=total_count,
            generation=generation,
            missing_pages=tuple(missing),
        )

    async def _count(self, query: RecordQuery) -> int:
        try:
            async for attempt in self._retrying("count", None):
                with attempt:
                    return int(await self._store.count(query))
        except Exception as error:
            raise BatchFetchError(
                f"Record count request failed after {self._retries + 1} attempt(s): {error}. "
                "Check the record store and retry."
            ) from error
        raise BatchFetchError("Record count request produced no result.")

    async def _collect_page(
        self,
        query: RecordQuery,
        page: PageRange,
        policy: FetchPolicy,
        generation: int,
        semaphore: asyncio.Semaphore,
    ) -> tuple[PageRange, list[Record] | None]:
        async with semaphore:
            self._ensure_current(generation, batch_index=page.batch_index)
            try:
                page_records = await self._fetch_page(query, page)
            except BatchFetchError as error:
                self._ensure_current(generation, batch_index=page.batch_index)
                if policy == "strict":
                    raise
                _LOGGER.warning(
                    "batch_skipped",
                    generation=generation,
                    batch_index=page.batch_index,
                    offset=page.offset,
                    end=page.end,
                    error=str(error),
                )
                return page, None
            self._ensure_current(generation, batch_index=page.batch_index)
            return page, page_records

    async def _fetch_page(self, query: RecordQuery, page: PageRange) -> list[Record]:
        try:
            async for attempt in self._retrying("page", page):
                with attempt:
                    return list(await self._store.fetch_page(query, page.offset, page.limit))
        except Exception as error:
            _LOGGER.error(
                "batch_failed",
                batch_index=page.batch_index,
                offset=page.offset,
                end=page.end,
                attempts=self._retries + 1,
                error=str(error),
            )
            raise BatchFetchError(
                f"Batch {page.batch_index} (rows {page.offset}-{page.end}) failed after "
                f"{self._retries + 1} attempt(s): {error}.",
                batch_index=page.batch_index,
                offset=page.offset,
            ) from error
        raise BatchFetchError(
            f"Batch {page.batch_index} produced no result.",
            batch_index=page.batch_index,
            offset=page.offset,
        )

    def _retrying(self, request: str, page: PageRange | None) -> AsyncRetrying:
        def _log_retry(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            _LOGGER.warning(
                "fetch_retry",
                request=request,
                batch_index=page.batch_index if page is not None else None,
                attempt=retry_state.attempt_number,
                error=str(outcome.exception()) if outcome is not None else "",
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self._retries + 1),
            wait=wait_exponential(multiplier=self._retry_base_delay, max=self._retry_max_delay),
            retry=retry_if_exception_type(Exception),
            before_sleep=_log_retry,
            reraise=True,
        )

    def _ensure_current(self, generation: int, batch_index: int | None) -> None:
        if generation == self._generation:
            return
        _LOGGER.info(
            "stale_result_discarded",
            generation=generation,
            current_generation=self._generation,
            batch_index=batch_index,
        )
        raise StaleResultDiscarded(
            f"Fetch generation {generation} was superseded by generation "
            f"{self._generation}; its results were discarded.",
            generation=generation,
            current_generation=self._generation,
        )


def _dedupe(records: list[Record], generation: int) -> list[Record]:
    seen: set[str] = set()
    unique: list[Record] = []
    for record in records:
        if record.record_id in seen:
            continue
        seen.add(record.record_id)
        unique.append(record)
    dropped = len(records) - len(unique)
    if dropped:
        _LOGGER.warning("duplicate_records_dropped", generation=generation, dropped=dropped)
    return unique


def run_fetch(
    collector: BatchCollector, query: RecordQuery, policy: FetchPolicy = "strict"
) -> FetchResult:
    """Run one fetch to completion from synchronous code."""
    return asyncio.run(collector.fetch_all(query, policy))
