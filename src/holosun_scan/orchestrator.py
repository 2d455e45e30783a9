"""Background scan loop over the ZIP work list.

The orchestrator walks the selected ZIP codes in order on the asyncio event
loop. Each ZIP is resolved, its dealers are split into new and already-seen
records, new records are appended to the output CSV and the job tracker is
updated, all without suspending between the resolve call and the tracker
update. Failures for one ZIP are folded into an :class:`ItemOutcome` and only
bump the error counter; the loop always reaches the end of the list.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from holosun_scan.dedup import DeduplicationStore
from holosun_scan.errors import AlreadyRunning, InvalidInput, ResolveError, ScanError, WriteError
from holosun_scan.jobs import JobState, JobTracker
from holosun_scan.resolver import RecordResolver, normalize_zip
from holosun_scan.settings import REQUEST_DELAY_SECONDS, TEST_DELAY_SECONDS
from holosun_scan.writer import IncrementalWriter

LOGGER = logging.getLogger("holosun.scan")
PROGRESS_LOG_EVERY = 50
SAMPLE_DEALER_COUNT = 3


class Stage:
    SELECT = "select_zip_codes"
    FETCH = "submit_locator_request"
    PERSIST = "append_csv"


def log_stage(stage: str, message: str) -> None:
    LOGGER.info("[stage:%s] %s", stage, message)


def select_work_items(items: Sequence[Any], sparsify: int) -> List[Any]:
    """Take every ``sparsify``-th item starting with the first."""

    if isinstance(sparsify, bool) or not isinstance(sparsify, int) or sparsify < 1:
        raise InvalidInput(f"Invalid skip parameter {sparsify!r}. Must be a positive integer.")
    return list(items)[::sparsify]


class ItemStatus(Enum):
    RESOLVED = "resolved"
    RESOLVE_ERROR = "resolve_error"
    WRITE_ERROR = "write_error"


@dataclass(frozen=True)
class ItemOutcome:
    work_item: Any
    status: ItemStatus
    found: int = 0
    accepted: Tuple[Dict[str, Any], ...] = ()
    duplicates: int = 0
    error: Optional[ScanError] = None

    @property
    def failed(self) -> bool:
        return self.status is not ItemStatus.RESOLVED


@dataclass
class SampleScanSummary:
    work_items: List[Any]
    dealers_found: int = 0
    unique_dealers: List[Dict[str, Any]] = field(default_factory=list)
    error_count: int = 0
    duration_seconds: float = 0.0

    @property
    def duplicates_removed(self) -> int:
        return self.dealers_found - len(self.unique_dealers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "test_complete",
            "summary": {
                "test_zip_codes": self.work_items,
                "total_dealers_found": self.dealers_found,
                "unique_dealers": len(self.unique_dealers),
                "duplicates_removed": self.duplicates_removed,
                "error_count": self.error_count,
                "duration_seconds": round(self.duration_seconds, 2),
            },
            "sample_dealers": self.unique_dealers[:SAMPLE_DEALER_COUNT],
        }


async def resolve_item(resolver: RecordResolver, work_item: Any, **kwargs: Any) -> List[Dict[str, Any]]:
    resolve = resolver.resolve
    if inspect.iscoroutinefunction(resolve):
        return await resolve(work_item, **kwargs)
    return await asyncio.to_thread(resolve, work_item, **kwargs)


async def process_item(
    resolver: RecordResolver,
    store: DeduplicationStore,
    writer: Optional[IncrementalWriter],
    work_item: Any,
) -> ItemOutcome:
    try:
        records = await resolve_item(resolver, work_item)
    except (ResolveError, InvalidInput) as exc:
        return ItemOutcome(work_item, ItemStatus.RESOLVE_ERROR, error=exc)

    accepted, duplicates = store.partition(records)
    if accepted and writer is not None:
        try:
            writer.append(accepted)
        except WriteError as exc:
            store.discard(accepted)
            return ItemOutcome(
                work_item,
                ItemStatus.WRITE_ERROR,
                found=len(records),
                duplicates=len(duplicates),
                error=exc,
            )
    return ItemOutcome(
        work_item,
        ItemStatus.RESOLVED,
        found=len(records),
        accepted=tuple(accepted),
        duplicates=len(duplicates),
    )


class ScanOrchestrator:
    def __init__(
        self,
        resolver: RecordResolver,
        work_items: Sequence[Any],
        writer: IncrementalWriter,
        *,
        tracker: Optional[JobTracker] = None,
        store: Optional[DeduplicationStore] = None,
        request_delay: float = REQUEST_DELAY_SECONDS,
    ) -> None:
        self.resolver = resolver
        self.work_items = list(work_items)
        self.writer = writer
        self.tracker = tracker or JobTracker()
        self.store = store or DeduplicationStore()
        self.request_delay = request_delay
        self.task: Optional[asyncio.Task[None]] = None
        self._started_monotonic = 0.0

    def status(self) -> JobState:
        return self.tracker.snapshot()

    def start(self, sparsify: int = 1) -> int:
        """Admit a new scan and schedule it on the running event loop.

        Returns the number of selected ZIP codes. Raises ``InvalidInput`` for
        a bad sparsify factor and ``AlreadyRunning`` while a scan is active.
        """

        selected = select_work_items(self.work_items, sparsify)
        loop = asyncio.get_running_loop()
        if not self.tracker.try_start(len(selected)):
            raise AlreadyRunning(self.tracker.snapshot())

        self.store.clear()
        try:
            self.writer.reset()
        except WriteError:
            self.tracker.finish(interrupted=True)
            raise

        log_stage(
            Stage.SELECT,
            f"Skip interval {sparsify}: processing {len(selected)} of {len(self.work_items)} ZIP codes "
            f"(output {self.writer.path})",
        )
        self._started_monotonic = time.monotonic()
        if not selected:
            self._log_summary(self.tracker.finish())
            return 0

        self.task = loop.create_task(self._run(selected))
        self.task.add_done_callback(_report_task_failure)
        return len(selected)

    async def _run(self, selected: List[Any]) -> None:
        total = len(selected)
        log_stage(Stage.FETCH, f"Processing {total} ZIP codes")
        try:
            for index, work_item in enumerate(selected, start=1):
                # cancellation point
                await asyncio.sleep(0)
                outcome = await process_item(self.resolver, self.store, self.writer, work_item)
                self._record(outcome)
                if index % PROGRESS_LOG_EVERY == 0:
                    self._log_progress()
                if index < total and self.request_delay > 0:
                    await asyncio.sleep(self.request_delay)
        except BaseException:
            self.tracker.finish(interrupted=True)
            raise
        self._log_summary(self.tracker.finish())

    def _record(self, outcome: ItemOutcome) -> None:
        work_item = outcome.work_item
        if outcome.status is ItemStatus.RESOLVED:
            if outcome.found:
                LOGGER.info(
                    "Zip %s: found %d dealers (%d new, %d duplicates)",
                    work_item,
                    outcome.found,
                    len(outcome.accepted),
                    outcome.duplicates,
                )
            else:
                LOGGER.info("Zip %s: no dealers found", work_item)
            self.tracker.record_processed(
                work_item,
                accepted=len(outcome.accepted),
                collected=outcome.found,
                duplicates=outcome.duplicates,
            )
        elif outcome.status is ItemStatus.RESOLVE_ERROR:
            LOGGER.error("Error processing zip %s: %s", work_item, outcome.error)
            self.tracker.record_processed(work_item, failed=True)
        elif outcome.status is ItemStatus.WRITE_ERROR:
            LOGGER.error(
                "[stage:%s] Zip %s: %d new dealers NOT persisted: %s",
                Stage.PERSIST,
                work_item,
                outcome.found - outcome.duplicates,
                outcome.error,
            )
            self.tracker.record_processed(
                work_item,
                failed=True,
                write_failed=True,
                collected=outcome.found,
                duplicates=outcome.duplicates,
            )
        else:
            raise AssertionError(f"Unhandled item status {outcome.status!r}")

    def _elapsed_minutes(self) -> float:
        return (time.monotonic() - self._started_monotonic) / 60

    def _log_progress(self) -> None:
        state = self.tracker.snapshot()
        dupe_rate = state.duplicates / state.dealers_collected * 100 if state.dealers_collected else 0.0
        LOGGER.info(
            "Progress: %d/%d (%.1f%%) | collected=%d unique=%d duplication=%.1f%% | elapsed %.1f min",
            state.processed,
            state.total,
            state.percent_complete,
            state.dealers_collected,
            state.accepted,
            dupe_rate,
            self._elapsed_minutes(),
        )

    def _log_summary(self, state: JobState) -> None:
        LOGGER.info(
            "Scan complete: %d ZIPs processed, %d dealers collected, %d unique written, "
            "%d duplicates removed, %d errors (%d write) in %.2f minutes -> %s",
            state.processed,
            state.dealers_collected,
            state.accepted,
            state.duplicates,
            state.errors,
            state.write_errors,
            self._elapsed_minutes(),
            self.writer.path,
        )

    async def run_test_scan(self, work_items: Sequence[Any], *, delay: float = TEST_DELAY_SECONDS) -> SampleScanSummary:
        """Run the scan logic in the foreground without touching the job or the output file."""

        items = list(work_items)
        if not items:
            raise InvalidInput("Test scan needs at least one ZIP code")

        store = DeduplicationStore()
        summary = SampleScanSummary(work_items=items)
        started = time.monotonic()
        LOGGER.info("Starting test scan with %d zip codes: %s", len(items), ", ".join(str(item) for item in items))
        for index, work_item in enumerate(items, start=1):
            outcome = await process_item(self.resolver, store, None, work_item)
            if outcome.failed:
                summary.error_count += 1
                LOGGER.error("Error processing zip %s: %s", work_item, outcome.error)
            else:
                summary.dealers_found += outcome.found
                summary.unique_dealers.extend(outcome.accepted)
                LOGGER.info("Zip %s: found %d dealers", work_item, outcome.found)
            if index < len(items) and delay > 0:
                await asyncio.sleep(delay)
        summary.duration_seconds = time.monotonic() - started

        LOGGER.info(
            "Test scan completed: %d dealers found, %d unique, %d errors in %.2fs",
            summary.dealers_found,
            len(summary.unique_dealers),
            summary.error_count,
            summary.duration_seconds,
        )
        return summary

    async def debug_one(self, work_item: Any) -> List[Dict[str, Any]]:
        zip_code = normalize_zip(work_item)
        LOGGER.info("DEBUG MODE - testing zip code %s", zip_code)
        return await resolve_item(self.resolver, zip_code, debug=True)


def _report_task_failure(task: "asyncio.Task[None]") -> None:
    if task.cancelled():
        LOGGER.warning("Scan task was cancelled before reaching the end of the work list")
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.error("Scan task crashed: %r", exc, exc_info=exc)
