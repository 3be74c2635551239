"""Multi-day sync runs.

A run picks the dates to scan (incremental: from the stored cursor, or the
configured start date on first run; full: from the start date, overwriting),
then lets a fixed pool of workers claim dates one at a time. Each claimed date
is fetched page by page and written as one daily note. A failing day is logged
and counted as zero entries; the run carries on. Only a clean incremental run
moves the stored cursor, only forward, and never past a day that failed.
"""

from __future__ import annotations

import concurrent.futures
import threading
import traceback
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional

from .aggregator import DayAggregator
from .api import ApiClient
from .config import Settings
from .errors import AuthenticationError, CancelledError, ConfigError, LimitlessError, StorageError
from .state import Phase, RunState
from .util import eprint, format_timestamp, iter_days, parse_date, parse_timestamp, progress_print, today_in
from .writer import DocumentWriter, WriteOutcome

MAX_CONCURRENT  = 5
DISPATCH_DELAY  = 0.2
INITIAL_STAGGER = 0.5


class SyncMode(str, Enum):
    INCREMENTAL = "incremental"
    FULL = "full"


@dataclass
class DayResult:
    day: date
    entries: int = 0
    latest: Optional[datetime] = None
    outcome: Optional[WriteOutcome] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class SyncResult:
    mode: SyncMode
    outcome: Phase
    message: str
    start: Optional[date] = None
    end: Optional[date] = None
    days_total: int = 0
    days: Dict[date, DayResult] = field(default_factory=dict)
    cursor: str = ""

    @property
    def entries(self) -> int:
        return sum(r.entries for r in self.days.values())

    @property
    def days_processed(self) -> int:
        return len(self.days)

    @property
    def days_failed(self) -> List[date]:
        return [d for d, r in sorted(self.days.items()) if r.failed]

    @property
    def documents_written(self) -> List[date]:
        return [d for d, r in sorted(self.days.items()) if r.outcome is not None and r.outcome.changed]


class SyncScheduler:
    def __init__(self, settings: Settings, client: ApiClient, writer: DocumentWriter,
                 state: Optional[RunState]=None,
                 persist: Optional[Callable[[Settings], None]]=None,
                 notify: Optional[Callable[[str], None]]=None,
                 today: Optional[Callable[[], date]]=None,
                 max_workers: Optional[int]=None,
                 dispatch_delay: Optional[float]=None,
                 initial_stagger: float=INITIAL_STAGGER,
                 verbose: bool=False):
        self.settings = settings
        self.client = client
        self.writer = writer
        self.state = state or RunState("sync")
        self.persist = persist or (lambda s: None)
        self.notify = notify or progress_print
        self.today = today or (lambda: today_in(settings.tz()))
        self.max_workers = max_workers or settings.max_concurrent_days or MAX_CONCURRENT
        self.dispatch_delay = settings.dispatch_delay if dispatch_delay is None else dispatch_delay
        self.initial_stagger = initial_stagger
        self.verbose = verbose
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._fatal: Optional[LimitlessError] = None
        self.client.on_status = self.state.set_status
        self.aggregator = DayAggregator(client, ascending=settings.ascending_order, verbose=verbose,
                                        is_cancelled=self._stop.is_set)

    def _log(self, msg: str):
        eprint(f"[Sync] {msg}", self.verbose)

    # ── Date range ───────────────────────────────────────────────────────────
    def date_range(self, mode: SyncMode, start_date: Optional[str]=None) -> List[date]:
        tz = self.settings.tz()
        today = self.today()
        if mode is SyncMode.FULL:
            start = parse_date(start_date) if start_date else self.settings.parsed_start_date()
            if start > today:
                raise ConfigError(f"Start date {start} must not be in the future")
        else:
            cursor = parse_timestamp(self.settings.last_sync_timestamp)
            if cursor is not None:
                start = cursor.astimezone(tz).date()
                self._log(f"Incremental sync from stored cursor {self.settings.last_sync_timestamp}")
            else:
                start = self.settings.parsed_start_date()
                self._log(f"No stored cursor, using start date {start}")
        return list(iter_days(start, today))

    # ── Control ──────────────────────────────────────────────────────────────
    def cancel(self) -> bool:
        if not self.state.request_cancel():
            self.notify("No sync in progress")
            return False
        self._stop.set()
        self.client.cancel_all()
        self.notify("Sync is being cancelled. Please wait...")
        return True

    def run(self, mode: SyncMode=SyncMode.INCREMENTAL, start_date: Optional[str]=None) -> Optional[SyncResult]:
        """Run one sync to completion. Returns None when another sync is already active."""
        if not self.state.begin("Preparing sync..."):
            self.notify("A sync is already in progress. Wait for it to finish or cancel it.")
            return None
        self._stop.clear()
        self._fatal = None
        self.client.reset()
        if self.state.cancel_requested:
            self._stop.set()
            self.client.cancel_all()

        result = SyncResult(mode=mode, outcome=Phase.FAILED, message="")
        try:
            self.settings.validate_for_sync()
            days = self.date_range(mode, start_date)
            result.days_total = len(days)
            if days:
                result.start, result.end = days[0], days[-1]
            self._log(f"{mode.value} sync will process {len(days)} day(s)")
            self.state.start_running(len(days), f"Preparing to sync {len(days)} days")
            overwrite = mode is SyncMode.FULL or self.settings.force_overwrite
            result.days = self._run_pool(days, overwrite)
            self._conclude(result)
        except (ConfigError, AuthenticationError) as e:
            result.outcome = Phase.FAILED
            result.message = f"Sync failed: {e}"
        except Exception as e:
            eprint(traceback.format_exc(), self.verbose)
            result.outcome = Phase.FAILED
            result.message = f"Error syncing Limitless lifelogs: {e}"
        finally:
            if not result.message:
                result.message = "Sync ended"
            self.state.finish(result.outcome, result.message)
        result.cursor = self.settings.last_sync_timestamp
        self.notify(result.message)
        return result

    # ── Worker pool ──────────────────────────────────────────────────────────
    def _run_pool(self, days: List[date], overwrite: bool) -> Dict[date, DayResult]:
        queue: Deque[date] = deque(days)
        results: Dict[date, DayResult] = {}
        total = len(days)
        if not days:
            return results

        def worker(index: int):
            if index and self.initial_stagger and self._stop.wait(index * self.initial_stagger):
                return
            first = True
            while not self._stop.is_set():
                if not first and self.dispatch_delay and self._stop.wait(self.dispatch_delay):
                    return
                first = False
                with self._lock:
                    if not queue:
                        return
                    day = queue.popleft()
                day_result = self._process_day(day, overwrite)
                if day_result is None:
                    return
                with self._lock:
                    results[day] = day_result
                done = self.state.advance()
                self.state.set_status(f"Synced {done}/{total} days")

        workers = min(self.max_workers, total)
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sync-day") as executor:
            futures = [executor.submit(worker, i) for i in range(workers)]
            for future in futures:
                future.result()
        return results

    def _process_day(self, day: date, overwrite: bool) -> Optional[DayResult]:
        """Fetch and write one day. None means the day was abandoned (cancellation/abort)."""
        try:
            bucket = self.aggregator.fetch_day(day, self.settings.effective_timezone)
        except CancelledError:
            return None
        except AuthenticationError as e:
            self._abort(e)
            return None
        except LimitlessError as e:
            self._log(f"Error syncing day {day}: {e}")
            return DayResult(day=day, error=str(e))

        if bucket.cancelled:
            self._log(f"Discarding partial results for {day} after cancellation")
            return None

        result = DayResult(day=day, entries=len(bucket.entries), latest=bucket.latest_timestamp())
        try:
            result.outcome = self.writer.write_day(day, bucket.entries, overwrite)
        except StorageError as e:
            self._log(f"Error writing note for {day}: {e}")
            return DayResult(day=day, error=str(e))
        self._log(f"Completed day {day} with {result.entries} lifelogs ({result.outcome.value})")
        return result

    def _abort(self, error: LimitlessError):
        with self._lock:
            if self._fatal is None:
                self._fatal = error
        self._stop.set()
        self.client.cancel_all()

    # ── Outcome ──────────────────────────────────────────────────────────────
    def _conclude(self, result: SyncResult):
        if self._fatal is not None:
            raise self._fatal

        entries = result.entries
        failed = len(result.days_failed)
        failed_note = f" ({failed} day(s) failed)" if failed else ""

        if self.state.cancel_requested or self._stop.is_set():
            result.outcome = Phase.CANCELLED
            result.message = (f"Sync cancelled after {result.days_processed}/{result.days_total} days. "
                              f"Processed {entries} lifelogs before cancellation.")
            return

        result.outcome = Phase.COMPLETED
        if result.mode is SyncMode.INCREMENTAL:
            self._advance_cursor(result)
        if entries == 0:
            result.message = f"No new lifelogs found{failed_note}"
        elif result.mode is SyncMode.FULL:
            result.message = f"Force sync completed! {entries} entries processed with overwrite{failed_note}."
        else:
            result.message = f"Limitless lifelogs synced! {entries} entries processed{failed_note}."

    def _advance_cursor(self, result: SyncResult):
        failed = result.days_failed
        # The cursor stays before the earliest failed day so the next run fetches it again.
        covered = [r for d, r in result.days.items() if not failed or d < failed[0]]
        latest = max((r.latest for r in covered if r.latest is not None), default=None)
        if failed:
            self._log(f"Holding cursor before failed day {failed[0]}")
        if latest is None:
            return
        current = parse_timestamp(self.settings.last_sync_timestamp)
        if current is not None and latest <= current:
            self._log(f"Cursor {self.settings.last_sync_timestamp} already covers {format_timestamp(latest)}")
            return
        self.settings.last_sync_timestamp = format_timestamp(latest)
        self.persist(self.settings)
        self._log(f"Updated last sync timestamp: {self.settings.last_sync_timestamp}")
