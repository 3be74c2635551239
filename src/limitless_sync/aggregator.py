from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from .api import ApiClient
from .errors import CancelledError
from .models import DayBucket, LifelogEntry
from .util import eprint, get_tz, utc_now


class DayAggregator:
    """Collects every lifelog of one calendar day by walking the API's page cursors."""

    def __init__(self, client: ApiClient, ascending: bool=False, verbose: bool=False,
                 is_cancelled: Optional[Callable[[], bool]]=None):
        self.client = client
        self.ascending = ascending
        self.verbose = verbose
        self.is_cancelled = is_cancelled or (lambda: client.tracker.cancelled)

    def _log(self, msg: str):
        eprint(f"[Day] {msg}", self.verbose)

    def fetch_day(self, day: date, timezone: Optional[str]=None) -> DayBucket:
        """Fetch all pages for ``day``.

        On cancellation the entries gathered so far are returned with
        ``bucket.cancelled`` set; the caller decides whether to use them.
        """
        tz = get_tz(timezone)
        bucket = DayBucket(day=day)
        cursor: Optional[str] = None
        now = utc_now()

        while True:
            if self.is_cancelled():
                self._log(f"Cancelled before page {bucket.pages + 1} for {day}")
                bucket.cancelled = True
                break
            try:
                page = self.client.fetch_page(day=day, cursor=cursor)
            except CancelledError:
                self._log(f"Request for {day} aborted by cancellation")
                bucket.cancelled = True
                break
            bucket.pages += 1
            self._log(f"Received {len(page.entries)} lifelogs for {day} (page {bucket.pages})")
            for raw in page.entries:
                entry = LifelogEntry.from_api(raw, now=now)
                if not entry.has_body:
                    self._log(f"Skipping lifelog {entry.id or '?'} with no markdown content")
                    continue
                if entry.local_date(tz) != day:
                    self._log(f"Skipping lifelog {entry.id or '?'} timestamped {entry.timestamp.isoformat()} outside {day}")
                    continue
                bucket.entries.append(entry)
            cursor = page.next_cursor
            if not cursor:
                break

        if not bucket.cancelled and self.is_cancelled():
            bucket.cancelled = True
        bucket.entries.sort(key=lambda e: e.timestamp, reverse=not self.ascending)
        self._log(f"Total lifelogs for {day}: {len(bucket.entries)} over {bucket.pages} page(s)")
        return bucket
