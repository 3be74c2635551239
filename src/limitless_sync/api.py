from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, Union

import requests

from .errors import ApiError
from .models import LifelogPage
from .retry import RequestTracker, RetryPolicy, send_with_retry
from .util import eprint, format_timestamp

# ── Constants ────────────────────────────────────────────────────────────────
PAGE_LIMIT      = 10
REQUEST_TIMEOUT = 300

# ── HTTP & Pagination ────────────────────────────────────────────────────────
class ApiClient:
    def __init__(self, api_url: str, api_key: str, timezone: Optional[str]=None,
                 verbose: bool=False, policy: Optional[RetryPolicy]=None,
                 session: Optional[requests.Session]=None):
        self.api_url  = api_url.rstrip("/")
        self.key      = api_key
        self.timezone = timezone
        self.verbose  = verbose
        self.policy   = policy or RetryPolicy()
        self.session  = session or requests.Session()
        self.tracker  = RequestTracker()
        self.on_status: Optional[Callable[[str], None]] = None

    def _log(self, msg: str):
        eprint(f"[API] {msg}", self.verbose)

    def build_params(self, since: Optional[Union[str, datetime]]=None, day: Optional[Union[str, date]]=None,
                     cursor: Optional[str]=None) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "includeMarkdown": "true",
            "sort": "desc",
            "limit": PAGE_LIMIT,
        }
        if self.timezone:
            params["timezone"] = self.timezone
        # A date-scoped fetch wins when both filters are given.
        if day is not None:
            params["date"] = day.isoformat() if isinstance(day, date) else day
        elif since is not None:
            params["start"] = format_timestamp(since) if isinstance(since, datetime) else since
        if cursor:
            params["cursor"] = cursor
        return params

    def fetch_page(self, since: Optional[Union[str, datetime]]=None, day: Optional[Union[str, date]]=None,
                   cursor: Optional[str]=None) -> LifelogPage:
        url = f"{self.api_url}/lifelogs"
        params = self.build_params(since=since, day=day, cursor=cursor)
        headers = {"X-API-Key": self.key, "Accept": "application/json"}

        def send() -> requests.Response:
            return self.session.get(url, headers=headers, params=params, timeout=REQUEST_TIMEOUT)

        resp = send_with_retry(send, self.tracker, self.policy, label=f"GET {url} params={params}",
                               log=self._log, on_status=self.on_status)
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(f"Invalid JSON in response from {url}", resp.status_code)
        if not isinstance(data, dict):
            raise ApiError(f"Unexpected response shape from {url}", resp.status_code)
        logs = (data.get("data") or {}).get("lifelogs") or []
        meta = (data.get("meta") or {}).get("lifelogs") or {}
        cursor = meta.get("nextCursor") or None
        count = meta.get("count", len(logs))
        self._log(f"Fetched page: {count} items, next cursor: {cursor or 'none'}")
        return LifelogPage(entries=logs, next_cursor=cursor, count=count)

    def cancel_all(self) -> int:
        count = self.tracker.cancel_all()
        self._log(f"Cancelled {count} active requests")
        return count

    def reset(self):
        self.tracker.reset()
