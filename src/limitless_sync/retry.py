"""Retry/backoff engine shared by the lifelog API client and the LLM client.

Both clients send requests through :func:`send_with_retry`, which applies one
policy:

* 401 (and any other status listed in ``auth_statuses``) fails at once with
  :class:`AuthenticationError`.
* 5xx is retried with ``base * 2**attempt + jitter`` up to ``max_retries``
  times; the base is doubled for 504 Gateway Timeout.
* 429 honours ``Retry-After`` when present, else uses the same exponential
  delay; the delay is capped at ``max_rate_limit_delay``. Rate-limit retries
  have their own ceiling (``max_rate_limit_retries``, None for unbounded).
* Connection failures and timeouts are retried like 5xx without the 504
  doubling.
* Anything else that is not 2xx fails immediately with :class:`ApiError`.

Every request is registered with a :class:`RequestTracker`. ``cancel_all()``
clears the registry and sets the tracker's cancel event, so sleeping
backoffs wake up and every in-flight or future attempt raises
:class:`CancelledError` instead of continuing.
"""

from __future__ import annotations

import random
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Set, Tuple

import requests

from .errors import (ApiError, AuthenticationError, CancelledError, NetworkError,
                     RateLimitedError, ServerError)
from .util import eprint


@dataclass
class RetryPolicy:
    max_retries: int = 5
    base_delay: float = 2.0
    jitter: float = 1.0
    max_rate_limit_delay: float = 60.0
    max_rate_limit_retries: Optional[int] = 20
    gateway_timeout_factor: float = 2.0
    auth_statuses: Tuple[int, ...] = (401,)

    def server_delay(self, attempt: int, status: Optional[int]=None) -> float:
        base = self.base_delay
        if status == 504:
            base *= self.gateway_timeout_factor
        return base * (2 ** attempt) + random.uniform(0, self.jitter)

    def network_delay(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt) + random.uniform(0, self.jitter)

    def rate_limit_delay(self, attempt: int, retry_after: Optional[str]) -> float:
        wait = parse_retry_after(retry_after)
        if wait is None:
            wait = self.base_delay * (2 ** attempt)
        return min(wait, self.max_rate_limit_delay)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(seconds, 0.0)


class RequestTracker:
    """Registry of outstanding requests plus the cancel signal that aborts them."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Set[str] = set()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def register(self) -> str:
        if self._cancelled.is_set():
            raise CancelledError("Request cancelled")
        request_id = uuid.uuid4().hex[:12]
        with self._lock:
            self._active.add(request_id)
        return request_id

    def is_active(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._active

    def release(self, request_id: str):
        with self._lock:
            self._active.discard(request_id)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True when woken by cancellation."""
        return self._cancelled.wait(seconds)

    def cancel_all(self) -> int:
        with self._lock:
            count = len(self._active)
            self._active.clear()
        self._cancelled.set()
        return count

    def reset(self):
        with self._lock:
            self._active.clear()
        self._cancelled.clear()


def send_with_retry(
    send: Callable[[], requests.Response],
    tracker: RequestTracker,
    policy: RetryPolicy,
    label: str="request",
    log: Optional[Callable[[str], None]]=None,
    on_status: Optional[Callable[[str], None]]=None,
) -> requests.Response:
    """Run ``send`` until it returns a 2xx response or the policy gives up.

    ``log`` receives diagnostics; ``on_status`` receives short operator-facing
    retry notices (the live status line).
    """
    log = log or (lambda msg: eprint(msg, False))
    request_id = tracker.register()
    attempt = 0
    rate_limited = 0
    try:
        while True:
            if not tracker.is_active(request_id):
                raise CancelledError(f"{label} cancelled")
            suffix = f" (retry {attempt}/{policy.max_retries})" if attempt else ""
            log(f"{label}{suffix}")
            try:
                resp = send()
            except requests.RequestException as e:
                if not tracker.is_active(request_id):
                    raise CancelledError(f"{label} cancelled")
                if attempt >= policy.max_retries:
                    raise NetworkError(f"Network error after {policy.max_retries} retries: {e}")
                delay = policy.network_delay(attempt)
                _notify(on_status, log, f"Network error ({e.__class__.__name__}). Retrying in {delay:.1f}s...")
                _backoff(tracker, delay, label)
                attempt += 1
                continue

            if not tracker.is_active(request_id):
                raise CancelledError(f"{label} cancelled")

            status = resp.status_code
            if 200 <= status < 300:
                return resp
            if status in policy.auth_statuses:
                raise AuthenticationError(
                    f"Authentication failed ({status}). Please check your API key.", status)
            if status == 429:
                if policy.max_rate_limit_retries is not None and rate_limited >= policy.max_rate_limit_retries:
                    raise RateLimitedError(
                        f"Rate limit exceeded after {policy.max_rate_limit_retries} retries. Please try again later.", status)
                delay = policy.rate_limit_delay(rate_limited, resp.headers.get("Retry-After"))
                _notify(on_status, log, f"Rate limited (429). Waiting {delay:.1f}s before retrying...")
                _backoff(tracker, delay, label)
                rate_limited += 1
                continue
            if 500 <= status < 600:
                if attempt >= policy.max_retries:
                    raise ServerError(
                        f"Server error after {policy.max_retries} retries: {status} {resp.reason or ''}".rstrip(), status)
                delay = policy.server_delay(attempt, status)
                timeout_note = " Gateway Timeout" if status == 504 else ""
                _notify(on_status, log, f"Server error ({status}{timeout_note}). Retrying in {delay:.1f}s...")
                _backoff(tracker, delay, label)
                attempt += 1
                continue
            raise ApiError(f"{label} failed with status {status}: {_error_detail(resp)}", status)
    finally:
        tracker.release(request_id)


def _backoff(tracker: RequestTracker, delay: float, label: str):
    if tracker.wait(delay):
        raise CancelledError(f"{label} cancelled during backoff")


def _notify(on_status, log, msg: str):
    log(msg)
    if on_status:
        on_status(msg)


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
    return str(body)[:200]
