"""Pytest configuration and fixtures for the test suite."""

from __future__ import annotations

import threading
from datetime import date
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from requests.structures import CaseInsensitiveDict

from limitless_sync.api import ApiClient
from limitless_sync.config import Settings
from limitless_sync.retry import RetryPolicy
from limitless_sync.store import DocumentStore
from limitless_sync.writer import DocumentWriter


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int=200, payload: Any=None, headers: Optional[Dict[str, str]]=None,
                 reason: str=""):
        self.status_code = status_code
        self._payload = payload
        self.headers = CaseInsensitiveDict(headers or {})
        self.reason = reason
        self.text = "" if payload is None else str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


def lifelog(lifelog_id: str, start: Optional[str], markdown: str="# Meeting\nWe talked.", title: str="Meeting",
            contents: Optional[List[Dict[str, Any]]]=None) -> Dict[str, Any]:
    if contents is None:
        contents = [{"type": "heading1", "content": title, "startTime": start}] if start else []
    raw = {"id": lifelog_id, "title": title, "markdown": markdown, "contents": contents}
    if start:
        raw["startTime"] = start
    return raw


def page_payload(entries: List[Dict[str, Any]], next_cursor: Optional[str]=None) -> Dict[str, Any]:
    return {
        "data": {"lifelogs": entries},
        "meta": {"lifelogs": {"nextCursor": next_cursor, "count": len(entries)}},
    }


class FakeLifelogApi:
    """Serves ``GET /lifelogs`` per date, with pages addressed by cursor."""

    def __init__(self, days: Optional[Dict[str, List[List[Dict[str, Any]]]]]=None,
                 failing: Optional[Dict[str, int]]=None):
        self.days = days or {}
        self.failing = failing or {}
        self.calls: List[Dict[str, Any]] = []
        self.lock = threading.Lock()
        self.on_call = None

    def __call__(self, url, headers=None, params=None, timeout=None):
        params = dict(params or {})
        with self.lock:
            self.calls.append(params)
        if self.on_call:
            self.on_call(params)
        day = params.get("date")
        if day in self.failing:
            return FakeResponse(self.failing[day], reason="Server Error")
        pages = self.days.get(day) or [[]]
        index = int(params.get("cursor") or 0)
        next_cursor = str(index + 1) if index + 1 < len(pages) else None
        return FakeResponse(200, page_payload(pages[index], next_cursor))

    def dates_requested(self) -> List[str]:
        return sorted({c.get("date") for c in self.calls if c.get("date")})


def sequence(*items):
    """Callable returning the given responses in order; exceptions are raised."""
    remaining = list(items)
    calls = []

    def send(*args, **kwargs):
        calls.append((args, kwargs))
        item = remaining.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    send.calls = calls
    return send


@pytest.fixture
def fast_policy():
    """Retry policy without real sleeping."""
    return RetryPolicy(base_delay=0.0, jitter=0.0)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        api_key="test-key",
        vault_path=str(tmp_path / "vault"),
        start_date="2024-06-01",
        timezone="UTC",
        use_timezone=True,
        dispatch_delay=0.0,
        openai_api_key="sk-test",
    )


@pytest.fixture
def store(settings):
    return DocumentStore(settings.vault())


@pytest.fixture
def writer(store):
    return DocumentWriter(store, "Limitless", timezone="UTC")


@pytest.fixture
def fake_api():
    return FakeLifelogApi()


@pytest.fixture
def api_client(fake_api, fast_policy):
    session = MagicMock()
    session.get.side_effect = fake_api
    return ApiClient("https://api.example.test/v1", "test-key", timezone="UTC",
                     policy=fast_policy, session=session)


@pytest.fixture
def today():
    return lambda: date(2024, 6, 3)
