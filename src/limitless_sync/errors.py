"""Exception hierarchy shared by the sync engine and the summarization pipeline."""

from __future__ import annotations

from typing import Optional


class LimitlessError(Exception):
    pass


class ConfigError(LimitlessError):
    """Run setup failed (missing credential, bad start date, ...)."""


class StorageError(LimitlessError):
    """A document or side file could not be created, read or written."""


# ── HTTP ─────────────────────────────────────────────────────────────────────
class ApiError(LimitlessError):
    def __init__(self, message: str, status: Optional[int]=None):
        super().__init__(message)
        self.status = status


class AuthenticationError(ApiError):
    """Permanent: the credential was rejected. Never retried."""


class RateLimitedError(ApiError):
    pass


class ServerError(ApiError):
    pass


class NetworkError(ApiError):
    pass


class CancelledError(ApiError):
    """Raised when a request or its backoff wait is aborted by cancel_all()."""
