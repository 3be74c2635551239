from __future__ import annotations

import re
import sys
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional

try:
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
except ImportError:
    print("Error: 'zoneinfo' module not found. Use Python 3.9+ or install 'tzdata'.", file=sys.stderr)
    sys.exit(1)

from .errors import ConfigError

# ── Constants ────────────────────────────────────────────────────────────────
DEFAULT_TZ   = "UTC"
API_DATE_FMT = "%Y-%m-%d"
_FRACTION    = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")

# ── Output ───────────────────────────────────────────────────────────────────
def eprint(msg: str, verbose: bool=False):
    if verbose:
        print(msg, file=sys.stderr)

def progress_print(msg: str, quiet: bool=False):
    if not quiet:
        print(msg, file=sys.stderr)

# ── Dates & time zones ───────────────────────────────────────────────────────
def get_tz(name: Optional[str]=DEFAULT_TZ) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TZ)
    except (ZoneInfoNotFoundError, ValueError):
        print(f"Warning: Timezone '{name}' not found; falling back to UTC.", file=sys.stderr)
        return ZoneInfo("UTC")

def parse_date(s: str) -> date:
    try:
        return datetime.strptime(s.strip(), API_DATE_FMT).date()
    except (ValueError, AttributeError):
        raise ConfigError(f"Invalid date '{s}' (expected YYYY-MM-DD).")

def parse_timestamp(s: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC. Returns None when unparseable."""
    if not s:
        return None
    text = s.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits.
    text = _FRACTION.sub(lambda m: f"{m.group(1)}.{(m.group(2) + '000000')[:6]}", text, count=1)
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

def format_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def today_in(tz: ZoneInfo) -> date:
    return datetime.now(tz).date()

def iter_days(start: date, end: date) -> Iterator[date]:
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)
