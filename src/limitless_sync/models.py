from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from .util import parse_timestamp, utc_now

# Keys of a raw lifelog that become the entry's own attributes rather than metadata.
_ENTRY_KEYS = {"id", "markdown", "contents", "type"}


def derive_timestamp(raw: Dict[str, Any], now: Optional[datetime]=None) -> datetime:
    """Earliest ``startTime`` among the content blocks, else the lifelog's own
    ``startTime``, else the current time. Never raises."""
    starts = []
    contents = raw.get("contents") or []
    if isinstance(contents, list):
        for node in contents:
            if isinstance(node, dict):
                ts = parse_timestamp(node.get("startTime"))
                if ts is not None:
                    starts.append(ts)
    if starts:
        return min(starts)
    own = parse_timestamp(raw.get("startTime"))
    if own is not None:
        return own
    return now or utc_now()


@dataclass(frozen=True)
class LifelogEntry:
    id: str
    timestamp: datetime
    text: str
    type: str = "lifelog"
    title: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: Dict[str, Any], now: Optional[datetime]=None) -> "LifelogEntry":
        text = raw.get("markdown") or raw.get("text") or ""
        metadata = {k: v for k, v in raw.items() if k not in _ENTRY_KEYS and not isinstance(v, (list, dict))}
        return cls(
            id=str(raw.get("id", "")),
            timestamp=derive_timestamp(raw, now),
            text=text,
            type=str(raw.get("type") or "lifelog"),
            title=str(raw.get("title") or ""),
            metadata=metadata,
        )

    @property
    def has_body(self) -> bool:
        return bool(self.text and self.text.strip())

    def local_date(self, tz) -> date:
        return self.timestamp.astimezone(tz).date()


@dataclass
class LifelogPage:
    entries: List[Dict[str, Any]]
    next_cursor: Optional[str] = None
    count: int = 0


@dataclass
class DayBucket:
    day: date
    entries: List[LifelogEntry] = field(default_factory=list)
    pages: int = 0
    cancelled: bool = False

    @property
    def key(self) -> str:
        return self.day.isoformat()

    def latest_timestamp(self) -> Optional[datetime]:
        if not self.entries:
            return None
        return max(e.timestamp for e in self.entries)
