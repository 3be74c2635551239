"""Turns one day's lifelogs into a daily note.

A new note gets a date heading, an empty ``## Notes`` section for the user,
and a ``## Lifelogs`` section holding one bullet per entry. Re-syncing a day
without overwrite only ever touches the ``## Lifelogs`` section, so edits
above it survive; if the rendered entries are already in the note the write
is skipped altogether.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional

from .models import LifelogEntry
from .store import DocumentStore
from .util import eprint, get_tz

ENTRIES_MARKER = "## Lifelogs"


class WriteOutcome(str, Enum):
    EMPTY = "empty"
    CREATED = "created"
    OVERWRITTEN = "overwritten"
    MERGED = "merged"
    APPENDED = "appended"
    SKIPPED = "skipped"

    @property
    def changed(self) -> bool:
        return self not in (WriteOutcome.EMPTY, WriteOutcome.SKIPPED)


def format_time(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    return f"{hour}:{dt.minute:02d} {'AM' if dt.hour < 12 else 'PM'}"


def format_heading(day: date) -> str:
    return f"{day:%A, %B} {day.day}, {day.year}"


class DocumentWriter:
    def __init__(self, store: DocumentStore, folder: str, timezone: Optional[str]=None,
                 debug: bool=False, verbose: bool=False):
        self.store = store
        self.folder = folder
        self.tz = get_tz(timezone)
        self.debug = debug
        self.verbose = verbose

    def _log(self, msg: str):
        eprint(f"[Writer] {msg}", self.verbose)

    def path_for(self, day: date) -> str:
        return f"{self.folder.strip('/')}/{day.isoformat()}.md"

    def render_entry(self, entry: LifelogEntry) -> str:
        lines = [line.rstrip() for line in entry.text.strip().splitlines()]
        title = entry.title.strip()
        if not title and lines:
            title = lines[0].lstrip("#").strip()
            lines = lines[1:]
        elif lines and lines[0].lstrip("#").strip() == title:
            lines = lines[1:]
        out = [f"- **{format_time(entry.timestamp.astimezone(self.tz))}** {title}".rstrip()]
        out.extend(f"  {line}" if line else "" for line in lines)
        if self.debug:
            out.append(f"  - Type: {entry.type}")
            out.append(f"  - ID: {entry.id}")
            for key, value in entry.metadata.items():
                if key not in ("id", "type"):
                    out.append(f"  - {key}: {value}")
        return "\n".join(out).rstrip() + "\n"

    def render(self, entries: Iterable[LifelogEntry]) -> str:
        return "".join(self.render_entry(e) for e in entries)

    def format_note(self, day: date, body: str) -> str:
        return f"# {format_heading(day)}\n\n## Notes\n\n{ENTRIES_MARKER}\n{body}"

    def write_day(self, day: date, entries: List[LifelogEntry], overwrite: bool) -> WriteOutcome:
        """Persist ``entries`` as the note for ``day``. Raises StorageError."""
        if not entries:
            self._log(f"No lifelogs to write for {day}")
            return WriteOutcome.EMPTY

        self.store.ensure_folder(self.folder)
        path = self.path_for(day)
        body = self.render(entries)

        if not self.store.exists(path):
            self.store.write(path, self.format_note(day, body))
            self._log(f"Created new daily note with lifelogs: {path}")
            return WriteOutcome.CREATED

        if overwrite:
            self.store.write(path, self.format_note(day, body))
            self._log(f"Overwrote lifelogs in {path}")
            return WriteOutcome.OVERWRITTEN

        current = self.store.read(path)
        if body in current:
            self._log(f"Lifelogs already present in {path}, skipping")
            return WriteOutcome.SKIPPED

        if ENTRIES_MARKER in current:
            before = current.split(ENTRIES_MARKER, 1)[0]
            self.store.write(path, f"{before}{ENTRIES_MARKER}\n{body}")
            self._log(f"Replaced lifelogs section in {path}")
            return WriteOutcome.MERGED

        self.store.write(path, f"{current.rstrip()}\n\n{ENTRIES_MARKER}\n{body}")
        self._log(f"Appended lifelogs section to {path}")
        return WriteOutcome.APPENDED
