from datetime import date, datetime, timezone

import pytest

from limitless_sync.errors import StorageError
from limitless_sync.models import LifelogEntry
from limitless_sync.writer import (ENTRIES_MARKER, DocumentWriter, WriteOutcome, format_heading,
                                   format_time)

DAY = date(2024, 6, 3)
PATH = "Limitless/2024-06-03.md"


def entry(entry_id, hour, minute=0, text="# Standup\nDiscussed the roadmap.", title="Standup", **metadata):
    return LifelogEntry(
        id=entry_id,
        timestamp=datetime(2024, 6, 3, hour, minute, tzinfo=timezone.utc),
        text=text,
        title=title,
        metadata=metadata,
    )


def test_format_helpers():
    assert format_time(datetime(2024, 6, 3, 0, 5)) == "12:05 AM"
    assert format_time(datetime(2024, 6, 3, 12, 0)) == "12:00 PM"
    assert format_time(datetime(2024, 6, 3, 15, 30)) == "3:30 PM"
    assert format_heading(DAY) == "Monday, June 3, 2024"


def test_render_entry(writer):
    rendered = writer.render_entry(entry("a", 9, 15))
    assert rendered == "- **9:15 AM** Standup\n  Discussed the roadmap.\n"


def test_render_entry_takes_title_from_markdown(writer):
    rendered = writer.render_entry(entry("a", 14, text="## Lunch chat\nTacos.", title=""))
    assert rendered == "- **2:00 PM** Lunch chat\n  Tacos.\n"


def test_render_entry_uses_writer_timezone(store):
    writer = DocumentWriter(store, "Limitless", timezone="America/New_York")
    assert writer.render_entry(entry("a", 13)).startswith("- **9:00 AM**")


def test_render_entry_debug_details(store):
    writer = DocumentWriter(store, "Limitless", timezone="UTC", debug=True)
    rendered = writer.render_entry(entry("abc", 9, isStarred=True))
    assert "  - Type: lifelog" in rendered
    assert "  - ID: abc" in rendered
    assert "  - isStarred: True" in rendered


def test_empty_day_writes_nothing(writer, store):
    assert writer.write_day(DAY, [], overwrite=False) is WriteOutcome.EMPTY
    assert not store.exists(PATH)


def test_creates_note(writer, store):
    outcome = writer.write_day(DAY, [entry("b", 10), entry("a", 9)], overwrite=False)

    assert outcome is WriteOutcome.CREATED
    content = store.read(PATH)
    assert content.startswith("# Monday, June 3, 2024\n\n## Notes\n\n## Lifelogs\n")
    assert content.index("10:00 AM") < content.index("9:00 AM")


def test_rewrite_is_idempotent(writer, store):
    entries = [entry("a", 9), entry("b", 10)]
    writer.write_day(DAY, entries, overwrite=False)
    first = store.read(PATH)

    outcome = writer.write_day(DAY, entries, overwrite=False)

    assert outcome is WriteOutcome.SKIPPED
    assert not outcome.changed
    assert store.read(PATH) == first


def test_merge_keeps_user_notes(writer, store):
    writer.write_day(DAY, [entry("a", 9)], overwrite=False)
    edited = store.read(PATH).replace("## Notes\n", "## Notes\nRemember to call Sam.\n")
    store.write(PATH, edited)

    outcome = writer.write_day(DAY, [entry("b", 11, text="Follow-up", title="Call")], overwrite=False)

    assert outcome is WriteOutcome.MERGED
    content = store.read(PATH)
    assert "Remember to call Sam." in content
    assert "- **11:00 AM** Call\n  Follow-up\n" in content
    assert "9:00 AM" not in content
    assert content.count(ENTRIES_MARKER) == 1


def test_append_when_marker_missing(writer, store):
    store.write(PATH, "# My own note\n\nHand-written text.\n")

    outcome = writer.write_day(DAY, [entry("a", 9)], overwrite=False)

    assert outcome is WriteOutcome.APPENDED
    content = store.read(PATH)
    assert content.startswith("# My own note\n\nHand-written text.\n\n## Lifelogs\n")
    assert writer.write_day(DAY, [entry("a", 9)], overwrite=False) is WriteOutcome.SKIPPED


def test_overwrite_replaces_whole_note(writer, store):
    store.write(PATH, "# Old\n\nuser text\n\n## Lifelogs\n- stale\n")

    outcome = writer.write_day(DAY, [entry("a", 9)], overwrite=True)

    assert outcome is WriteOutcome.OVERWRITTEN
    assert store.read(PATH) == writer.format_note(DAY, writer.render([entry("a", 9)]))


def test_folder_blocked_by_file(store):
    store.write("Limitless", "not a folder")
    writer = DocumentWriter(store, "Limitless", timezone="UTC")

    with pytest.raises(StorageError):
        writer.write_day(DAY, [entry("a", 9)], overwrite=False)
