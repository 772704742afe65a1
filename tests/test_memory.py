from __future__ import annotations

import datetime as dt
from pathlib import Path

from clawde.memory import SECTION_HEADING, MemoryStore, default_memory_path


def test_default_path_is_under_home() -> None:
    assert default_memory_path() == Path.home() / ".claude" / "CLAUDE.md"


def test_add_creates_file_with_section(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / ".claude" / "CLAUDE.md")
    store.add("likes short answers", today=dt.date(2026, 3, 1))
    text = store.path.read_text(encoding="utf-8")
    assert SECTION_HEADING in text
    assert "- [2026-03-01] likes short answers" in text


def test_newest_memory_is_listed_first(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "CLAUDE.md")
    store.add("first", today=dt.date(2026, 1, 1))
    store.add("second", today=dt.date(2026, 1, 2))
    assert [(m.date, m.content) for m in store.entries()] == [("2026-01-02", "second"), ("2026-01-01", "first")]


def test_existing_file_without_section_is_appended(tmp_path: Path) -> None:
    path = tmp_path / "CLAUDE.md"
    path.write_text("# My notes\n\nAlways run tests.\n", encoding="utf-8")
    store = MemoryStore(path)
    store.add("multi\nline   text", today=dt.date(2026, 5, 5))
    text = path.read_text(encoding="utf-8")
    assert text.startswith("# My notes\n\nAlways run tests.\n")
    assert store.entries()[0].content == "multi line text"


def test_entries_stop_at_next_section(tmp_path: Path) -> None:
    path = tmp_path / "CLAUDE.md"
    path.write_text(
        f"{SECTION_HEADING}\n\n- [2026-01-01] mine\n\n## Other\n\n- [2026-01-01] not mine\n",
        encoding="utf-8",
    )
    assert [m.content for m in MemoryStore(path).entries()] == ["mine"]


def test_forget_removes_only_that_entry(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "CLAUDE.md")
    for word in ("a", "b", "c"):
        store.add(word, today=dt.date(2026, 1, 1))
    removed = store.forget(2)
    assert removed is not None and removed.content == "b"
    assert [m.content for m in store.entries()] == ["c", "a"]
    assert store.forget(0) is None
    assert store.forget(3) is None


def test_missing_file_has_no_entries(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "absent.md")
    assert store.entries() == []
    assert store.forget(1) is None
