"""Owner memories kept in the assistant's global instructions file."""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

SECTION_HEADING = "## Discord Bot Memories"
FILE_HEADER = "# Global Memory for Claude Code\n\n"
_ENTRY_PATTERN = re.compile(r"^- \[([^\]]+)\] (.+)$")


def default_memory_path() -> Path:
    return Path.home() / ".claude" / "CLAUDE.md"


@dataclass(frozen=True)
class Memory:
    date: str
    content: str


class MemoryStore:
    """Dated bullet entries under one section of a markdown file.

    New entries go to the top of the section; numbering for `forget` follows
    the order in which `entries()` lists them, starting at 1.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_memory_path()

    def _read(self) -> str:
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")

    def add(self, text: str, *, today: dt.date | None = None) -> Memory:
        entry = Memory(date=(today or dt.date.today()).isoformat(), content=" ".join(text.split()))
        line = f"- [{entry.date}] {entry.content}\n"
        content = self._read() or f"{FILE_HEADER}{SECTION_HEADING}\n\n"
        heading = f"{SECTION_HEADING}\n"
        if heading in content:
            content = content.replace(heading, f"{heading}\n{line}", 1)
        else:
            content = content.rstrip("\n") + f"\n\n{heading}\n{line}"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(content, encoding="utf-8")
        logger.info("Saved memory to %s", self.path)
        return entry

    def _section_entries(self, lines: list[str]) -> list[tuple[int, Memory]]:
        found: list[tuple[int, Memory]] = []
        in_section = False
        for index, line in enumerate(lines):
            if line.strip() == SECTION_HEADING:
                in_section = True
                continue
            if in_section and line.startswith("##"):
                break
            if in_section:
                match = _ENTRY_PATTERN.match(line.strip())
                if match:
                    found.append((index, Memory(date=match.group(1), content=match.group(2))))
        return found

    def entries(self) -> list[Memory]:
        return [memory for _, memory in self._section_entries(self._read().split("\n"))]

    def forget(self, number: int) -> Memory | None:
        """Remove the `number`-th entry; None when there is no such entry."""
        lines = self._read().split("\n")
        found = self._section_entries(lines)
        if number < 1 or number > len(found):
            return None
        index, memory = found[number - 1]
        del lines[index]
        self.path.write_text("\n".join(lines), encoding="utf-8")
        return memory


__all__ = ["Memory", "MemoryStore", "SECTION_HEADING", "default_memory_path"]
