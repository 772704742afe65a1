"""One-shot extras for the next assistant session."""

from __future__ import annotations

from typing import Iterable

from clawde.transport import HistoryEntry

RECALL_DEFAULT_LIMIT = 200


def format_recalled(entries: Iterable[HistoryEntry], query: str | None = None) -> list[str]:
    """Chat history as dated `User:`/`Assistant:` lines, oldest first.

    With a query only messages containing it (case-insensitive) are kept.
    """

    needle = query.lower() if query else None
    relevant = [entry for entry in entries if needle is None or needle in entry.content.lower()]
    relevant.sort(key=lambda entry: entry.created)
    return [
        f"[{entry.created.date().isoformat()}] {'Assistant' if entry.from_bot else 'User'}: {entry.content}"
        for entry in relevant
    ]


class PromptContext:
    """Recalled context and the restart notice, each consumed once.

    After the first send the assistant keeps both in its own continued
    session, so they are never repeated.
    """

    def __init__(self, *, just_restarted: bool = True) -> None:
        self._recalled: str | None = None
        self._just_restarted = just_restarted

    def set_recalled(self, context: str) -> None:
        self._recalled = context or None

    def clear_recalled(self) -> None:
        self._recalled = None

    @property
    def has_recalled(self) -> bool:
        return self._recalled is not None

    def take_recalled(self) -> str | None:
        context, self._recalled = self._recalled, None
        return context

    def take_restart_notice(self) -> bool:
        flag, self._just_restarted = self._just_restarted, False
        return flag


__all__ = ["PromptContext", "RECALL_DEFAULT_LIMIT", "format_recalled"]
