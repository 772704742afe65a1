"""Chat transport seams used by the session pipeline."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

logger = logging.getLogger(__name__)

TYPING_INTERVAL_S = 8.0


class ChatMessage(Protocol):
    async def edit(self, content: str) -> None: ...

    async def delete(self) -> None: ...


class ChatChannel(Protocol):
    async def send(self, content: str) -> ChatMessage: ...

    async def trigger_typing(self) -> None: ...

    async def ask_confirmation(self, content: str, *, label: str, timeout: float) -> bool:
        """Show `content` with a single button; True when the owner pressed it in time."""
        ...

    async def history(self, limit: int) -> list[HistoryEntry]:
        """Up to `limit` earlier messages of the conversation, in any order."""
        ...


@dataclass(frozen=True)
class HistoryEntry:
    content: str
    from_bot: bool
    created: datetime


@dataclass(frozen=True)
class Attachment:
    filename: str
    url: str


@dataclass(frozen=True)
class InboundMessage:
    author_id: str
    content: str
    channel: ChatChannel
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)
    is_bot: bool = False
    is_direct: bool = True


class TypingIndicator:
    """Keep the typing signal alive until stopped."""

    def __init__(self, channel: ChatChannel, interval: float = TYPING_INTERVAL_S) -> None:
        self._channel = channel
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    def start(self) -> "TypingIndicator":
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
        return self

    async def _loop(self) -> None:
        while True:
            try:
                await self._channel.trigger_typing()
            except Exception as exc:  # noqa: BLE001 - typing is cosmetic
                logger.debug("Typing indicator failed: %s", exc)
            await asyncio.sleep(self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


__all__ = [
    "Attachment",
    "ChatChannel",
    "ChatMessage",
    "HistoryEntry",
    "InboundMessage",
    "TYPING_INTERVAL_S",
    "TypingIndicator",
]
