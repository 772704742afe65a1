"""Live, edited-in-place chat transcript for one streaming session.

Parts are appended in stream order and re-rendered at most once per
`min_interval`. A single background flush task owns every transport call,
so renders never overlap and bursts of events collapse into one edit.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Literal, Sequence

from clawde.formatting import RENDER_CHUNK_LIMIT, split_render_chunks
from clawde.session.events import StreamEvent, TextEvent, ToolUseEvent
from clawde.transport import ChatChannel, ChatMessage

logger = logging.getLogger(__name__)

WORKING_PLACEHOLDER = "⏳ Thinking..."
RENDER_INTERVAL_S = 1.0
PART_SEPARATOR = "\n\n"

PartKind = Literal["text", "tool"]


@dataclass(frozen=True)
class TranscriptPart:
    kind: PartKind
    content: str


def render_parts(parts: Sequence[TranscriptPart]) -> str:
    """Render text runs contiguously and each tool line on its own."""

    lines: list[str] = []
    text_buffer = ""
    for part in parts:
        if part.kind == "tool":
            if text_buffer:
                lines.append(text_buffer)
                text_buffer = ""
            lines.append(part.content)
        else:
            text_buffer += part.content
    if text_buffer:
        lines.append(text_buffer)
    return PART_SEPARATOR.join(lines) or WORKING_PLACEHOLDER


class TranscriptReconciler:
    def __init__(
        self,
        channel: ChatChannel,
        *,
        min_interval: float = RENDER_INTERVAL_S,
        max_chunk: int = RENDER_CHUNK_LIMIT,
        clock: Callable[[], float] = time.monotonic,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> None:
        self._channel = channel
        self._min_interval = min_interval
        self._max_chunk = max_chunk
        self._clock = clock
        self._is_cancelled = is_cancelled or (lambda: False)
        self.parts: list[TranscriptPart] = []
        self.messages: list[ChatMessage] = []
        self.render_count = 0
        self._rendered: list[str] = []
        self._last_render: float | None = None
        self._dirty = False
        self._closed = False
        self._applying = False
        self._flush_task: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _stopped(self) -> bool:
        return self._closed or self._is_cancelled()

    def on_event(self, event: StreamEvent) -> None:
        """Stream callback: record the event and schedule a render."""
        if self._stopped():
            return
        if isinstance(event, TextEvent):
            part = TranscriptPart("text", event.content)
        elif isinstance(event, ToolUseEvent):
            part = TranscriptPart("tool", event.content)
        else:
            return
        self.parts.append(part)
        self._dirty = True
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._flush_loop())

    def render(self) -> str:
        return render_parts(self.parts)

    async def _flush_loop(self) -> None:
        while self._dirty and not self._stopped():
            if self._last_render is not None:
                wait = self._min_interval - (self._clock() - self._last_render)
                if wait > 0:
                    await asyncio.sleep(wait)
                    if self._stopped():
                        return
            self._dirty = False
            self._last_render = self._clock()
            self.render_count += 1
            chunks = split_render_chunks(self.render(), self._max_chunk)
            self._applying = True
            try:
                await self._apply(chunks)
            finally:
                self._applying = False

    async def _apply(self, chunks: list[str]) -> None:
        for index, chunk in enumerate(chunks):
            if index < len(self.messages):
                if index < len(self._rendered) and self._rendered[index] == chunk:
                    continue
                try:
                    await self.messages[index].edit(chunk)
                except Exception as exc:  # noqa: BLE001 - stale edits are harmless
                    logger.debug("Transcript edit failed: %s", exc)
                    continue
                self._rendered[index] = chunk
            else:
                try:
                    message = await self._channel.send(chunk)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Transcript send failed: %s", exc)
                    return
                self.messages.append(message)
                self._rendered.append(chunk)
        while len(self.messages) > len(chunks):
            extra = self.messages.pop()
            self._rendered.pop()
            await self._delete(extra)

    async def finalize(self) -> None:
        """Wait for the last scheduled render, then stop accepting events."""
        task = self._flush_task
        if task is not None and not task.done():
            await task
        self._closed = True

    async def discard(self) -> None:
        """Stop rendering and delete every message this transcript sent."""
        self._closed = True
        task, self._flush_task = self._flush_task, None
        if task is not None and not task.done():
            if self._applying:
                # Let the in-flight transport call land so its message is tracked.
                with contextlib.suppress(Exception):
                    await task
            else:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        messages, self.messages = self.messages, []
        self._rendered = []
        for message in messages:
            await self._delete(message)

    @staticmethod
    async def _delete(message: ChatMessage) -> None:
        try:
            await message.delete()
        except Exception as exc:  # noqa: BLE001 - already gone is fine
            logger.debug("Transcript delete failed: %s", exc)


__all__ = [
    "PART_SEPARATOR",
    "RENDER_INTERVAL_S",
    "TranscriptPart",
    "TranscriptReconciler",
    "WORKING_PLACEHOLDER",
    "render_parts",
]
