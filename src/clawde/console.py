"""Terminal stand-in for the chat transport.

Drives the same handler and command layer as a chat DM: plain lines become
owner messages, `/...` lines go to the slash commands and `!cancel` answers
the pending "cancel & send this instead" prompt.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from collections import deque
from datetime import datetime
from io import StringIO
from threading import Lock
from typing import Any

from prompt_toolkit import PromptSession  # type: ignore
from prompt_toolkit.formatted_text import ANSI  # type: ignore
from prompt_toolkit.patch_stdout import patch_stdout  # type: ignore
from prompt_toolkit.shortcuts import print_formatted_text  # type: ignore
from rich.console import Console
from rich.markdown import Markdown
from rich.text import Text

from clawde.handler import MessageHandler
from clawde.slash import CommandContext, handle_slash_command
from clawde.transport import HistoryEntry, InboundMessage

logger = logging.getLogger(__name__)

CONFIRM_TOKEN = "!cancel"
HISTORY_LIMIT = 500

_render_buffer = StringIO()
_render_console = Console(
    file=_render_buffer,
    force_terminal=True,
    color_system="standard",
    markup=False,
    highlight=False,
)
_render_lock = Lock()


def _render_and_print(*args: Any, **kwargs: Any) -> None:
    kwargs.setdefault("end", "\n")
    with _render_lock:
        _render_buffer.seek(0)
        _render_buffer.truncate(0)
        _render_console.print(*args, **kwargs)
        output = _render_buffer.getvalue()
    if output:
        print_formatted_text(ANSI(output), end="")


def print_notice(text: str) -> None:
    _render_and_print(Text(text, style="dim"))


def print_reply(text: str) -> None:
    _render_and_print(Markdown(text))


class ConsoleMessage:
    """A sent message; edits that only append print just the new tail."""

    def __init__(self, content: str) -> None:
        self.content = content
        self.deleted = False

    async def edit(self, content: str) -> None:
        if self.deleted:
            raise LookupError("message was deleted")
        previous, self.content = self.content, content
        if content.startswith(previous):
            suffix = content[len(previous) :]
            if suffix:
                _render_and_print(Text(suffix), end="")
            return
        print_notice("[edited]")
        print_reply(content)

    async def delete(self) -> None:
        self.deleted = True


class ConsoleChannel:
    def __init__(self, *, history_limit: int = HISTORY_LIMIT) -> None:
        self._typing = False
        self._confirmation: asyncio.Future[bool] | None = None
        # Bot messages are kept by reference so later edits and deletes show up.
        self._history: deque[tuple[datetime, str | ConsoleMessage]] = deque(maxlen=history_limit)

    def record_inbound(self, content: str) -> None:
        self._history.append((datetime.now(), content))

    async def history(self, limit: int) -> list[HistoryEntry]:
        entries = []
        for created, item in reversed(self._history):
            if len(entries) >= limit:
                break
            if isinstance(item, ConsoleMessage):
                if not item.deleted:
                    entries.append(HistoryEntry(item.content, from_bot=True, created=created))
            else:
                entries.append(HistoryEntry(item, from_bot=False, created=created))
        return entries

    async def send(self, content: str) -> ConsoleMessage:
        self._typing = False
        _render_and_print(Text(f"\n{content}"), end="")
        message = ConsoleMessage(content)
        self._history.append((datetime.now(), message))
        return message

    async def trigger_typing(self) -> None:
        if not self._typing:
            self._typing = True
            print_notice("… typing")

    async def ask_confirmation(self, content: str, *, label: str, timeout: float) -> bool:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[bool] = loop.create_future()
        if self._confirmation is not None and not self._confirmation.done():
            self._confirmation.set_result(False)
        self._confirmation = future
        print_notice(f"{content} Type {CONFIRM_TOKEN} within {timeout:g}s to {label.lower()}.")
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            return False
        finally:
            if self._confirmation is future:
                self._confirmation = None

    def confirm(self) -> bool:
        future = self._confirmation
        if future is None or future.done():
            return False
        future.set_result(True)
        return True


async def run_console(handler: MessageHandler, commands: CommandContext) -> None:
    channel = ConsoleChannel()
    commands = dataclasses.replace(commands, channel=channel)
    session: PromptSession = PromptSession()
    tasks: set[asyncio.Task[None]] = set()

    with patch_stdout():
        while True:
            try:
                line = await session.prompt_async(f"{handler.config.bot_name.lower()}> ")
            except EOFError:
                break
            except KeyboardInterrupt:
                if handler.arbiter.cancel_current():
                    print_notice("[cancelled]")
                continue

            line = line.strip()
            if not line:
                continue
            if line == CONFIRM_TOKEN:
                if not channel.confirm():
                    print_notice("Nothing to confirm.")
                continue
            if line.startswith("/"):
                reply = await handle_slash_command(commands, line)
                if reply:
                    print_reply(reply)
                continue

            channel.record_inbound(line)
            message = InboundMessage(author_id=handler.config.owner_id, content=line, channel=channel)
            task = asyncio.create_task(handler.handle(message))
            tasks.add(task)
            task.add_done_callback(tasks.discard)

    handler.arbiter.cancel_current()
    for task in list(tasks):
        with contextlib.suppress(asyncio.CancelledError):
            await task


__all__ = ["CONFIRM_TOKEN", "ConsoleChannel", "ConsoleMessage", "HISTORY_LIMIT", "run_console"]
