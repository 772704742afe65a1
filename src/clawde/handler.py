"""Inbound owner messages: gating, prompt assembly, one session, delivery."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from clawde.arbiter import (
    BUSY_CLEAR_TIMEOUT_S,
    CONFIRM_TIMEOUT_S,
    ActiveSession,
    RequestArbiter,
    SessionSlot,
)
from clawde.attachments import AttachmentDownloader, cleanup
from clawde.config import BotConfig
from clawde.context import PromptContext
from clawde.formatting import split_message
from clawde.log_utils import log_event
from clawde.session.events import SessionResponse
from clawde.session.launcher import SessionLauncher, SessionRequest
from clawde.state import StateStore, UserState
from clawde.transcript import RENDER_INTERVAL_S, TranscriptReconciler
from clawde.transport import ChatChannel, InboundMessage, TypingIndicator

logger = logging.getLogger(__name__)

PRIVATE_REPLY = "This bot is private."
ATTACHMENT_ONLY_PROMPT = "What's in this?"
NO_RESPONSE = "(No response)"


def build_prompt(text: str, recent_commands: Sequence[str] = (), attachment_paths: Sequence[Path] = ()) -> str:
    prompt = text or ATTACHMENT_ONLY_PROMPT
    if recent_commands:
        prompt = (
            f"[The user ran these slash commands since the last message: {', '.join(recent_commands)}]\n\n"
            f"{prompt}"
        )
    if attachment_paths:
        count = len(attachment_paths)
        noun, pronoun = ("files", "them") if count > 1 else ("file", "it")
        listing = "\n".join(f"{index}. {path}" for index, path in enumerate(attachment_paths, start=1))
        prompt = (
            f"The user sent {count} {noun}. Please use the Read tool to view {pronoun}:\n"
            f"{listing}\n\nUser's message: {prompt}"
        )
    return prompt


def format_error(message: str) -> str:
    return f"**Error:** {message}"


class MessageHandler:
    def __init__(
        self,
        config: BotConfig,
        store: StateStore,
        launcher: SessionLauncher,
        *,
        context: PromptContext | None = None,
        downloader: AttachmentDownloader | None = None,
        slot: SessionSlot | None = None,
        render_interval: float = RENDER_INTERVAL_S,
        confirm_timeout: float = CONFIRM_TIMEOUT_S,
        busy_clear_timeout: float = BUSY_CLEAR_TIMEOUT_S,
    ) -> None:
        self.config = config
        self.store = store
        self.launcher = launcher
        self.context = context or PromptContext()
        self.downloader = downloader or AttachmentDownloader(config.attachment_dir)
        self.render_interval = render_interval
        self.arbiter = RequestArbiter(
            slot or SessionSlot(),
            self.run_session,
            confirm_timeout=confirm_timeout,
            busy_clear_timeout=busy_clear_timeout,
        )

    async def handle(self, message: InboundMessage) -> None:
        if message.is_bot or not message.is_direct:
            return
        if message.author_id != self.config.owner_id:
            log_event(logger, "handler.rejected", author=message.author_id)
            await message.channel.send(PRIVATE_REPLY)
            return
        if not message.content.strip() and not message.attachments:
            return
        await self.arbiter.submit(message)

    async def run_session(self, message: InboundMessage, session: ActiveSession) -> None:
        channel = message.channel
        typing = TypingIndicator(channel).start()
        attachment_paths: list[Path] = []
        reconciler: TranscriptReconciler | None = None
        try:
            if message.attachments:
                attachment_paths = await self.downloader.download_all(message.attachments)

            state = self.store.load()
            reconciler = TranscriptReconciler(
                channel,
                min_interval=self.render_interval,
                is_cancelled=lambda: session.cancelled,
            )
            request = self._build_request(message, state, attachment_paths)
            response = await self.launcher.launch(
                request, reconciler.on_event, cancel_event=session.cancel_event
            )

            if state.recent_commands:
                self._forget_injected_commands(state.recent_commands)
            await typing.stop()

            if not session.cancelled:
                await reconciler.finalize()
            # The last render may have waited out the interval; a cancel can land meanwhile.
            if session.cancelled:
                log_event(logger, "handler.discarded", parts=len(reconciler.parts))
                await reconciler.discard()
                return

            await self._deliver(channel, state, response, session)
        except Exception as exc:
            logger.exception("Session failed")
            await typing.stop()
            if session.cancelled:
                if reconciler is not None:
                    await reconciler.discard()
                return
            try:
                await channel.send(format_error(str(exc)))
            except Exception:  # noqa: BLE001
                logger.warning("Could not report session failure", exc_info=True)
        finally:
            await typing.stop()
            cleanup(attachment_paths)

    def _build_request(
        self, message: InboundMessage, state: UserState, attachment_paths: Sequence[Path]
    ) -> SessionRequest:
        return SessionRequest(
            prompt=build_prompt(message.content, state.recent_commands, attachment_paths),
            cwd=Path(state.cwd),
            model=state.model,
            permission_mode=state.permission_mode,
            show_tool_use=state.show_tool_use,
            continue_session=state.has_active_session,
            attachments=tuple(attachment_paths),
            prior_context=self.context.take_recalled(),
            restart_notice=self.context.take_restart_notice(),
            bot_name=self.config.bot_name,
            owner_name=self.config.owner_name,
            extra_system_prompt=self.config.system_prompt,
        )

    def _forget_injected_commands(self, injected: Sequence[str]) -> None:
        current = self.store.load().recent_commands
        # Commands run while the session was in flight stay for the next prompt.
        if current[: len(injected)] == list(injected):
            remaining = current[len(injected) :]
        else:
            remaining = [command for command in current if command not in injected]
        self.store.update(recent_commands=remaining)

    async def _deliver(
        self, channel: ChatChannel, state: UserState, response: SessionResponse, session: ActiveSession
    ) -> None:
        if session.cancelled:
            return
        if not state.has_active_session and not response.error:
            self.store.update(has_active_session=True)
        if response.cost_usd:
            self.store.add_cost(response.cost_usd)

        log_event(
            logger,
            "handler.deliver",
            cost_usd=response.cost_usd,
            error=response.error,
            chars=len(response.text),
            tools=len(response.tool_use),
        )

        if response.has_output:
            await self._ghost_ping(channel)

        if response.error:
            for chunk in split_message(format_error(response.error)):
                if session.cancelled:
                    return
                await channel.send(chunk)
        elif not response.has_output and not session.cancelled:
            await channel.send(NO_RESPONSE)

    async def _ghost_ping(self, channel: ChatChannel) -> None:
        try:
            ping = await channel.send(self.config.owner_mention)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Notification ping failed: %s", exc)
            return
        try:
            await ping.delete()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Notification ping cleanup failed: %s", exc)


__all__ = ["ATTACHMENT_ONLY_PROMPT", "MessageHandler", "NO_RESPONSE", "PRIVATE_REPLY", "build_prompt", "format_error"]
