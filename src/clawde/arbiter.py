"""Single-flight ownership of the assistant session and cancel-and-replace.

`SessionSlot` is the whole of the mutable busy/pending state; the arbiter
only drives transitions on it, so both can be exercised without a transport.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from clawde.errors import SlotBusyError
from clawde.log_utils import log_context, log_event
from clawde.transport import InboundMessage

logger = logging.getLogger(__name__)

CONFIRM_TIMEOUT_S = 30.0
BUSY_CLEAR_TIMEOUT_S = 5.0
BUSY_POLL_INTERVAL_S = 0.1

BUSY_NOTICE = "Still processing previous request."
REPLACE_LABEL = "Cancel & send this instead"
REPLACED_NOTICE = "Cancelled. Processing new message..."

_session_ids = itertools.count(1)


@dataclass
class ActiveSession:
    session_id: int
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()


class SessionSlot:
    """Room for exactly one running session and one pending replacement."""

    def __init__(self) -> None:
        self._active: ActiveSession | None = None
        self._pending: InboundMessage | None = None

    @property
    def busy(self) -> bool:
        return self._active is not None

    @property
    def active(self) -> ActiveSession | None:
        return self._active

    @property
    def pending(self) -> InboundMessage | None:
        return self._pending

    def acquire(self, *, force: bool = False) -> ActiveSession:
        if self._active is not None and not force:
            raise SlotBusyError(f"session {self._active.session_id} is still running")
        if self._active is not None:
            logger.warning("Taking the slot from session %s", self._active.session_id)
        session = ActiveSession(session_id=next(_session_ids))
        self._active = session
        return session

    def release(self, session: ActiveSession) -> None:
        # A session that was displaced by a forced takeover must not free its successor.
        if self._active is session:
            self._active = None

    def cancel_active(self) -> ActiveSession | None:
        session = self._active
        if session is not None:
            session.cancel()
        return session

    def set_pending(self, message: InboundMessage) -> InboundMessage | None:
        displaced, self._pending = self._pending, message
        return displaced

    def take_pending(self) -> InboundMessage | None:
        message, self._pending = self._pending, None
        return message

    def discard_pending(self, message: InboundMessage) -> bool:
        if self._pending is message:
            self._pending = None
            return True
        return False

    async def wait_until_idle(self, timeout: float, poll_interval: float = BUSY_POLL_INTERVAL_S) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.busy and loop.time() < deadline:
            await asyncio.sleep(poll_interval)
        return not self.busy


RunSession = Callable[[InboundMessage, ActiveSession], Awaitable[None]]


class RequestArbiter:
    def __init__(
        self,
        slot: SessionSlot,
        run_session: RunSession,
        *,
        confirm_timeout: float = CONFIRM_TIMEOUT_S,
        busy_clear_timeout: float = BUSY_CLEAR_TIMEOUT_S,
        poll_interval: float = BUSY_POLL_INTERVAL_S,
    ) -> None:
        self.slot = slot
        self._run_session = run_session
        self._confirm_timeout = confirm_timeout
        self._busy_clear_timeout = busy_clear_timeout
        self._poll_interval = poll_interval

    async def submit(self, message: InboundMessage) -> None:
        """Run `message` now, or offer to replace the running session with it."""
        if not self.slot.busy:
            await self._run(message)
            return
        await self._offer_replacement(message)

    def cancel_current(self) -> bool:
        session = self.slot.cancel_active()
        if session is None:
            return False
        log_event(logger, "arbiter.cancel", session=session.session_id)
        return True

    async def _run(self, message: InboundMessage, *, force: bool = False) -> None:
        session = self.slot.acquire(force=force)
        with log_context(session_id=session.session_id):
            log_event(logger, "arbiter.start", forced=force)
            try:
                await self._run_session(message, session)
            finally:
                self.slot.release(session)
                log_event(logger, "arbiter.idle", cancelled=session.cancelled)

    async def _offer_replacement(self, message: InboundMessage) -> None:
        displaced = self.slot.set_pending(message)
        if displaced is not None:
            log_event(logger, "arbiter.pending_displaced")
        stale = self.slot.active

        try:
            confirmed = await message.channel.ask_confirmation(
                BUSY_NOTICE, label=REPLACE_LABEL, timeout=self._confirm_timeout
            )
        except Exception:
            logger.warning("Replacement prompt failed", exc_info=True)
            confirmed = False

        if not confirmed:
            if self.slot.discard_pending(message):
                log_event(logger, "arbiter.pending_expired")
            return

        pending = self.slot.take_pending()
        if pending is None:
            return
        if stale is not None:
            stale.cancel()
            log_event(logger, "arbiter.replace", cancelled=stale.session_id)
        try:
            await message.channel.send(REPLACED_NOTICE)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Replacement notice failed: %s", exc)

        idle = await self.slot.wait_until_idle(self._busy_clear_timeout, self._poll_interval)
        if idle:
            await self._run(pending)
            return
        if stale is not None and self.slot.active is stale:
            log_event(logger, "arbiter.busy_timeout", level=logging.WARNING, session=stale.session_id)
            await self._run(pending, force=True)
            return
        # Somebody else started a session meanwhile; queue behind it the usual way.
        await self.submit(pending)


__all__ = [
    "ActiveSession",
    "BUSY_CLEAR_TIMEOUT_S",
    "BUSY_NOTICE",
    "CONFIRM_TIMEOUT_S",
    "REPLACED_NOTICE",
    "REPLACE_LABEL",
    "RequestArbiter",
    "SessionSlot",
]
