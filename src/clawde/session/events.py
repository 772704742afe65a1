"""Typed stream events and the per-session response accumulator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar, Literal, Union

from clawde.log_utils import log_event
from clawde.session.records import (
    AssistantRecord,
    ResultRecord,
    StreamRecord,
    SystemRecord,
    UnknownRecord,
    UserRecord,
)
from clawde.session.tool_format import format_tool_activity, format_tool_use

logger = logging.getLogger(__name__)

EventKind = Literal["text", "tool_use", "tool_result", "thinking", "system", "result"]


@dataclass(frozen=True)
class TextEvent:
    kind: ClassVar[EventKind] = "text"
    content: str


@dataclass(frozen=True)
class ToolUseEvent:
    """A tool call; `hidden` is True when only a generic activity notice is shown."""

    kind: ClassVar[EventKind] = "tool_use"
    content: str
    tool_name: str
    hidden: bool = False


@dataclass(frozen=True)
class ToolResultEvent:
    kind: ClassVar[EventKind] = "tool_result"
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class ThinkingEvent:
    kind: ClassVar[EventKind] = "thinking"
    content: str


@dataclass(frozen=True)
class SystemEvent:
    kind: ClassVar[EventKind] = "system"
    subtype: str | None
    session_id: str | None = None


@dataclass(frozen=True)
class ResultEvent:
    kind: ClassVar[EventKind] = "result"
    subtype: str | None
    cost_usd: float | None = None
    error: str | None = None
    session_id: str | None = None


StreamEvent = Union[TextEvent, ToolUseEvent, ToolResultEvent, ThinkingEvent, SystemEvent, ResultEvent]


@dataclass(frozen=True)
class SessionResponse:
    """Terminal outcome of one assistant session."""

    text: str = ""
    tool_use: tuple[str, ...] = ()
    error: str | None = None
    cost_usd: float | None = None
    session_id: str | None = None

    @property
    def has_output(self) -> bool:
        return bool(self.text.strip()) or bool(self.tool_use)


@dataclass
class StreamAccumulator:
    """Fold decoded records into events and the running response state.

    The "use the result text" fallback is decided when the result record is
    applied: it only kicks in if no assistant text block was seen before it.
    """

    show_tool_use: bool = False
    text_parts: list[str] = field(default_factory=list)
    tool_use_parts: list[str] = field(default_factory=list)
    cost_usd: float | None = None
    error: str | None = None
    session_id: str | None = None

    def apply(self, record: StreamRecord) -> list[StreamEvent]:
        if isinstance(record, SystemRecord):
            return self._on_system(record)
        if isinstance(record, AssistantRecord):
            return self._on_assistant(record)
        if isinstance(record, UserRecord):
            return self._on_user(record)
        if isinstance(record, ResultRecord):
            return self._on_result(record)
        if isinstance(record, UnknownRecord):
            return self._on_unknown(record)
        raise TypeError(f"unhandled stream record: {type(record).__name__}")

    def _on_system(self, record: SystemRecord) -> list[StreamEvent]:
        if record.session_id:
            self.session_id = record.session_id
        if record.subtype == "init":
            log_event(logger, "session.init", session=record.session_id, model=record.model, cwd=record.cwd)
        else:
            logger.debug("System record subtype=%s", record.subtype)
        return [SystemEvent(subtype=record.subtype, session_id=record.session_id)]

    def _on_assistant(self, record: AssistantRecord) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for block in record.message.content:
            if block.type == "text" and block.text:
                self.text_parts.append(block.text)
                events.append(TextEvent(block.text))
            elif block.type == "tool_use":
                name = block.name or "unknown"
                if self.show_tool_use:
                    formatted = format_tool_use(name, block.input)
                    self.tool_use_parts.append(formatted)
                    events.append(ToolUseEvent(formatted, tool_name=name))
                else:
                    events.append(ToolUseEvent(format_tool_activity(name), tool_name=name, hidden=True))
            elif block.type == "thinking" and block.thinking:
                events.append(ThinkingEvent(block.thinking))
        return events

    def _on_user(self, record: UserRecord) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for block in record.message.content:
            if block.type != "tool_result":
                continue
            content = block.content
            if isinstance(content, list):
                content = "".join(
                    str(item.get("text", "")) for item in content if isinstance(item, dict)
                )
            events.append(ToolResultEvent(str(content or ""), is_error=bool(block.is_error)))
        return events

    def _on_result(self, record: ResultRecord) -> list[StreamEvent]:
        if record.total_cost_usd is not None:
            self.cost_usd = record.total_cost_usd
        elif record.cost_usd is not None:
            self.cost_usd = record.cost_usd
        if record.session_id:
            self.session_id = record.session_id

        if record.is_error or (record.subtype or "").startswith("error"):
            self.error = record.error or ", ".join(record.errors or []) or "Unknown error"

        events: list[StreamEvent] = []
        if not self.text_parts and record.result:
            self.text_parts.append(record.result)
            events.append(TextEvent(record.result))

        log_event(
            logger,
            "session.result",
            subtype=record.subtype,
            cost_usd=self.cost_usd,
            turns=record.num_turns,
            error=self.error,
        )
        events.append(
            ResultEvent(
                subtype=record.subtype,
                cost_usd=self.cost_usd,
                error=self.error,
                session_id=record.session_id,
            )
        )
        return events

    def _on_unknown(self, record: UnknownRecord) -> list[StreamEvent]:
        if record.type:
            suffix = f"/{record.subtype}" if record.subtype else ""
            logger.info("Unhandled stream record %s%s", record.type, suffix)
        return []

    def finish(self, returncode: int | None = 0, stderr: str = "") -> SessionResponse:
        """Build the final response once the process has exited.

        A failing exit status only becomes an error when no text was produced;
        partial text is treated as the real answer.
        """

        error = self.error
        if returncode not in (0, None) and not self.text_parts:
            error = error or stderr.strip() or f"Assistant exited with code {returncode}"
        return SessionResponse(
            text="".join(self.text_parts),
            tool_use=tuple(self.tool_use_parts),
            error=error,
            cost_usd=self.cost_usd,
            session_id=self.session_id,
        )


__all__ = [
    "EventKind",
    "ResultEvent",
    "SessionResponse",
    "StreamAccumulator",
    "StreamEvent",
    "SystemEvent",
    "TextEvent",
    "ThinkingEvent",
    "ToolResultEvent",
    "ToolUseEvent",
]
