"""Assistant subprocess sessions: wire records, stream events and the launcher."""

from clawde.session.events import (  # noqa: F401
    ResultEvent,
    SessionResponse,
    StreamAccumulator,
    StreamEvent,
    SystemEvent,
    TextEvent,
    ThinkingEvent,
    ToolResultEvent,
    ToolUseEvent,
)
from clawde.session.launcher import SessionLauncher, SessionRequest  # noqa: F401
from clawde.session.records import decode_record  # noqa: F401

__all__ = [
    "ResultEvent",
    "SessionLauncher",
    "SessionRequest",
    "SessionResponse",
    "StreamAccumulator",
    "StreamEvent",
    "SystemEvent",
    "TextEvent",
    "ThinkingEvent",
    "ToolResultEvent",
    "ToolUseEvent",
    "decode_record",
]
