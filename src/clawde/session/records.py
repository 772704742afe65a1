"""Wire records emitted by the assistant CLI in `stream-json` mode.

Each stdout line is one JSON object with a `type` field. Only the fields the
bot reads are modelled; everything else is kept as extra data and ignored.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow")


class ContentBlock(_Record):
    type: str
    text: str | None = None
    thinking: str | None = None
    name: str | None = None
    input: dict[str, Any] = Field(default_factory=dict)
    content: Any = None
    is_error: bool | None = None

    @field_validator("input", mode="before")
    @classmethod
    def _coerce_input(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class MessageBody(_Record):
    content: list[ContentBlock] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> Any:
        """Accept plain-string content and drop blocks that are not objects."""
        if not isinstance(value, dict):
            return {"content": []}
        content = value.get("content")
        if isinstance(content, str):
            blocks: list[Any] = [{"type": "text", "text": content}] if content else []
        elif isinstance(content, list):
            blocks = [block for block in content if isinstance(block, dict) and "type" in block]
        else:
            blocks = []
        return {**value, "content": blocks}


class SystemRecord(_Record):
    type: Literal["system"]
    subtype: str | None = None
    session_id: str | None = None
    model: str | None = None
    cwd: str | None = None


class AssistantRecord(_Record):
    type: Literal["assistant"]
    message: MessageBody = Field(default_factory=MessageBody)
    session_id: str | None = None


class UserRecord(_Record):
    type: Literal["user"]
    message: MessageBody = Field(default_factory=MessageBody)
    session_id: str | None = None


class ResultRecord(_Record):
    type: Literal["result"]
    subtype: str | None = None
    is_error: bool | None = None
    result: str | None = None
    total_cost_usd: float | None = None
    cost_usd: float | None = None
    error: str | None = None
    errors: list[str] | None = None
    session_id: str | None = None
    num_turns: int | None = None
    duration_ms: float | None = None

    @field_validator("total_cost_usd", "cost_usd", "duration_ms", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        return None

    @field_validator("num_turns", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> Any:
        return value if isinstance(value, int) and not isinstance(value, bool) else None

    @field_validator("is_error", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Any:
        return value if isinstance(value, bool) else None

    @field_validator("subtype", "session_id", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any) -> Any:
        return _str_or_none(value)

    @field_validator("errors", mode="before")
    @classmethod
    def _coerce_errors(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, list):
            return [str(item) for item in value if item is not None]
        return [str(value)]

    @field_validator("error", "result", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value) if isinstance(value, (dict, list)) else str(value)


class UnknownRecord(_Record):
    type: str | None = None
    subtype: str | None = None


StreamRecord = Union[SystemRecord, AssistantRecord, UserRecord, ResultRecord, UnknownRecord]

_RECORD_TYPES: dict[str, type[BaseModel]] = {
    "system": SystemRecord,
    "assistant": AssistantRecord,
    "user": UserRecord,
    "result": ResultRecord,
}


def decode_record(line: str) -> StreamRecord | None:
    """Decode one stdout line, returning None for anything that is not a record.

    Blank lines, non-JSON chatter, JSON that is not an object, and objects
    that fail validation are all skipped; none of them end the stream.
    """

    stripped = line.strip()
    if not stripped:
        return None
    try:
        payload = json.loads(stripped)
    except ValueError:
        logger.debug("Skipping non-JSON line: %s", stripped[:200])
        return None
    if not isinstance(payload, dict):
        return None

    kind = payload.get("type")
    model = _RECORD_TYPES.get(kind) if isinstance(kind, str) else None
    try:
        if model is None:
            return UnknownRecord.model_validate(
                {**payload, "type": kind if isinstance(kind, str) else None, "subtype": _str_or_none(payload.get("subtype"))}
            )
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        logger.debug("Skipping malformed %s record: %s", kind, exc.errors()[:3])
        return None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


__all__ = [
    "AssistantRecord",
    "ContentBlock",
    "MessageBody",
    "ResultRecord",
    "StreamRecord",
    "SystemRecord",
    "UnknownRecord",
    "UserRecord",
    "decode_record",
]
