"""Persistent owner state shared by sessions and slash commands.

The JSON file keeps camelCase keys (`hasActiveSession`, `sessionCostUsd`, ...)
so hand edits and older state files keep working.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from clawde.config import BotConfig

logger = logging.getLogger(__name__)

RECENT_COMMANDS_LIMIT = 10


class UserState(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    cwd: str
    model: str
    permission_mode: str
    show_tool_use: bool = False
    has_active_session: bool = False
    session_cost_usd: float = 0.0
    recent_commands: list[str] = Field(default_factory=list)


def default_state(config: BotConfig) -> UserState:
    return UserState(
        cwd=str(config.default_cwd),
        model=config.default_model,
        permission_mode=config.default_permission_mode,
    )


def format_command(name: str, args: dict[str, Any] | None = None) -> str:
    """Render a command the way it is replayed to the assistant: `/cwd path="/tmp"`."""
    arg_str = ""
    if args:
        arg_str = " " + " ".join(f'{key}="{value}"' for key, value in args.items())
    return f"/{name}{arg_str}"


class StateStore:
    """Read-mostly JSON store for `UserState`.

    `load()` hands out copies so a session works from a stable snapshot while
    commands keep writing through `update()`.
    """

    def __init__(self, path: Path, defaults: UserState) -> None:
        self.path = path
        self._defaults = defaults
        self._state: UserState | None = None

    def _read(self) -> UserState:
        if self._state is not None:
            return self._state
        state = self._defaults.model_copy(deep=True)
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                merged = {**self._defaults.model_dump(by_alias=True), **raw}
                state = UserState.model_validate(merged)
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning("Unreadable state file %s, using defaults: %s", self.path, exc)
        self._state = state
        return state

    def load(self) -> UserState:
        return self._read().model_copy(deep=True)

    def update(self, **changes: Any) -> UserState:
        current = self._read()
        data = current.model_dump()
        data.update(changes)
        self._state = UserState.model_validate(data)
        self._save()
        return self.load()

    def add_cost(self, amount: float) -> UserState:
        return self.update(session_cost_usd=self._read().session_cost_usd + amount)

    def track_command(self, name: str, args: dict[str, Any] | None = None) -> UserState:
        recent = [*self._read().recent_commands, format_command(name, args)]
        return self.update(recent_commands=recent[-RECENT_COMMANDS_LIMIT:])

    def _save(self) -> None:
        if self._state is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = self._state.model_dump(by_alias=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
