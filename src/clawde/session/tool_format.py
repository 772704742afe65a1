"""One-line, chat-friendly descriptions of assistant tool calls."""

from __future__ import annotations

from typing import Any, Callable, Mapping

COMMAND_PREVIEW_LIMIT = 80
SUBTEXT_PREFIX = "-#"
DEFAULT_TOOL_ICON = "🔧"

TOOL_ICONS: dict[str, str] = {
    "Read": "📖",
    "Write": "📝",
    "Edit": "✏️",
    "MultiEdit": "✏️",
    "NotebookEdit": "📓",
    "Bash": "⚡",
    "Glob": "🔍",
    "Grep": "🔎",
    "WebSearch": "🌐",
    "WebFetch": "🌐",
    "Task": "🤖",
    "TodoWrite": "📋",
    "AskUserQuestion": "❓",
}


def tool_icon(tool_name: str) -> str:
    return TOOL_ICONS.get(tool_name, DEFAULT_TOOL_ICON)


def _field(params: Mapping[str, Any], key: str, default: str = "") -> str:
    value = params.get(key)
    if value is None or value == "":
        return default
    return value if isinstance(value, str) else str(value)


def _preview(text: str, limit: int = COMMAND_PREVIEW_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


_DESCRIBERS: dict[str, Callable[[Mapping[str, Any]], str]] = {
    "Read": lambda p: f"Read {_field(p, 'file_path', 'unknown')}",
    "Write": lambda p: f"Created {_field(p, 'file_path', 'unknown')}",
    "Edit": lambda p: f"Edited {_field(p, 'file_path', 'unknown')}",
    "MultiEdit": lambda p: f"Edited {_field(p, 'file_path', 'unknown')}",
    "NotebookEdit": lambda p: f"Edited {_field(p, 'notebook_path', 'unknown')}",
    "Bash": lambda p: _preview(_field(p, "command")),
    "Glob": lambda p: f"Search files: {_field(p, 'pattern')}",
    "Grep": lambda p: f"Search code: {_field(p, 'pattern')}",
    "WebSearch": lambda p: f"Web search: {_field(p, 'query')}",
    "WebFetch": lambda p: f"Fetch: {_field(p, 'url')}",
    "Task": lambda p: f"Agent: {_field(p, 'description')}",
}


def format_tool_use(tool_name: str | None, params: Any = None) -> str:
    """Describe a tool call as a single subtext line, e.g. ``-# 📖 Read /a.py``.

    Never raises: unknown tools, missing parameters and non-mapping inputs all
    fall back to the icon plus the raw tool name.
    """

    name = tool_name or "unknown"
    icon = tool_icon(name)
    mapping: Mapping[str, Any] = params if isinstance(params, Mapping) else {}
    describe = _DESCRIBERS.get(name)
    detail = name
    if describe is not None:
        try:
            detail = describe(mapping)
        except Exception:  # noqa: BLE001 - formatting must stay total
            detail = name
    return _single_line(f"{SUBTEXT_PREFIX} {icon} {detail}")


def format_tool_activity(tool_name: str | None) -> str:
    """Generic notice used when tool details are hidden from the transcript."""

    return f"{SUBTEXT_PREFIX} Using {tool_name or 'a tool'}..."


def _single_line(text: str) -> str:
    return " ".join(text.splitlines()) if "\n" in text or "\r" in text else text


__all__ = [
    "COMMAND_PREVIEW_LIMIT",
    "DEFAULT_TOOL_ICON",
    "TOOL_ICONS",
    "format_tool_activity",
    "format_tool_use",
    "tool_icon",
]
