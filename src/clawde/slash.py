"""Owner slash commands that adjust bot state between sessions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from clawde.arbiter import RequestArbiter
from clawde.context import RECALL_DEFAULT_LIMIT, PromptContext, format_recalled
from clawde.memory import MemoryStore
from clawde.state import StateStore
from clawde.transport import ChatChannel

logger = logging.getLogger(__name__)

MODEL_CHOICES = ("sonnet", "opus", "haiku")
PERMISSION_MODES = ("default", "acceptEdits", "bypassPermissions", "plan")


@dataclass
class CommandContext:
    store: StateStore
    arbiter: RequestArbiter
    prompt_context: PromptContext
    memory: MemoryStore
    channel: ChatChannel | None = None


SlashHandler = Callable[[CommandContext, str], "Awaitable[str] | str"]


@dataclass
class SlashCommandDef:
    description: str
    hint: str
    handler: SlashHandler


SLASH_HANDLERS: dict[str, SlashCommandDef] = {}


def register_slash_command(name: str, description: str, hint: str) -> Callable[[SlashHandler], SlashHandler]:
    """Decorator to register a slash command handler."""

    def _decorator(func: SlashHandler) -> SlashHandler:
        SLASH_HANDLERS[name] = SlashCommandDef(description=description, hint=hint, handler=func)
        return func

    return _decorator


@register_slash_command("/cwd", description="View or change the working directory.", hint="/cwd [path]")
def _handle_cwd(ctx: CommandContext, argument: str) -> str:
    state = ctx.store.load()
    if not argument:
        ctx.store.track_command("cwd")
        return f"Current working directory: `{state.cwd}`"

    normalized = argument.replace("\\", "/")
    target = Path(normalized).expanduser()
    if not target.exists():
        return f"Path does not exist: `{normalized}`"
    if not target.is_dir():
        return f"Not a directory: `{normalized}`"

    ctx.store.track_command("cwd", {"path": str(target)})
    ctx.store.update(cwd=str(target), has_active_session=False, session_cost_usd=0.0)
    return f"Working directory changed to `{target}`\nConversation cleared (new directory)."


@register_slash_command("/clear", description="Start a fresh conversation.", hint="/clear")
def _handle_clear(ctx: CommandContext, _argument: str) -> str:
    ctx.store.track_command("clear")
    ctx.store.update(has_active_session=False, session_cost_usd=0.0)
    ctx.prompt_context.clear_recalled()
    return "Conversation cleared. Next message starts fresh."


@register_slash_command("/model", description="View or switch the model.", hint="/model [sonnet|opus|haiku]")
def _handle_model(ctx: CommandContext, argument: str) -> str:
    if not argument:
        ctx.store.track_command("model")
        return f"Current model: `{ctx.store.load().model}`"
    if argument not in MODEL_CHOICES:
        return f"Unknown model: `{argument}`. Choose one of: {', '.join(MODEL_CHOICES)}."
    ctx.store.track_command("model", {"name": argument})
    ctx.store.update(model=argument)
    return f"Model changed to `{argument}`."


@register_slash_command("/tools", description="Show or hide tool usage in replies.", hint="/tools show|hide")
def _handle_tools(ctx: CommandContext, argument: str) -> str:
    action = argument.lower()
    if action not in ("show", "hide"):
        return "Usage: /tools show|hide"
    show = action == "show"
    ctx.store.track_command("tools", {"action": action})
    ctx.store.update(show_tool_use=show)
    return "Tool usage will now be shown in responses." if show else "Tool usage is now hidden."


@register_slash_command("/perms", description="Set the permission mode.", hint="/perms <mode>")
def _handle_perms(ctx: CommandContext, argument: str) -> str:
    if argument not in PERMISSION_MODES:
        return f"Usage: /perms {'|'.join(PERMISSION_MODES)}"
    ctx.store.track_command("perms", {"mode": argument})
    ctx.store.update(permission_mode=argument)
    return f"Permission mode changed to `{argument}`."


@register_slash_command("/status", description="Show the current session settings.", hint="/status")
def _handle_status(ctx: CommandContext, _argument: str) -> str:
    ctx.store.track_command("status")
    state = ctx.store.load()
    lines = [
        f"**Working directory:** `{state.cwd}`",
        f"**Model:** `{state.model}`",
        f"**Session:** {'active' if state.has_active_session else 'none'}",
        f"**Session cost:** ${state.session_cost_usd:.4f}",
        f"**Permission mode:** `{state.permission_mode}`",
        f"**Show tool use:** {'yes' if state.show_tool_use else 'no'}",
        f"**Busy:** {'yes' if ctx.arbiter.slot.busy else 'no'}",
    ]
    return "\n".join(lines)


@register_slash_command("/cancel", description="Cancel the running request.", hint="/cancel")
def _handle_cancel(ctx: CommandContext, _argument: str) -> str:
    if not ctx.arbiter.cancel_current():
        return "Nothing is running."
    ctx.store.track_command("cancel")
    return "Cancelled the running request."


@register_slash_command("/remember", description="Save a global memory.", hint="/remember <text>")
def _handle_remember(ctx: CommandContext, argument: str) -> str:
    if not argument:
        return "Usage: /remember <text>"
    try:
        memory = ctx.memory.add(argument)
    except OSError as exc:
        logger.warning("Saving memory failed: %s", exc)
        return f"Failed to save memory: {exc}"
    ctx.store.track_command("remember", {"memory": memory.content})
    return f'Memory saved: "{memory.content}"'


@register_slash_command("/memories", description="List saved memories.", hint="/memories")
def _handle_memories(ctx: CommandContext, _argument: str) -> str:
    ctx.store.track_command("memories")
    memories = ctx.memory.entries()
    if not memories:
        return "No memories saved yet. Use `/remember` to add one."
    listing = "\n".join(f"{index}. [{m.date}] {m.content}" for index, m in enumerate(memories, start=1))
    return f"**Global Memories:**\n\n{listing}"


@register_slash_command("/forget", description="Delete a memory by number.", hint="/forget <n>")
def _handle_forget(ctx: CommandContext, argument: str) -> str:
    try:
        number = int(argument)
    except ValueError:
        return "Usage: /forget <n>"
    removed = ctx.memory.forget(number)
    if removed is None:
        return f"Memory #{number} not found"
    ctx.store.track_command("forget", {"number": number})
    return f"Forgot memory #{number}"


@register_slash_command(
    "/recall",
    description="Load matching chat history into the next prompt.",
    hint="/recall [query] [limit]",
)
async def _handle_recall(ctx: CommandContext, argument: str) -> str:
    if ctx.channel is None:
        return "Recall is not available here."

    words = argument.split()
    limit = RECALL_DEFAULT_LIMIT
    if words and words[-1].isdigit():
        limit = int(words.pop())
    if limit < 1:
        return "Usage: /recall [query] [limit]"
    query = " ".join(words) or None

    logger.info("Recalling up to %s messages, query=%r", limit, query)
    lines = format_recalled(await ctx.channel.history(limit), query)
    if not lines:
        return f'No messages found matching "{query}"' if query else "No messages found in history"

    ctx.prompt_context.set_recalled("\n\n".join(lines))
    track_args: dict[str, object] = {}
    if query:
        track_args["query"] = query
    if limit != RECALL_DEFAULT_LIMIT:
        track_args["limit"] = limit
    ctx.store.track_command("recall", track_args)

    scope = f'matching "{query}"' if query else "from recent history"
    return (
        f"Found {len(lines)} relevant message(s) {scope}\n"
        "Context will be injected into your next message (then kept via --continue)."
    )


@register_slash_command("/help", description="List available commands.", hint="/help")
def _handle_help(_ctx: CommandContext, _argument: str) -> str:
    lines = ["**Commands:**"]
    for entry in SLASH_HANDLERS.values():
        lines.append(f"`{entry.hint}` - {entry.description}")
    return "\n".join(lines)


async def handle_slash_command(ctx: CommandContext, text: str) -> str | None:
    """Run a registered command; None when `text` is not one."""
    trimmed = text.strip()
    if not trimmed.startswith("/"):
        return None

    parts = trimmed.split(maxsplit=1)
    command = parts[0]
    argument = parts[1].strip() if len(parts) > 1 else ""

    entry = SLASH_HANDLERS.get(command)
    if entry is None:
        return "Unknown command."

    result = entry.handler(ctx, argument)
    if asyncio.iscoroutine(result):
        return await result
    return result


__all__ = [
    "CommandContext",
    "MODEL_CHOICES",
    "PERMISSION_MODES",
    "SLASH_HANDLERS",
    "SlashCommandDef",
    "handle_slash_command",
    "register_slash_command",
]
