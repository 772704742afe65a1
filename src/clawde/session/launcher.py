"""Spawn the assistant CLI for one prompt and stream its output.

One `launch()` call is one session: the prompt goes in on stdin, stdout is
read as newline-delimited JSON records, and exactly one `SessionResponse`
comes back whether the process exits, fails to start, times out, or is
cancelled through the caller's event.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import os
import shutil
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping

from clawde.log_utils import log_event, log_records_enabled
from clawde.session.events import SessionResponse, StreamAccumulator, StreamEvent
from clawde.session.records import StreamRecord, decode_record

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 600.0
STREAM_LIMIT = 16 * 1024 * 1024
PROMPT_LOG_PREVIEW = 100

# Variables that make the CLI believe it is running inside another instance
# of itself; they must not leak into the child environment.
NESTED_SESSION_ENV_VARS = (
    "CLAUDECODE",
    "CLAUDE_CODE_ENTRYPOINT",
    "CLAUDE_AGENT_SDK_VERSION",
    "CLAUDE_CODE_EMIT_TOOL_USE_SUMMARIES",
    "CLAUDE_CODE_ENABLE_ASK_USER_QUESTION_TOOL",
    "CLAUDE_CODE_MODULE_PATH",
    "CLAUDE_CODE_SESSION_ID",
)

StreamCallback = Callable[[StreamEvent], "Awaitable[Any] | Any"]


@dataclass(frozen=True)
class SessionRequest:
    """Everything one session needs, frozen at launch time."""

    prompt: str
    cwd: Path
    model: str
    permission_mode: str
    show_tool_use: bool = False
    continue_session: bool = False
    attachments: tuple[Path, ...] = ()
    prior_context: str | None = None
    restart_notice: bool = False
    bot_name: str = "Clawde"
    owner_name: str = "the user"
    extra_system_prompt: str = ""

    def full_prompt(self) -> str:
        if not self.prior_context:
            return self.prompt
        return (
            "[Context recalled from earlier messages in this chat]\n"
            f"{self.prior_context}\n\n"
            "[Current message]\n"
            f"{self.prompt}"
        )


def timeout_message(timeout_s: float) -> str:
    if timeout_s >= 60 and timeout_s % 60 == 0:
        minutes = int(timeout_s // 60)
        unit = "minute" if minutes == 1 else "minutes"
        return f"Assistant timed out after {minutes} {unit}."
    return f"Assistant timed out after {timeout_s:g} seconds."


def build_system_prompt(request: SessionRequest) -> str:
    """Describe the operating context the assistant is running in."""

    lines = [
        f"OPERATIONAL CONTEXT: You are running as the {request.bot_name} remote-control chat bot.",
        f"{request.owner_name} is messaging you right now through chat direct messages, and you are"
        " answering through the assistant CLI on their own machine.",
        f"Working directory: {request.cwd}",
        "You have your full local capabilities: file editing, shell commands, search, web access.",
        "Keep responses concise (chat messages are limited to 2000 characters; longer replies are split).",
        "Use markdown and code blocks for formatting.",
    ]
    if request.restart_notice:
        lines.append("The bot process was just restarted, so any code changes to it are now live.")
    if request.extra_system_prompt.strip():
        lines.append(request.extra_system_prompt.strip())
    return " ".join(lines)


def build_args(request: SessionRequest) -> list[str]:
    args = [
        "-p",
        "--output-format",
        "stream-json",
        "--verbose",
        "--model",
        request.model,
        "--permission-mode",
        request.permission_mode,
        "--append-system-prompt",
        build_system_prompt(request),
    ]
    if request.continue_session:
        args.append("--continue")
    return args


def clean_env(base: Mapping[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    for key in NESTED_SESSION_ENV_VARS:
        env.pop(key, None)
    return env


async def iter_records(stream: asyncio.StreamReader) -> AsyncIterator[StreamRecord]:
    """Yield decoded records until EOF, skipping lines that are not records."""

    while True:
        try:
            raw = await stream.readline()
        except ValueError as exc:
            # Oversized line; the reader has already discarded it.
            logger.warning("Skipping oversized stream line: %s", exc)
            continue
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace")
        if log_records_enabled():
            logger.info("RECV %s", line.rstrip("\n"))
        record = decode_record(line)
        if record is not None:
            yield record


def _kill(proc: asyncio.subprocess.Process) -> None:
    # The assistant leads its own process group; tools it spawned share our stdout pipe.
    if os.name == "posix":
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(proc.pid, signal.SIGKILL)
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()


class SessionLauncher:
    """Run assistant sessions as child processes."""

    def __init__(
        self,
        executable: str = "claude",
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.executable = executable
        self.timeout_s = timeout_s
        self._env = env

    def _resolve_executable(self) -> str:
        return shutil.which(self.executable) or self.executable

    async def launch(
        self,
        request: SessionRequest,
        on_stream: StreamCallback | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SessionResponse:
        cancel_event = cancel_event or asyncio.Event()
        accumulator = StreamAccumulator(show_tool_use=request.show_tool_use)
        args = build_args(request)

        prompt = request.full_prompt()
        preview = prompt[:PROMPT_LOG_PREVIEW] + ("..." if len(prompt) > PROMPT_LOG_PREVIEW else "")
        log_event(
            logger,
            "session.launch",
            model=request.model,
            cwd=str(request.cwd),
            resume=request.continue_session,
            prompt=preview,
        )

        if cancel_event.is_set():
            log_event(logger, "session.cancelled_before_spawn")
            return accumulator.finish()

        try:
            proc = await asyncio.create_subprocess_exec(
                self._resolve_executable(),
                *args,
                cwd=str(request.cwd),
                env=clean_env(self._env),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            logger.error("Assistant process failed to start: %s", exc)
            return SessionResponse(error=f"Process error: {exc}")

        log_event(logger, "session.spawn", pid=proc.pid)
        watcher = asyncio.create_task(self._kill_on_cancel(proc, cancel_event))
        try:
            returncode, stderr_text = await asyncio.wait_for(
                self._run(proc, prompt, accumulator, on_stream),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            log_event(logger, "session.timeout", level=logging.WARNING, pid=proc.pid, timeout_s=self.timeout_s)
            _kill(proc)
            with contextlib.suppress(ProcessLookupError):
                await proc.wait()
            return SessionResponse(error=timeout_message(self.timeout_s))
        except BaseException:
            _kill(proc)
            raise
        finally:
            watcher.cancel()

        response = accumulator.finish(returncode, stderr_text)
        log_event(
            logger,
            "session.exit",
            returncode=returncode,
            text_parts=len(accumulator.text_parts),
            tool_parts=len(accumulator.tool_use_parts),
            cancelled=cancel_event.is_set(),
        )
        return response

    async def _run(
        self,
        proc: asyncio.subprocess.Process,
        prompt: str,
        accumulator: StreamAccumulator,
        on_stream: StreamCallback | None,
    ) -> tuple[int, str]:
        stderr_task = asyncio.create_task(self._collect_stderr(proc.stderr))
        try:
            await self._write_prompt(proc, prompt)
            if proc.stdout is not None:
                async for record in iter_records(proc.stdout):
                    for event in accumulator.apply(record):
                        await self._emit(on_stream, event)
            returncode = await proc.wait()
            stderr_text = await stderr_task
        finally:
            if not stderr_task.done():
                stderr_task.cancel()
        return returncode, stderr_text

    @staticmethod
    async def _write_prompt(proc: asyncio.subprocess.Process, prompt: str) -> None:
        # The prompt travels over stdin so arbitrary text never meets an argv or shell.
        if proc.stdin is None:
            return
        try:
            proc.stdin.write(prompt.encode("utf-8"))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.warning("Assistant closed stdin early: %s", exc)
        finally:
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                proc.stdin.close()

    @staticmethod
    async def _collect_stderr(stream: asyncio.StreamReader | None) -> str:
        if stream is None:
            return ""
        chunks: list[str] = []
        while True:
            data = await stream.read(4096)
            if not data:
                break
            text = data.decode("utf-8", errors="replace")
            chunks.append(text)
            logger.info("Assistant stderr: %s", text.strip())
        return "".join(chunks)

    @staticmethod
    async def _emit(on_stream: StreamCallback | None, event: StreamEvent) -> None:
        if on_stream is None:
            return
        try:
            maybe = on_stream(event)
            if inspect.isawaitable(maybe):
                await maybe
        except Exception:  # noqa: BLE001 - a broken listener must not end the session
            logger.warning("Stream listener failed on %s event", event.kind, exc_info=True)

    @staticmethod
    async def _kill_on_cancel(proc: asyncio.subprocess.Process, cancel_event: asyncio.Event) -> None:
        await cancel_event.wait()
        log_event(logger, "session.cancel", pid=proc.pid)
        _kill(proc)


__all__ = [
    "DEFAULT_TIMEOUT_S",
    "NESTED_SESSION_ENV_VARS",
    "SessionLauncher",
    "SessionRequest",
    "build_args",
    "build_system_prompt",
    "clean_env",
    "iter_records",
    "timeout_message",
]
