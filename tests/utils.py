from __future__ import annotations

import asyncio
import json
import stat
import sys
from pathlib import Path
from typing import Any

from clawde.config import BotConfig
from clawde.transport import HistoryEntry, InboundMessage

OWNER_ID = "1234"


class FakeMessage:
    def __init__(self, channel: "FakeChannel", content: str) -> None:
        self.channel = channel
        self.content = content
        self.history = [content]
        self.deleted = False
        self.fail_edits = False

    async def edit(self, content: str) -> None:
        if self.fail_edits or self.deleted:
            raise RuntimeError("Unknown Message")
        self.content = content
        self.history.append(content)
        self.channel.edit_count += 1

    async def delete(self) -> None:
        if self.deleted:
            raise RuntimeError("Unknown Message")
        self.deleted = True


class FakeChannel:
    """In-memory chat channel.

    `confirm` decides how `ask_confirmation` answers: True answers after
    `confirm_delay`, False waits out the full timeout first.
    """

    def __init__(self, *, confirm: bool = False, confirm_delay: float = 0.0) -> None:
        self.sent: list[FakeMessage] = []
        self.typing_count = 0
        self.edit_count = 0
        self.confirm = confirm
        self.confirm_delay = confirm_delay
        self.prompts: list[tuple[str, str]] = []
        self.history_entries: list[HistoryEntry] = []
        self.history_requests: list[int] = []

    async def send(self, content: str) -> FakeMessage:
        message = FakeMessage(self, content)
        self.sent.append(message)
        return message

    async def trigger_typing(self) -> None:
        self.typing_count += 1

    async def ask_confirmation(self, content: str, *, label: str, timeout: float) -> bool:
        self.prompts.append((content, label))
        await asyncio.sleep(self.confirm_delay if self.confirm else timeout)
        return self.confirm

    async def history(self, limit: int) -> list[HistoryEntry]:
        self.history_requests.append(limit)
        return list(self.history_entries[:limit])

    @property
    def live(self) -> list[FakeMessage]:
        return [message for message in self.sent if not message.deleted]

    def texts(self) -> list[str]:
        return [message.content for message in self.sent]


def make_config(tmp_path: Path, **overrides: Any) -> BotConfig:
    values: dict[str, Any] = {
        "owner_id": OWNER_ID,
        "default_cwd": tmp_path,
        "state_path": tmp_path / "state" / "state.json",
        "attachment_dir": tmp_path / "attachments",
    }
    values.update(overrides)
    return BotConfig(**values)


def make_message(channel: FakeChannel, content: str = "hello", **overrides: Any) -> InboundMessage:
    values: dict[str, Any] = {"author_id": OWNER_ID, "content": content, "channel": channel}
    values.update(overrides)
    return InboundMessage(**values)


def assistant_text(*texts: str) -> dict[str, Any]:
    return {"type": "assistant", "message": {"content": [{"type": "text", "text": t} for t in texts]}}


def assistant_tool(name: str, **params: Any) -> dict[str, Any]:
    return {"type": "assistant", "message": {"content": [{"type": "tool_use", "name": name, "input": params}]}}


def result_record(result: str | None = None, **fields: Any) -> dict[str, Any]:
    record: dict[str, Any] = {"type": "result", "subtype": "success", **fields}
    if result is not None:
        record["result"] = result
    return record


def write_fake_cli(
    tmp_path: Path,
    lines: list[Any],
    *,
    exit_code: int = 0,
    stderr: str = "",
    delay: float = 0.0,
    linger: float = 0.0,
    name: str = "fake-assistant",
) -> tuple[Path, Path]:
    """Write an executable that records how it was called, then replays `lines`.

    Dict entries are printed as JSON, strings verbatim. Returns the script path
    and the path of the JSON file describing the invocation.
    """

    invocation = tmp_path / f"{name}.json"
    rendered = [json.dumps(line) if isinstance(line, dict) else str(line) for line in lines]
    script = tmp_path / name
    script.write_text(
        f"""#!{sys.executable}
import json, os, sys, time
prompt = sys.stdin.read()
with open({str(invocation)!r}, "w") as fh:
    json.dump({{"argv": sys.argv[1:], "stdin": prompt, "cwd": os.getcwd(), "env": dict(os.environ)}}, fh)
for line in {rendered!r}:
    print(line, flush=True)
    time.sleep({delay})
sys.stderr.write({stderr!r})
sys.stderr.flush()
time.sleep({linger})
sys.exit({exit_code})
""",
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script, invocation


def read_invocation(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))
