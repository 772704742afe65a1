"""Bot settings loaded from the environment and `.env` files.

`<config_dir>/.env` is read first, then a `.env` in the working directory;
neither overrides variables already present in the real environment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from clawde import paths
from clawde.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sonnet"
DEFAULT_PERMISSION_MODE = "acceptEdits"
DEFAULT_EXECUTABLE = "claude"
DEFAULT_SESSION_TIMEOUT_S = 600.0
DEFAULT_BOT_NAME = "Clawde"
DEFAULT_OWNER_NAME = "the user"


@dataclass(frozen=True)
class BotConfig:
    owner_id: str
    default_cwd: Path
    state_path: Path
    attachment_dir: Path
    default_model: str = DEFAULT_MODEL
    default_permission_mode: str = DEFAULT_PERMISSION_MODE
    executable: str = DEFAULT_EXECUTABLE
    session_timeout_s: float = DEFAULT_SESSION_TIMEOUT_S
    bot_name: str = DEFAULT_BOT_NAME
    owner_name: str = DEFAULT_OWNER_NAME
    system_prompt: str = ""

    @property
    def owner_mention(self) -> str:
        return f"<@{self.owner_id}>"


def env_file() -> Path:
    return paths.config_dir() / ".env"


def _env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r; using %s", name, raw, default)
        return default
    return value


def load_config(*, load_env_files: bool = True) -> BotConfig:
    """Read `CLAWDE_*` variables into a `BotConfig`."""

    if load_env_files:
        load_dotenv(env_file(), override=False)
        load_dotenv()

    owner_id = _env("CLAWDE_OWNER_ID")
    if not owner_id:
        raise ConfigError("CLAWDE_OWNER_ID is not set; the bot only answers its owner.")

    cwd = Path(_env("CLAWDE_DEFAULT_CWD") or Path.home()).expanduser()
    state_path = Path(_env("CLAWDE_STATE_PATH") or paths.state_file()).expanduser()
    attachment_dir = Path(_env("CLAWDE_ATTACHMENT_DIR") or paths.attachment_dir()).expanduser()

    return BotConfig(
        owner_id=owner_id,
        default_cwd=cwd,
        state_path=state_path,
        attachment_dir=attachment_dir,
        default_model=_env("CLAWDE_DEFAULT_MODEL") or DEFAULT_MODEL,
        default_permission_mode=_env("CLAWDE_DEFAULT_PERMISSION_MODE") or DEFAULT_PERMISSION_MODE,
        executable=_env("CLAWDE_CLI") or DEFAULT_EXECUTABLE,
        session_timeout_s=_env_float("CLAWDE_SESSION_TIMEOUT_S", DEFAULT_SESSION_TIMEOUT_S),
        bot_name=_env("CLAWDE_BOT_NAME") or DEFAULT_BOT_NAME,
        owner_name=_env("CLAWDE_OWNER_NAME") or DEFAULT_OWNER_NAME,
        system_prompt=os.getenv("CLAWDE_SYSTEM_PROMPT", ""),
    )
