import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

from clawde.config import BotConfig, load_config
from clawde.console import run_console
from clawde.context import PromptContext
from clawde.errors import ConfigError
from clawde.handler import MessageHandler
from clawde.log_utils import build_log_config, configure_logging
from clawde.memory import MemoryStore
from clawde.session.launcher import SessionLauncher
from clawde.slash import CommandContext
from clawde.state import StateStore, default_state

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="clawde", description="Remote-control chat bot for a local coding assistant")
    parser.add_argument("--cwd", type=Path, help="Working directory for assistant sessions")
    parser.add_argument("--model", help="Model to use for assistant sessions")
    parser.add_argument("--log-stderr", action="store_true", help="Also write logs to stderr")
    return parser


def build_app(config: BotConfig) -> tuple[MessageHandler, CommandContext]:
    store = StateStore(config.state_path, default_state(config))
    launcher = SessionLauncher(config.executable, timeout_s=config.session_timeout_s)
    prompt_context = PromptContext()
    handler = MessageHandler(config, store, launcher, context=prompt_context)
    commands = CommandContext(
        store=store,
        arbiter=handler.arbiter,
        prompt_context=prompt_context,
        memory=MemoryStore(),
    )
    return handler, commands


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    log_config = build_log_config()
    if args.log_stderr:
        log_config = dataclasses.replace(log_config, stderr=True)
    configure_logging(log_config)

    try:
        config = load_config()
    except ConfigError as exc:
        print(f"clawde: {exc}", file=sys.stderr)
        return 2

    handler, commands = build_app(config)
    if args.cwd is not None:
        cwd = args.cwd.expanduser().resolve()
        if not cwd.is_dir():
            print(f"clawde: not a directory: {cwd}", file=sys.stderr)
            return 2
        commands.store.update(cwd=str(cwd))
    if args.model:
        commands.store.update(model=args.model)

    logger.info("Starting console session in %s", commands.store.load().cwd)
    await run_console(handler, commands)
    return 0


def main_entry():
    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main_entry())
