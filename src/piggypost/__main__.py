"""CLI entry point for the PiggyPost terminal client.

Connects to the configured relay, prints incoming chat to stdout, and sends
every line typed on stdin. Lines starting with ``/`` are commands:

```text
/to <pubkey> [name]       send the following lines encrypted to <pubkey>
/public                   back to the public channel
/profile <name> [about]   announce your display profile
/quit                     leave
```

Examples:
    ```bash
    python -m piggypost
    python -m piggypost --relay wss://relay.example.com --log-level DEBUG
    python -m piggypost --config config/piggypost.yaml
    ```
"""

import argparse
import asyncio
import datetime
import signal
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from piggypost.core.exceptions import (
    ConfigurationError,
    ConnectivityError,
    PersistenceError,
    PiggyPostError,
)
from piggypost.core.logger import Logger, setup_logging
from piggypost.models.message import Recipient
from piggypost.services.configs import ClientConfig, RelayConfig, StorageConfig
from piggypost.services.context import ClientContext
from piggypost.services.messenger import ChatView, MessagingEngine


CONFIG_PATH = Path("config") / "piggypost.yaml"

logger = Logger("cli")


class TerminalView(ChatView):
    """Renders chat events as timestamped lines on a text stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def _write(self, line: str) -> None:
        self._stream.write(line + "\n")
        self._stream.flush()

    @staticmethod
    def _clock(created_at: int) -> str:
        try:
            return datetime.datetime.fromtimestamp(created_at).strftime("%H:%M")  # noqa: DTZ006
        except (OverflowError, OSError, ValueError):
            return str(created_at)

    def on_public_message(
        self, pubkey: str, content: str, created_at: int, display_name: str
    ) -> None:
        self._write(f"[{self._clock(created_at)}] {display_name}: {content}")

    def on_encrypted_message(
        self,
        pubkey: str,
        content: str,
        created_at: int,
        display_name: str,
        for_current_user: bool,  # noqa: FBT001
    ) -> None:
        marker = "to you" if for_current_user else "private"
        self._write(f"[{self._clock(created_at)}] {display_name} ({marker}): {content}")

    def on_user_joined(self, name: str, created_at: int) -> None:
        self._write(f"* {name} joined")

    def on_user_renamed(self, old_name: str, new_name: str, created_at: int) -> None:
        self._write(f"* {old_name} is now known as {new_name}")

    def on_recipient_changed(self, recipient: Recipient | None) -> None:
        if recipient is None:
            self._write("* back to the public channel")
        else:
            self._write(f"* messaging {recipient.name or recipient.pubkey[:8]} privately")

    def on_connection_changed(self, online: bool) -> None:  # noqa: FBT001
        self._write("* online" if online else "* offline")

    def notice(self, text: str) -> None:
        self._write(f"! {text}")


async def handle_line(engine: MessagingEngine, view: TerminalView, line: str) -> bool:
    """Execute one input line. Returns ``False`` when the user asked to quit."""
    text = line.rstrip("\n")
    if not text.startswith("/"):
        try:
            await engine.send(text)
        except PiggyPostError as e:
            view.notice(f"not sent ({e}): {text}")
        return True

    command, _, rest = text[1:].partition(" ")
    args = rest.split()

    if command == "quit":
        return False

    if command == "public":
        engine.set_recipient(None)
    elif command == "to":
        if not args:
            view.notice("usage: /to <pubkey> [name]")
            return True
        try:
            recipient = Recipient(pubkey=args[0].lower(), name=" ".join(args[1:]))
        except (TypeError, ValueError) as e:
            view.notice(f"invalid recipient: {e}")
            return True
        engine.set_recipient(recipient)
    elif command == "profile":
        if not args:
            view.notice("usage: /profile <name> [about]")
            return True
        try:
            await engine.publish_profile(args[0], " ".join(args[1:]))
        except (PiggyPostError, ValueError) as e:
            view.notice(f"profile not published: {e}")
    else:
        view.notice(f"unknown command /{command}")
    return True


async def stdin_lines() -> AsyncIterator[str]:
    """Yield lines from stdin without blocking the event loop."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    while True:
        raw = await reader.readline()
        if not raw:
            return
        yield raw.decode("utf-8", errors="replace")


async def _next_line(lines: AsyncIterator[str]) -> str | None:
    return await anext(lines, None)


async def run_client(
    engine: MessagingEngine,
    view: TerminalView,
    lines: AsyncIterator[str],
    shutdown: asyncio.Event,
) -> int:
    """Start the engine and process input lines until quit, EOF, or shutdown.

    Returns:
        Exit code: 0 for a clean exit, 1 if the relay could not be reached.
    """
    try:
        await engine.start()
    except ConnectivityError as e:
        logger.error("relay_unreachable", error=str(e))
        return 1

    local = engine.context.profiles.get_local()
    if local and local.get("name"):
        try:
            await engine.publish_profile(local["name"], local.get("about", ""))
        except (PiggyPostError, ValueError) as e:
            logger.warning("profile_announce_failed", error=str(e))
    else:
        view.notice("set your display name with /profile <name> [about]")

    shutdown_task = asyncio.create_task(shutdown.wait())
    try:
        while True:
            line_task = asyncio.create_task(_next_line(lines))
            done, _ = await asyncio.wait(
                {line_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if shutdown_task in done:
                line_task.cancel()
                break
            line = line_task.result()
            if line is None or not await handle_line(engine, view, line):
                break
    finally:
        shutdown_task.cancel()
        await engine.stop()
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the terminal client."""
    parser = argparse.ArgumentParser(
        prog="piggypost",
        description="PiggyPost terminal chat client",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help=f"Config path (default: {CONFIG_PATH})",
    )

    parser.add_argument(
        "--relay",
        help="Relay URL, overrides relay.url from the config",
    )

    parser.add_argument(
        "--store",
        type=Path,
        help="State file path, overrides storage.path from the config",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level, overrides logging.level from the config",
    )

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ClientConfig:
    """Load the YAML config (defaults if missing) and apply CLI overrides.

    Raises:
        ConfigurationError: If the file is not valid YAML.
        pydantic.ValidationError: If a value fails validation.
    """
    if args.config.exists():
        config = ClientConfig.from_yaml(args.config)
    else:
        logger.warning("config_not_found", path=str(args.config))
        config = ClientConfig()

    updates: dict[str, object] = {}
    if args.relay:
        updates["relay"] = RelayConfig(url=args.relay, connect_timeout=config.relay.connect_timeout)
    if args.store:
        updates["storage"] = StorageConfig(path=str(args.store))
    if args.log_level:
        updates["logging"] = config.logging.model_copy(update={"level": args.log_level})
    return config.model_copy(update=updates) if updates else config


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, build the client, and run it."""
    args = parse_args(argv)
    setup_logging(args.log_level or "INFO")

    try:
        config = load_config(args)
    except (ConfigurationError, ValidationError) as e:
        logger.error("config_invalid", error=str(e))
        return 2
    setup_logging(config.logging.level, json_output=config.logging.json_output)

    view = TerminalView()
    engine = MessagingEngine(ClientContext.create(config), view)

    shutdown = asyncio.Event()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        return await run_client(engine, view, stdin_lines(), shutdown)
    except PersistenceError as e:
        logger.error("identity_unavailable", error=str(e))
        return 1


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
