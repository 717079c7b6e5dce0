"""
Main entry point for the mqtt_tool command line.

This module is responsible for:
- Parsing command-line arguments.
- Loading configuration (YAML file and environment).
- Resolving authentication and starting the broker session.
- Running exactly one command once the session is ready.
- Managing the process lifecycle (batch timeout, signals, graceful shutdown).
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from mqtt_tool.cli.commands import COMMANDS, CommandContext
from mqtt_tool.cli.config_loader import DEFAULT_CONFIG_FILE, Settings, load_config
from mqtt_tool.cli.terminal import TerminalTitle
from mqtt_tool.client.auth import resolve_connection_config
from mqtt_tool.client.reconnect import ReconnectController
from mqtt_tool.client.session import Session
from mqtt_tool.errors import AuthenticationError

DEFAULT_BATCH_MS = 100


def setup_logging(verbose: bool = False):
    """
    Configures the global logging settings for the entire application.
    This should be called as early as possible during startup.
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'
    )

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mqtt_tool", description="Tool for inspecting and cleaning up retained MQTT messages.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Run with verbose logging")
    parser.add_argument("-b", "--batch", type=float, nargs="?", const=DEFAULT_BATCH_MS, default=None,
                        help="Stop after a short period (in ms). Useful for batching.")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_FILE, help="YAML configuration file")
    sub = parser.add_subparsers(dest="command", required=True, metavar="command")

    cmd = sub.add_parser("sub", help="subscribe to a (set of) topic(s) and print to console")
    cmd.add_argument("topic", nargs="?", default="#", help="topic selector (using + and # wild-cards if you want)")

    cmd = sub.add_parser("clear", help="clear any retained messages on topic")
    cmd.add_argument("topic", help="topic selector (using + and # wild-cards if you want)")

    cmd = sub.add_parser("purge", help="clear retained messages on the exact topics listed in a file or stdin")
    cmd.add_argument("file", nargs="?", default="", help="file with one topic per line")
    cmd.add_argument("-d", "--delay", type=int, default=None, help="delay between clears (in ms)")

    cmd = sub.add_parser("pub", help="publish message on topic")
    cmd.add_argument("topic", help="topic to publish to")
    cmd.add_argument("message", nargs="?", default="", help="message to send")
    cmd.add_argument("-r", "--retain", action="store_true", help="Publish the message with retain flag set")
    cmd.add_argument("-a", "--raw", action="store_true", help="Publish value raw, do not JSON encode it.")

    cmd = sub.add_parser("backup", help="create a backup of the given topic")
    cmd.add_argument("topic", nargs="?", default="#", help="topic selector (using + and # wild-cards if you want)")
    cmd.add_argument("-o", "--output", default=None, help="backup file to write")

    cmd = sub.add_parser("restore", help="Restore from a backup file or stdin if omitted")
    cmd.add_argument("file", nargs="?", default="", help="file to restore from")

    cmd = sub.add_parser("stress", help="publish timestamps at a fixed rate until interrupted")
    cmd.add_argument("-r", "--rate", type=float, default=10.0, help="publications per second")
    return parser


async def shutdown(signal_name: str, command_task: asyncio.Task):
    """Graceful shutdown handler: stops the running command, the caller cleans up."""
    logger.info(f"Received exit signal {signal_name}...")
    command_task.cancel()


async def main_application_runner(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    config = load_config(args.config)
    settings = Settings.from_sources(config, os.environ)

    try:
        connection_config = resolve_connection_config(
            url=settings.url,
            jwt=settings.jwt,
            home=Path.home(),
            cwd=Path.cwd(),
            cert_dir=settings.cert_dir,
        )
    except AuthenticationError as e:
        logger.critical(str(e))
        return 1

    title = TerminalTitle(sys.stdout)
    title.push("mqtt_tool")

    reconnect = ReconnectController(settings.initial_delay_ms, settings.max_delay_ms)
    session = Session(connection_config, reconnect)
    await session.start()

    loop = asyncio.get_running_loop()
    ctx = CommandContext(session=session, args=args, settings=settings, title=title)

    async def run_command():
        await session.wait_ready()
        await COMMANDS[args.command](ctx)

    command_task = asyncio.create_task(run_command())

    if args.batch is not None:
        loop.call_later((args.batch or DEFAULT_BATCH_MS) / 1000, command_task.cancel)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(
            sig,
            lambda s=sig: asyncio.create_task(shutdown(s.name, command_task))
        )

    try:
        await command_task
    except asyncio.CancelledError:
        logger.info("Command stopped.")
    except OSError as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        title.restore()
        await session.stop()
    return 0


def run():
    try:
        sys.exit(asyncio.run(main_application_runner()))
    except KeyboardInterrupt:
        # Handled by the signal handler, but good to catch here just in case.
        pass


if __name__ == "__main__":
    run()
