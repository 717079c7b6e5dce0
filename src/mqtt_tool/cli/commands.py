"""
Command drivers.

Each command receives a `CommandContext` once the session is ready.
One-shot commands (pub, purge, restore) return when done; subscription
commands (sub, clear, backup, stress) run until cancelled.
"""
import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, IO, Tuple

from mqtt_tool.cli.config_loader import Settings
from mqtt_tool.cli.stress import StressPublisher
from mqtt_tool.cli.terminal import TerminalTitle
from mqtt_tool.client.models import Delivery
from mqtt_tool.client.session import Session
from mqtt_tool.errors import MalformedRecord
from mqtt_tool.retained.codec import BackupRecord, BackupWriter, decode_record
from mqtt_tool.retained.lines import Lines, iterate_lines, read_lines
from mqtt_tool.retained.purge import PurgeThrottler

logger = logging.getLogger(__name__)

PUBLISH_SETTLE_SECONDS = 0.2


@dataclass(kw_only=True)
class CommandContext:
    session: Session
    args: argparse.Namespace
    settings: Settings = field(default_factory=Settings)
    title: TerminalTitle = field(default_factory=lambda: TerminalTitle(enabled=False))
    out: IO[str] = field(default_factory=lambda: sys.stdout)
    stdin: IO[str] = field(default_factory=lambda: sys.stdin)

    @property
    def verbose(self) -> bool:
        return bool(getattr(self.args, "verbose", False))


def render_payload(payload: bytes) -> Any:
    """JSON value of a payload for display; None when empty, raw text when not JSON."""
    if not payload:
        return None
    text = payload.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


async def _wait_forever(ctx: CommandContext):
    await ctx.session.join()
    await asyncio.Future()


async def cmd_sub(ctx: CommandContext):
    topic_filter = ctx.args.topic
    logger.info(f"subscribing to: {topic_filter}")

    async def print_delivery(delivery: Delivery):
        if ctx.verbose:
            rendered = json.dumps(render_payload(delivery.payload))
            print(delivery.topic, rendered, delivery.retain, file=ctx.out, flush=True)
        else:
            print(delivery.topic, file=ctx.out, flush=True)

    ctx.session.on_message(print_delivery)
    await ctx.session.subscribe(topic_filter, retain_as_published=True)
    ctx.title.push(f"mqtt_tool sub {topic_filter}")
    await _wait_forever(ctx)


async def cmd_clear(ctx: CommandContext):
    topic_filter = ctx.args.topic
    logger.info(f"subscribing to: {topic_filter}")

    async def clear_retained(delivery: Delivery):
        # live (non-retained) traffic on the same filter is ignored
        if delivery.payload and delivery.retain:
            await ctx.session.publish(delivery.topic, None, retain=True)
            logger.info(f"cleared {delivery.topic}")

    ctx.session.on_message(clear_retained)
    await ctx.session.subscribe(topic_filter)
    ctx.title.push(f"mqtt_tool clear {topic_filter}")
    await _wait_forever(ctx)


async def cmd_purge(ctx: CommandContext):
    ctx.title.push("mqtt_tool purge")
    delay_ms = ctx.args.delay if ctx.args.delay is not None else ctx.settings.purge_delay_ms
    throttler = PurgeThrottler(ctx.session, delay_ms=delay_ms)
    await throttler.drain(read_lines(ctx.args.file, ctx.stdin))


async def cmd_pub(ctx: CommandContext):
    payload = ctx.args.message if ctx.args.raw else json.dumps(ctx.args.message)
    await ctx.session.publish(ctx.args.topic, payload, retain=ctx.args.retain)
    logger.info(f"published to {ctx.args.topic}")
    await asyncio.sleep(PUBLISH_SETTLE_SECONDS)


async def cmd_backup(ctx: CommandContext):
    topic_filter = ctx.args.topic
    output = ctx.args.output or ctx.settings.backup_file
    logger.info(f"subscribing to: {topic_filter}")

    with open(output, "w", encoding="utf-8") as f:
        writer = BackupWriter(f)

        async def back_up(delivery: Delivery):
            logger.info(f"backing up {delivery.topic}")
            writer.write(BackupRecord.from_delivery(delivery))

        ctx.session.on_message(back_up)
        await ctx.session.subscribe(topic_filter, retain_as_published=True)
        ctx.title.push(f"mqtt_tool backup {topic_filter}")
        try:
            await _wait_forever(ctx)
        finally:
            logger.info(f"Backup of {writer.count} messages written to {output}")


async def restore_records(session: Session, lines: Lines) -> Tuple[int, int]:
    """
    Replays backup lines in order. Malformed lines are logged and skipped.
    Returns (restored, skipped).
    """
    restored = skipped = number = 0
    async for line in iterate_lines(lines):
        number += 1
        if not line.strip():
            continue
        try:
            record = decode_record(line)
        except MalformedRecord as e:
            logger.warning(f"Skipping malformed backup line {number}: {e}")
            skipped += 1
            continue
        try:
            # paced by the local write only, no broker acknowledgement is awaited at QoS 0
            await session.publish(record.topic, record.payload, retain=record.retain)
        except ValueError as e:
            logger.warning(f"Skipping backup line {number} with invalid topic {record.topic!r}: {e}")
            skipped += 1
            continue
        logger.info(f"restoring {record.topic}")
        restored += 1
    return restored, skipped


async def cmd_restore(ctx: CommandContext):
    ctx.title.push("mqtt_tool restore")
    restored, skipped = await restore_records(ctx.session, read_lines(ctx.args.file, ctx.stdin))
    logger.info(f"Restore finished: {restored} restored, {skipped} skipped.")


async def cmd_stress(ctx: CommandContext):
    publisher = StressPublisher(ctx.session, rate=ctx.args.rate)
    ctx.title.push(f"mqtt_tool stress {publisher.topic}")
    await publisher.run()


COMMANDS: Dict[str, Callable[[CommandContext], Awaitable[None]]] = {
    "sub": cmd_sub,
    "clear": cmd_clear,
    "purge": cmd_purge,
    "pub": cmd_pub,
    "backup": cmd_backup,
    "restore": cmd_restore,
    "stress": cmd_stress,
}
