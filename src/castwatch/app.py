"""Application entry point for the castwatch poller."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

from castwatch import settings
from castwatch.adapters.queued_notifier import QueuedNotifier
from castwatch.adapters.rss_source import RssSource
from castwatch.adapters.sqlite_storage import SQLiteStorage
from castwatch.adapters.telegram_bot_notifier import TelegramBotNotifier
from castwatch.adapters.telegram_notifier import TelegramSavedMessagesNotifier
from castwatch.adapters.youtube_source import YouTubeSource
from castwatch.core.commit import CommitEngine
from castwatch.core.config import AppConfig, ScheduleConfig
from castwatch.core.cycle import PollCycle
from castwatch.core.errors import ConfigError
from castwatch.core.processor import ContentProcessor, FeedProcessor
from castwatch.get_session import authorize, build_client
from castwatch.scheduler import PollScheduler

NAME = "CASTWATCH"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    names = redact_cfg.get("patterns", ["BOT_API", "YOUTUBE_API_KEY", "API_HASH"])
    values = [os.getenv(name) for name in names]
    return sorted({value for value in values if value}, key=len, reverse=True)


def _configure_logging(config: dict) -> None:
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/castwatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # The discovery client and APScheduler are chatty at INFO.
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def _open_storage(config: AppConfig) -> SQLiteStorage:
    storage = SQLiteStorage(config.db_path)
    storage.init_db()
    return storage


def _build_sink(config: AppConfig, client):
    # Select the notification adapter based on configuration to keep the core
    # independent from delivery details.
    notifications = config.notifications
    if notifications.method == "bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise ConfigError("BOT_API is required when notification_method=bot")
        return TelegramBotNotifier(bot_token=bot_token, snippet_chars=notifications.snippet_chars)
    return TelegramSavedMessagesNotifier(client, notifications.snippet_chars)


def _build_cycles(
    config: AppConfig, storage: SQLiteStorage, notifier: QueuedNotifier
) -> list[tuple[PollCycle, ScheduleConfig]]:
    cycles = []
    if config.video_sources:
        api_key = os.getenv("YOUTUBE_API_KEY")
        if not api_key:
            raise ConfigError("YOUTUBE_API_KEY is required when video_sources are configured")
        processor = ContentProcessor(
            content_source=YouTubeSource(api_key),
            storage=storage,
            notifier=notifier,
            commit_engine=CommitEngine(storage),
            detection=config.detection,
        )
        cycles.append((PollCycle("content", config.video_sources, processor), config.content_schedule))
    if config.feed_sources:
        processor = FeedProcessor(
            feed_source=RssSource(),
            storage=storage,
            notifier=notifier,
            detection=config.detection,
        )
        cycles.append((PollCycle("feeds", config.feed_sources, processor), config.feed_schedule))
    return cycles


async def _open_client(config: AppConfig):
    if config.notifications.method != "saved_messages":
        return None

    client = build_client()
    await client.connect()
    await authorize(client)
    return client


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(stop.set))


async def _serve(config: AppConfig, once: bool = False) -> None:
    storage = _open_storage(config)
    removed = await storage.cleanup(config.retention.ttl_days)
    LOGGER.info("Retention cleanup removed %s records", removed)

    client = await _open_client(config)
    notifier: Optional[QueuedNotifier] = None
    try:
        notifier = QueuedNotifier(_build_sink(config, client))
        cycles = _build_cycles(config, storage, notifier)
        notifier.start()
        LOGGER.info(
            "%s video sources, %s feeds, notification method %s",
            len(config.video_sources),
            len(config.feed_sources),
            config.notifications.method,
        )

        if once:
            for cycle, _ in cycles:
                await cycle.run()
            return

        scheduler = PollScheduler()
        for cycle, schedule in cycles:
            scheduler.add_cycle(cycle, schedule)

        stop = asyncio.Event()
        _install_signal_handlers(stop)
        scheduler.start()
        LOGGER.info("Scheduler started. Waiting for triggers...")
        await stop.wait()

        LOGGER.info("Shutting down, letting running cycles finish their current item")
        scheduler.shutdown()
        await scheduler.wait_idle()
    finally:
        if notifier is not None:
            await notifier.stop()
        if client is not None:
            await client.disconnect()
        LOGGER.info("castwatch stopped")


async def _print_stats(config: AppConfig) -> None:
    stats = await _open_storage(config).get_stats()
    for key, value in stats.items():
        print(f"{key:>18}: {value}")


async def _print_history(config: AppConfig, item_id: str) -> None:
    state, markers = await _open_storage(config).get_item_history(item_id)
    if state is None and not markers:
        print(f"No records for {item_id}")
        return
    if state is not None:
        print(
            f"{state.id} | {state.lifecycle_state.value} | {state.title} | {state.source_name} | "
            f"updated {state.last_updated_at.isoformat()}"
        )
    for marker in markers:
        print(f"  sent {marker.kind.value} ({marker.lifecycle_state.value}) at {marker.sent_at.isoformat()}")


async def _login() -> None:
    client = build_client()
    await client.connect()
    try:
        await authorize(client)
    finally:
        await client.disconnect()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="castwatch")
    parser.add_argument("--config", help="Path to config.json")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the scheduled poller")
    subparsers.add_parser("once", help="Run every poll cycle once and exit")
    subparsers.add_parser("stats", help="Show stored notification statistics")
    history = subparsers.add_parser("history", help="Show stored state and sent markers for one item")
    history.add_argument("item_id")
    subparsers.add_parser("login", help="Authorize the Telegram user session")

    args = parser.parse_args(argv)
    load_dotenv()

    if args.command == "login":
        try:
            asyncio.run(_login())
        except ConfigError as exc:
            parser.exit(1, f"castwatch: {exc}\n")
        return

    try:
        config = settings.load_config(args.config)
    except ConfigError as exc:
        parser.exit(1, f"castwatch: {exc}\n")

    if args.command == "stats":
        asyncio.run(_print_stats(config))
        return
    if args.command == "history":
        asyncio.run(_print_history(config, args.item_id))
        return

    _print_banner()
    _configure_logging(config.logging)
    LOGGER.info("Starting castwatch")
    try:
        asyncio.run(_serve(config, once=args.command == "once"))
    except ConfigError as exc:
        LOGGER.error("Configuration error: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
