"""Application entry point for the history sanitizer."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import text2art

import settings
from adapters.chrome_history import ChromeHistory
from adapters.message_channel import MessageChannel
from adapters.sqlite_storage import SQLiteStateStore
from adapters.watchers import RuleRevisionWatcher, VisitWatcher
from core.clock import SystemClock
from core.commands import CommandService
from core.config import PipelineConfig, WatcherConfig
from core.processor import DeletionPipeline
from core.rules_engine import RuleSet
from core.state import StateRepository

NAME = "SANITIZER"
FONT = "tarty-1"


def _print_banner() -> None:
    # stdout carries the message channel, so the banner goes to stderr.
    print(text2art(NAME, FONT, space=1), file=sys.stderr)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/sanitizer.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _pipeline_config() -> PipelineConfig:
    return PipelineConfig(
        commit_delay_seconds=settings.COMMIT_DELAY_MS / 1000,
        log_window_days=settings.LOG_WINDOW_DAYS,
    )


def _build_commands(clock: SystemClock) -> tuple[StateRepository, RuleSet, CommandService]:
    store = SQLiteStateStore(settings.STATE_DB_PATH)
    store.init_db()
    repository = StateRepository(store, clock)
    rule_set = RuleSet()
    commands = CommandService(repository, rule_set, clock, _pipeline_config())
    return repository, rule_set, commands


async def _serve() -> None:
    logger = logging.getLogger(__name__)

    if not settings.HISTORY_DB_PATH:
        raise RuntimeError("history_db must be set in config.json to run the sanitizer")
    if not os.path.exists(settings.HISTORY_DB_PATH):
        raise FileNotFoundError(f"History database not found: {settings.HISTORY_DB_PATH}")

    clock = SystemClock()
    repository, rule_set, commands = _build_commands(clock)
    history = ChromeHistory(settings.HISTORY_DB_PATH)
    pipeline = DeletionPipeline(rule_set, repository, history, clock, _pipeline_config())
    watcher_config = WatcherConfig(
        visit_poll_seconds=settings.VISIT_POLL_SECONDS,
        rules_poll_seconds=settings.RULES_POLL_SECONDS,
    )

    # The revision watcher's first poll compiles the rules at startup.
    rule_watcher = RuleRevisionWatcher(
        repository.rules_revision,
        commands.reload_rules,
        watcher_config.rules_poll_seconds,
    )
    await rule_watcher.poll_once()
    logger.info("%s rules are loaded", len(rule_set))

    visit_watcher = VisitWatcher(history, pipeline, watcher_config.visit_poll_seconds)
    channel = MessageChannel(pipeline, commands, sys.stdin, sys.stdout)

    stop = asyncio.Event()
    logger.info("Listening for visits and host messages...")
    try:
        await asyncio.gather(
            rule_watcher.run(stop),
            visit_watcher.run(stop),
            channel.run(stop),
        )
    finally:
        await pipeline.drain()
    logger.info("Stopped")


def _run() -> None:
    _print_banner()
    _configure_logging()
    logging.getLogger(__name__).info("Starting history sanitizer")
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        pass


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2))


def _print_rules(state: dict) -> None:
    rules = state.get("rules", [])
    if not rules:
        print("No rules configured.")
        return
    for index, rule in enumerate(rules):
        enabled = "on " if rule.get("enabled") is not False else "off"
        print(f"{index}. [{enabled}] {rule.get('type', 'keyword')} | {rule.get('pattern', '')}")


def _print_stats(state: dict) -> None:
    counters = state.get("counters", {})
    print(f"Deleted: {counters.get('deletedCount', 0)} (since {counters.get('lastReset')})")
    print(f"Last {settings.LOG_WINDOW_DAYS} days: {state.get('last30Count', 0)}")


async def _manage(args: argparse.Namespace) -> None:
    _, _, commands = _build_commands(SystemClock())

    if args.command == "rules":
        _print_rules(await commands.get_state())
    elif args.command == "add-rule":
        await commands.add_rule(args.pattern, args.type)
        _print_rules(await commands.get_state())
    elif args.command == "remove-rule":
        await commands.remove_rule(args.index)
        _print_rules(await commands.get_state())
    elif args.command == "toggle-rule":
        await commands.toggle_rule(args.index)
        _print_rules(await commands.get_state())
    elif args.command == "stats":
        _print_stats(await commands.get_state())
    elif args.command == "reset-counter":
        await commands.reset_counter()
        _print_stats(await commands.get_state())
    elif args.command == "clear-logs":
        await commands.clear_logs()
    elif args.command == "export":
        _print_json(await commands.export_state())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="history-sanitizer")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the sanitizer service")
    subparsers.add_parser("rules", help="List rules with their indices")

    add_parser = subparsers.add_parser("add-rule", help="Append a rule")
    add_parser.add_argument("pattern")
    add_parser.add_argument("--type", choices=["domain", "keyword"], default="keyword")

    remove_parser = subparsers.add_parser("remove-rule", help="Remove the rule at INDEX")
    remove_parser.add_argument("index", type=int)

    toggle_parser = subparsers.add_parser("toggle-rule", help="Enable/disable the rule at INDEX")
    toggle_parser.add_argument("index", type=int)

    subparsers.add_parser("stats", help="Show deletion counters")
    subparsers.add_parser("reset-counter", help="Zero the deletion counter")
    subparsers.add_parser("clear-logs", help="Clear the deletion log")
    subparsers.add_parser("export", help="Print rules, counters and logs as JSON")

    args = parser.parse_args(argv)
    if args.command in (None, "run"):
        _run()
        return
    _configure_logging()
    asyncio.run(_manage(args))


if __name__ == "__main__":
    main()
