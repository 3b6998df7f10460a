"""Command line entrypoint for ingestion runs and store health checks.

Usage:
    chat-ingest ingest [--dry-run] [--chat ID] [--depth N | --days N | --since ISO --until ISO | --include ID ...]
    chat-ingest ingest-hub [--days N] [--write]
    chat-ingest health
    chat-ingest hub-health
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from collections.abc import Sequence

from chat_ingest.config import Settings, load_settings
from chat_ingest.db.base import init_target_store
from chat_ingest.db.session import get_hub_engine, get_source_engine, get_target_engine, get_target_sessionmaker
from chat_ingest.errors import ConfigurationError, IngestError
from chat_ingest.logging_config import configure_logging
from chat_ingest.schemas.filters import RangeFilterPolicy, parse_range_filter
from chat_ingest.services.health import StoreHealth, check_hub, check_store
from chat_ingest.services.hub_ingestion import HubIngestSummary, run_hub_ingestion
from chat_ingest.services.ingestion import IngestOptions, IngestRunSummary, run_ingestion
from chat_ingest.sources.evolution_reader import EvolutionMessageReader
from chat_ingest.sources.hub_reader import HubEventReader

logger = logging.getLogger(__name__)

_STOPPABLE_COMMANDS = frozenset({"ingest", "ingest-hub"})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chat-ingest", description="Incremental chat message ingestion.")
    commands = parser.add_subparsers(dest="command", required=True)

    ingest = commands.add_parser("ingest", help="Import source rows into the target store.")
    ingest.add_argument("--dry-run", action="store_true", help="Map, validate and log without writing.")
    ingest.add_argument("--chat", dest="chat_id", help="Process a single conversation id.")
    window = ingest.add_mutually_exclusive_group()
    window.add_argument("--include", nargs="+", metavar="ID", help="Import only these conversations, in full.")
    window.add_argument("--depth", type=int, help="Import roughly the last N messages of each conversation.")
    window.add_argument("--days", type=int, help="Import the last N days of each conversation.")
    window.add_argument("--since", help="ISO-8601 lower bound (inclusive).")
    ingest.add_argument("--until", help="ISO-8601 upper bound (inclusive); absolute window only.")
    ingest.add_argument("--batch-size", type=int, help="Rows per batch (default: settings).")
    ingest.add_argument("--workers", type=int, help="Conversations processed in parallel (default: settings).")

    hub = commands.add_parser("ingest-hub", help="Import hub events from a trailing window.")
    hub.add_argument("--days", type=int, help="Window length in days (default: settings).")
    hub.add_argument("--write", action="store_true", help="Write to the target store instead of a dry run.")
    hub.add_argument("--batch-size", type=int, help="Events per write transaction (default: settings).")

    commands.add_parser("health", help="Check source, target and hub connectivity.")
    commands.add_parser("hub-health", help="Check hub connectivity and count stored events.")
    return parser


def build_policy(args: argparse.Namespace, settings: Settings) -> RangeFilterPolicy:
    """Return the range filter policy selected on the command line, else the configured one."""

    if args.until is not None and (args.include or args.depth is not None or args.days is not None):
        raise ConfigurationError("--until cannot be combined with --include, --depth or --days.")
    if args.include:
        return parse_range_filter({"type": "include", "conversation_ids": args.include})
    if args.depth is not None:
        return parse_range_filter({"type": "depth", "depth": args.depth})
    if args.days is not None:
        return parse_range_filter({"type": "relative-days", "days": args.days})
    if args.since is not None or args.until is not None:
        return parse_range_filter({"type": "absolute", "since": args.since, "until": args.until})
    return settings.ingest_filter


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        configure_logging()
        logger.error("cli.configuration_invalid error=%s", exc)
        return 1
    configure_logging(settings.log_level)

    stop_event = threading.Event()
    if args.command in _STOPPABLE_COMMANDS:
        _install_signal_handlers(stop_event)

    handlers = {
        "ingest": _cmd_ingest,
        "ingest-hub": _cmd_ingest_hub,
        "health": _cmd_health,
        "hub-health": _cmd_hub_health,
    }
    try:
        return handlers[args.command](args, settings, stop_event)
    except IngestError as exc:
        logger.error("cli.command_failed command=%s error=%s", args.command, exc)
        return 1


def _cmd_ingest(args: argparse.Namespace, settings: Settings, stop_event: threading.Event) -> int:
    policy = build_policy(args, settings)
    options = IngestOptions(
        tenant_id=settings.tenant_id,
        batch_size=_positive("--batch-size", args.batch_size, settings.batch_size),
        dry_run=args.dry_run,
        channel_prefix=settings.channel_prefix,
        discovery_limit=settings.discovery_limit,
        max_workers=_positive("--workers", args.workers, settings.ingest_workers),
    )
    logger.info(
        "cli.ingest_started env=%s tenant_id=%s policy=%s dry_run=%s",
        settings.env_name,
        settings.tenant_id,
        policy.type,
        options.dry_run,
    )

    target_sessions = None
    if not options.dry_run:
        init_target_store(get_target_engine())
        target_sessions = get_target_sessionmaker()
    summary = run_ingestion(
        reader=EvolutionMessageReader(get_source_engine()),
        target_sessions=target_sessions,
        policy=policy,
        options=options,
        chat_id=args.chat_id,
        stop_event=stop_event,
    )
    _print_run_summary(summary)
    return 1 if summary.failed_count else 0


def _cmd_ingest_hub(args: argparse.Namespace, settings: Settings, stop_event: threading.Event) -> int:
    target_sessions = None
    if args.write:
        init_target_store(get_target_engine())
        target_sessions = get_target_sessionmaker()
    summary = run_hub_ingestion(
        HubEventReader(get_hub_engine()),
        days=_positive("--days", args.days, settings.hub_default_days),
        tenant_id=settings.tenant_id,
        dry_run=not args.write,
        target_sessions=target_sessions,
        batch_size=_positive("--batch-size", args.batch_size, settings.batch_size),
        stop_event=stop_event,
    )
    _print_hub_summary(summary)
    return 0


def _cmd_health(args: argparse.Namespace, settings: Settings, stop_event: threading.Event) -> int:
    results = [
        check_store("source", get_source_engine()),
        check_store("target", get_target_engine()),
    ]
    if settings.hub_database_url:
        results.append(check_hub(HubEventReader(get_hub_engine())))
    return _print_health(results)


def _cmd_hub_health(args: argparse.Namespace, settings: Settings, stop_event: threading.Event) -> int:
    return _print_health([check_hub(HubEventReader(get_hub_engine()))])


def _positive(flag: str, value: int | None, default: int) -> int:
    if value is None:
        return default
    if value < 1:
        raise ConfigurationError(f"{flag} must be a positive integer.")
    return value


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _request_stop(signum: int, _frame: object) -> None:
        logger.info("cli.stop_requested signal=%s", signal.Signals(signum).name)
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, _request_stop)


def _print_run_summary(summary: IngestRunSummary) -> None:
    print("Ingest complete" if not summary.dry_run else "Ingest dry run complete")
    print(f"conversations={len(summary.conversations)}")
    print(f"failed={summary.failed_count}")
    print(f"batches={summary.batches}")
    print(f"imported={summary.imported}")
    print(f"updated={summary.updated}")
    print(f"skipped_invalid={summary.skipped_invalid}")
    for result in summary.conversations:
        line = (
            f"  {result.chat_id} status={result.phase.value} batches={result.batches} "
            f"imported={result.imported} skipped={result.skipped_invalid} "
            f"cursor=({result.cursor.last_ts_seconds}, {result.cursor.last_message_id})"
        )
        if result.error:
            line += f" error={result.error}"
        print(line)


def _print_hub_summary(summary: HubIngestSummary) -> None:
    print("Hub ingest complete" if not summary.dry_run else "Hub ingest dry run complete")
    print(f"window={summary.since.isoformat()}..{summary.until.isoformat()}")
    print(f"chats={len(summary.chats)}")
    print(f"events={summary.events_read}")
    print(f"accepted={summary.accepted}")
    print(f"skipped_invalid={summary.skipped_invalid}")
    print(f"imported={summary.imported}")
    if summary.interrupted:
        print("interrupted=true")
    for chat in summary.chats.values():
        print(f"  {chat.chat_id} count={chat.count} first_ts={chat.first_ts} last_ts={chat.last_ts}")
        for sample in chat.sample:
            print(f"    {sample['ts']} {sample['role']}: {sample['text']}")


def _print_health(results: list[StoreHealth]) -> int:
    for result in results:
        status = "OK" if result.ok else "FAILED"
        line = f"{result.name} {status}"
        if result.event_count is not None:
            line += f" count={result.event_count}"
        if result.detail:
            line += f" detail={result.detail}"
        print(line)
    return 0 if all(result.ok for result in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
