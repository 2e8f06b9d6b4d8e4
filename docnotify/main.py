"""Command-line entry point for the Document Notification Service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple

from docnotify import __version__
from docnotify.adapters.document_store import DocumentStoreAdapter
from docnotify.config.environment import EnvironmentConfig
from docnotify.config.exceptions import ConfigurationError
from docnotify.config.loader import load_config
from docnotify.config.models import AppConfig
from docnotify.health import DEFAULT_TIMEOUT_SECONDS, format_health, run_health_checks
from docnotify.logging import get_logger
from docnotify.logging.config import configure_logging
from docnotify.notifications.factory import build_notifier
from docnotify.notifications.summary import SummaryOptions, SummaryReporter
from docnotify.persistence.database import (
    close_database,
    get_engine,
    init_database,
    ping_database,
)
from docnotify.persistence.schema import create_schema
from docnotify.pipeline import (
    Dispatcher,
    DocumentProcessor,
    ProcessingInProgressError,
    ProcessingResult,
    RetryProcessor,
)
from docnotify.status import collect_status, format_status
from docnotify.utils.timestamps import format_timestamp, parse_iso_datetime

logger = get_logger(__name__, component="cli")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and prepare runtime configuration.

    Args:
        config_path: Path to configuration file (None searches the defaults)
        log_level_override: Log level from CLI (takes precedence)

    Returns:
        Tuple of (AppConfig, EnvironmentConfig) with the effective log level
        stored on the environment config

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    # Log level priority: CLI > Environment > Config
    if log_level_override:
        env_config.log_level = log_level_override
    elif env_config.log_level:
        pass
    elif app_config.logging and app_config.logging.level:
        env_config.log_level = app_config.logging.level
    else:
        env_config.log_level = "INFO"

    return app_config, env_config


def iso_timestamp(value: str) -> datetime:
    """argparse type for ``--since``."""
    parsed = parse_iso_datetime(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(
            f"invalid ISO-8601 timestamp: {value!r} (e.g. 2025-01-01T00:00:00Z)"
        )
    return parsed


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got: {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docnotify",
        description=(
            "Document Notification Service - polls the document store for new "
            "documents and notifies portfolio owners"
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=LOG_LEVELS,
        help="Log level (overrides config and environment)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    process = commands.add_parser("process", help="Notify about documents created since the last run")
    process.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be notified without sending or recording anything",
    )
    process.add_argument(
        "--force",
        action="store_true",
        help="Advance the last-query timestamp even when no documents are found",
    )
    process.add_argument(
        "--since",
        type=iso_timestamp,
        default=None,
        help="Poll from this ISO-8601 timestamp instead of the last successful query",
    )
    _add_summary_arguments(process)

    status = commands.add_parser("status", help="Show the last query time and recent documents")
    status.add_argument(
        "--limit",
        type=positive_int,
        default=10,
        help="Number of recent documents to show (default: 10)",
    )

    retry = commands.add_parser("retry", help="Re-send notifications for failed documents")
    target = retry.add_mutually_exclusive_group()
    target.add_argument("--document-id", default=None, help="Retry only this document")
    target.add_argument(
        "--all",
        action="store_true",
        help="Retry every failed document (the default)",
    )
    _add_summary_arguments(retry)

    migrate = commands.add_parser("migrate", help="Create missing database tables")
    migrate.add_argument(
        "--create",
        action="store_true",
        help="Also create the database directory if it does not exist",
    )

    health = commands.add_parser("health", help="Check database, document store and notifier")
    health.add_argument(
        "--timeout",
        type=positive_int,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"Seconds to wait for all checks (default: {DEFAULT_TIMEOUT_SECONDS})",
    )

    return parser


def _add_summary_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--no-summary-email",
        action="store_true",
        help="Do not send the summary e-mail for this run",
    )
    parser.add_argument(
        "--failures-only",
        action="store_true",
        help="Send the summary e-mail only when errors occurred",
    )


def summary_options(args: argparse.Namespace) -> SummaryOptions:
    """Map CLI flags to summary overrides; absent flags defer to the config."""
    return SummaryOptions(
        skip_summary=True if args.no_summary_email else None,
        failures_only=True if args.failures_only else None,
    )


def build_source(app_config: AppConfig, env_config: EnvironmentConfig) -> DocumentStoreAdapter:
    return DocumentStoreAdapter(
        app_config.document_store,
        username=env_config.document_store_username,
        password=env_config.document_store_password,
    )


def print_result(operation: str, result: ProcessingResult) -> None:
    prefix = "[DRY RUN] " if result.dry_run else ""
    print(
        f"{prefix}{operation.capitalize()} completed: "
        f"{result.processed_count} processed, {result.error_count} errors"
    )
    for error in result.errors:
        print(f"  - {error}")


def run_process(args, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    init_database(env_config.database_url)

    source = build_source(app_config, env_config)
    notifier = build_notifier(app_config, env_config)
    try:
        processor = DocumentProcessor(
            source=source,
            dispatcher=Dispatcher(notifier, app_config.notification.dispatch_concurrency),
            document_types=app_config.document_store.document_types,
            reporter=SummaryReporter(app_config.email, env_config),
        )
        result = processor.process(
            since=args.since,
            dry_run=args.dry_run,
            force=args.force,
            summary=summary_options(args),
        )
    finally:
        notifier.close()
        source.close()

    print_result("process", result)
    return 1 if result.has_errors else 0


def run_retry(args, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    init_database(env_config.database_url)

    notifier = build_notifier(app_config, env_config)
    try:
        retrier = RetryProcessor(
            dispatcher=Dispatcher(notifier, app_config.notification.dispatch_concurrency),
            reporter=SummaryReporter(app_config.email, env_config),
        )
        result = retrier.retry(document_id=args.document_id, summary=summary_options(args))
    finally:
        notifier.close()

    if result.candidate_count == 0:
        if args.document_id:
            print(f"Document {args.document_id} is not in a failed state, nothing to retry")
        else:
            print("No failed documents to retry")
        return 0

    print_result("retry", result)
    return 1 if result.has_errors else 0


def run_status(args, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    init_database(env_config.database_url)
    print(format_status(collect_status(limit=args.limit)))
    return 0


def run_migrate(args, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    init_database(env_config.database_url, create_dirs=args.create, create_tables=False)
    tables = create_schema(get_engine())
    print("Database schema is up to date")
    for table in tables:
        print(f"  - {table}")
    return 0


def run_health(args, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    source = build_source(app_config, env_config)
    notifier = build_notifier(app_config, env_config)

    def check_database() -> None:
        init_database(env_config.database_url, create_dirs=False, create_tables=False)
        ping_database()

    checks: Dict[str, Callable[[], None]] = {
        "database": check_database,
        "document_store": source.ping,
        notifier.name: notifier.check,
    }
    try:
        results = run_health_checks(checks, timeout=args.timeout)
    finally:
        notifier.close()
        source.close()

    print(format_health(results))
    return 0 if all(r.healthy for r in results) else 1


COMMANDS = {
    "process": run_process,
    "status": run_status,
    "retry": run_retry,
    "migrate": run_migrate,
    "health": run_health,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the Document Notification Service.

    Returns:
        Exit code (0 for success, 1 when any document failed or on fatal error).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        # Configuration first so logging can use its format
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=environment,
        )

        logger.info(
            "Document Notification Service starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "notification_mode": app_config.notification.mode,
            },
        )
        if getattr(args, "since", None) is not None:
            logger.info(
                f"Using explicit start timestamp {format_timestamp(args.since)}",
                extra={"event": "cli.since_override"},
            )

        exit_code = COMMANDS[args.command](args, app_config, env_config)

        logger.info(
            "Document Notification Service finished",
            extra={
                "event": "service.stopping",
                "command": args.command,
                "exit_code": exit_code,
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except ProcessingInProgressError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.failed",
                "command": args.command,
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1
    finally:
        close_database()


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
