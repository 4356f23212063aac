#!/usr/bin/env python3
"""
CLI entry point for srht-export.

Usage:
    # Export every service of the account into ./backup:
    python -m srht_client export ./backup

    # Export one service, or one repository:
    python -m srht_client export ./backup git.sr.ht https://hg.sr.ht/~me/repo

    # Replay an export against the configured account:
    python -m srht_client import ./backup

    # Stream the logs of a running job:
    python -m srht_client builds follow 123456

Settings come from the environment or a .env file (SRHT_TOKEN, ...).
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

from . import __version__
from .config import SrhtConfig, ensure_output_dir
from .context import OperationCancelled, OperationContext
from .logging_config import setup_structured_logging

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2
EXIT_INTERRUPTED = 130


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="srht-export",
        description="Export and import sr.ht account data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables (can be set in .env):
  SRHT_INSTANCE                   Instance hostname (default: sr.ht)
  SRHT_TOKEN                      Personal access token
  SRHT_TOKEN_CMD                  Command printing the access token
  SRHT_<SERVICE>_ORIGIN           Origin override, e.g. SRHT_GIT_ORIGIN
  SRHT_TIMEOUT                    GraphQL timeout in seconds (default: 30)
  SRHT_DOWNLOAD_TIMEOUT           Download timeout in seconds (default: 600)
  LOG_LEVEL                       Log level without -v/-q (default: INFO)
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--instance", metavar="HOST", help="sr.ht instance hostname")
    parser.add_argument("--token", metavar="TOKEN", help="Personal access token")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    parser.add_argument("--log-json", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("--log-file", metavar="FILE", help="Also write logs to FILE")

    sub = parser.add_subparsers(dest="command", required=True)

    export_parser = sub.add_parser("export", help="Export your account data")
    export_parser.add_argument("directory", type=Path, help="Export directory (created if missing)")
    export_parser.add_argument(
        "resources",
        nargs="*",
        metavar="resource",
        help="Service hostnames or resource URLs to export (default: all services)",
    )

    import_parser = sub.add_parser("import", help="Import your account data")
    import_parser.add_argument("directory", type=Path, help="Directory of a previous export")

    builds_parser = sub.add_parser("builds", help="builds.sr.ht commands")
    builds_sub = builds_parser.add_subparsers(dest="builds_command", required=True)
    follow_parser = builds_sub.add_parser("follow", help="Stream the logs of a job")
    follow_parser.add_argument("job_id", type=int, help="Job ID")

    return parser.parse_args(argv)


def install_signal_handlers(ctx: OperationContext) -> None:
    """Cancel the shared context on SIGINT/SIGTERM; a second signal aborts at once."""
    def handler(signum, frame):
        if ctx.cancelled:
            raise KeyboardInterrupt
        ctx.cancel(f"interrupted by {signal.Signals(signum).name}")

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def log_api_stats(exporters) -> None:
    """Log the API call counters of every exporter's client."""
    logger = logging.getLogger("srht_client")
    for exporter in exporters:
        stats = exporter.client.stats
        if stats.total_calls:
            logger.debug(
                f"{exporter.name}: {stats.total_calls} API call(s), "
                f"{stats.successful_calls} ok, {stats.retried_calls} retried, {stats.failed_calls} failed"
            )


def run_export(config: SrhtConfig, ctx: OperationContext, directory: Path, resources: list[str]) -> int:
    from srht_export.driver import ExportDriver, build_exporters, warn_missing_ssh_agent
    from srht_export.types import ExportStatus

    ensure_output_dir(directory)
    exporters = build_exporters(config)
    driver = ExportDriver(exporters)
    warn_missing_ssh_agent()

    if resources:
        results = driver.export_resources(ctx, directory, resources)
    else:
        results = driver.export_all(ctx, directory)
    log_api_stats(exporters)

    statuses = {r.status for r in results}
    if ExportStatus.FAILED in statuses:
        return EXIT_ERROR
    if ExportStatus.PARTIAL in statuses:
        return EXIT_PARTIAL
    return EXIT_OK


def run_import(config: SrhtConfig, ctx: OperationContext, directory: Path) -> int:
    from srht_export.driver import ExportDriver, build_exporters, warn_missing_ssh_agent

    exporters = build_exporters(config)
    driver = ExportDriver(exporters)
    warn_missing_ssh_agent()
    summary = driver.import_all(ctx, directory)
    log_api_stats(exporters)

    logger = logging.getLogger("srht_client")
    logger.info(
        f"Imported {len(summary.imported)} resource(s), "
        f"skipped {len(summary.skipped)}, failed {len(summary.failed)}"
    )
    return EXIT_OK if summary.ok else EXIT_PARTIAL


def run_follow(config: SrhtConfig, ctx: OperationContext, job_id: int) -> int:
    from srht_export.fetcher import ResumableFetcher

    from .builds import follow_job
    from .graphql_client import SrhtClient

    with SrhtClient(config.origin_for("builds"), config.resolve_token(), timeout=config.timeout,
                    verify_ssl=config.verify_ssl) as client:
        fetcher = ResumableFetcher(client.session, timeout=config.download_timeout)
        job = follow_job(client, fetcher, job_id, ctx, sys.stdout.buffer)

    return EXIT_OK if job["status"] == "SUCCESS" else EXIT_ERROR


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.quiet:
        log_level = logging.ERROR
    elif args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    setup_structured_logging(level=log_level, json_format=args.log_json, log_file=args.log_file)
    logger = logging.getLogger("srht_client")

    try:
        config = SrhtConfig.from_env(instance=args.instance, token=args.token)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Please provide required settings via CLI arguments or .env file")
        return EXIT_ERROR

    if not args.quiet and not args.verbose:
        configured = logging.getLevelName(config.log_level.upper())
        if isinstance(configured, int):
            if configured != log_level:
                setup_structured_logging(level=configured, json_format=args.log_json, log_file=args.log_file)
        else:
            logger.warning(f"Ignoring unknown LOG_LEVEL {config.log_level!r}")

    ctx = OperationContext()
    install_signal_handlers(ctx)

    try:
        if args.command == "export":
            return run_export(config, ctx, args.directory, args.resources)
        if args.command == "import":
            return run_import(config, ctx, args.directory)
        return run_follow(config, ctx, args.job_id)

    except (KeyboardInterrupt, OperationCancelled) as e:
        logger.warning(f"Interrupted: {e}")
        return EXIT_INTERRUPTED

    except Exception as e:
        logger.exception(f"{args.command} failed: {e}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
