# src/main.py — v1
"""CLI entry point — scan, watch, report, status, load, query, purge commands.

Usage:
    ctxsync scan
    ctxsync watch
    ctxsync report
    ctxsync status <document_id>
    ctxsync load <document_id> [--level N | --budget TOKENS] [--consumer ID]
    ctxsync query <document_id> <path> [--where field:op:value ...]
    ctxsync purge

Settings come from .env / environment variables; --root and --state override
SOURCE_ROOT and STATE_ROOT. Results are printed to stdout as JSON, logs go
to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from ctxsync.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args)
    except Exception as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ctxsync",
        description=f"ctxsync v{__version__} — document sync and budgeted context loading",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--root", type=Path, default=None,
        help="Source root (overrides SOURCE_ROOT)",
    )
    parser.add_argument(
        "--state", type=Path, default=None,
        help="State directory (overrides STATE_ROOT)",
    )

    subparsers = parser.add_subparsers(dest="command")

    p_scan = subparsers.add_parser("scan", help="Reconcile all documents once")
    p_scan.set_defaults(func=_cmd_scan)

    p_watch = subparsers.add_parser("watch", help="Keep documents in sync until interrupted")
    p_watch.set_defaults(func=_cmd_watch)

    p_report = subparsers.add_parser("report", help="Show sync status totals")
    p_report.set_defaults(func=_cmd_report)

    p_status = subparsers.add_parser("status", help="Show one document's sync status")
    p_status.add_argument("document_id")
    p_status.set_defaults(func=_cmd_status)

    p_load = subparsers.add_parser("load", help="Load a document's context")
    p_load.add_argument("document_id")
    target = p_load.add_mutually_exclusive_group()
    target.add_argument(
        "--level", type=int, choices=[1, 2, 3, 4], default=None,
        help="Fidelity level (default: DEFAULT_LOAD_LEVEL)",
    )
    target.add_argument(
        "--budget", type=int, default=None,
        help="Token budget; the richest level that fits is chosen",
    )
    p_load.add_argument(
        "--consumer", default="cli",
        help="Consumer id charged for the load (default: cli)",
    )
    p_load.set_defaults(func=_cmd_load)

    p_query = subparsers.add_parser("query", help="Read a path or filter an array")
    p_query.add_argument("document_id")
    p_query.add_argument("path", help="Dotted or slash-separated path")
    p_query.add_argument(
        "--where", action="append", default=None, metavar="FIELD:OP:VALUE",
        help="Array filter clause, repeatable (e.g. price:<:10)",
    )
    p_query.set_defaults(func=_cmd_query)

    p_purge = subparsers.add_parser("purge", help="Delete orphans past the grace period")
    p_purge.set_defaults(func=_cmd_purge)

    return parser


def _load_settings(args: argparse.Namespace):
    from ctxsync.config.settings import load_settings

    overrides: dict[str, Any] = {}
    if args.root is not None:
        overrides["source_root"] = args.root
        if args.state is None:
            overrides["state_root"] = args.root / ".ctxsync"
    if args.state is not None:
        overrides["state_root"] = args.state
    return load_settings(**overrides)


async def _run(args: argparse.Namespace, settings) -> int:
    from ctxsync.api.engine import ContextEngine

    async with ContextEngine(settings) as engine:
        return await args.func(engine, args)


async def _cmd_scan(engine, args: argparse.Namespace) -> int:
    report = await engine.scan_once()
    _emit(report.model_dump(mode="json"))
    return 0 if not report.errored else 1


async def _cmd_watch(engine, args: argparse.Namespace) -> int:
    await engine.start_watching()
    logger.info("Watching %s (Ctrl+C to stop)", engine.settings.source_root)
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await engine.stop_watching()


async def _cmd_report(engine, args: argparse.Namespace) -> int:
    _emit(engine.sync_report().model_dump(mode="json"))
    return 0


async def _cmd_status(engine, args: argparse.Namespace) -> int:
    entry = engine.registry.get(args.document_id)
    if entry is None:
        logger.error("Unknown document: %s", args.document_id)
        return 1
    _emit(entry.model_dump(mode="json"))
    return 0


async def _cmd_load(engine, args: argparse.Namespace) -> int:
    from ctxsync.core.errors import DocumentNotFound

    await engine.scan_once()
    try:
        result = await engine.load_context(
            args.document_id,
            args.level,
            budget=args.budget,
            consumer_id=args.consumer,
        )
    except DocumentNotFound as exc:
        logger.error("%s", exc)
        return 1
    _emit(result.model_dump(mode="json"))
    return 0


async def _cmd_query(engine, args: argparse.Namespace) -> int:
    from ctxsync.query.engine import PathNotFound, parse_where

    await engine.scan_once()
    if args.where:
        predicate = parse_where(args.where)
        _emit(await engine.query_array(args.document_id, args.path, predicate))
        return 0
    value = await engine.get_path(args.document_id, args.path)
    if isinstance(value, PathNotFound):
        logger.error("Path not found: %s (missing %r)", value.path, value.missing)
        return 1
    _emit(value)
    return 0


async def _cmd_purge(engine, args: argparse.Namespace) -> int:
    purged = await engine.purge_orphans()
    _emit({"purged": purged})
    return 0


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _setup_logging(settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from ctxsync.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("watchdog").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
