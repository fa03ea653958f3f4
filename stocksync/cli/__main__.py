from __future__ import annotations

import argparse
import os
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from stocksync.audit import AuditSink, AuditSinkError, MemoryAuditSink
from stocksync.audit.postgres import PostgresAuditSink
from stocksync.config.loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigurationError, load_config
from stocksync.excel.reader import IngestError
from stocksync.logging.error_log import ErrorLogBuffer
from stocksync.logging.init import log_summary, setup_logging
from stocksync.models.records import CanonicalStockRecord
from stocksync.models.sync import PreviewResult
from stocksync.pipeline.runner import export_csv, process_files, step_labels
from stocksync.remote import RemoteApiError, build_client
from stocksync.services.orchestrator import generate_preview
from stocksync.services.progress import BatchProgress, StepProgress
from stocksync.services.session import InvalidSyncStateError, SyncInProgressError, SyncSession
from stocksync.services.summary import render_failures, render_preview_line, render_summary_line

"""CLI entrypoint.

Subcommands:
- process: run the transform pipeline, optionally export CSV
- preview: process + reconcile against a site (read-only)
- sync:    process + reconcile + confirm (prompt unless --yes)
- history: latest sync summary of a user from the audit sink

Exit codes: 0 success, 2 partial failure, 1 fatal.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_USER = "cli"

_FATAL_ERRORS = (
    AuditSinkError,
    ConfigurationError,
    IngestError,
    RemoteApiError,
    SyncInProgressError,
    InvalidSyncStateError,
    ValueError,
)


def _dsn(cfg: AppConfig) -> str:
    """DATABASE_URL / PGDSN, then PG* variables, then the YAML database section."""
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _audit_sink(cfg: AppConfig, logger: Any) -> Iterator[AuditSink]:
    """PostgreSQL sink when reachable, otherwise the in-memory sink (mock mode)."""
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        yield MemoryAuditSink()
        return
    try:
        conn = psycopg2.connect(_dsn(cfg))
    except psycopg2.Error as e:
        logger.info(f"DB connection failed -> fallback to mock mode: {e}")
        yield MemoryAuditSink()
        return
    conn.autocommit = False  # PostgresAuditSink が COMMIT/ROLLBACK を管理
    try:
        sink = PostgresAuditSink(conn)
        sink.ensure_schema()
        logger.debug("audit sink: postgres")
        yield sink
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env (values override the process environment)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _add_source_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--stock", required=True, type=Path, help="Stock report workbook (.xlsx)")
    p.add_argument("--directory", required=True, type=Path, help="Item directory workbook (.xlsx)")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="stocksync", description="Stock report -> WooCommerce/Shopify sync")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    sub = p.add_subparsers(dest="command", required=True)

    proc = sub.add_parser("process", help="Run the transform pipeline only")
    _add_source_args(proc)
    proc.add_argument("--output", type=Path, help="Write canonical records as CSV")

    prev = sub.add_parser("preview", help="Show what a sync would change")
    _add_source_args(prev)
    prev.add_argument("--site", required=True)

    sync = sub.add_parser("sync", help="Preview, confirm and apply updates")
    _add_source_args(sync)
    sync.add_argument("--site", required=True)
    sync.add_argument("--user", help="User recorded in the audit report")
    sync.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    hist = sub.add_parser("history", help="Show the latest sync report")
    hist.add_argument("--user", default=DEFAULT_USER)
    hist.add_argument("--details", action="store_true", help="Also list per-SKU rows")
    return p.parse_args(argv)


def _process(cfg: AppConfig, args: argparse.Namespace) -> list[CanonicalStockRecord]:
    with StepProgress(step_labels(cfg.workflow_steps)) as progress:
        return process_files(args.stock, args.directory, cfg.workflow_steps, on_step=progress)


def _log_preview(logger: Any, preview: PreviewResult, currency: str) -> None:
    for item in preview.to_update:
        parts = []
        for change in item.changes.values():
            unit = "" if change.field == "stock_quantity" else currency
            parts.append(f"{change.field}: {unit}{change.old} -> {unit}{change.new}")
        logger.info(f"update {item.sku} ({item.name}): " + ", ".join(parts))
    if preview.not_found:
        logger.info(f"not found on site: {', '.join(preview.not_found)}")
    for row in preview.error_rows:
        logger.warning(f"skipped {row.sku}: {row.changes_json}")


def _confirm(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _cmd_process(cfg: AppConfig, args: argparse.Namespace, logger: Any, start: float) -> int:
    records = _process(cfg, args)
    if args.output:
        export_csv(records, args.output)
        logger.info(f"wrote {len(records)} records to {args.output}")
    log_summary(f"records={len(records)} elapsed_sec={time.monotonic() - start:.2f}")
    return EXIT_SUCCESS_ALL


def _cmd_preview(cfg: AppConfig, args: argparse.Namespace, logger: Any, start: float) -> int:
    site = cfg.site(args.site)
    records = _process(cfg, args)
    with BatchProgress("Fetching products") as progress:
        preview = generate_preview(site, records, batch_size=cfg.batch_size, on_progress=progress)
    _log_preview(logger, preview, site.currency_symbol)
    log_summary(render_preview_line(preview, time.monotonic() - start)[len("SUMMARY "):])
    return EXIT_SUCCESS_ALL


def _cmd_sync(cfg: AppConfig, args: argparse.Namespace, logger: Any, start: float) -> int:
    site = cfg.site(args.site)
    user = args.user or site.user or DEFAULT_USER
    records = _process(cfg, args)
    with build_client(site) as client, _audit_sink(cfg, logger) as sink:
        session = SyncSession(client, sink, user=user, batch_size=cfg.batch_size)
        with BatchProgress("Fetching products") as progress:
            preview = session.preview(records, on_progress=progress)
        _log_preview(logger, preview, site.currency_symbol)
        logger.info(session.status_message)

        if not preview.update_payload:
            logger.info("all products are up to date; nothing to send")
        elif not args.yes and not _confirm(f"Apply {len(preview.update_payload)} update(s) to {site.name}? [y/N] "):
            session.cancel()
            logger.info("sync cancelled")
            return EXIT_SUCCESS_ALL

        with BatchProgress("Updating products") as progress:
            report = session.confirm(error_log=ErrorLogBuffer(), on_progress=progress)

    for line in render_failures(report):
        logger.warning(line)
    log_summary(render_summary_line(report.summary, time.monotonic() - start)[len("SUMMARY "):])
    return EXIT_PARTIAL_FAILURE if report.partial_failure else EXIT_SUCCESS_ALL


def _cmd_history(cfg: AppConfig, args: argparse.Namespace, logger: Any, start: float) -> int:
    with _audit_sink(cfg, logger) as sink:
        summary = sink.get_latest_summary(args.user)
        if summary is None:
            logger.info(f"no sync history for user '{args.user}'")
            return EXIT_SUCCESS_ALL
        logger.info(f"latest sync id={summary.summary_id} at {summary.created_at}")
        if args.details and summary.summary_id is not None:
            for d in sink.get_details(summary.summary_id):
                logger.info(f"{d.status.value:<10} {d.sku} {d.product_name} {d.changes_json}")
    log_summary(render_summary_line(summary, time.monotonic() - start)[len("SUMMARY "):])
    return EXIT_SUCCESS_ALL


_COMMANDS = {
    "process": _cmd_process,
    "preview": _cmd_preview,
    "sync": _cmd_sync,
    "history": _cmd_history,
}


def main(argv: list[str] | None = None) -> int:
    # 空リスト [] は「引数なし」として扱う (None の時のみ sys.argv を読む)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    start = time.monotonic()
    try:
        cfg = load_config(args.config)
        return _COMMANDS[args.command](cfg, args, logger, start)
    except _FATAL_ERRORS as e:
        logger.error(f"{args.command}: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
