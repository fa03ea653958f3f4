from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from stocksync.cli import main as cli_main
from stocksync.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL
from stocksync.models.sync import SyncReport, SyncSummary

"""Exit code contract: 0 success / 2 partial failure / 1 fatal."""

CONFIG = """
sites:
  main-store:
    platform: wordpress
    base_url: https://shop.example.com
    credentials: {consumer_key: ck, consumer_secret: cs}
"""


def test_exit_code_values():
    assert (EXIT_SUCCESS_ALL, EXIT_PARTIAL_FAILURE, EXIT_FATAL) == (0, 2, 1)


def test_exit_code_fatal_on_invalid_config(temp_workdir: Path, capsys):
    (temp_workdir / "config" / "stocksync.yml").write_text("sync: {batch_size: 1000}\n", encoding="utf-8")
    code = cli_main(["history"])
    assert code == EXIT_FATAL
    assert "ERROR history: config validation failed" in capsys.readouterr().out


def test_exit_code_partial_on_audit_failure(temp_workdir: Path, write_stock_report, write_item_directory,
                                           fake_client, remote_product, monkeypatch):
    (temp_workdir / "config" / "stocksync.yml").write_text(CONFIG, encoding="utf-8")
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    stock = write_stock_report([["A1", "Shirt", 100, 90, 50, 5]])
    directory = write_item_directory([])
    client = fake_client(products=[remote_product("A1", sale="1")])

    def failing_record(self, user, summary, details):
        from stocksync.audit import AuditSinkError
        raise AuditSinkError("disk full")

    with patch("stocksync.cli.__main__.build_client", return_value=client), \
         patch("stocksync.audit.memory.MemoryAuditSink.record_sync", failing_record):
        code = cli_main(["sync", "--stock", str(stock), "--directory", str(directory),
                         "--site", "main-store", "--yes"])
    assert code == EXIT_PARTIAL_FAILURE


def test_partial_failure_flag_covers_duplicate_rows():
    report = SyncReport(SyncSummary(2, 1, 0, 0, 1), details=[], errors=[])
    assert report.partial_failure
    clean = SyncReport(SyncSummary(2, 1, 1, 0, 0), details=[], errors=[])
    assert not clean.partial_failure
