from __future__ import annotations

from stocksync.models.sync import PreviewResult, SyncReport, SyncSummary

"""SUMMARY line and partial-failure rendering for the CLI.

Format:
SUMMARY processed={n} updated={n} up_to_date={n} not_found={n} errors={n} elapsed_sec={x}
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
    "render_preview_line",
    "render_failures",
]


def format_elapsed(seconds: float) -> str:
    """Render seconds without scientific notation; integers without a fraction."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.2f}"


def render_summary_line(summary: SyncSummary, elapsed_seconds: float) -> str:
    """
    >>> render_summary_line(SyncSummary(10, 2, 5, 3, 0), 1.0)
    'SUMMARY processed=10 updated=2 up_to_date=3 not_found=5 errors=0 elapsed_sec=1'
    """
    return (
        f"SUMMARY processed={summary.total_processed} "
        f"updated={summary.total_updated} "
        f"up_to_date={summary.total_up_to_date} "
        f"not_found={summary.total_not_found} "
        f"errors={summary.total_errors} "
        f"elapsed_sec={format_elapsed(elapsed_seconds)}"
    )


def render_preview_line(preview: PreviewResult, elapsed_seconds: float) -> str:
    """Same shape as the sync line; counts describe what a sync would do."""
    return render_summary_line(SyncSummary.from_details(preview.audit_rows), elapsed_seconds)


def render_failures(report: SyncReport) -> list[str]:
    """Lines describing a partial failure: count, sample, log path, audit error."""
    lines: list[str] = []
    if report.errors:
        lines.append(f"{len(report.errors)} item(s) failed to update")
        for e in report.error_sample:
            lines.append(f"  {e.identifier} (SKU: {e.sku}): {e.message}")
        hidden = len(report.errors) - len(report.error_sample)
        if hidden > 0:
            lines.append(f"  ... and {hidden} more")
        if report.error_log_path:
            lines.append(f"full error log: {report.error_log_path}")
    duplicates = report.summary.total_errors - len(report.errors)
    if duplicates > 0:
        lines.append(f"{duplicates} record(s) skipped as duplicate SKUs")
    if report.audit_error:
        lines.append(f"failed to save sync report: {report.audit_error}")
    return lines
