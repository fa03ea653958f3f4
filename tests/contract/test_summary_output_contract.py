from __future__ import annotations

import re

from stocksync.models.sync import SyncSummary
from stocksync.services.summary import render_summary_line

"""SUMMARY line format contract (grep-able by cron / CI wrappers)."""

SUMMARY_RE = re.compile(
    r"^SUMMARY processed=(\d+) updated=(\d+) up_to_date=(\d+) not_found=(\d+) errors=(\d+) "
    r"elapsed_sec=(\d+(?:\.\d+)?)$"
)


def test_summary_line_matches_contract_regex():
    for elapsed in (0, 0.004, 2, 12.3456):
        line = render_summary_line(SyncSummary(10, 4, 3, 2, 1), elapsed)
        m = SUMMARY_RE.match(line)
        assert m, line
        processed, updated, up_to_date, not_found, errors = (int(g) for g in m.groups()[:5])
        assert updated + up_to_date + not_found + errors == processed
