"""Command line interface (``python -m stocksync.cli``)."""

from __future__ import annotations

from .__main__ import main

__all__ = ["main"]
