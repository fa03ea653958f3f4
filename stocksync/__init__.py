"""Stock report -> commerce catalog reconciliation and sync pipeline."""

__version__ = "0.3.0"
