"""Ordered, configurable transform pipeline: raw workbook rows -> canonical records.

Entry points live in :mod:`stocksync.pipeline.runner`; the individual steps in
:mod:`stocksync.pipeline.steps`.
"""
