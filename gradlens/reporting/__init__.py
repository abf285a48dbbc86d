"""Reporting utilities for gradlens runs."""

from .artifacts import write_json, write_manifest
from .metrics import CsvSink, JsonlSink, MetricsCapture
from .plots import PlotAdapter, plot_decision_field
from .summary import curve_area, read_records, summarize, write_summary

__all__ = [
    "CsvSink",
    "JsonlSink",
    "MetricsCapture",
    "PlotAdapter",
    "plot_decision_field",
    "curve_area",
    "read_records",
    "summarize",
    "write_summary",
    "write_json",
    "write_manifest",
]
