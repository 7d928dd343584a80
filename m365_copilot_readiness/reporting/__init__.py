"""Reporting package — multi-format output generation."""

from .json_export import export_json
from .csv_export import export_csv
from .executive_summary import export_executive_summary

__all__ = [
    "export_json",
    "export_csv",
    "export_executive_summary",
]
