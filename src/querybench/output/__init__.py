"""Reporting surface: console tables and JSON export."""

from querybench.output.json_exporter import export_json
from querybench.output.reporter import RenderedOutput, Reporter, render_group
from querybench.output.table_exporter import export_table, format_report

__all__ = [
    "RenderedOutput",
    "Reporter",
    "export_json",
    "export_table",
    "format_report",
    "render_group",
]
