"""Textual user interface for nodedash."""

from .app import NodeDashApp, format_help, format_node_detail, format_summary_table

__all__ = ["NodeDashApp", "format_help", "format_node_detail", "format_summary_table"]
