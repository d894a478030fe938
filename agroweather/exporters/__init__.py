"""Result exporters."""

from .table_exporter import TableExporter

__all__ = ["TableExporter"]
