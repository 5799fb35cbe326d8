"""Observability exporters."""

from aegis_guard.observability.exporters.stdout_exporter import StdoutExporter

__all__ = ["StdoutExporter"]
