"""Audit trail, execution counters and audit exporters."""

from aegis_guard.observability.audit_log import AuditLog, sanitize_params
from aegis_guard.observability.exporters import StdoutExporter
from aegis_guard.observability.metrics import MetricsCollector

__all__ = [
    "AuditLog",
    "MetricsCollector",
    "StdoutExporter",
    "sanitize_params",
]
