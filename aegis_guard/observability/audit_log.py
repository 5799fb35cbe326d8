"""
Audit Log
~~~~~~~~~

Structured audit log of every pipeline outcome.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from aegis_guard.core.models import AuditEntry, AuditFilter

__all__ = ["AuditLog", "sanitize_params"]

logger = logging.getLogger(__name__)

_SENSITIVE_KEYS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "credential",
        "private_key",
        "access_token",
        "refresh_token",
        "auth",
    }
)


def sanitize_params(params: dict[str, Any]) -> dict[str, Any]:
    """Replace values of credential-like keys before they reach the log."""
    sanitized: dict[str, Any] = {}
    for key, value in params.items():
        if str(key).lower() in _SENSITIVE_KEYS:
            sanitized[key] = "***REDACTED***"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_params(value)
        else:
            sanitized[key] = value
    return sanitized


class AuditLog:
    """
    In-memory bounded audit log with filtering and export support.

    Every request that passes through the orchestrator gets an entry,
    whether it ran, failed or was parked behind a preview. Entries are
    forwarded to configured exporters; a failing exporter is logged and
    skipped.
    """

    def __init__(self, max_entries: int = 10000) -> None:
        self._entries: list[AuditEntry] = []
        self._max_entries = max_entries
        self._lock = threading.RLock()
        self._exporters: list[Any] = []

    def add_exporter(self, exporter: Any) -> None:
        """Add an exporter implementing ``export(AuditEntry)``."""
        self._exporters.append(exporter)

    @property
    def exporters(self) -> list[Any]:
        return list(self._exporters)

    def write(self, entry: AuditEntry) -> None:
        """Record an entry and forward it to exporters."""
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self._max_entries:
                self._entries = self._entries[-self._max_entries :]

        for exporter in self._exporters:
            try:
                exporter.export(entry)
            except Exception as exc:
                logger.error(
                    "Exporter %s failed: %s",
                    type(exporter).__name__,
                    exc,
                )

    def query(self, filters: AuditFilter | None = None) -> list[AuditEntry]:
        """
        Query the audit log, oldest first.

        Args:
            filters: Optional filter criteria.

        Returns:
            Matching audit entries.
        """
        with self._lock:
            entries = list(self._entries)

        if filters is None:
            return entries

        results: list[AuditEntry] = []
        for entry in entries:
            if filters.session_id and entry.session_id != filters.session_id:
                continue
            if filters.command and entry.command != filters.command:
                continue
            if filters.kind and entry.kind != filters.kind:
                continue
            if filters.success is not None and entry.success != filters.success:
                continue
            if filters.from_time and entry.timestamp < filters.from_time:
                continue
            if filters.to_time and entry.timestamp > filters.to_time:
                continue
            results.append(entry)

            if len(results) >= filters.limit:
                break

        return results

    def clear(self) -> None:
        """Clear all audit entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
