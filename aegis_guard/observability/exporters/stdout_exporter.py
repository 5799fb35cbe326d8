"""
Stdout Exporter
~~~~~~~~~~~~~~~

Writes execution audit entries as JSON lines.
"""

from __future__ import annotations

import json
import sys
from typing import TextIO

from aegis_guard.core.models import AuditEntry

__all__ = ["StdoutExporter"]


class StdoutExporter:
    """
    Writes one JSON object per pipeline outcome to a text stream.

    Args:
        stream: Destination, ``sys.stdout`` by default.
        pretty: Indent the JSON instead of one line per entry.
        failures_only: Skip entries for successful requests.
    """

    name = "stdout"

    def __init__(
        self,
        stream: TextIO | None = None,
        pretty: bool = False,
        failures_only: bool = False,
    ) -> None:
        self._stream = stream or sys.stdout
        self._indent = 2 if pretty else None
        self._failures_only = failures_only

    def export(self, entry: AuditEntry) -> None:
        if self._failures_only and entry.success:
            return
        self._stream.write(json.dumps(entry.to_dict(), indent=self._indent, default=str))
        self._stream.write("\n")
        self._stream.flush()
