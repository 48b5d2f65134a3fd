"""Append-only audit log for request/response traffic.

:class:`DiagnosticLog` buffers rows for the duration of one router call or
one orchestration run and hands them to a :class:`LogSink` in a single
:meth:`~DiagnosticLog.flush`.  Two sinks are provided:

* :class:`InMemoryLogSink` — keeps rows in a list (tests, default).
* :class:`JsonLinesLogSink` — appends one JSON object per row to a file.

Persistence is best effort; nothing downstream depends on a row having
been written.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAYLOAD = 40000

Direction = Literal[
    "client --> server",
    "server --> client",
    "At server",
    "At client",
    "Client side",
]


class LogRow(BaseModel):
    """One audit row."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    method: str | None = None
    id: Any = None
    direction: Direction
    payload: str


class LogSink(Protocol):
    """Destination for flushed audit rows."""

    def write(self, rows: list[LogRow]) -> None:
        """Persist *rows* in order."""
        ...


class InMemoryLogSink:
    """List-backed :class:`LogSink`."""

    def __init__(self) -> None:
        self.rows: list[LogRow] = []

    def write(self, rows: list[LogRow]) -> None:
        self.rows.extend(rows)


class JsonLinesLogSink:
    """Appends rows to *path* as JSON lines."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, rows: list[LogRow]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            for row in rows:
                fh.write(row.model_dump_json() + "\n")


class DiagnosticLog:
    """Row buffer with a bounded payload length.

    Rows are always echoed at DEBUG level; they reach the sink only when
    *enabled* is true.
    """

    def __init__(
        self,
        sink: LogSink | None = None,
        *,
        enabled: bool = True,
        max_payload: int = DEFAULT_MAX_PAYLOAD,
    ) -> None:
        self.sink: LogSink = sink if sink is not None else InMemoryLogSink()
        self.enabled = enabled
        self.max_payload = max_payload
        self._rows: list[LogRow] = []

    @property
    def pending(self) -> list[LogRow]:
        return list(self._rows)

    def record(
        self,
        direction: Direction,
        payload: Any,
        *,
        method: str | None = None,
        request_id: Any = None,
    ) -> None:
        """Buffer one row.  Non-string payloads are JSON-encoded."""
        text = payload if isinstance(payload, str) else json.dumps(payload, default=str)
        text = text[: self.max_payload]
        logger.debug("[%s] %s id=%s %s", direction, method, request_id, text)
        self._rows.append(
            LogRow(method=method, id=request_id, direction=direction, payload=text)
        )

    def flush(self) -> None:
        """Write the buffered rows to the sink and clear the buffer."""
        rows, self._rows = self._rows, []
        if not self.enabled or not rows:
            return
        try:
            self.sink.write(rows)
        except OSError:
            logger.exception("Failed to write %d diagnostic rows", len(rows))


def build_log(enabled: bool, path: str | None, max_payload: int) -> DiagnosticLog:
    """Create a :class:`DiagnosticLog` from settings values."""
    sink: LogSink = JsonLinesLogSink(path) if path else InMemoryLogSink()
    return DiagnosticLog(sink, enabled=enabled, max_payload=max_payload)
