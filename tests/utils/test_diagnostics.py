"""Tests for the diagnostic audit log."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

from mcpgate.utils.diagnostics import (
    DiagnosticLog,
    InMemoryLogSink,
    JsonLinesLogSink,
    build_log,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestDiagnosticLog:
    def test_record_buffers_until_flush(self) -> None:
        sink = InMemoryLogSink()
        log = DiagnosticLog(sink)

        log.record("client --> server", {"method": "initialize"}, method="initialize", request_id=1)

        assert sink.rows == []
        assert len(log.pending) == 1
        log.flush()
        assert len(sink.rows) == 1
        assert log.pending == []

    def test_non_string_payload_is_json(self) -> None:
        log = DiagnosticLog(InMemoryLogSink())

        log.record("At server", {"a": 1})

        assert json.loads(log.pending[0].payload) == {"a": 1}

    def test_payload_truncated(self) -> None:
        log = DiagnosticLog(InMemoryLogSink(), max_payload=10)

        log.record("At client", "x" * 50)

        assert log.pending[0].payload == "x" * 10

    def test_disabled_flush_writes_nothing(self) -> None:
        sink = InMemoryLogSink()
        log = DiagnosticLog(sink, enabled=False)

        log.record("At client", "hello")
        log.flush()

        assert sink.rows == []
        assert log.pending == []

    def test_flush_empty_does_not_touch_sink(self) -> None:
        sink = MagicMock()

        DiagnosticLog(sink).flush()

        sink.write.assert_not_called()

    def test_sink_os_error_is_logged_not_raised(self) -> None:
        sink = MagicMock()
        sink.write.side_effect = OSError("read-only")
        log = DiagnosticLog(sink)
        log.record("At server", "row")

        log.flush()

        sink.write.assert_called_once()


class TestJsonLinesLogSink:
    def test_appends_one_line_per_row(self, tmp_path: Path) -> None:
        path = tmp_path / "logs" / "gateway.jsonl"
        log = DiagnosticLog(JsonLinesLogSink(path))

        log.record("client --> server", "first", method="tools/list", request_id=1)
        log.flush()
        log.record("server --> client", "second", method="tools/list", request_id=1)
        log.flush()

        lines = path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["payload"] for line in lines] == ["first", "second"]
        assert json.loads(lines[0])["direction"] == "client --> server"


class TestBuildLog:
    def test_path_selects_file_sink(self, tmp_path: Path) -> None:
        log = build_log(True, str(tmp_path / "a.jsonl"), 100)
        assert isinstance(log.sink, JsonLinesLogSink)
        assert log.max_payload == 100

    def test_no_path_selects_memory_sink(self) -> None:
        log = build_log(False, None, 40000)
        assert isinstance(log.sink, InMemoryLogSink)
        assert log.enabled is False
