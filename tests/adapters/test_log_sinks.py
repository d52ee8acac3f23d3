from __future__ import annotations

import io
import json
from pathlib import Path

from step_mock.adapters.log_sinks import JsonlLogSink, MemoryLogSink, StreamLogSink
from step_mock.observability.logging import LogMessage, Logger
from step_mock.ports.log_sink import LogSink


def test_stream_sink_writes_one_json_object_per_line() -> None:
    stream = io.StringIO()
    sink = StreamLogSink(stream)
    sink.emit(LogMessage(level="info", message="Registered entity", fields={"entity": "counter"}))
    sink.emit(LogMessage(level="error", message="Handler failed", fields={"payload": b"\x01"}))
    first, second = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert first["level"] == "info"
    assert first["message"] == "Registered entity"
    assert first["fields"] == {"entity": "counter"}
    assert first["timestamp"].endswith("Z")
    # Bytes fields use the same envelope as handler results.
    assert second["fields"] == {"payload": {"$bytes": "AQ=="}}


def test_jsonl_sink_appends(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "step-mock.jsonl"
    for text in ("one", "two"):
        sink = JsonlLogSink(path)
        Logger(sink).info(text, count=1)
        sink.close()
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["message"] for line in lines] == ["one", "two"]
    assert lines[0]["fields"] == {"count": 1}


def test_memory_sink_find() -> None:
    sink = MemoryLogSink()
    logger = Logger(sink)
    logger.info("Registered entity", entity="a")
    logger.warning("Sent invocation failed")
    assert [msg.fields["entity"] for msg in sink.find("Registered")] == ["a"]
    assert sink.find("nothing") == []


def test_sinks_conform_to_port(tmp_path: Path) -> None:
    jsonl = JsonlLogSink(tmp_path / "x.jsonl")
    try:
        for sink in (StreamLogSink(io.StringIO()), MemoryLogSink(), jsonl):
            assert isinstance(sink, LogSink)
    finally:
        jsonl.close()
