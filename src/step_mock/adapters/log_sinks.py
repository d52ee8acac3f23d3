from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TextIO

from step_mock.domain.values import to_json_compatible
from step_mock.observability.logging import LogMessage
from step_mock.ports.log_sink import LogSink


class StreamLogSink(LogSink):
    # Minimal structured log sink: one JSON object per line on a text stream (stderr by default).
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def emit(self, message: LogMessage) -> None:
        stream = self._stream if self._stream is not None else sys.stderr
        payload = json.dumps(_log_to_dict(message), separators=(",", ":"), ensure_ascii=False, default=str)
        print(payload, file=stream, flush=True)


class JsonlLogSink(LogSink):
    # File-backed structured log sink; appends so restarts keep history.
    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._path.open("a", encoding="utf-8")

    def emit(self, message: LogMessage) -> None:
        payload = json.dumps(_log_to_dict(message), separators=(",", ":"), ensure_ascii=False, default=str)
        self._file.write(payload + "\n")
        self._file.flush()

    def close(self) -> None:
        self._file.close()


class MemoryLogSink(LogSink):
    # Collects messages in order; used by tests.
    def __init__(self) -> None:
        self.messages: list[LogMessage] = []

    def emit(self, message: LogMessage) -> None:
        self.messages.append(message)

    def find(self, text: str) -> list[LogMessage]:
        return [msg for msg in self.messages if text in msg.message]


def _log_to_dict(message: LogMessage) -> dict[str, object]:
    return {
        "level": message.level,
        "message": message.message,
        "timestamp": message.timestamp.isoformat().replace("+00:00", "Z"),
        "fields": {key: _field_value(value) for key, value in message.fields.items()},
    }


def _field_value(value: object) -> object:
    # Bytes inside fields use the same envelope as Values; anything else falls back to str().
    if isinstance(value, (bytes, list, dict)):
        return to_json_compatible(value)  # type: ignore[arg-type]
    return value
