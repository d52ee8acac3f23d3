from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from step_mock.ports.log_sink import LogSink

# Ordered severities; a Logger drops messages below its threshold.
LEVELS: dict[str, int] = {"debug": 10, "info": 20, "warning": 30, "error": 40}


@dataclass(frozen=True, slots=True)
class LogMessage:
    # Structured log payload emitted by the dispatcher and interpreter.
    level: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    fields: dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.level or not self.message:
            raise ValueError("LogMessage requires non-empty level/message")
        if self.level not in LEVELS:
            raise ValueError(f"Unknown log level: {self.level}")


class Logger:
    """Level-filtering front for a :class:`LogSink`.

    A ``Logger`` without a sink drops everything, which keeps the kernel usable
    in tests and embedded runs that do not care about logs.
    """

    def __init__(self, sink: LogSink | None = None, level: str = "info") -> None:
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}; expected one of {sorted(LEVELS)}")
        self._sink = sink
        self._threshold = LEVELS[level]

    @property
    def sink(self) -> LogSink | None:
        return self._sink

    def enabled_for(self, level: str) -> bool:
        return self._sink is not None and LEVELS[level] >= self._threshold

    def log(self, level: str, message: str, **fields: object) -> None:
        if not self.enabled_for(level):
            return
        assert self._sink is not None
        self._sink.emit(LogMessage(level=level, message=message, fields=fields))

    def debug(self, message: str, **fields: object) -> None:
        self.log("debug", message, **fields)

    def info(self, message: str, **fields: object) -> None:
        self.log("info", message, **fields)

    def warning(self, message: str, **fields: object) -> None:
        self.log("warning", message, **fields)

    def error(self, message: str, **fields: object) -> None:
        self.log("error", message, **fields)
