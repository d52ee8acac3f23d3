from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from step_mock.observability.logging import LogMessage


# LogSink port isolates where structured log lines end up (stdout, file, memory).
@runtime_checkable
class LogSink(Protocol):
    def emit(self, message: LogMessage) -> None:
        """Write one structured log message."""
        raise NotImplementedError("LogSink is a port; use a concrete adapter.")
