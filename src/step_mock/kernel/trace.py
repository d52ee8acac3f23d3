from __future__ import annotations

import traceback
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from step_mock.domain.values import Value
from step_mock.kernel.context import ExecutionContext


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    # ErrorInfo records the exception that failed a step.
    type: str
    message: str
    where: str
    stack: str | None = None


@dataclass(frozen=True, slots=True)
class StepTraceRecord:
    # One executed step; `path` locates it inside nested loops ("2.0" = first step of loop at index 2).
    trace_id: str
    path: str
    tag: str
    iteration: int | None
    t_enter: datetime
    t_exit: datetime
    duration_ms: float
    status: Literal["ok", "return", "error"]
    variables_diff: dict[str, object] | None
    error: ErrorInfo | None


@dataclass(frozen=True, slots=True)
class TraceSpan:
    # TraceSpan is an internal handle used between step enter/exit.
    path: str
    tag: str
    iteration: int | None
    t_enter: datetime
    before: dict[str, Value] | None


class StepTracer:
    """Appends a :class:`StepTraceRecord` to ``ctx.trace`` for every executed step.

    With ``capture_variables`` the tracer snapshots the variable map around each
    step and records which names changed; long string values are truncated to
    keep the tape bounded.  At most ``max_records`` records are kept per
    invocation, so long-running loops do not grow the trace without limit.
    """

    def __init__(
        self,
        *,
        capture_variables: bool = False,
        capture_stack: bool = False,
        max_value_len: int = 256,
        max_records: int = 10_000,
    ) -> None:
        if max_records < 0:
            raise ValueError("max_records must be non-negative")
        self._capture_variables = capture_variables
        self._capture_stack = capture_stack
        self._max_value_len = max_value_len
        self._max_records = max_records

    def is_full(self, ctx: ExecutionContext) -> bool:
        return len(ctx.trace) >= self._max_records

    def begin(self, *, ctx: ExecutionContext, path: str, tag: str, iteration: int | None = None) -> TraceSpan:
        before = ctx.snapshot() if self._capture_variables and not self.is_full(ctx) else None
        return TraceSpan(path=path, tag=tag, iteration=iteration, t_enter=datetime.now(tz=UTC), before=before)

    def finish(
        self,
        *,
        ctx: ExecutionContext,
        span: TraceSpan,
        status: Literal["ok", "return", "error"],
        error: BaseException | None = None,
    ) -> StepTraceRecord:
        t_exit = datetime.now(tz=UTC)
        diff = self._diff(span.before, ctx.snapshot()) if span.before is not None else None
        record = StepTraceRecord(
            trace_id=ctx.trace_id,
            path=span.path,
            tag=span.tag,
            iteration=span.iteration,
            t_enter=span.t_enter,
            t_exit=t_exit,
            duration_ms=(t_exit - span.t_enter).total_seconds() * 1000.0,
            status=status,
            variables_diff=diff,
            error=None if error is None else self._error_info(error, span.path),
        )
        if not self.is_full(ctx):
            ctx.trace.append(record)
        return record

    def _error_info(self, error: BaseException, where: str) -> ErrorInfo:
        stack = None
        if self._capture_stack:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return ErrorInfo(type=type(error).__name__, message=str(error), where=where, stack=stack)

    def _diff(self, before: dict[str, Value], after: dict[str, Value]) -> dict[str, object]:
        # Replace-entire-value strategy per variable name.
        diff: dict[str, object] = {}
        for key in sorted(set(before) | set(after)):
            if key not in before or key not in after or before[key] != after[key]:
                diff[key] = {"before": self._truncate(before.get(key)), "after": self._truncate(after.get(key))}
        return diff

    def _truncate(self, value: Value) -> object:
        if isinstance(value, str) and len(value) > self._max_value_len:
            return value[: self._max_value_len] + "...(truncated)"
        return value
