from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from step_mock.domain.durations import apply_jitter, format_duration
from step_mock.domain.entity import InvocationIdentity
from step_mock.domain.errors import (
    CoercionError,
    ConfigurationError,
    EntityKindMismatchError,
    HostError,
    ResolutionError,
    StepMockError,
)
from step_mock.domain.values import Value, check_value, coerce_int
from step_mock.kernel.context import ExecutionContext
from step_mock.kernel.registry import EntityRegistry
from step_mock.kernel.step_registry import StepRegistry
from step_mock.kernel.steps import (
    BusyStep,
    CallStep,
    EchoStep,
    GetStep,
    IncrementStep,
    InvokeStep,
    LoopStep,
    RandomStep,
    ReturnStep,
    SendStep,
    SetStep,
    SleepStep,
    StepModel,
)
from step_mock.kernel.trace import StepTracer
from step_mock.observability.logging import Logger
from step_mock.ports.host import HostHandle

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Return:
    # Short-circuit signal: ends the whole handler, including every enclosing loop.
    value: Value


# Outcome of one step: None continues with the next step, Return stops the handler.
# Failures are raised, never returned.
StepOutcome = Return | None
StepHandler = Callable[[StepModel, ExecutionContext, HostHandle, str], StepOutcome]


class Interpreter:
    """Executes validated step lists against an execution context and a host handle.

    Steps run strictly in order on the calling thread.  A ``return`` step at any
    depth produces a :class:`Return` that every enclosing level passes straight
    up; a failing step raises and aborts the rest of the handler.
    """

    def __init__(
        self,
        registry: EntityRegistry | None = None,
        *,
        log: Logger | None = None,
        tracer: StepTracer | None = None,
        jitter_source: Callable[[], float] = random.random,
    ) -> None:
        self._registry = registry
        self._log = log or Logger()
        self._tracer = tracer
        self._jitter_source = jitter_source
        self._handlers: dict[type[StepModel], StepHandler] = {
            EchoStep: self._echo,
            SleepStep: self._sleep,
            BusyStep: self._busy,
            SetStep: self._set,
            GetStep: self._get,
            RandomStep: self._random,
            IncrementStep: self._increment,
            CallStep: self._call,
            SendStep: self._send,
            LoopStep: self._loop,
            ReturnStep: self._return,
        }

    def register(self, model: type[StepModel], handler: StepHandler) -> None:
        # Extension point for custom step kinds registered in the StepRegistry.
        self._handlers[model] = handler

    def check_coverage(self, step_registry: StepRegistry) -> None:
        # Every loadable step kind must be executable; checked once at startup.
        missing = sorted(model.tag for model in step_registry.models() if model not in self._handlers)
        if missing:
            raise ConfigurationError(f"No interpreter handler for step types: {missing}")

    def execute(self, steps: Sequence[StepModel], context: ExecutionContext, host: HostHandle) -> Return | None:
        return self._run_sequence(steps, context, host, prefix="", iteration=None)

    def _run_sequence(
        self,
        steps: Sequence[StepModel],
        ctx: ExecutionContext,
        host: HostHandle,
        *,
        prefix: str,
        iteration: int | None,
    ) -> StepOutcome:
        for idx, step in enumerate(steps):
            outcome = self._run_step(step, ctx, host, f"{prefix}{idx}", iteration)
            if outcome is not None:
                return outcome
        return None

    def _run_step(
        self,
        step: StepModel,
        ctx: ExecutionContext,
        host: HostHandle,
        path: str,
        iteration: int | None,
    ) -> StepOutcome:
        handler = self._handlers.get(type(step))
        if handler is None:
            raise ConfigurationError(f"No interpreter handler for step type '{step.tag}'")

        self._log.debug("Running step", path=path, type=step.tag, trace_id=ctx.trace_id)
        span = None if self._tracer is None else self._tracer.begin(ctx=ctx, path=path, tag=step.tag, iteration=iteration)
        try:
            outcome = handler(step, ctx, host, path)
        except Exception as exc:
            if span is not None:
                assert self._tracer is not None
                self._tracer.finish(ctx=ctx, span=span, status="error", error=exc)
            raise
        if span is not None:
            assert self._tracer is not None
            self._tracer.finish(ctx=ctx, span=span, status="ok" if outcome is None else "return")
        return outcome

    # Step semantics.

    def _echo(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        ctx.echo()
        return None

    def _sleep(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, SleepStep)
        duration = apply_jitter(step.duration, step.jitter, self._jitter_source)
        self._log.debug("Durable sleep", path=path, duration=format_duration(duration))
        _host_call("sleep", host.sleep, duration)
        return None

    def _busy(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, BusyStep)
        duration = apply_jitter(step.duration, step.jitter, self._jitter_source)
        self._log.debug("Busy wait", path=path, duration=format_duration(duration))
        _host_call("delay", host.delay, duration)
        return None

    def _set(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, SetStep)
        _require_keyed(step, _identity(host))
        value = ctx.require(step.input)
        _host_call("state_set", host.state_set, step.key, value)
        return None

    def _get(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, GetStep)
        _require_keyed(step, _identity(host))
        value = _host_call("state_get", host.state_get, step.key)
        ctx.set(step.output, value)
        return None

    def _random(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, RandomStep)
        data = _host_call("random_bytes", host.random_bytes, step.size)
        if not isinstance(data, (bytes, bytearray)) or len(data) != step.size:
            raise HostError("random_bytes", ValueError(f"expected {step.size} bytes"))
        ctx.set(step.output, bytes(data))
        return None

    def _increment(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, IncrementStep)
        current = coerce_int(ctx.get(step.input), step.input)
        ctx.set(step.input, current + step.steps)
        return None

    def _call(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, CallStep)
        key = self._resolve_target(step, _identity(host))
        payload = _payload(step, ctx)
        self._log.debug("Calling handler", path=path, target=_target(step, key))
        result = _host_call("invoke", host.invoke, step.target_type, step.service, step.handler, key, payload)
        if step.output is not None:
            ctx.set(step.output, result)
        return None

    def _send(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, SendStep)
        key = self._resolve_target(step, _identity(host))
        payload = _payload(step, ctx)
        self._log.debug("Sending to handler", path=path, target=_target(step, key))
        _host_call("invoke_async", host.invoke_async, step.target_type, step.service, step.handler, key, payload)
        return None

    def _loop(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, LoopStep)
        for iteration in range(step.iterations):
            outcome = self._run_sequence(step.steps, ctx, host, prefix=f"{path}.", iteration=iteration)
            if outcome is not None:
                return outcome
        return None

    def _return(self, step: StepModel, ctx: ExecutionContext, host: HostHandle, path: str) -> StepOutcome:
        assert isinstance(step, ReturnStep)
        return Return(ctx.get(step.output))

    def _resolve_target(self, step: InvokeStep, caller: InvocationIdentity) -> str | None:
        if self._registry is not None:
            resolved = self._registry.resolve(step.service, step.handler)
            if resolved is None:
                raise ResolutionError(f"Unknown target handler {step.service}/{step.handler}")
            kind, _ = resolved
            if kind is not step.target_type:
                raise ResolutionError(
                    f"Target {step.service} is a {kind}, step '{step.tag}' addresses it as {step.target_type}"
                )
        if not step.target_type.is_keyed:
            return None
        if step.key is not None:
            return step.key
        if caller.kind.is_keyed and caller.key:
            # Keyed callers lend their own key to keyed targets.
            return caller.key
        raise ResolutionError(
            f"Step '{step.tag}' to {step.target_type} {step.service}/{step.handler} requires a key"
        )


def _identity(host: HostHandle) -> InvocationIdentity:
    return _host_call("current_identity", host.current_identity)


def _require_keyed(step: StepModel, identity: InvocationIdentity) -> None:
    if not identity.kind.is_keyed:
        raise EntityKindMismatchError(step.tag, identity.kind)


def _payload(step: InvokeStep, ctx: ExecutionContext) -> Value:
    # Missing input name or absent variable sends null.
    if step.input is None:
        return None
    return ctx.get(step.input)


def _target(step: InvokeStep, key: str | None) -> str:
    if key is None:
        return f"{step.service}/{step.handler}"
    return f"{step.service}/{key}/{step.handler}"


def _host_call(operation: str, fn: Callable[..., T], *args: object) -> T:
    # Core errors pass through unchanged; anything else the host raises becomes a HostError.
    try:
        result = fn(*args)
    except StepMockError:
        raise
    except Exception as exc:
        raise HostError(operation, exc) from exc
    if operation in {"invoke", "state_get"}:
        try:
            return check_value(result, where=f"{operation} result")  # type: ignore[return-value]
        except CoercionError as exc:
            raise HostError(operation, exc) from exc
    return result
