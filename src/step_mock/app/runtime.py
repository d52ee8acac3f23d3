from __future__ import annotations

import contextlib
import random
from collections import deque
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass

from step_mock.adapters.memory_host import InMemoryHostRuntime
from step_mock.config.models import Configuration
from step_mock.domain.entity import HandlerKind, InvocationIdentity
from step_mock.domain.errors import InvocationError, ResolutionError, StepMockError
from step_mock.domain.values import Value
from step_mock.kernel.context import ContextFactory, ExecutionContext
from step_mock.kernel.interpreter import Interpreter
from step_mock.kernel.registry import EntityRegistry
from step_mock.kernel.step_registry import StepRegistry, default_step_registry
from step_mock.kernel.trace import StepTracer
from step_mock.observability.logging import Logger
from step_mock.ports.host import HostHandle

HostFactory = Callable[[InvocationIdentity], HostHandle]
Serializer = Callable[[InvocationIdentity, HandlerKind | None], AbstractContextManager[None]]


def _unserialized(identity: InvocationIdentity, handler_kind: HandlerKind | None) -> AbstractContextManager[None]:
    return contextlib.nullcontext()


class Dispatcher:
    """Invocation boundary: entity/handler/key/payload in, handler result out.

    Resolves the handler in the registry, runs its steps on a fresh execution
    context with a host handle bound to the invocation, and turns any step
    failure into an :class:`InvocationError`.
    """

    def __init__(
        self,
        *,
        registry: EntityRegistry,
        interpreter: Interpreter,
        host_factory: HostFactory,
        serializer: Serializer = _unserialized,
        context_factory: ContextFactory | None = None,
        log: Logger | None = None,
    ) -> None:
        self._registry = registry
        self._interpreter = interpreter
        self._host_factory = host_factory
        self._serializer = serializer
        self._context_factory = context_factory or ContextFactory()
        self._log = log or Logger()
        # Recently started invocations (nested calls included); lets the CLI print step traces.
        self.recent: deque[tuple[InvocationIdentity, ExecutionContext]] = deque(maxlen=256)

    def invoke(self, entity: str, handler: str, payload: Value = None, key: str | None = None) -> Value:
        found = self._registry.entity(entity)
        if found is None or handler not in found.handlers:
            error = ResolutionError(f"Unknown handler {entity}/{handler}")
            raise InvocationError(f"{entity}/{handler}", error) from error
        try:
            identity = InvocationIdentity(entity=entity, handler=handler, kind=found.kind, key=key)
        except ValueError as exc:
            error = ResolutionError(str(exc))
            raise InvocationError(f"{entity}/{handler}", error) from exc
        return self.dispatch(identity, payload)

    def dispatch(self, identity: InvocationIdentity, payload: Value = None) -> Value:
        resolved = self._registry.resolve(identity.entity, identity.handler)
        if resolved is None:
            error = ResolutionError(f"Unknown handler {identity.entity}/{identity.handler}")
            raise InvocationError(identity.target, error) from error
        kind, steps = resolved
        if kind is not identity.kind:
            error = ResolutionError(f"{identity.entity} is a {kind}, invoked as {identity.kind}")
            raise InvocationError(identity.target, error) from error

        entity = self._registry.entity(identity.entity)
        assert entity is not None
        handler_kind = entity.handler_kind(identity.handler)

        self._log.debug("Running handler", target=identity.target, type=str(kind))
        with self._serializer(identity, handler_kind):
            try:
                ctx = self._context_factory.new(payload)
            except StepMockError as exc:
                raise InvocationError(identity.target, exc) from exc
            self.recent.append((identity, ctx))
            try:
                outcome = self._interpreter.execute(steps, ctx, self._host_factory(identity))
            except StepMockError as exc:
                self._log.error("Handler failed", target=identity.target, error=str(exc), trace_id=ctx.trace_id)
                raise InvocationError(identity.target, exc) from exc

        if outcome is not None:
            result = outcome.value
        elif ctx.has_echo:
            result = ctx.echoed
        else:
            result = None
        self._log.debug("Handler completed", target=identity.target, trace_id=ctx.trace_id)
        return result


@dataclass(frozen=True, slots=True)
class AppRuntime:
    # AppRuntime is a small bundle of what the CLI and tests need after wiring.
    registry: EntityRegistry
    interpreter: Interpreter
    dispatcher: Dispatcher
    host: InMemoryHostRuntime


def build_runtime(
    config: Configuration,
    *,
    log: Logger | None = None,
    step_registry: StepRegistry | None = None,
    tracer: StepTracer | None = None,
    seed: int | None = None,
    real_delays: bool = False,
    jitter_source: Callable[[], float] | None = None,
) -> AppRuntime:
    # Composition root wires step registry, entity registry, interpreter, host and dispatcher.
    logger = log or Logger()
    steps = step_registry or default_step_registry()
    registry = EntityRegistry.from_config(config, steps)
    interpreter = Interpreter(registry, log=logger, tracer=tracer, jitter_source=jitter_source or random.random)
    interpreter.check_coverage(steps)

    host = InMemoryHostRuntime(seed=seed, real_delays=real_delays, log=logger)
    dispatcher = Dispatcher(
        registry=registry,
        interpreter=interpreter,
        host_factory=host.handle,
        serializer=host.exclusive,
        log=logger,
    )
    host.set_dispatcher(dispatcher.dispatch)

    for entity in registry:
        logger.info(
            "Registered entity",
            entity=entity.name,
            type=str(entity.kind),
            handlers=sorted(entity.handlers),
        )
    return AppRuntime(registry=registry, interpreter=interpreter, dispatcher=dispatcher, host=host)

