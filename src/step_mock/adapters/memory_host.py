from __future__ import annotations

import contextlib
import random
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import timedelta
from typing import Literal

from step_mock.adapters.state_store import InMemoryStateStore, KeyedStateStore
from step_mock.domain.entity import EntityKind, HandlerKind, InvocationIdentity
from step_mock.domain.errors import EntityKindMismatchError, StepMockError
from step_mock.domain.values import Value, check_value
from step_mock.observability.logging import Logger
from step_mock.ports.host import HostHandle

# Dispatch callback installed by the composition root: runs one invocation and returns its result.
DispatchFn = Callable[[InvocationIdentity, Value], Value]


@dataclass(frozen=True, slots=True)
class InvocationRecord:
    # One call/send issued through the in-memory host, in issue order.
    mode: Literal["call", "send"]
    caller: InvocationIdentity | None
    target: InvocationIdentity
    payload: Value


@dataclass(frozen=True, slots=True)
class SendOutcome:
    # Result of a drained one-way invocation; error is set when the target failed.
    target: InvocationIdentity
    result: Value = None
    error: StepMockError | None = None


class VirtualClock:
    # Sleeps fast-forward this clock instead of blocking the test.
    def __init__(self) -> None:
        self._elapsed = timedelta()
        self._lock = threading.Lock()

    @property
    def elapsed(self) -> timedelta:
        return self._elapsed

    def advance(self, duration: timedelta) -> None:
        with self._lock:
            self._elapsed += duration


class InMemoryHostRuntime:
    """Deterministic stand-in for the durable execution host.

    Keeps keyed state in memory, fast-forwards durable sleeps on a virtual clock,
    serves scripted random bytes before falling back to a seeded generator, and
    routes call/send back into the dispatcher.  Sends are queued and only run
    when :meth:`drain` is called, so the caller never waits for them.
    """

    def __init__(
        self,
        *,
        store: KeyedStateStore | None = None,
        seed: int | None = None,
        real_delays: bool = False,
        log: Logger | None = None,
    ) -> None:
        self.store = store if store is not None else InMemoryStateStore()
        self.clock = VirtualClock()
        self.calls: list[InvocationRecord] = []
        self.real_delays = real_delays
        self._log = log or Logger()
        self._rng = random.Random(seed)
        self._scripted: deque[bytes] = deque()
        self._pending: deque[InvocationRecord] = deque()
        self._locks: dict[tuple[str, str], threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._dispatch: DispatchFn | None = None

    def set_dispatcher(self, dispatch: DispatchFn) -> None:
        # Installed after construction; the dispatcher itself needs this runtime to build hosts.
        self._dispatch = dispatch

    def handle(self, identity: InvocationIdentity) -> InMemoryHost:
        return InMemoryHost(identity=identity, runtime=self)

    @contextlib.contextmanager
    def exclusive(self, identity: InvocationIdentity, handler_kind: HandlerKind | None = None) -> Iterator[None]:
        # Single writer per keyed instance; SHARED handlers and services run unserialized.
        if not identity.kind.is_keyed or handler_kind is HandlerKind.SHARED:
            yield
            return
        assert identity.key is not None
        with self._locks_guard:
            lock = self._locks.setdefault((identity.entity, identity.key), threading.RLock())
        with lock:
            yield

    def script_random(self, *chunks: bytes) -> None:
        # Scripted chunks are served in order, one per random_bytes request.
        self._scripted.extend(bytes(chunk) for chunk in chunks)

    def random_bytes(self, size: int) -> bytes:
        if self._scripted:
            chunk = self._scripted.popleft()
            if len(chunk) != size:
                raise ValueError(f"Scripted random chunk has {len(chunk)} bytes, step asked for {size}")
            return chunk
        return self._rng.randbytes(size)

    def sleep(self, duration: timedelta) -> None:
        self.clock.advance(duration)
        if self.real_delays:
            time.sleep(duration.total_seconds())

    def delay(self, duration: timedelta) -> None:
        self.clock.advance(duration)
        if self.real_delays:
            time.sleep(duration.total_seconds())

    def invoke(self, caller: InvocationIdentity | None, target: InvocationIdentity, payload: Value) -> Value:
        record = InvocationRecord(mode="call", caller=caller, target=target, payload=check_value(payload))
        self.calls.append(record)
        return self._require_dispatch()(target, record.payload)

    def send(self, caller: InvocationIdentity | None, target: InvocationIdentity, payload: Value) -> None:
        record = InvocationRecord(mode="send", caller=caller, target=target, payload=check_value(payload))
        self.calls.append(record)
        self._pending.append(record)

    @property
    def pending(self) -> list[InvocationRecord]:
        return list(self._pending)

    def drain(self, *, limit: int = 10_000) -> list[SendOutcome]:
        """Run queued sends (and the sends they issue) in FIFO order.

        A failing send does not stop the drain; its error is logged and kept in
        the returned outcome, matching fire-and-forget semantics for the caller.
        """
        outcomes: list[SendOutcome] = []
        dispatch = self._require_dispatch()
        while self._pending:
            if len(outcomes) >= limit:
                raise RuntimeError(f"Send queue did not settle after {limit} invocations")
            record = self._pending.popleft()
            try:
                result = dispatch(record.target, record.payload)
            except StepMockError as exc:
                self._log.warning("Sent invocation failed", target=record.target.target, error=str(exc))
                outcomes.append(SendOutcome(target=record.target, error=exc))
                continue
            outcomes.append(SendOutcome(target=record.target, result=result))
        return outcomes

    def _require_dispatch(self) -> DispatchFn:
        if self._dispatch is None:
            raise RuntimeError("InMemoryHostRuntime has no dispatcher; call set_dispatcher first")
        return self._dispatch


@dataclass(frozen=True, slots=True)
class InMemoryHost(HostHandle):
    # HostHandle bound to one invocation of the in-memory runtime.
    identity: InvocationIdentity
    runtime: InMemoryHostRuntime

    def current_identity(self) -> InvocationIdentity:
        return self.identity

    def sleep(self, duration: timedelta) -> None:
        self.runtime.sleep(duration)

    def delay(self, duration: timedelta) -> None:
        self.runtime.delay(duration)

    def state_get(self, key: str) -> Value:
        return self.runtime.store.get(self.identity.entity, self._instance("get"), key)

    def state_set(self, key: str, value: Value) -> None:
        self.runtime.store.set(self.identity.entity, self._instance("set"), key, value)

    def state_clear(self, key: str) -> None:
        self.runtime.store.delete(self.identity.entity, self._instance("clear"), key)

    def random_bytes(self, size: int) -> bytes:
        return self.runtime.random_bytes(size)

    def invoke(
        self,
        target_type: EntityKind,
        entity: str,
        handler: str,
        key: str | None,
        payload: Value,
    ) -> Value:
        target = InvocationIdentity(entity=entity, handler=handler, kind=target_type, key=key)
        return self.runtime.invoke(self.identity, target, payload)

    def invoke_async(
        self,
        target_type: EntityKind,
        entity: str,
        handler: str,
        key: str | None,
        payload: Value,
    ) -> None:
        target = InvocationIdentity(entity=entity, handler=handler, kind=target_type, key=key)
        self.runtime.send(self.identity, target, payload)

    def _instance(self, operation: str) -> str:
        if self.identity.key is None:
            raise EntityKindMismatchError(operation, self.identity.kind)
        return self.identity.key
