from __future__ import annotations

from datetime import timedelta
from typing import Protocol, runtime_checkable

from step_mock.domain.entity import EntityKind, InvocationIdentity
from step_mock.domain.values import Value


# HostHandle is the seam between the interpreter and the durable execution host.
# One handle is bound to exactly one invocation; the interpreter never keeps it past the call.
@runtime_checkable
class HostHandle(Protocol):
    def current_identity(self) -> InvocationIdentity:
        """Return entity/handler/kind/key of the invocation this handle is bound to."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")

    def sleep(self, duration: timedelta) -> None:
        """Durably suspend the invocation; survives host restarts."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")

    def delay(self, duration: timedelta) -> None:
        """Block the executing task with an ordinary, non-durable wait."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")

    def state_get(self, key: str) -> Value:
        """Read keyed state of the current instance; None when the key was never set."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")

    def state_set(self, key: str, value: Value) -> None:
        """Write keyed state of the current instance."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")

    def state_clear(self, key: str) -> None:
        """Remove one key from the keyed state of the current instance."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")

    def random_bytes(self, size: int) -> bytes:
        """Return size bytes of mock (non security-sensitive) random data."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")

    def invoke(
        self,
        target_type: EntityKind,
        entity: str,
        handler: str,
        key: str | None,
        payload: Value,
    ) -> Value:
        """Call another handler and wait for its result."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")

    def invoke_async(
        self,
        target_type: EntityKind,
        entity: str,
        handler: str,
        key: str | None,
        payload: Value,
    ) -> None:
        """Send a one-way invocation; never waits for the target."""
        raise NotImplementedError("HostHandle is a port; use a concrete adapter.")
