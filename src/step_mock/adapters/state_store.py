from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from step_mock.domain.values import Value, decode_value, encode_value


# KeyedStateStore isolates per-instance state access; a Redis-backed adapter would plug in here.
@runtime_checkable
class KeyedStateStore(Protocol):
    def get(self, entity: str, instance: str, key: str) -> Value:
        """Return the stored value or None when the key was never set."""
        raise NotImplementedError("KeyedStateStore is a port; use a concrete adapter.")

    def set(self, entity: str, instance: str, key: str, value: Value) -> None:
        """Store value under (entity, instance, key)."""
        raise NotImplementedError("KeyedStateStore is a port; use a concrete adapter.")

    def delete(self, entity: str, instance: str, key: str) -> None:
        """Remove the key; missing keys are ignored."""
        raise NotImplementedError("KeyedStateStore is a port; use a concrete adapter.")

    def keys(self, entity: str, instance: str) -> list[str]:
        """List stored keys of one instance, sorted."""
        raise NotImplementedError("KeyedStateStore is a port; use a concrete adapter.")


@dataclass
class InMemoryStateStore(KeyedStateStore):
    # In-memory adapter is the reference implementation for local runs and tests.
    # Values are kept encoded so a read never aliases a variable of the writer.
    _state: dict[tuple[str, str], dict[str, str]] = field(default_factory=dict)

    def get(self, entity: str, instance: str, key: str) -> Value:
        encoded = self._state.get((entity, instance), {}).get(key)
        if encoded is None:
            return None
        return decode_value(encoded)

    def set(self, entity: str, instance: str, key: str, value: Value) -> None:
        self._state.setdefault((entity, instance), {})[key] = encode_value(value)

    def delete(self, entity: str, instance: str, key: str) -> None:
        bucket = self._state.get((entity, instance))
        if bucket is None:
            return
        bucket.pop(key, None)
        if not bucket:
            del self._state[(entity, instance)]

    def keys(self, entity: str, instance: str) -> list[str]:
        return sorted(self._state.get((entity, instance), {}))

    def instances(self, entity: str) -> list[str]:
        return sorted(instance for (name, instance) in self._state if name == entity)
