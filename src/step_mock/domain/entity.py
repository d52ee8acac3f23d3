from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EntityKind(str, Enum):
    # Entity kinds use the configuration spelling.
    SERVICE = "SERVICE"
    VIRTUAL_OBJECT = "VIRTUAL_OBJECT"
    WORKFLOW = "WORKFLOW"

    @property
    def is_keyed(self) -> bool:
        return self is not EntityKind.SERVICE

    def __str__(self) -> str:
        return self.value


class HandlerKind(str, Enum):
    # Optional handler flavour; SHARED handlers of keyed entities may run concurrently on one key.
    EXCLUSIVE = "EXCLUSIVE"
    SHARED = "SHARED"
    WORKFLOW = "WORKFLOW"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class InvocationIdentity:
    # Identity is supplied by the host; the interpreter only reads it.
    entity: str
    handler: str
    kind: EntityKind
    key: str | None = None

    def __post_init__(self) -> None:
        if not self.entity or not self.handler:
            raise ValueError("InvocationIdentity requires non-empty entity/handler")
        if self.kind.is_keyed and not self.key:
            raise ValueError(f"{self.kind} invocation of {self.entity}/{self.handler} requires a key")
        if not self.kind.is_keyed and self.key is not None:
            raise ValueError(f"SERVICE invocation of {self.entity}/{self.handler} must not carry a key")

    @property
    def target(self) -> str:
        # Human-readable target used in logs and errors.
        if self.key is None:
            return f"{self.entity}/{self.handler}"
        return f"{self.entity}/{self.key}/{self.handler}"
