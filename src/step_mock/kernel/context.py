from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from step_mock.domain.errors import UnknownVariableError
from step_mock.domain.values import Value, check_value


@dataclass(slots=True)
class ExecutionContext:
    # Per-invocation variable store; one instance spans every step and every loop iteration.
    trace_id: str
    received_at: datetime
    input: Value = None
    variables: dict[str, Value] = field(default_factory=dict)
    echoed: Value = None
    has_echo: bool = False
    trace: list[object] = field(default_factory=list)

    def has(self, name: str) -> bool:
        return name in self.variables

    def get(self, name: str) -> Value:
        # Absent variables read as null.
        return self.variables.get(name)

    def require(self, name: str) -> Value:
        if name not in self.variables:
            raise UnknownVariableError(name)
        return self.variables[name]

    def set(self, name: str, value: object) -> None:
        if not name:
            raise ValueError("Variable name must be a non-empty string")
        self.variables[name] = check_value(value, where=f"variable '{name}'")

    def echo(self) -> None:
        # Record the raw input as fallback result; later echoes overwrite earlier ones.
        self.echoed = self.input
        self.has_echo = True

    def snapshot(self) -> dict[str, Value]:
        return copy.deepcopy(self.variables)


@dataclass(frozen=True, slots=True)
class ContextFactory:
    # ContextFactory owns per-invocation context creation.
    def new(self, payload: Value = None) -> ExecutionContext:
        # Trace id is generated per invocation; can be swapped for a deterministic generator later.
        return ExecutionContext(
            trace_id=uuid.uuid4().hex,
            received_at=datetime.now(tz=UTC),
            input=check_value(payload, where="input"),
        )
