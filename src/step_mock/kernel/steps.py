from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import timedelta
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from step_mock.domain.durations import parse_duration
from step_mock.domain.entity import EntityKind
from step_mock.domain.errors import ConfigurationError, EntityKindMismatchError

# Step models map the `params` of one configured step to typed, validated fields.
# Validation happens once at load time; the interpreter trusts these objects.

# Upper bound used by `loop` without `count`; large but finite so the handler stays terminable.
UNBOUNDED_LOOP_COUNT = 2**31 - 1

NestedBuilder = Callable[[object, int], "StepModel"]


class StepModel(BaseModel):
    # Base of every step kind; `tag` is the configuration `type` value.
    model_config = ConfigDict(extra="forbid", frozen=True)
    tag: ClassVar[str] = ""

    @classmethod
    def from_params(cls, params: Mapping[str, Any], *, build: NestedBuilder) -> StepModel:
        # Composite steps override this to build nested step lists through the registry.
        _ = build
        return cls.model_validate(dict(params))

    def validate_for(self, kind: EntityKind) -> None:
        # Entity-kind compatibility check; most steps are valid everywhere.
        _ = kind


class _TimedStep(StepModel):
    # Shared by sleep/busy: base duration plus optional jitter factor.
    duration: timedelta
    jitter: float | None = Field(default=None, ge=0)

    @field_validator("duration", mode="before")
    @classmethod
    def _parse_duration(cls, value: object) -> timedelta:
        return parse_duration(value)


class EchoStep(StepModel):
    # Records the raw handler input as the handler result.
    tag: ClassVar[str] = "echo"


class SleepStep(_TimedStep):
    # Durable sleep managed by the host.
    tag: ClassVar[str] = "sleep"


class BusyStep(_TimedStep):
    # Non-durable in-process wait simulating a busy handler.
    tag: ClassVar[str] = "busy"


class KeyedStateStep(StepModel):
    key: str = Field(min_length=1)

    def validate_for(self, kind: EntityKind) -> None:
        # Keyed state only exists for VIRTUAL_OBJECT and WORKFLOW instances.
        if not kind.is_keyed:
            raise EntityKindMismatchError(self.tag, kind)


class SetStep(KeyedStateStep):
    tag: ClassVar[str] = "set"
    input: str = Field(min_length=1)


class GetStep(KeyedStateStep):
    tag: ClassVar[str] = "get"
    output: str = Field(min_length=1)


class RandomStep(StepModel):
    tag: ClassVar[str] = "random"
    size: StrictInt = Field(ge=0, le=65535)
    output: str = Field(min_length=1)


class IncrementStep(StepModel):
    tag: ClassVar[str] = "increment"
    input: str = Field(min_length=1)
    steps: StrictInt = 1


class InvokeStep(StepModel):
    # Shared target description for call/send.
    target_type: EntityKind
    service: str = Field(min_length=1)
    handler: str = Field(min_length=1)
    key: str | None = None
    input: str | None = None

    def validate_for(self, kind: EntityKind) -> None:
        # A keyed target needs an explicit key unless the caller can lend its own.
        if self.target_type.is_keyed and self.key is None and not kind.is_keyed:
            raise ConfigurationError(
                f"Step '{self.tag}' to {self.target_type} {self.service}/{self.handler} "
                f"requires 'key' when called from a {kind}"
            )
        if not self.target_type.is_keyed and self.key is not None:
            raise ConfigurationError(
                f"Step '{self.tag}' to SERVICE {self.service}/{self.handler} must not set 'key'"
            )


class CallStep(InvokeStep):
    tag: ClassVar[str] = "call"
    output: str | None = None


class SendStep(InvokeStep):
    tag: ClassVar[str] = "send"


class LoopStep(StepModel):
    tag: ClassVar[str] = "loop"
    count: StrictInt | None = Field(default=None, ge=0)
    steps: tuple[StepModel, ...]

    @classmethod
    def from_params(cls, params: Mapping[str, Any], *, build: NestedBuilder) -> StepModel:
        raw = dict(params)
        nested = raw.get("steps")
        if not isinstance(nested, list):
            raise ConfigurationError("loop requires 'steps' to be a list of steps")
        if not nested:
            raise ConfigurationError("loop 'steps' must not be empty")
        raw["steps"] = tuple(build(item, idx) for idx, item in enumerate(nested))
        return cls.model_validate(raw)

    @property
    def iterations(self) -> int:
        return UNBOUNDED_LOOP_COUNT if self.count is None else self.count

    def validate_for(self, kind: EntityKind) -> None:
        for step in self.steps:
            step.validate_for(kind)


class ReturnStep(StepModel):
    tag: ClassVar[str] = "return"
    output: str = Field(min_length=1)


StepDefinition = Union[
    EchoStep,
    SleepStep,
    BusyStep,
    SetStep,
    GetStep,
    RandomStep,
    IncrementStep,
    CallStep,
    SendStep,
    LoopStep,
    ReturnStep,
]

BUILTIN_STEPS: tuple[type[StepModel], ...] = (
    EchoStep,
    SleepStep,
    BusyStep,
    SetStep,
    GetStep,
    RandomStep,
    IncrementStep,
    CallStep,
    SendStep,
    LoopStep,
    ReturnStep,
)
