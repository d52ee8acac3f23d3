from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

from step_mock.domain.entity import EntityKind, HandlerKind

# Config models map the YAML document to typed structures.
# Step params stay raw here; the step registry validates them per step kind.


class StepConfig(BaseModel):
    # One configured step: `type` selects the step kind, `params` is kind-specific.
    model_config = ConfigDict(extra="forbid")
    type: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def _null_params(cls, value: object) -> object:
        # An empty `params:` line in YAML reads as null.
        return {} if value is None else value

    def as_raw(self) -> dict[str, Any]:
        return {"type": self.type, "params": self.params}


class HandlerConfig(BaseModel):
    # Handler type is optional; keyed entities default to EXCLUSIVE when described.
    model_config = ConfigDict(extra="forbid")
    type: HandlerKind | None = None
    steps: list[StepConfig]


class EntityConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    type: EntityKind
    handlers: dict[str, HandlerConfig] = Field(default_factory=dict)


class Configuration(RootModel[dict[str, EntityConfig]]):
    # Root of the configuration file: entity name -> entity definition.

    @property
    def entities(self) -> dict[str, EntityConfig]:
        return self.root
