from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from step_mock.config.models import Configuration
from step_mock.domain.entity import EntityKind, HandlerKind
from step_mock.domain.errors import ConfigurationError, DuplicateNameError
from step_mock.kernel.step_registry import StepRegistry, default_step_registry
from step_mock.kernel.steps import CallStep, LoopStep, SendStep, StepModel


@dataclass(frozen=True, slots=True)
class Handler:
    # A named handler and its validated step list.
    name: str
    steps: tuple[StepModel, ...]
    kind: HandlerKind | None = None


@dataclass(frozen=True, slots=True)
class Entity:
    # Immutable entity definition; handlers are exposed through a read-only mapping.
    name: str
    kind: EntityKind
    handlers: Mapping[str, Handler] = field(default_factory=dict)

    def handler_kind(self, handler: str) -> HandlerKind | None:
        # Keyed entities default to EXCLUSIVE handlers; services carry no handler type.
        configured = self.handlers[handler].kind
        if configured is not None or not self.kind.is_keyed:
            return configured
        return HandlerKind.EXCLUSIVE


class EntityRegistry:
    """Process-wide map of entity name to entity definition.

    Built once from configuration and never mutated afterwards.  Every step is
    validated during construction, so an invalid configuration never reaches
    the dispatcher.
    """

    def __init__(self, entities: Iterable[Entity]) -> None:
        registry: dict[str, Entity] = {}
        for entity in entities:
            if entity.name in registry:
                raise DuplicateNameError(f"Duplicate entity name: {entity.name}")
            registry[entity.name] = entity
        self._entities = MappingProxyType(registry)
        self._validate_targets()

    @classmethod
    def from_config(cls, config: Configuration, step_registry: StepRegistry | None = None) -> EntityRegistry:
        steps = step_registry or default_step_registry()
        entities: list[Entity] = []
        for entity_name, entity_config in config.entities.items():
            handlers: dict[str, Handler] = {}
            for handler_name, handler_config in entity_config.handlers.items():
                if not handler_name:
                    raise ConfigurationError(f"{entity_name}: handler names must be non-empty")
                if handler_name in handlers:
                    raise DuplicateNameError(f"{entity_name}: duplicate handler name {handler_name}")
                if handler_config.type is HandlerKind.WORKFLOW and entity_config.type is not EntityKind.WORKFLOW:
                    raise ConfigurationError(
                        f"{entity_name}/{handler_name}: WORKFLOW handlers require a WORKFLOW entity"
                    )
                try:
                    built = steps.build_all(
                        (step.as_raw() for step in handler_config.steps),
                        entity_config.type,
                    )
                except ConfigurationError as exc:
                    exc.args = (f"{entity_name}/{handler_name}: {exc}",) + exc.args[1:]
                    raise
                handlers[handler_name] = Handler(name=handler_name, steps=built, kind=handler_config.type)
            entities.append(
                Entity(name=entity_name, kind=entity_config.type, handlers=MappingProxyType(handlers))
            )
        return cls(entities)

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)

    def entity(self, name: str) -> Entity | None:
        return self._entities.get(name)

    def resolve(self, entity: str, handler: str) -> tuple[EntityKind, tuple[StepModel, ...]] | None:
        # Lookup used by the dispatcher and by call/send target checks.
        found = self._entities.get(entity)
        if found is None or handler not in found.handlers:
            return None
        return found.kind, found.handlers[handler].steps

    def describe(self) -> list[dict[str, object]]:
        # Discovery metadata: entity/handler names and types, sorted for stable output.
        described: list[dict[str, object]] = []
        for name in sorted(self._entities):
            entity = self._entities[name]
            handlers = []
            for handler_name in sorted(entity.handlers):
                kind = entity.handler_kind(handler_name)
                handlers.append({"name": handler_name, "type": None if kind is None else kind.value})
            described.append({"name": name, "type": entity.kind.value, "handlers": handlers})
        return described

    def _validate_targets(self) -> None:
        # Targets known to this registry must be addressed with their registered kind.
        for entity in self._entities.values():
            for handler in entity.handlers.values():
                for step in _walk(handler.steps):
                    if not isinstance(step, (CallStep, SendStep)):
                        continue
                    target = self._entities.get(step.service)
                    if target is not None and target.kind is not step.target_type:
                        raise ConfigurationError(
                            f"{entity.name}/{handler.name}: step '{step.tag}' targets {step.service} "
                            f"as {step.target_type} but it is configured as {target.kind}"
                        )


def _walk(steps: Iterable[StepModel]) -> Iterator[StepModel]:
    for step in steps:
        yield step
        if isinstance(step, LoopStep):
            yield from _walk(step.steps)
