from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from pydantic import ValidationError

from step_mock.domain.entity import EntityKind
from step_mock.domain.errors import ConfigurationError, UnknownStepError
from step_mock.kernel.steps import BUILTIN_STEPS, StepModel


@dataclass
class StepRegistry:
    # Registry maps configuration step `type` values to step models.
    _models: dict[str, type[StepModel]] = field(default_factory=dict)

    def register(self, model: type[StepModel], *, tag: str | None = None) -> None:
        # Registration is explicit; later registration overrides are allowed by default.
        name = tag or model.tag
        if not name:
            raise ValueError(f"Step model {model.__name__} has no tag")
        self._models[name] = model

    def get(self, tag: str) -> type[StepModel]:
        if tag not in self._models:
            raise UnknownStepError(tag)
        return self._models[tag]

    def tags(self) -> list[str]:
        return sorted(self._models)

    def models(self) -> list[type[StepModel]]:
        return list(self._models.values())

    def build(self, raw: object, kind: EntityKind, *, path: str = "steps[0]") -> StepModel:
        """Parse one ``{type, params}`` step object and validate it for ``kind``.

        Nested step lists (loop bodies) are built recursively with the same
        entity kind, so a ``set`` buried in a loop of a SERVICE handler is
        rejected here as well.  Errors are re-raised as
        :class:`ConfigurationError` subclasses whose message starts with the
        step path.
        """
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"{path}: step must be a mapping with 'type' and 'params'")
        unknown_keys = set(raw) - {"type", "params"}
        if unknown_keys:
            raise ConfigurationError(f"{path}: unknown step keys {sorted(unknown_keys)}")
        tag = raw.get("type")
        if not isinstance(tag, str) or not tag:
            raise ConfigurationError(f"{path}: step 'type' must be a non-empty string")
        params = raw.get("params")
        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            raise ConfigurationError(f"{path}: step 'params' must be a mapping")

        def build_nested(item: object, idx: int) -> StepModel:
            return self.build(item, kind, path=f"{path}.params.steps[{idx}]")

        try:
            model = self.get(tag)
            step = model.from_params(params, build=build_nested)
            step.validate_for(kind)
        except ValidationError as exc:
            cause = _configuration_cause(exc)
            if cause is not None:
                raise _with_path(cause, path, tag) from exc
            raise ConfigurationError(f"{path} ({tag}): {_describe(exc)}") from exc
        except ConfigurationError as exc:
            raise _with_path(exc, path, tag)
        return step

    def build_all(self, raw_steps: Iterable[object], kind: EntityKind, *, path: str = "steps") -> tuple[StepModel, ...]:
        return tuple(self.build(item, kind, path=f"{path}[{idx}]") for idx, item in enumerate(raw_steps))


def default_step_registry() -> StepRegistry:
    # Built-in step kinds; callers may register more before loading configuration.
    registry = StepRegistry()
    for model in BUILTIN_STEPS:
        registry.register(model)
    return registry


def _with_path(exc: ConfigurationError, path: str, tag: str) -> ConfigurationError:
    # Prefix the innermost step path once; the exception type is preserved for callers.
    if getattr(exc, "step_path", None) is None:
        exc.step_path = path  # type: ignore[attr-defined]
        exc.args = (f"{path} ({tag}): {exc}",) + exc.args[1:]
    return exc


def _configuration_cause(exc: ValidationError) -> ConfigurationError | None:
    # Field validators raise ConfigurationError subclasses (e.g. durations); surface them unchanged.
    for error in exc.errors():
        cause = error.get("ctx", {}).get("error")
        if isinstance(cause, ConfigurationError):
            return cause
    return None


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(item) for item in error.get("loc", ())) or "params"
        parts.append(f"{loc}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)
