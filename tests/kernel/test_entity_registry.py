from __future__ import annotations

from typing import Any

import pytest

from step_mock.config.loader import parse_config
from step_mock.domain.entity import EntityKind, HandlerKind
from step_mock.domain.errors import ConfigurationError, DuplicateNameError, EntityKindMismatchError
from step_mock.kernel.registry import Entity, EntityRegistry, Handler
from step_mock.kernel.steps import EchoStep


def _registry(raw: dict[str, Any]) -> EntityRegistry:
    return EntityRegistry.from_config(parse_config(raw))


def _handler(*steps: dict[str, Any], kind: str | None = None) -> dict[str, Any]:
    handler: dict[str, Any] = {"steps": list(steps)}
    if kind is not None:
        handler["type"] = kind
    return handler


def test_resolve_returns_kind_and_steps() -> None:
    registry = _registry({"greeter": {"type": "SERVICE", "handlers": {"echo": _handler({"type": "echo"})}}})
    resolved = registry.resolve("greeter", "echo")
    assert resolved is not None
    kind, steps = resolved
    assert kind is EntityKind.SERVICE
    assert steps == (EchoStep(),)
    assert registry.resolve("greeter", "missing") is None
    assert registry.resolve("missing", "echo") is None


def test_registry_is_iterable_and_sized() -> None:
    registry = _registry(
        {
            "a": {"type": "SERVICE", "handlers": {}},
            "b": {"type": "WORKFLOW", "handlers": {}},
        }
    )
    assert len(registry) == 2
    assert "a" in registry
    assert "z" not in registry
    assert sorted(entity.name for entity in registry) == ["a", "b"]


def test_duplicate_entity_names_rejected() -> None:
    entity = Entity(name="dup", kind=EntityKind.SERVICE)
    with pytest.raises(DuplicateNameError):
        EntityRegistry([entity, entity])


def test_handlers_are_read_only() -> None:
    registry = _registry({"greeter": {"type": "SERVICE", "handlers": {"echo": _handler({"type": "echo"})}}})
    entity = registry.entity("greeter")
    assert entity is not None
    with pytest.raises(TypeError):
        entity.handlers["other"] = Handler(name="other", steps=())  # type: ignore[index]


def test_set_in_service_handler_is_rejected_with_location() -> None:
    raw = {"svc": {"type": "SERVICE", "handlers": {"h": _handler({"type": "set", "params": {"key": "k", "input": "v"}})}}}
    with pytest.raises(EntityKindMismatchError) as excinfo:
        _registry(raw)
    assert str(excinfo.value).startswith("svc/h: steps[0] (set):")


def test_keyed_call_without_key_from_service_is_rejected() -> None:
    raw = {
        "svc": {
            "type": "SERVICE",
            "handlers": {
                "h": _handler(
                    {"type": "call", "params": {"target_type": "VIRTUAL_OBJECT", "service": "obj", "handler": "get"}}
                )
            },
        },
        "obj": {"type": "VIRTUAL_OBJECT", "handlers": {"get": _handler({"type": "echo"})}},
    }
    with pytest.raises(ConfigurationError, match="requires 'key'"):
        _registry(raw)


def test_known_target_must_match_target_type() -> None:
    raw = {
        "svc": {
            "type": "SERVICE",
            "handlers": {
                "h": _handler(
                    {
                        "type": "loop",
                        "params": {
                            "count": 1,
                            "steps": [
                                {
                                    "type": "send",
                                    "params": {"target_type": "WORKFLOW", "service": "obj", "handler": "get", "key": "k"},
                                }
                            ],
                        },
                    }
                )
            },
        },
        "obj": {"type": "VIRTUAL_OBJECT", "handlers": {"get": _handler({"type": "echo"})}},
    }
    with pytest.raises(ConfigurationError, match="configured as VIRTUAL_OBJECT"):
        _registry(raw)


def test_unknown_targets_are_left_for_runtime() -> None:
    # Targets outside this configuration may be provided by the host.
    raw = {
        "svc": {
            "type": "SERVICE",
            "handlers": {"h": _handler({"type": "call", "params": {"target_type": "SERVICE", "service": "elsewhere", "handler": "x"}})},
        }
    }
    assert "svc" in _registry(raw)


def test_workflow_handler_requires_workflow_entity() -> None:
    raw = {"obj": {"type": "VIRTUAL_OBJECT", "handlers": {"run": _handler({"type": "echo"}, kind="WORKFLOW")}}}
    with pytest.raises(ConfigurationError, match="WORKFLOW handlers require a WORKFLOW entity"):
        _registry(raw)


def test_describe_lists_entities_and_handler_types() -> None:
    registry = _registry(
        {
            "zeta": {"type": "SERVICE", "handlers": {"b": _handler({"type": "echo"}), "a": _handler({"type": "echo"})}},
            "alpha": {
                "type": "VIRTUAL_OBJECT",
                "handlers": {
                    "write": _handler({"type": "echo"}),
                    "read": _handler({"type": "echo"}, kind="SHARED"),
                },
            },
        }
    )
    assert registry.describe() == [
        {
            "name": "alpha",
            "type": "VIRTUAL_OBJECT",
            "handlers": [{"name": "read", "type": "SHARED"}, {"name": "write", "type": "EXCLUSIVE"}],
        },
        {"name": "zeta", "type": "SERVICE", "handlers": [{"name": "a", "type": None}, {"name": "b", "type": None}]},
    ]


def test_handler_kind_defaults() -> None:
    registry = _registry({"obj": {"type": "WORKFLOW", "handlers": {"run": _handler({"type": "echo"}, kind="WORKFLOW"), "peek": _handler({"type": "echo"})}}})
    entity = registry.entity("obj")
    assert entity is not None
    assert entity.handler_kind("run") is HandlerKind.WORKFLOW
    assert entity.handler_kind("peek") is HandlerKind.EXCLUSIVE
