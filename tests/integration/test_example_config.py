from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from step_mock.app.runtime import build_runtime
from step_mock.config.loader import load_config


def _example_path() -> Path:
    return Path(__file__).resolve().parents[2] / "configs" / "example.yaml"


def test_example_config_loads_and_runs() -> None:
    # The shipped sample must stay valid and exercise every entity kind.
    runtime = build_runtime(load_config(_example_path()), seed=11)
    assert {entity["name"] for entity in runtime.registry.describe()} == {"greeter", "counter", "signup"}

    assert runtime.dispatcher.invoke("greeter", "echo", {"hi": 1}) == {"hi": 1}
    assert runtime.dispatcher.invoke("greeter", "bump_counter") == 2
    assert runtime.dispatcher.invoke("counter", "peek", key="shared") == 2


def test_example_workflow_sleeps_on_virtual_clock() -> None:
    runtime = build_runtime(load_config(_example_path()))
    runtime.host.script_random(bytes(range(16)))
    token = runtime.dispatcher.invoke("signup", "run", key="user-1")
    assert token == bytes(range(16))
    assert runtime.host.store.get("signup", "user-1", "token") == token
    assert runtime.host.clock.elapsed == timedelta(hours=1)


def test_example_fan_out_settles_after_drain() -> None:
    runtime = build_runtime(load_config(_example_path()))
    assert runtime.dispatcher.invoke("counter", "fan_out", "go", key="k1") == "go"
    runtime.host.drain()
    assert runtime.dispatcher.invoke("counter", "peek", key="k1") == 6


def test_example_busy_step_uses_jitter() -> None:
    runtime = build_runtime(load_config(_example_path()), jitter_source=lambda: 1.0)
    runtime.dispatcher.invoke("greeter", "slow_echo", "x")
    assert runtime.host.clock.elapsed == timedelta(milliseconds=275)
