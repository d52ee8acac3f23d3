from __future__ import annotations

import base64
import io
import json
from pathlib import Path

import pytest

from step_mock.app.cli import EXIT_CONFIGURATION, EXIT_INVOCATION_FAILED, EXIT_OK, parse_args, run
from step_mock.main import main

_CONFIG = "\n".join(
    [
        "greeter:",
        "  type: SERVICE",
        "  handlers:",
        "    echo:",
        "      steps:",
        "        - type: echo",
        "    noise:",
        "      steps:",
        "        - type: random",
        "          params: {size: 4, output: r}",
        "        - type: return",
        "          params: {output: r}",
        "counter:",
        "  type: VIRTUAL_OBJECT",
        "  handlers:",
        "    add:",
        "      steps:",
        "        - type: loop",
        "          params:",
        "            count: 2",
        "            steps:",
        "              - type: increment",
        "                params: {input: v}",
        "        - type: return",
        "          params: {output: v}",
        "    broken:",
        "      steps:",
        "        - type: set",
        "          params: {key: x, input: missing}",
    ]
)


def _config(tmp_path: Path, text: str = _CONFIG) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def _run(argv: list[str]) -> tuple[int, str]:
    out = io.StringIO()
    code = run(argv, stdout=out)
    return code, out.getvalue()


def test_parse_args_reads_flags() -> None:
    args = parse_args(
        [
            "--config-file",
            "cfg.yaml",
            "--log-level",
            "debug",
            "--tracing",
            "invoke",
            "counter",
            "add",
            "--key",
            "k1",
            "--input",
            "{}",
            "--real-delays",
        ]
    )
    assert args.config_file == "cfg.yaml"
    assert args.log_level == "debug"
    assert args.tracing is True
    assert args.command == "invoke"
    assert (args.entity, args.handler, args.key, args.input) == ("counter", "add", "k1", "{}")
    assert args.real_delays is True


def test_check_accepts_valid_config(tmp_path: Path) -> None:
    code, out = _run(["--config-file", str(_config(tmp_path)), "check"])
    assert code == EXIT_OK
    assert out == ""


def test_check_rejects_invalid_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    # Logs go to stderr; a rejected configuration exits with 2.
    bad = "\n".join(["svc:", "  type: SERVICE", "  handlers:", "    h:", "      steps:", "        - type: teleport"])
    code, _ = _run(["--config-file", str(_config(tmp_path, bad)), "check"])
    assert code == EXIT_CONFIGURATION
    assert "Unknown step type: teleport" in capsys.readouterr().err


def test_check_missing_file(tmp_path: Path) -> None:
    code, _ = _run(["--config-file", str(tmp_path / "nope.yaml"), "check"])
    assert code == EXIT_CONFIGURATION


def test_describe_prints_metadata(tmp_path: Path) -> None:
    code, out = _run(["--config-file", str(_config(tmp_path)), "describe"])
    assert code == EXIT_OK
    described = json.loads(out)
    assert [entity["name"] for entity in described] == ["counter", "greeter"]
    assert described[0]["handlers"][0] == {"name": "add", "type": "EXCLUSIVE"}


def test_invoke_prints_result(tmp_path: Path) -> None:
    code, out = _run(["--config-file", str(_config(tmp_path)), "invoke", "counter", "add", "--key", "k1"])
    assert code == EXIT_OK
    assert json.loads(out) == 2


def test_invoke_passes_json_input(tmp_path: Path) -> None:
    code, out = _run(
        ["--config-file", str(_config(tmp_path)), "invoke", "greeter", "echo", "--input", '{"b": [1, {"$bytes": "AQ=="}]}']
    )
    assert code == EXIT_OK
    assert json.loads(out) == {"b": [1, {"$bytes": "AQ=="}]}


def test_invoke_prints_bytes_as_base64_envelope(tmp_path: Path) -> None:
    code, out = _run(["--config-file", str(_config(tmp_path)), "invoke", "greeter", "noise", "--seed", "5"])
    assert code == EXIT_OK
    result = json.loads(out)
    assert len(base64.b64decode(result["$bytes"])) == 4


def test_invoke_failure_exits_with_one(tmp_path: Path) -> None:
    code, out = _run(["--config-file", str(_config(tmp_path)), "invoke", "counter", "broken", "--key", "k1"])
    assert code == EXIT_INVOCATION_FAILED
    assert out == ""


def test_invoke_rejects_invalid_input_json(tmp_path: Path) -> None:
    code, _ = _run(["--config-file", str(_config(tmp_path)), "invoke", "greeter", "echo", "--input", "{nope"])
    assert code == EXIT_CONFIGURATION


def test_log_file_receives_structured_logs(tmp_path: Path) -> None:
    log_path = tmp_path / "logs.jsonl"
    code, _ = _run(
        ["--config-file", str(_config(tmp_path)), "--log-file", str(log_path), "--log-level", "debug", "invoke", "greeter", "echo"]
    )
    assert code == EXIT_OK
    messages = [json.loads(line)["message"] for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert "Registered entity" in messages
    assert "Running step" in messages


def test_trace_path_writes_step_traces(tmp_path: Path) -> None:
    trace_path = tmp_path / "trace.jsonl"
    code, _ = _run(
        ["--config-file", str(_config(tmp_path)), "--trace-path", str(trace_path), "invoke", "counter", "add", "--key", "k1"]
    )
    assert code == EXIT_OK
    records = [json.loads(line) for line in trace_path.read_text(encoding="utf-8").splitlines()]
    assert [(r["path"], r["tag"], r["iteration"]) for r in records] == [
        ("0.0", "increment", 0),
        ("0.0", "increment", 1),
        ("0", "loop", None),
        ("1", "return", None),
    ]
    assert {r["target"] for r in records} == {"counter/k1/add"}
    assert records[1]["variables_diff"] == {"v": {"before": 1, "after": 2}}


def test_main_delegates_to_cli(tmp_path: Path) -> None:
    assert main(["--config-file", str(_config(tmp_path)), "check"]) == EXIT_OK


def test_check_rejects_out_of_range_duration(tmp_path: Path) -> None:
    bad = "\n".join(
        ["svc:", "  type: SERVICE", "  handlers:", "    h:", "      steps:", "        - type: busy", "          params: {duration: 9999999999d}"]
    )
    code, _ = _run(["--config-file", str(_config(tmp_path, bad)), "check"])
    assert code == EXIT_CONFIGURATION
