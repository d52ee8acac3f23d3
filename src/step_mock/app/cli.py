from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from step_mock.adapters.log_sinks import JsonlLogSink, StreamLogSink
from step_mock.app.runtime import AppRuntime, build_runtime
from step_mock.config.loader import load_config
from step_mock.domain.errors import ConfigurationError, InvocationError
from step_mock.domain.values import from_json_compatible, to_json_compatible
from step_mock.kernel.trace import StepTraceRecord, StepTracer
from step_mock.observability.logging import LEVELS, Logger
from step_mock.ports.log_sink import LogSink

# Exit codes: 0 success, 1 invocation failed, 2 configuration rejected.
EXIT_OK = 0
EXIT_INVOCATION_FAILED = 1
EXIT_CONFIGURATION = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="step-mock", description="Configurable mock service for a durable execution host")
    parser.add_argument("--config-file", required=True, help="Path to YAML entity configuration")
    parser.add_argument("--log-level", choices=sorted(LEVELS, key=LEVELS.__getitem__), default="info")
    parser.add_argument("--log-file", help="Write structured logs as JSONL to this file instead of stderr")
    parser.add_argument("--tracing", action="store_true", help="Record a trace entry for every executed step")
    parser.add_argument("--trace-path", help="Write step traces as JSONL to this file (implies --tracing)")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("check", help="Load and validate the configuration")
    commands.add_parser("describe", help="Print entity and handler metadata as JSON")

    invoke = commands.add_parser("invoke", help="Run one handler on the in-memory host")
    invoke.add_argument("entity")
    invoke.add_argument("handler")
    invoke.add_argument("--key", help="Instance key for VIRTUAL_OBJECT and WORKFLOW entities")
    invoke.add_argument("--input", help="Handler input as a JSON document")
    invoke.add_argument("--seed", type=int, help="Seed for the random step")
    invoke.add_argument("--real-delays", action="store_true", help="Actually wait for sleep/busy durations")
    return parser


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    # Parse CLI arguments; caller passes argv for testability.
    return build_parser().parse_args(argv)


def build_logger(args: argparse.Namespace) -> tuple[Logger, JsonlLogSink | None]:
    # The file sink is returned separately so run() can close it.
    file_sink = JsonlLogSink(Path(args.log_file)) if args.log_file else None
    sink: LogSink = file_sink if file_sink is not None else StreamLogSink()
    return Logger(sink, level=args.log_level), file_sink


def parse_input(raw: str | None) -> object:
    # JSON input; {"$bytes": "<base64>"} stands for a byte string.
    if raw is None:
        return None
    return from_json_compatible(json.loads(raw))


def run(argv: Sequence[str] | None = None, *, stdout: TextIO | None = None) -> int:
    # Thin orchestration: load, wire, run one command, report.
    args = parse_args(argv)
    out = stdout if stdout is not None else sys.stdout
    log, file_sink = build_logger(args)
    try:
        return _run_command(args, log, out)
    finally:
        if file_sink is not None:
            file_sink.close()


def _run_command(args: argparse.Namespace, log: Logger, out: TextIO) -> int:
    tracing = args.tracing or args.trace_path is not None
    try:
        payload = parse_input(getattr(args, "input", None))
    except (ValueError, TypeError) as exc:
        log.error("Invalid --input JSON", error=str(exc))
        return EXIT_CONFIGURATION

    try:
        config = load_config(Path(args.config_file))
        runtime = build_runtime(
            config,
            log=log,
            tracer=StepTracer(capture_variables=True) if tracing else None,
            seed=getattr(args, "seed", None),
            real_delays=getattr(args, "real_delays", False),
        )
    except ConfigurationError as exc:
        log.error("Configuration rejected", error=str(exc))
        return EXIT_CONFIGURATION

    if args.command == "check":
        log.info("Configuration OK", entities=len(runtime.registry))
        return EXIT_OK
    if args.command == "describe":
        _print_json(runtime.registry.describe(), out)
        return EXIT_OK
    return _invoke(args, runtime, payload, log, out, tracing=tracing)


def _invoke(
    args: argparse.Namespace,
    runtime: AppRuntime,
    payload: object,
    log: Logger,
    out: TextIO,
    *,
    tracing: bool,
) -> int:
    try:
        result = runtime.dispatcher.invoke(args.entity, args.handler, payload, key=args.key)
    except InvocationError as exc:
        log.error("Invocation failed", target=exc.target, error=str(exc.error))
        code = EXIT_INVOCATION_FAILED
    else:
        _print_json(to_json_compatible(result), out)
        code = EXIT_OK

    # One-way sends issued by the handler run after the caller got its answer.
    outcomes = runtime.host.drain()
    if outcomes:
        failed = sum(1 for outcome in outcomes if outcome.error is not None)
        log.info("Drained sent invocations", count=len(outcomes), failed=failed)
    if tracing:
        _write_traces(runtime, args.trace_path)
    return code


def _print_json(document: object, out: TextIO) -> None:
    print(json.dumps(document, sort_keys=True, ensure_ascii=False), file=out, flush=True)


def _write_traces(runtime: AppRuntime, trace_path: str | None) -> None:
    lines = []
    for identity, ctx in runtime.dispatcher.recent:
        for record in ctx.trace:
            if isinstance(record, StepTraceRecord):
                lines.append(json.dumps({"target": identity.target, **_trace_to_dict(record)}, default=str))
    if trace_path is None:
        for line in lines:
            print(line, file=sys.stderr)
        return
    path = Path(trace_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        for line in lines:
            handle.write(line + "\n")


def _trace_to_dict(record: StepTraceRecord) -> dict[str, object]:
    data = dataclasses.asdict(record)
    if record.variables_diff is not None:
        data["variables_diff"] = to_json_compatible(record.variables_diff)
    return data
