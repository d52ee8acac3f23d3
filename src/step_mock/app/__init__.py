from .cli import build_parser, parse_args, run
from .runtime import AppRuntime, Dispatcher, build_runtime

# app package exports CLI helpers and runtime wiring for reuse in tests and entrypoints.
__all__ = ["build_parser", "parse_args", "run", "AppRuntime", "Dispatcher", "build_runtime"]
