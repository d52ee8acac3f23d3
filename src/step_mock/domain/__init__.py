from .durations import apply_jitter, format_duration, parse_duration
from .entity import EntityKind, HandlerKind, InvocationIdentity
from .errors import (
    CoercionError,
    ConfigurationError,
    DuplicateNameError,
    DurationParseError,
    EntityKindMismatchError,
    HostError,
    InvocationError,
    ResolutionError,
    StepMockError,
    UnknownStepError,
    UnknownVariableError,
)
from .values import Value, check_value, coerce_int, decode_value, encode_value

# Domain exports are shared by kernel, adapters and the app shell.
__all__ = [
    "apply_jitter",
    "format_duration",
    "parse_duration",
    "EntityKind",
    "HandlerKind",
    "InvocationIdentity",
    "CoercionError",
    "ConfigurationError",
    "DuplicateNameError",
    "DurationParseError",
    "EntityKindMismatchError",
    "HostError",
    "InvocationError",
    "ResolutionError",
    "StepMockError",
    "UnknownStepError",
    "UnknownVariableError",
    "Value",
    "check_value",
    "coerce_int",
    "decode_value",
    "encode_value",
]
