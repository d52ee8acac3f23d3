from __future__ import annotations

import base64
import json
from typing import Any, Union

from .errors import CoercionError

# Value is the dynamically-typed payload shared by variables, step parameters,
# call payloads and persisted state.
Value = Union[None, bool, int, float, str, bytes, list["Value"], dict[str, "Value"]]

_BYTES_TAG = "$bytes"
_MAP_TAG = "$map"


def check_value(obj: object, where: str = "value") -> Value:
    # Validate (and normalise tuples/bytearrays) so any step output can feed any step input.
    if obj is None or isinstance(obj, (bool, int, float, str, bytes)):
        return obj
    if isinstance(obj, bytearray):
        return bytes(obj)
    if isinstance(obj, (list, tuple)):
        return [check_value(item, f"{where}[{idx}]") for idx, item in enumerate(obj)]
    if isinstance(obj, dict):
        normalized: dict[str, Value] = {}
        for key, item in obj.items():
            if not isinstance(key, str):
                raise CoercionError(f"{where} has non-string map key {key!r}")
            normalized[key] = check_value(item, f"{where}.{key}")
        return normalized
    raise CoercionError(f"{where} is not a supported value: {type(obj).__name__}")


def coerce_int(value: Value, name: str) -> int:
    # Absent/null counts as zero; a present value of any other shape is reported.
    if value is None:
        return 0
    if isinstance(value, bool):
        raise CoercionError(f"Variable '{name}' is a boolean, expected an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise CoercionError(f"Variable '{name}' is not an integer: {type_name(value)}")


def type_name(value: Value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bytes):
        return "bytes"
    if isinstance(value, list):
        return "list"
    return "map"


def to_json_compatible(value: Value) -> Any:
    # Bytes use a tagged envelope; a map that would look like an envelope is escaped.
    if isinstance(value, bytes):
        return {_BYTES_TAG: base64.b64encode(value).decode("ascii")}
    if isinstance(value, list):
        return [to_json_compatible(item) for item in value]
    if isinstance(value, dict):
        mapped = {key: to_json_compatible(item) for key, item in value.items()}
        if len(mapped) == 1 and (_BYTES_TAG in mapped or _MAP_TAG in mapped):
            return {_MAP_TAG: mapped}
        return mapped
    return value


def from_json_compatible(obj: Any) -> Value:
    if isinstance(obj, list):
        return [from_json_compatible(item) for item in obj]
    if isinstance(obj, dict):
        if len(obj) == 1 and _BYTES_TAG in obj:
            return base64.b64decode(obj[_BYTES_TAG])
        if len(obj) == 1 and _MAP_TAG in obj:
            return {key: from_json_compatible(item) for key, item in obj[_MAP_TAG].items()}
        return {key: from_json_compatible(item) for key, item in obj.items()}
    return obj


def encode_value(value: Value) -> str:
    # Deterministic JSON encoding; stored state never aliases a live variable.
    return json.dumps(to_json_compatible(check_value(value)), sort_keys=True, separators=(",", ":"))


def decode_value(text: str) -> Value:
    return from_json_compatible(json.loads(text))
