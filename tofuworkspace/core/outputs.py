"""
Outputs reported by ``tofu output -json``.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List


class OutputType(str, Enum):
    """Type of an output value."""

    UNKNOWN = "unknown"
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    TUPLE = "tuple"
    OBJECT = "object"


_COLLECTION_TYPES = {
    "tuple": OutputType.TUPLE,
    "list": OutputType.TUPLE,
    "set": OutputType.TUPLE,
    "object": OutputType.OBJECT,
    "map": OutputType.OBJECT,
}


def parse_output_type(raw: Any) -> OutputType:
    """
    Map the ``type`` field of an output to an OutputType.

    Primitive types are encoded as a string ("string"), collection types as
    a list whose first element names the kind (["object", {...}]).
    """
    if isinstance(raw, str):
        try:
            return OutputType(raw)
        except ValueError:
            return OutputType.UNKNOWN
    if isinstance(raw, list) and raw and isinstance(raw[0], str):
        return _COLLECTION_TYPES.get(raw[0], OutputType.UNKNOWN)
    return OutputType.UNKNOWN


@dataclass
class Output:
    """A named output value."""
    name: str
    type: OutputType = OutputType.UNKNOWN
    sensitive: bool = False
    value: Any = None

    def string_value(self) -> str:
        """The value if it is a string, else an empty string."""
        return self.value if isinstance(self.value, str) else ""

    def number_value(self) -> float:
        """The value if it is a number, else 0."""
        if isinstance(self.value, bool):
            return 0.0
        if isinstance(self.value, (int, float)):
            return float(self.value)
        return 0.0

    def bool_value(self) -> bool:
        """The value if it is a bool, else False."""
        return self.value if isinstance(self.value, bool) else False

    def json_value(self) -> bytes:
        """The value encoded as compact JSON."""
        return json.dumps(self.value, separators=(",", ":")).encode()


def parse_outputs(stdout: str) -> List[Output]:
    """
    Parse the JSON document printed by ``tofu output -json``.

    Args:
        stdout: Command output

    Returns:
        Outputs sorted by name

    Raises:
        ValueError: If the document is not a JSON object
    """
    if not stdout.strip():
        return []

    try:
        document = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ValueError(f"cannot parse tofu outputs: {e}")

    if not isinstance(document, dict):
        raise ValueError("cannot parse tofu outputs: expected a JSON object")

    outputs = []
    for name in sorted(document):
        raw = document[name] or {}
        outputs.append(Output(
            name=name,
            type=parse_output_type(raw.get("type")),
            sensitive=bool(raw.get("sensitive", False)),
            value=raw.get("value"),
        ))
    return outputs
