"""Operation and Descriptor: the value a template builds up before rendering."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


def is_json_value(value: Any) -> bool:
    """Check whether a value can be carried as an operation argument.

    Arguments travel inside the placeholder as JSON, so they are restricted
    to what JSON can represent: None, bool, int, finite float, str,
    lists/tuples and dicts with string keys (recursively).

    Examples:
        >>> is_json_value({"width": 300, "fit": "cover"})
        True
        >>> is_json_value(b"raw")
        False
        >>> is_json_value({1: "a"})  # non-string key
        False
        >>> is_json_value(float("nan"))
        False
    """
    if value is None or isinstance(value, (bool, int, str)):
        return True

    if isinstance(value, float):
        return math.isfinite(value)

    if isinstance(value, Mapping):
        return all(isinstance(k, str) and is_json_value(v) for k, v in value.items())

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return all(is_json_value(item) for item in value)

    return False


def _to_plain(value: Any) -> Any:
    """Convert tuples to lists and sort mapping keys for canonical output."""
    if isinstance(value, Mapping):
        return {k: _to_plain(value[k]) for k in sorted(value)}
    if isinstance(value, Sequence) and not isinstance(value, str):
        return [_to_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class Operation:
    """One step of an image pipeline.

    Attributes:
        name: The operation kind, e.g. "resize" or "webp".
        args: Positional arguments for the operation handler.
    """

    name: str
    args: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        """Validate operation configuration."""
        if not self.name:
            raise ValueError("Operation name cannot be empty")
        if not isinstance(self.args, tuple):
            object.__setattr__(self, "args", tuple(self.args))

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form: {"name": ..., "args": [...]}."""
        for arg in self.args:
            if not is_json_value(arg):
                raise TypeError(
                    f"Argument {arg!r} of operation '{self.name}' is not JSON "
                    f"serializable (got {type(arg).__name__})."
                )
        return {"name": self.name, "args": _to_plain(self.args)}


@dataclass(frozen=True)
class Descriptor:
    """An input path plus the ordered operations to apply to it.

    Descriptors are immutable; every chained filter returns a new one with the
    operation appended. Converting a descriptor to ``str`` yields its
    canonical JSON, which is what gets embedded in placeholders and hashed.
    """

    input_path: str
    operations: tuple[Operation, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Validate descriptor configuration."""
        if not isinstance(self.input_path, str):
            raise TypeError(
                f"input_path must be a string, got {type(self.input_path).__name__}"
            )
        if not isinstance(self.operations, tuple):
            object.__setattr__(self, "operations", tuple(self.operations))

    @classmethod
    def of(cls, value: Descriptor | str) -> Descriptor:
        """Normalize a path or descriptor into a descriptor."""
        if isinstance(value, Descriptor):
            return value
        if isinstance(value, str):
            return cls(input_path=value)
        raise TypeError(
            f"Expected an image path or Descriptor, got {type(value).__name__}"
        )

    def then(self, name: str, *args: Any) -> Descriptor:
        """Return a new descriptor with one more operation at the end."""
        return Descriptor(
            input_path=self.input_path,
            operations=self.operations + (Operation(name, args),),
        )

    def with_input_path(self, input_path: str) -> Descriptor:
        """Return a copy pointing at a different input path."""
        return Descriptor(input_path=input_path, operations=self.operations)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form using the placeholder's key names."""
        return {
            "inputPath": self.input_path,
            "operations": [op.to_dict() for op in self.operations],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Descriptor:
        """Rebuild a descriptor from its wire form.

        Raises:
            ValueError: If the structure does not match the wire form.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Descriptor must be an object, got {type(data).__name__}")
        input_path = data.get("inputPath")
        if not isinstance(input_path, str):
            raise ValueError("Descriptor requires a string 'inputPath'")
        raw_ops = data.get("operations", [])
        if not isinstance(raw_ops, list):
            raise ValueError("Descriptor 'operations' must be a list")

        operations = []
        for raw in raw_ops:
            if not isinstance(raw, Mapping) or not isinstance(raw.get("name"), str):
                raise ValueError(f"Invalid operation entry: {raw!r}")
            args = raw.get("args", [])
            if not isinstance(args, list):
                raise ValueError(f"Operation '{raw['name']}' args must be a list")
            operations.append(Operation(raw["name"], tuple(args)))
        return cls(input_path=input_path, operations=tuple(operations))

    def to_json(self) -> str:
        """Canonical JSON: compact separators, argument keys sorted.

        The wire keys keep a fixed order (inputPath, operations; name, args)
        so the text reads the same as the placeholder format documents.
        """
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    def __str__(self) -> str:
        return self.to_json()

