"""OpRegistry for mapping operation names to image handlers."""

from __future__ import annotations

import logging
import types
from importlib.metadata import entry_points
from typing import Any, Callable

from postimage.errors import UnknownOperationError

logger = logging.getLogger(__name__)

# Type alias for op packages: dict mapping short names to handlers
OpPackage = dict[str, Callable[..., Any]]

ENTRY_POINT_GROUP = "postimage.ops"


class OpRegistry:
    """Registry mapping operation names to handler callables.

    Decouples the name recorded in a descriptor (and exposed as a template
    filter) from the Python code that performs the operation. A handler is
    called as ``handler(state, *args)`` and returns the new ImageState.

    Each processor owns its own registry; there is no process-wide instance.
    """

    def __init__(self) -> None:
        self._ops: dict[str, Callable[..., Any]] = {}

    def register(self, name: str, op: Callable[..., Any]) -> None:
        """Register an operation.

        Args:
            name: The string identifier for the operation.
            op: The handler that implements the operation.

        Raises:
            ValueError: If name is empty or already registered.
        """
        if not name:
            raise ValueError("Operation name cannot be empty")
        if name in self._ops:
            raise ValueError(f"Operation '{name}' is already registered")
        self._ops[name] = op

    def get(self, name: str) -> Callable[..., Any]:
        """Get an operation by name.

        Raises:
            UnknownOperationError: If operation is not registered.
        """
        if name not in self._ops:
            raise UnknownOperationError(name)
        return self._ops[name]

    def has(self, name: str) -> bool:
        """Check if an operation is registered."""
        return name in self._ops

    def names(self) -> list[str]:
        """Return registered operation names in registration order."""
        return list(self._ops)

    def clear(self) -> None:
        """Clear all registered operations (mainly for testing)."""
        self._ops.clear()

    def register_package(self, ops: OpPackage | Any, prefix: str | None = None) -> None:
        """Register all ops from a package, optionally under a common prefix.

        Args:
            ops: Either a dict mapping short names to handlers (OpPackage),
                 or a module/object that has an OPS dict attribute.
            prefix: Optional namespace. Names become "prefix.name", which
                 Jinja2 accepts as a dotted filter name.

        Raises:
            ValueError: If prefix is empty, ops is invalid, or any operation
                name is already registered.
            AttributeError: If ops is a module but doesn't have an OPS attribute.
        """
        if prefix is not None and not prefix:
            raise ValueError("Package prefix cannot be empty")

        ops_dict: OpPackage
        if isinstance(ops, dict):
            ops_dict = ops
        elif isinstance(ops, types.ModuleType):
            if not hasattr(ops, "OPS"):
                raise AttributeError(
                    f"Module {ops.__name__} does not have an OPS attribute"
                )
            ops_dict = ops.OPS
        elif hasattr(ops, "OPS"):
            ops_dict = ops.OPS
        else:
            raise ValueError(
                f"ops must be a dict or module with OPS attribute, got {type(ops)}"
            )
        if not isinstance(ops_dict, dict):
            raise ValueError(f"OPS attribute must be a dict, got {type(ops_dict)}")

        for name, op in ops_dict.items():
            full_name = f"{prefix}.{name}" if prefix else name
            self.register(full_name, op)

    def auto_discover(self) -> None:
        """Discover and register op packages from entry points.

        Scans the 'postimage.ops' entry point group. Each entry point should
        resolve to either a dict[str, Callable] or a callable returning one.
        The entry point name becomes the package prefix. Packages whose names
        are already registered are skipped, so calling this twice is safe.
        """
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            loaded = ep.load()
            ops_dict = loaded() if callable(loaded) else loaded
            if not isinstance(ops_dict, dict):
                logger.warning(
                    "Entry point %r did not provide an ops dict (got %s); skipping",
                    ep.name,
                    type(ops_dict).__name__,
                )
                continue
            if all(self.has(f"{ep.name}.{name}") for name in ops_dict):
                continue
            self.register_package(ops_dict, prefix=ep.name)
            logger.debug("Registered %d ops from entry point %r", len(ops_dict), ep.name)


def default_registry() -> OpRegistry:
    """Create a registry holding the built-in Pillow operations.

    Op packages installed under the 'postimage.ops' entry point group are
    added too, each under its entry point name as prefix.
    """
    from postimage.ops import pillow

    registry = OpRegistry()
    registry.register_package(pillow)
    registry.auto_discover()
    return registry
