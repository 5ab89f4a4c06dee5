"""Exception hierarchy for postimage."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from postimage.descriptor import Descriptor


class PostImageError(Exception):
    """Base exception for all postimage errors."""


class UnknownOperationError(PostImageError, KeyError):
    """An operation name has no handler in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Operation '{name}' is not registered")
        self.name = name

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class PlaceholderError(PostImageError, ValueError):
    """Placeholder text could not be decoded back into a descriptor.

    Usually means a later transform (a minifier, an HTML rewriter) altered the
    marker between render and post-render substitution.
    """

    def __init__(self, message: str, text: str = "") -> None:
        super().__init__(message)
        self.text = text


class BuildError(PostImageError):
    """The image engine failed to produce an artifact for a descriptor."""

    def __init__(self, descriptor: Descriptor, reason: str = "") -> None:
        message = f"Failed to build image {descriptor}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.descriptor = descriptor
