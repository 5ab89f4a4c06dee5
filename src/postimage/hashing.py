"""Fingerprinting of descriptors."""

import hashlib
from collections.abc import Mapping
from typing import Any

from postimage.descriptor import Descriptor


def hash_text(text: str) -> str:
    """Return the SHA-256 hex digest of a UTF-8 string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def fingerprint(descriptor: Descriptor | Mapping[str, Any]) -> str:
    """Compute the fingerprint of a descriptor.

    The fingerprint is the SHA-256 of the descriptor's canonical JSON, so it
    changes with the input path, the order of operations, any operation name
    and any argument value. Mapping keys inside arguments are sorted before
    hashing, and tuples hash like lists, so a descriptor decoded from a
    placeholder hashes to the same value as the one that was encoded.

    Args:
        descriptor: A Descriptor, or its wire-form dict.

    Returns:
        A hexadecimal SHA-256 hash string (64 characters), used both as the
        cache key and as part of the output filename.

    Raises:
        TypeError: If an operation argument is not a JSON value.
        ValueError: If a wire-form dict is malformed.
    """
    if not isinstance(descriptor, Descriptor):
        descriptor = Descriptor.from_dict(descriptor)
    return hash_text(descriptor.to_json())
