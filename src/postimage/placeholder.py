"""Placeholder wire format: descriptors embedded in rendered HTML.

A placeholder is an HTML comment carrying the descriptor's JSON, followed
immediately by the URL the artifact will have once built::

    <!-- SHARP_IMAGE {"inputPath":"photo.jpg","operations":[...]} -->/assets/images/photo-<hash>.webp

Placeholders exist only between template rendering and the post-render pass,
which swaps each one for its final URL.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass

from postimage.descriptor import Descriptor
from postimage.errors import PlaceholderError
from postimage.hashing import fingerprint

PLACEHOLDER_TAG = "SHARP_IMAGE"
PLACEHOLDER_START = f"<!-- {PLACEHOLDER_TAG} "

# The URL capture stops at the next quote, whitespace, "<" or end of text
PLACEHOLDER_RE = re.compile(
    rf"<!-- {PLACEHOLDER_TAG} (?P<payload>.*?) -->(?P<url>[^\"'\s<]*)"
)

_UNSAFE_URL_RE = re.compile(r"[\"'\s<]")

# Keep "-->" and markup out of the comment; JSON decoding restores them
_JSON_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026"}


@dataclass(frozen=True)
class Placeholder:
    """One placeholder found in rendered content.

    Attributes:
        text: The full matched text (comment plus candidate URL).
        descriptor: The decoded descriptor.
        fingerprint: Fingerprint of the descriptor.
        url: The candidate URL written after the comment.
    """

    text: str
    descriptor: Descriptor
    fingerprint: str
    url: str


def encode_placeholder(descriptor: Descriptor, url: str) -> str:
    """Render the placeholder text for a finalized descriptor.

    Raises:
        ValueError: If url contains quotes, whitespace or "<", any of which
            would end the URL capture early.
    """
    if _UNSAFE_URL_RE.search(url):
        raise ValueError(f"Image URL must not contain quotes, whitespace or '<': {url!r}")
    payload = descriptor.to_json()
    for char, escaped in _JSON_ESCAPES.items():
        payload = payload.replace(char, escaped)
    return f"{PLACEHOLDER_START}{payload} -->{url}"


def decode_payload(payload: str) -> Descriptor:
    """Rebuild a descriptor from the JSON inside a placeholder.

    Raises:
        PlaceholderError: If the payload is not valid descriptor JSON.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise PlaceholderError(
            f"Corrupt image placeholder, invalid JSON ({exc.msg}): {payload[:200]}",
            text=payload,
        ) from exc
    if not isinstance(data, Mapping):
        raise PlaceholderError(
            f"Corrupt image placeholder, expected an object: {payload[:200]}",
            text=payload,
        )
    try:
        return Descriptor.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise PlaceholderError(
            f"Corrupt image placeholder, {exc}: {payload[:200]}", text=payload
        ) from exc


def find_placeholders(content: str) -> list[Placeholder]:
    """Scan content for placeholders, in document order.

    Raises:
        PlaceholderError: If a placeholder cannot be decoded, or if the
            marker appears without a well-formed comment around it.
    """
    found = []
    for match in PLACEHOLDER_RE.finditer(content):
        descriptor = decode_payload(match.group("payload"))
        found.append(
            Placeholder(
                text=match.group(0),
                descriptor=descriptor,
                fingerprint=fingerprint(descriptor),
                url=match.group("url"),
            )
        )

    remainder = PLACEHOLDER_RE.sub("", content)
    index = remainder.find(PLACEHOLDER_START)
    if index != -1:
        snippet = remainder[index : index + 200]
        raise PlaceholderError(f"Unterminated image placeholder: {snippet}", text=snippet)
    return found


def substitute(
    content: str,
    urls: Mapping[str, str],
    placeholders: list[Placeholder] | None = None,
) -> str:
    """Replace every placeholder with the URL cached for its fingerprint.

    Args:
        content: Rendered content containing placeholders.
        urls: Fingerprint -> final URL.
        placeholders: The result of find_placeholders(content), if already known.

    Raises:
        KeyError: If a placeholder's fingerprint has no URL.
    """
    if placeholders is None:
        placeholders = find_placeholders(content)
    by_text = {p.text: urls[p.fingerprint] for p in placeholders}
    return PLACEHOLDER_RE.sub(lambda m: by_text[m.group(0)], content)
