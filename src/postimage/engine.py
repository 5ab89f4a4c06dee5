"""PillowEngine: runs a descriptor's operations and writes the result."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
from PIL import Image

from postimage.state import ImageState

if TYPE_CHECKING:
    from postimage.descriptor import Descriptor
    from postimage.registry import OpRegistry

logger = logging.getLogger(__name__)

REMOTE_SCHEMES = ("http://", "https://")

# Modes each encoder can store without conversion
_ENCODER_MODES = {
    "JPEG": ("L", "RGB", "CMYK"),
    "WEBP": ("RGB", "RGBA"),
    "AVIF": ("RGB", "RGBA"),
}


def is_remote(path: str) -> bool:
    """Return True for http(s) URLs and protocol-relative ``//host/...`` paths."""
    return path.startswith(REMOTE_SCHEMES) or path.startswith("//")


class PillowEngine:
    """Image engine backed by Pillow.

    Operations are looked up by name in the registry and applied strictly in
    declaration order. Remote inputs are downloaded with httpx.
    """

    def __init__(self, registry: "OpRegistry", timeout: float = 30.0) -> None:
        """Initialize PillowEngine.

        Args:
            registry: OpRegistry used to resolve operation names.
            timeout: Seconds to wait when fetching a remote input.
        """
        self.registry = registry
        self.timeout = timeout

    def render(self, descriptor: "Descriptor", output_file: Path) -> None:
        """Apply the descriptor and write the encoded image to ``output_file``."""
        output_file = Path(output_file)
        with self._open(descriptor.input_path) as image:
            image.load()
            state = ImageState(image=image)
            for op in descriptor.operations:
                handler = self.registry.get(op.name)
                state = handler(state, *op.args)
            self._save(state, output_file, source_format=image.format)

    def _open(self, input_path: str) -> Image.Image:
        if not is_remote(input_path):
            return Image.open(input_path)

        url = f"https:{input_path}" if input_path.startswith("//") else input_path
        logger.debug("Fetching remote image %s", url)
        response = httpx.get(url, timeout=self.timeout, follow_redirects=True)
        response.raise_for_status()
        return Image.open(BytesIO(response.content))

    def _save(
        self, state: ImageState, output_file: Path, source_format: str | None = None
    ) -> None:
        image_format = (
            state.format
            or Image.registered_extensions().get(output_file.suffix.lower())
            or source_format
        )
        if image_format is None:
            raise ValueError(f"Cannot determine an output format for {output_file.name}")

        image = state.image
        allowed = _ENCODER_MODES.get(image_format)
        if allowed and image.mode not in allowed:
            if "RGBA" in allowed and image.mode in ("LA", "PA", "P"):
                image = image.convert("RGBA")
            else:
                image = image.convert("RGB")

        output_file.parent.mkdir(parents=True, exist_ok=True)

        # Write atomically (write to temp file, then rename)
        temp_path = output_file.with_name(output_file.name + ".tmp")
        try:
            image.save(temp_path, format=image_format, **state.save_options)
            temp_path.replace(output_file)
        finally:
            temp_path.unlink(missing_ok=True)
