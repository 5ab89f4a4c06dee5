"""ImageState: the value threaded through operation handlers."""

from dataclasses import dataclass, field
from typing import Any

from PIL import Image


@dataclass(frozen=True)
class ImageState:
    """An image mid-pipeline plus how it should eventually be encoded.

    Attributes:
        image: The current pixels.
        format: Pillow format name chosen by the last format operation
                (e.g. "WEBP"), or None to infer it from the output filename.
        save_options: Keyword arguments passed to ``Image.save``.
    """

    image: Image.Image
    format: str | None = None
    save_options: dict[str, Any] = field(default_factory=dict)
