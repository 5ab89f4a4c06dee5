"""ImageEngine Protocol definition."""

from pathlib import Path
from typing import Protocol, runtime_checkable

from postimage.descriptor import Descriptor


@runtime_checkable
class ImageEngine(Protocol):
    """Protocol for anything that can turn a descriptor into an image file.

    The processor calls ``render`` from a worker thread, once per unique
    fingerprint, and only when the output file does not already exist.
    """

    def render(self, descriptor: Descriptor, output_file: Path) -> None:
        """Open the descriptor's input, apply its operations and write the result.

        Args:
            descriptor: The finalized descriptor (input path already resolved).
            output_file: Where the encoded image must be written. Its parent
                directory may not exist yet.

        Raises:
            Exception: Any failure; the processor wraps it in BuildError.
        """
        ...
