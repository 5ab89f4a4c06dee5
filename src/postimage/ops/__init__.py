"""Built-in operation packages."""

from postimage.ops import pillow

__all__ = ["pillow"]
