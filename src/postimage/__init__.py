"""postimage: deferred, fingerprinted image processing for rendered HTML."""

from importlib.metadata import PackageNotFoundError, version

from postimage.config import ProcessorOptions, load_options
from postimage.descriptor import Descriptor, Operation
from postimage.engine import PillowEngine
from postimage.errors import (
    BuildError,
    PlaceholderError,
    PostImageError,
    UnknownOperationError,
)
from postimage.hashing import fingerprint
from postimage.jinja import install
from postimage.processor import OUTPUT_FORMATS, DeferredProcessor
from postimage.protocol import ImageEngine
from postimage.registry import OpRegistry, default_registry
from postimage.state import ImageState

try:
    __version__ = version("postimage")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    "BuildError",
    "DeferredProcessor",
    "Descriptor",
    "ImageEngine",
    "ImageState",
    "OUTPUT_FORMATS",
    "OpRegistry",
    "Operation",
    "PillowEngine",
    "PlaceholderError",
    "PostImageError",
    "ProcessorOptions",
    "UnknownOperationError",
    "default_registry",
    "fingerprint",
    "install",
    "load_options",
    "__version__",
]
