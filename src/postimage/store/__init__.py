"""URL cache backends and the output directory."""

from postimage.store.base import CacheStats, UrlStore
from postimage.store.memory import MemoryStore
from postimage.store.output import OutputDirectory

__all__ = [
    "CacheStats",
    "MemoryStore",
    "OutputDirectory",
    "UrlStore",
]
