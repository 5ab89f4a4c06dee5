"""MemoryStore: In-memory fingerprint -> URL cache."""

import math
from collections.abc import MutableMapping
from typing import Literal

from cachetools import LFUCache, LRUCache

from postimage.store.base import UrlStore

CachePolicy = Literal["unbounded", "lru", "lfu"]


def _create_cache(
    max_size: int,
    cache: Literal["lru", "lfu"],
) -> MutableMapping[str, str]:
    """Create a cachetools cache."""
    if cache == "lfu":
        return LFUCache(maxsize=max_size)
    return LRUCache(maxsize=max_size)


class MemoryStore(UrlStore):
    """In-memory URL cache using a dictionary or cachetools cache.

    Default is cache="unbounded": a build touches a bounded set of images
    and every entry stays valid until the output directory is cleared. Use
    "lru" or "lfu" to cap memory on very large sites; an evicted fingerprint
    is later found on disk and re-cached without invoking the engine.
    """

    def __init__(
        self,
        cache: CachePolicy | MutableMapping[str, str] = "unbounded",
        max_size: int | None = None,
    ) -> None:
        """Initialize memory store.

        Args:
            cache: "unbounded" (plain dict), "lru", "lfu", or a MutableMapping
                instance (e.g. cachetools.TTLCache). Default "unbounded".
            max_size: Maximum number of entries. Default 1000 when cache is
                "lru" or "lfu". Ignored for "unbounded". Must be None for
                cache instance.

        Raises:
            ValueError: Invalid combination of cache and max_size.
        """
        super().__init__()

        # Cache instance provided: use it, max_size forbidden
        if isinstance(cache, MutableMapping):
            if max_size is not None:
                raise ValueError(
                    "max_size must not be set when cache is a cache instance"
                )
            self._urls: MutableMapping[str, str] = cache
            return

        if cache == "unbounded":
            self._urls = {}
            return

        # LRU or LFU: validate max_size, use default 1000 if None
        if cache in ("lru", "lfu"):
            size = max_size if max_size is not None else 1000
            if size < 1:
                raise ValueError("max_size must be at least 1")
            if isinstance(size, float) and math.isinf(size):
                raise ValueError("max_size cannot be infinity")
            self._urls = _create_cache(size, cache)
            return

        raise ValueError(
            f"cache must be 'unbounded', 'lru', 'lfu', or a MutableMapping; got {cache!r}"
        )

    def exists(self, digest: str) -> bool:
        """Check if a URL is cached for the fingerprint."""
        exists = digest in self._urls
        if exists:
            self.stats.hits += 1
        else:
            self.stats.misses += 1
        return exists

    def get(self, digest: str) -> str:
        """Retrieve the URL for a fingerprint.

        Raises:
            KeyError: If nothing is cached for the fingerprint.
        """
        if digest not in self._urls:
            raise KeyError(f"No URL cached for fingerprint '{digest}'")
        return self._urls[digest]

    def put(self, digest: str, url: str) -> None:
        """Record the URL for a fingerprint."""
        if not isinstance(url, str):
            raise TypeError(f"URL must be a string, got {type(url).__name__}")
        self._urls[digest] = url
        self.stats.puts += 1

    def clear(self) -> None:
        """Forget every cached fingerprint and reset statistics."""
        self._urls.clear()
        self.reset_stats()

    def __len__(self) -> int:
        return len(self._urls)
