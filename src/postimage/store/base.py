"""Base class for UrlStore implementations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class CacheStats:
    """Cache statistics tracking hits, misses, and puts."""

    hits: int = 0  # exists() returned True
    misses: int = 0  # exists() returned False
    puts: int = 0  # put() was called


class UrlStore(ABC):
    """Abstract base class for the fingerprint -> public URL cache.

    An entry means the artifact for that fingerprint has been built (or found
    on disk) during this processor's lifetime.
    """

    def __init__(self) -> None:
        """Initialize the store with cache statistics."""
        self.stats = CacheStats()

    def reset_stats(self) -> None:
        """Reset cache statistics to zero."""
        self.stats = CacheStats()

    @abstractmethod
    def exists(self, digest: str) -> bool:
        """Check if a URL is cached for the given fingerprint.

        Args:
            digest: The descriptor fingerprint (64 character hex string).

        Returns:
            True if cached, False otherwise.
        """
        ...

    @abstractmethod
    def get(self, digest: str) -> str:
        """Retrieve the public URL for a fingerprint.

        Raises:
            KeyError: If nothing is cached for the fingerprint.
        """
        ...

    @abstractmethod
    def put(self, digest: str, url: str) -> None:
        """Record the public URL for a fingerprint."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Forget every cached fingerprint."""
        ...
