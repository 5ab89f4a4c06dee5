"""OutputDirectory: the filesystem side of the artifact cache."""

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class OutputDirectory:
    """Directory holding built images, one flat file per fingerprint.

    A file's presence is what makes a build survive process restarts: when
    external tooling keeps this directory between builds, an existing file is
    treated as a cache hit and the engine is not run again.
    """

    def __init__(self, root: Path | str) -> None:
        """Initialize OutputDirectory.

        Args:
            root: Directory to write artifacts into. Created on demand.
        """
        self.root = Path(root)

    def path_for(self, filename: str) -> Path:
        """Return the path an artifact with this filename is written to.

        Raises:
            ValueError: If filename is empty or would escape the directory.
        """
        if not filename or filename in (".", "..") or "/" in filename or "\\" in filename:
            raise ValueError(f"Invalid artifact filename: {filename!r}")
        return self.root / filename

    def exists(self, filename: str) -> bool:
        """Check if an artifact has already been written."""
        return self.path_for(filename).is_file()

    def ensure(self) -> None:
        """Create the directory (and parents) if missing."""
        self.root.mkdir(parents=True, exist_ok=True)

    def clear(self) -> None:
        """Delete the directory tree and recreate it empty.

        Errors while deleting propagate: a half-deleted directory could make
        later builds report stale cache hits.
        """
        if self.root.exists():
            shutil.rmtree(self.root)
            logger.info("Removed output directory %s", self.root)
        self.ensure()
