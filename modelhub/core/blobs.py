"""On-disk image blobs referenced from messages as `/uploads/<name>`."""

import os
import random
import time
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

URL_PREFIX = "/uploads/"


class BlobStore:
    """Write-once image files under a single uploads directory."""

    def __init__(self, root: str | os.PathLike | None = None):
        self.root = Path(root or os.environ.get("UPLOADS_DIR", "uploads"))
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def unique_name(prefix: str, suffix: str) -> str:
        return f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"

    def save(self, data: bytes, prefix: str = "generated", suffix: str = ".png") -> str:
        """Write bytes to a new uniquely named file.

        Returns:
            Root-relative reference of the form `/uploads/<name>`.
        """
        name = self.unique_name(prefix, suffix)
        (self.root / name).write_bytes(data)
        logger.debug("blobs.saved", name=name, size=len(data))
        return URL_PREFIX + name

    def path_for(self, ref: str) -> Path:
        """Map a `/uploads/<name>` reference back to its file path."""
        name = ref[len(URL_PREFIX):] if ref.startswith(URL_PREFIX) else ref.lstrip("/")
        # Only the final path component is honoured.
        return self.root / Path(name).name

    def read(self, ref: str) -> bytes | None:
        """Return the blob's bytes, or None if the file no longer exists."""
        path = self.path_for(ref)
        if not path.is_file():
            return None
        return path.read_bytes()
