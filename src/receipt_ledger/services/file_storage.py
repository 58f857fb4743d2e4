"""
On-disk storage for uploaded documents.

Files are written under ``<root>/<subdir>/`` with a unique name built from
the owner, the upload time and a random suffix, so two uploads of the same
file never overwrite each other.
"""

import logging
import re
import secrets
import time
from pathlib import Path

from ..state_store import PersistenceError

logger = logging.getLogger(__name__)

UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_NAME_LENGTH = 100


def sanitize_filename(name: str) -> str:
    """Reduce a client-supplied filename to a safe basename."""
    base = Path(name or "").name
    cleaned = UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned[-MAX_NAME_LENGTH:] or "upload"


class FileStorage:
    """Stores raw uploads below a root directory."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def save(
        self, owner_id: str, original_name: str, data: bytes, subdir: str = "receipts"
    ) -> Path:
        """
        Persist an upload.

        Returns:
            Path of the stored file

        Raises:
            PersistenceError: If the file cannot be written
        """
        directory = self.root / subdir
        filename = (
            f"{sanitize_filename(str(owner_id))}-{int(time.time() * 1000)}-"
            f"{secrets.token_hex(4)}-{sanitize_filename(original_name)}"
        )
        path = directory / filename
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Cannot store upload {original_name!r}: {e}") from e

        logger.debug(f"Stored {len(data)} bytes at {path}")
        return path

    def read(self, path: Path | str) -> bytes:
        """Read a stored file back. Raises PersistenceError if it is unreadable."""
        try:
            return Path(path).read_bytes()
        except OSError as e:
            raise PersistenceError(f"Cannot read stored file {path}: {e}") from e

    def delete(self, path: Path | str) -> bool:
        """Remove a stored file. Returns False if it did not exist."""
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Cannot delete stored file {path}: {e}") from e
        return True
