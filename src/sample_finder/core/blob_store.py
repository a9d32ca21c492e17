"""Filesystem blob storage for raw audio content, keyed by asset id."""

import os
import re
import shutil
from pathlib import Path
from typing import List, Optional

from loguru import logger

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class BlobStore:
    """Stores one file per asset id under a single directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, blob_id: str) -> Path:
        if not _SAFE_ID.match(blob_id):
            raise ValueError(f"Invalid blob id: {blob_id!r}")
        return self.root / blob_id

    def store(self, blob_id: str, data: bytes) -> None:
        """Write ``data`` for ``blob_id``, replacing any previous content."""
        path = self._path(blob_id)
        self.root.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        with open(temp_path, "wb") as f:
            f.write(data)
        os.replace(temp_path, path)

    def get(self, blob_id: str) -> Optional[bytes]:
        """Return the stored bytes, or None when nothing is stored."""
        path = self._path(blob_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def delete(self, blob_id: str) -> None:
        """Remove the blob if present."""
        try:
            self._path(blob_id).unlink()
        except FileNotFoundError:
            pass

    def list_ids(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_file() and not p.suffix)

    def clear(self) -> None:
        """Delete every stored blob."""
        if self.root.exists():
            shutil.rmtree(self.root)
            logger.info(f"Cleared blob store at {self.root}")
