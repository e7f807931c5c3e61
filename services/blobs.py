"""
services/blobs.py -- Avatar blob storage on the local filesystem.

The identity engine consumes two operations only:
  store(data, content_type, folder) -> public URL
  release(url)                      -> True if a blob was removed

Blobs are written under BLOB_STORAGE_DIR as <folder>/<uuid4><ext> and served
by api/main.py under BLOB_PUBLIC_BASE_URL. Any store that offers the same two
methods (an object-storage bucket, a CDN origin) can replace this one.

release() answers False for URLs this store does not own and for blobs that
are already gone; it raises OSError only when an existing file cannot be
removed. Callers on the delete path treat both as best-effort.

Layer rule: no imports from api/, auth/, or accounts/.
"""

from __future__ import annotations

import logging
import mimetypes
import uuid
from pathlib import Path

logger = logging.getLogger("waypoint.services.blobs")

_FALLBACK_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class LocalBlobStore:
    """Filesystem-backed blob store with public URLs."""

    def __init__(self, root_dir: str | Path, public_base_url: str) -> None:
        self.root = Path(root_dir).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def store(self, data: bytes, content_type: str, folder: str = "avatars") -> str:
        """Write data to a fresh file under folder and return its public URL."""
        ext = _FALLBACK_EXTENSIONS.get(content_type) or mimetypes.guess_extension(content_type) or ""
        relative = f"{folder}/{uuid.uuid4().hex}{ext}"
        target = self._resolve(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("Stored blob %s (%d bytes)", relative, len(data))
        return f"{self.public_base_url}/{relative}"

    def release(self, url: str) -> bool:
        """Delete the blob behind a public URL previously returned by store()."""
        prefix = f"{self.public_base_url}/"
        if not url or not url.startswith(prefix):
            logger.warning("Blob URL not owned by this store: %s", url)
            return False
        target = self._resolve(url[len(prefix) :])
        if not target.is_file():
            logger.warning("Blob does not exist: %s", url)
            return False
        target.unlink()
        logger.info("Released blob %s", url)
        return True

    def _resolve(self, relative: str) -> Path:
        """Map a relative blob path into root, refusing anything that escapes it."""
        target = (self.root / relative).resolve()
        if self.root not in target.parents:
            raise ValueError(f"Blob path escapes storage root: {relative!r}")
        return target
