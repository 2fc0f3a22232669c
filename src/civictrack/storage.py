"""Photo blob storage.

Issues only ever hold photo URLs; the bytes live behind a ``BlobStore``.
``LocalBlobStore`` keeps them on disk under ``.civictrack/uploads/`` and the
API serves that directory at ``/uploads``.
"""

from __future__ import annotations

import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Protocol

from civictrack.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB per image


class BlobStore(Protocol):
    """Anything that can persist an uploaded image and hand back its URL."""

    def put(self, filename: str, content: bytes, content_type: str) -> str: ...

    def delete(self, url: str) -> bool: ...


def check_image(filename: str, content: bytes, content_type: str | None) -> str:
    """Return the effective content type, raising ValidationError if it is not an image."""
    effective = content_type or mimetypes.guess_type(filename)[0] or ""
    if not effective.startswith("image/"):
        raise ValidationError.for_field("photos", f"{filename or 'upload'} is not an image ({effective or 'unknown type'})")
    if not content:
        raise ValidationError.for_field("photos", f"{filename or 'upload'} is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError.for_field("photos", f"{filename or 'upload'} exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")
    return effective


class LocalBlobStore:
    """Writes blobs to a local directory under random names."""

    def __init__(self, root: Path, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def put(self, filename: str, content: bytes, content_type: str) -> str:
        content_type = check_image(filename, content, content_type)
        suffix = Path(filename).suffix.lower() or (mimetypes.guess_extension(content_type) or "")
        name = f"{uuid.uuid4().hex}{suffix}"
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / name).write_bytes(content)
        logger.info("Stored upload %s (%d bytes)", name, len(content))
        return f"{self.base_url}/uploads/{name}"

    def delete(self, url: str) -> bool:
        """Remove a blob previously returned by put(). Returns False if it was not ours."""
        prefix = f"{self.base_url}/uploads/"
        if not url.startswith(prefix):
            return False
        name = url[len(prefix) :]
        if "/" in name or name in ("", ".", ".."):
            return False
        path = self.root / name
        if not path.exists():
            return False
        path.unlink()
        return True
