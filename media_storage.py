import uuid
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional
from urllib.parse import urlparse

from exceptions import MediaUploadError
from logging_config import logger

MEDIA_TYPES = {"image", "video"}


class MediaStorage:
    """Status media on local disk under <root>/statuses/<type>s/<uuid>.<ext>."""

    def __init__(self, root: str, url_prefix: str = "/media", max_bytes: Optional[int] = None):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes

    def _folder(self, media_type: str) -> PurePosixPath:
        return PurePosixPath("statuses") / f"{media_type}s"

    def save(self, fileobj: BinaryIO, filename: str, media_type: str) -> str:
        """Store an upload and return its public URL."""
        if media_type not in MEDIA_TYPES:
            raise MediaUploadError(f"Media is not supported for '{media_type}' statuses")

        data = fileobj.read()
        if not data:
            raise MediaUploadError("Uploaded file is empty")
        if self.max_bytes and len(data) > self.max_bytes:
            raise MediaUploadError(f"File exceeds {self.max_bytes} bytes")

        suffix = Path(filename or "").suffix.lower()
        relative = self._folder(media_type) / f"{uuid.uuid4()}{suffix}"
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info(f"Stored {media_type} upload {relative} ({len(data)} bytes)")
        return f"{self.url_prefix}/{relative}"

    def delete(self, url: Optional[str], media_type: str) -> bool:
        """Remove a stored file by its URL; unknown files are ignored."""
        if not url or media_type not in MEDIA_TYPES:
            return False
        name = PurePosixPath(urlparse(url).path).name
        if not name:
            return False
        target = self.root / self._folder(media_type) / name
        if not target.is_file():
            logger.warning(f"Media file for {url} not found, nothing to delete")
            return False
        target.unlink()
        logger.info(f"Deleted media {target}")
        return True
