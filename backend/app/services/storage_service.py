"""
Storage Service - Handles file storage on the local upload directory

Files are written under settings.UPLOAD_DIR with a unique, sanitized name and
exposed through /api/v1/files/<relative path>. Ebook editions live under
ebooks/ and are only served through the signed ebook route.
"""

import aiofiles
import aiofiles.os
import hashlib
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.core.config import settings
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.logging_config import logger

FILES_URL_PREFIX = "/api/v1/files/"
# Only reachable through the signed ebook route
PROTECTED_DIRS = ("ebooks",)
UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredFile:
    """Result of a successful write"""
    relative_path: str
    url: str
    size: int
    checksum_sha256: str
    original_name: str


class StorageService:
    """Local filesystem storage for uploads and ebook files"""

    def __init__(self, root: Optional[Path] = None):
        self._root = root

    @property
    def root(self) -> Path:
        return (self._root or settings.UPLOAD_DIR).resolve()

    @staticmethod
    def calculate_hash(content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()

    @staticmethod
    def safe_filename(original_name: str) -> str:
        """Unique name that keeps the original extension"""
        name = Path(original_name or "file").name
        stem, ext = Path(name).stem, Path(name).suffix.lower()
        stem = UNSAFE_CHARS.sub("-", stem).strip("-")[:80] or "file"
        ext = UNSAFE_CHARS.sub("", ext)
        return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{stem}{ext}"

    def resolve(self, relative_path: str) -> Path:
        """Absolute path inside the storage root; rejects traversal"""
        target = (self.root / relative_path).resolve()
        if target != self.root and self.root not in target.parents:
            logger.warning(f"[Storage] Rejected path outside upload root: {relative_path}")
            raise ForbiddenError("Access denied")
        return target

    def url_for(self, relative_path: str) -> str:
        return FILES_URL_PREFIX + relative_path

    def relative_from_url(self, storage_url: str) -> Optional[str]:
        if storage_url and storage_url.startswith(FILES_URL_PREFIX):
            return storage_url[len(FILES_URL_PREFIX):]
        return None

    async def save(self, content: bytes, original_name: str, subdir: str = "") -> StoredFile:
        """Write bytes under the storage root"""
        filename = self.safe_filename(original_name)
        relative = f"{subdir.strip('/')}/{filename}" if subdir else filename
        target = self.resolve(relative)

        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(content)

        logger.info(f"[Storage] Stored {original_name} as {relative} ({len(content)} bytes)")
        return StoredFile(
            relative_path=relative,
            url=self.url_for(relative),
            size=len(content),
            checksum_sha256=self.calculate_hash(content),
            original_name=original_name,
        )

    def is_protected(self, relative_path: str) -> bool:
        target = self.resolve(relative_path)
        for name in PROTECTED_DIRS:
            protected = self.root / name
            if target == protected or protected in target.parents:
                return True
        return False

    def open_path(self, relative_path: str) -> Path:
        """Existing file inside the storage root, ready to be streamed"""
        target = self.resolve(relative_path)
        if not target.is_file():
            raise NotFoundError("File not found")
        return target

    async def delete_by_url(self, storage_url: Optional[str]) -> bool:
        """Delete a stored file given its public URL. Returns True when a file was removed."""
        relative = self.relative_from_url(storage_url or "")
        if not relative:
            return False
        try:
            target = self.resolve(relative)
        except ForbiddenError:
            return False
        if not target.is_file():
            return False
        try:
            await aiofiles.os.remove(target)
        except OSError as e:
            logger.error(f"[Storage] Failed to delete {relative}: {e}")
            return False
        logger.info(f"[Storage] Deleted {relative}")
        return True


# Singleton instance
storage_service = StorageService()
