"""
Local filesystem storage for uploaded images and documents.
"""
import logging
import os
import uuid
from typing import Optional

from fastapi import UploadFile

from marketplace.core import config
from marketplace.core.errors import BadRequestError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
DOCUMENT_EXTENSIONS = {".pdf", ".doc", ".docx"}


class StorageService:
    def __init__(self, upload_dir: str = None, max_bytes: int = None):
        self.upload_dir = upload_dir or config.UPLOAD_DIR
        self.max_bytes = max_bytes or config.MAX_UPLOAD_BYTES

    def path_for(self, filename: str) -> str:
        return os.path.join(self.upload_dir, os.path.basename(filename))

    async def save(self, file: UploadFile, allowed_extensions=IMAGE_EXTENSIONS) -> str:
        """
        Store an upload under a random name and return that name.

        Raises:
            BadRequestError: Extension not allowed, empty file or too large
        """
        extension = os.path.splitext(file.filename or "")[1].lower()
        if extension not in allowed_extensions:
            raise BadRequestError(f"File type not allowed: {extension or 'none'}")

        content = await file.read()
        if not content:
            raise BadRequestError("Empty file")
        if len(content) > self.max_bytes:
            raise BadRequestError(f"File too large (max {self.max_bytes} bytes)")

        os.makedirs(self.upload_dir, exist_ok=True)
        filename = f"{uuid.uuid4().hex}{extension}"
        with open(self.path_for(filename), "wb") as f:
            f.write(content)

        logger.info(f"File stored: filename={filename}, size={len(content)}")
        return filename

    def delete(self, filename: Optional[str]) -> bool:
        """Remove a stored file. Failures are logged, never raised."""
        if not filename:
            return False
        try:
            os.remove(self.path_for(filename))
            logger.info(f"File deleted: filename={filename}")
            return True
        except FileNotFoundError:
            logger.warning(f"File already gone: filename={filename}")
        except OSError as e:
            logger.error(f"Failed to delete file: filename={filename}, error={e}")
        return False


_storage: Optional[StorageService] = None


def get_storage() -> StorageService:
    global _storage
    if _storage is None:
        _storage = StorageService()
    return _storage
