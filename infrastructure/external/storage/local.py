"""Local file system storage for generated invoice artifacts."""
import hashlib
import json
import mimetypes
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from application.ports.storage import StoragePort, UploadOutcome
from core.logging_config import get_logger
from .exceptions import InvalidKeyError, StorageError

logger = get_logger(__name__)


class LocalArtifactStorage(StoragePort):
    """Local file system storage provider."""

    def __init__(self, base_path: str, public_base_url: Optional[str] = None):
        """
        Args:
            base_path: Directory that holds the artifacts
            public_base_url: URL prefix under which ``base_path`` is served
        """
        self.base_path = Path(base_path).resolve()
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

        # Ensure base path exists
        self.base_path.mkdir(parents=True, exist_ok=True)

    async def upload(
        self,
        data: bytes,
        key: str,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None,
    ) -> UploadOutcome:
        """Write ``data`` under ``key``; an existing file is overwritten."""
        file_path = self._safe_path(key)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(data)
            if metadata or content_type:
                await self._save_metadata(file_path, metadata, content_type)
        except OSError as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e

        outcome = UploadOutcome(
            key=key,
            etag=hashlib.md5(data).hexdigest(),
            size=len(data),
            content_type=content_type or self._guess_content_type(key),
            url=self.public_url(key),
        )
        logger.info("artifact_stored", key=key, size=len(data))
        return outcome

    async def delete(self, key: str) -> bool:
        file_path = self._safe_path(key)
        if not file_path.exists():
            return False
        try:
            await aiofiles.os.remove(file_path)
            meta_path = self._metadata_path(file_path)
            if meta_path.exists():
                await aiofiles.os.remove(meta_path)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e
        logger.info("artifact_deleted", key=key)
        return True

    def public_url(self, key: str) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url}/{key.lstrip('/')}"

    def _safe_path(self, key: str) -> Path:
        """Build safe path preventing directory traversal.

        Raises:
            InvalidKeyError: If path is unsafe
        """
        clean_key = key.lstrip("/")
        path = (self.base_path / clean_key).resolve()
        try:
            path.relative_to(self.base_path)
        except ValueError:
            raise InvalidKeyError(f"Invalid path: {key}")
        return path

    def _metadata_path(self, file_path: Path) -> Path:
        """Get metadata file path for a file."""
        return file_path.parent / f"{file_path.name}.meta"

    async def _save_metadata(
        self,
        file_path: Path,
        metadata: Optional[dict],
        content_type: Optional[str],
    ) -> None:
        """Save metadata to sidecar file."""
        meta_data = {}
        if metadata:
            meta_data["metadata"] = metadata
        if content_type:
            meta_data["content_type"] = content_type
        async with aiofiles.open(self._metadata_path(file_path), "w") as f:
            await f.write(json.dumps(meta_data))

    @staticmethod
    def _guess_content_type(key: str) -> str:
        content_type, _ = mimetypes.guess_type(key)
        return content_type or "application/octet-stream"
