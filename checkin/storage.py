"""
Media Storage

Bucket/object storage on the local filesystem. Objects live at
STORAGE_DIR/<bucket>/<path> and are served under MEDIA_BASE_URL.
"""
from pathlib import Path, PurePosixPath
import logging
import threading

from checkin.config import STORAGE_DIR, MEDIA_BASE_URL

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised for invalid object paths and upload conflicts."""


class LocalMediaStorage:
    """Filesystem-backed object storage."""

    def __init__(self, root: Path = STORAGE_DIR, base_url: str = MEDIA_BASE_URL):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self._lock = threading.Lock()

    def _object_path(self, bucket: str, path: str) -> Path:
        for part in (bucket, path):
            pure = PurePosixPath(part)
            if not part or pure.is_absolute() or ".." in pure.parts:
                raise StorageError(f"Invalid object path: {bucket}/{path}")
        return self.root / bucket / PurePosixPath(path)

    def exists(self, bucket: str, path: str) -> bool:
        return self._object_path(bucket, path).is_file()

    def upload(self, bucket: str, path: str, data: bytes, upsert: bool = False) -> str:
        """
        Store `data` at bucket/path.

        Returns:
            The object key "bucket/path"

        Raises:
            StorageError: If the object exists and upsert is False
        """
        target = self._object_path(bucket, path)
        with self._lock:
            if target.exists() and not upsert:
                raise StorageError(f"Object already exists: {bucket}/{path}")

            target.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never see a partial object
            tmp = target.with_name(target.name + ".part")
            tmp.write_bytes(data)
            tmp.replace(target)

        logger.info(f"Stored {len(data)} bytes at {bucket}/{path}")
        return f"{bucket}/{path}"

    def download(self, bucket: str, path: str) -> bytes:
        target = self._object_path(bucket, path)
        if not target.is_file():
            raise StorageError(f"Object not found: {bucket}/{path}")
        return target.read_bytes()

    def delete(self, bucket: str, path: str) -> bool:
        target = self._object_path(bucket, path)
        with self._lock:
            if not target.is_file():
                return False
            target.unlink()
        logger.info(f"Deleted {bucket}/{path}")
        return True

    def get_public_url(self, bucket: str, path: str) -> str:
        self._object_path(bucket, path)
        return f"{self.base_url}/{bucket}/{path}"


# Singleton instance
media_storage = LocalMediaStorage()
