"""Local filesystem object storage.

Objects live under ``<storage_dir>/<bucket>/<path>`` and are served by the
FastAPI application at ``/storage/<bucket>/<path>`` (see
:mod:`creatorgen.api.main`).  This mirrors the layout of a hosted bucket
closely enough that the asset resolver's URL → path fallback works the same
way against both.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from creatorgen.storage.base import ObjectStorage

logger = logging.getLogger(__name__)


class LocalObjectStorage(ObjectStorage):
    """Object storage backed by a directory on disk.

    Args:
        root: Storage root directory (``config.storage_dir``).
        bucket: Bucket name; becomes a subdirectory of *root*.
        public_base_url: Base URL the application is reachable at.
    """

    def __init__(self, root: Path, bucket: str, public_base_url: str) -> None:
        self.root = Path(root)
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.bucket_dir.mkdir(parents=True, exist_ok=True)

    @property
    def bucket_dir(self) -> Path:
        return self.root / self.bucket

    def _resolve(self, path: str) -> Path:
        """Map an object path to a file inside the bucket directory.

        Raises:
            ValueError: The path escapes the bucket directory.
        """
        target = (self.bucket_dir / path.lstrip("/")).resolve()
        if not target.is_relative_to(self.bucket_dir.resolve()):
            logger.warning("Path traversal attempt detected: %s", path)
            raise ValueError(f"Invalid object path: {path}")
        return target

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/storage/{self.bucket}/{path.lstrip('/')}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self._resolve(path)
        await asyncio.to_thread(self._write, target, data)
        logger.info("Stored %d bytes (%s) at %s", len(data), content_type, path)
        return self.public_url(path)

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(path)
        return await asyncio.to_thread(target.read_bytes)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
