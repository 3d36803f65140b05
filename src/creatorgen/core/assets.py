"""Reference asset resolution.

Turns a :class:`~creatorgen.core.models.MediaReference` (uploaded bytes or a
URL) into provider-ready input.

Two-Tier Fetch
--------------
Generated assets can be moved to a private bucket while older records still
hold their public URLs.  URLs are therefore resolved in two steps:

1. Unauthenticated ``GET`` of the URL.
2. On a non-2xx status or a network error, an authenticated storage read of
   the object path extracted from the URL (the part after ``/<bucket>/``).

:class:`~creatorgen.core.errors.AssetUnavailable` is raised only when both
tiers fail.

Inline vs URL Transport
-----------------------
Synchronous providers take image bytes inline; queue providers fetch inputs
themselves and need URLs.  :meth:`AssetResolver.resolve` returns bytes,
:meth:`AssetResolver.resolve_url` returns a URL the provider can reach:

- uploaded bytes are stored under ``uploads/<user>/`` and their public URL used
- a publicly fetchable URL is passed through unchanged
- a URL only reachable through storage is re-hosted under ``tmp/<user>/``
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

import httpx

from creatorgen.core.errors import AssetUnavailable
from creatorgen.core.models import MediaReference, ResolvedMedia
from creatorgen.storage.base import ObjectStorage

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def extension_for(mime_type: str) -> str:
    """Return a file extension for *mime_type* (``png`` when unknown)."""
    return _EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), "png")


class AssetResolver:
    """Resolve references with a public fetch and a storage fallback.

    Args:
        http: Shared HTTP client used for public fetches.
        storage: Object storage used for the authenticated fallback and for
            publishing uploads.
    """

    def __init__(self, http: httpx.AsyncClient, storage: ObjectStorage) -> None:
        self._http = http
        self._storage = storage

    # -- Public interface ---------------------------------------------------

    async def resolve(self, ref: MediaReference) -> ResolvedMedia:
        """Return the reference as inline bytes.

        Raises:
            AssetUnavailable: Both the public fetch and the storage read failed.
        """
        if ref.is_upload:
            return ResolvedMedia(mime_type=ref.mime_type, data=ref.data)

        fetched = await self._fetch_public(ref.url)
        if fetched is None:
            fetched = await self._fetch_from_storage(ref.url)
        if fetched is None:
            raise AssetUnavailable(f"Could not load image: {ref.url}", url=ref.url)

        data, mime_type = fetched
        return ResolvedMedia(mime_type=mime_type, data=data)

    async def resolve_url(self, ref: MediaReference, user_id: str) -> ResolvedMedia:
        """Return a URL for the reference that a remote provider can fetch.

        Raises:
            AssetUnavailable: The URL is neither public nor in storage.
        """
        if ref.is_upload:
            path = self._object_path("uploads", user_id, ref.mime_type)
            url = await self._storage.upload(path, ref.data, ref.mime_type)
            return ResolvedMedia(mime_type=ref.mime_type, url=url)

        fetched = await self._fetch_public(ref.url)
        if fetched is not None:
            return ResolvedMedia(mime_type=fetched[1], url=ref.url)

        fetched = await self._fetch_from_storage(ref.url)
        if fetched is None:
            raise AssetUnavailable(f"Could not load image: {ref.url}", url=ref.url)

        data, mime_type = fetched
        path = self._object_path("tmp", user_id, mime_type)
        url = await self._storage.upload(path, data, mime_type)
        logger.info("Re-hosted private asset %s at %s", ref.url, url)
        return ResolvedMedia(mime_type=mime_type, url=url)

    async def resolve_all(
        self,
        refs: list[MediaReference],
        *,
        user_id: str,
        as_url: bool,
    ) -> list[ResolvedMedia]:
        """Resolve several references concurrently, preserving their order."""
        if as_url:
            tasks = [self.resolve_url(ref, user_id) for ref in refs]
        else:
            tasks = [self.resolve(ref) for ref in refs]
        return list(await asyncio.gather(*tasks))

    # -- Fetch tiers --------------------------------------------------------

    async def _fetch_public(self, url: str) -> tuple[bytes, str] | None:
        try:
            response = await self._http.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.warning("Public fetch of %s failed: %s", url, e)
            return None

        if not response.is_success:
            logger.warning("Public fetch of %s returned %d", url, response.status_code)
            return None

        mime_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return response.content, mime_type or "image/png"

    async def _fetch_from_storage(self, url: str) -> tuple[bytes, str] | None:
        path = self._storage.path_from_url(url)
        if not path:
            logger.warning("No storage path in %s; fallback skipped", url)
            return None

        try:
            data = await self._storage.download(path)
        except (FileNotFoundError, OSError, ValueError) as e:
            logger.warning("Storage read of %s failed: %s", path, e)
            return None

        logger.info("Loaded %s through the storage fallback", path)
        return data, _mime_from_path(path)

    @staticmethod
    def _object_path(prefix: str, user_id: str, mime_type: str) -> str:
        stamp = int(time.time() * 1000)
        return f"{prefix}/{user_id}/{stamp}-{uuid.uuid4().hex[:8]}.{extension_for(mime_type)}"


def _mime_from_path(path: str) -> str:
    suffix = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    for mime_type, extension in _EXTENSIONS.items():
        if extension == suffix:
            return mime_type
    return "image/png"
