"""Persistence of generated image bytes to object storage.

Providers that return image bytes (rather than a hosted URL) hand them to
:class:`OutputWriter`, which writes two copies concurrently:

- the original bytes, at ``users/<user>/<stamp>.<ext>``
- an optimized WebP copy, at ``users/<user>/<stamp>-optimized.webp``

The original's public URL is the generation result.  A failure to build the
optimized copy is logged and does not fail the generation.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time

from PIL import Image

from creatorgen.core.assets import extension_for
from creatorgen.storage.base import ObjectStorage

logger = logging.getLogger(__name__)

OPTIMIZED_MAX_EDGE = 1536
OPTIMIZED_QUALITY = 82


def optimize_image(data: bytes, max_edge: int = OPTIMIZED_MAX_EDGE) -> bytes:
    """Return a downscaled WebP encoding of *data*.

    Raises:
        OSError: *data* is not a decodable image.
    """
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
        image.thumbnail((max_edge, max_edge))
        buffer = io.BytesIO()
        image.save(buffer, format="WEBP", quality=OPTIMIZED_QUALITY)
    return buffer.getvalue()


class OutputWriter:
    """Write generated images to storage as original + optimized copies."""

    def __init__(self, storage: ObjectStorage) -> None:
        self._storage = storage

    async def store(self, user_id: str, data: bytes, mime_type: str) -> str:
        """Store *data* for *user_id* and return the original's public URL."""
        stamp = int(time.time() * 1000)
        base = f"users/{user_id}/{stamp}"
        original_path = f"{base}.{extension_for(mime_type)}"

        original_url, _ = await asyncio.gather(
            self._storage.upload(original_path, data, mime_type),
            self._store_optimized(f"{base}-optimized.webp", data),
        )
        return original_url

    async def _store_optimized(self, path: str, data: bytes) -> str | None:
        try:
            optimized = await asyncio.to_thread(optimize_image, data)
        except OSError as e:
            logger.warning("Could not build optimized copy for %s: %s", path, e)
            return None
        return await self._storage.upload(path, optimized, "image/webp")
