"""Synchronous image API provider (Gemini ``generateContent``).

The request carries the instruction text and every input image inline as
base64 parts; the response carries the generated image inline.  Because the
result is bytes rather than a hosted URL, the provider hands it to the
:class:`~creatorgen.core.outputs.OutputWriter` and returns the stored copy's
public URL.

Rate Limiting
-------------
A ``429`` response is retried exactly once after
``config.rate_limit_retry_delay_seconds``.  A second ``429`` surfaces as
:class:`~creatorgen.core.errors.ProviderRateLimited`.  No other status is
retried: generation calls are billed upstream.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any

import httpx

from creatorgen.core.errors import GenerationError, ProviderFailure, ProviderRateLimited
from creatorgen.core.models import ProviderJob, ProviderOutcome
from creatorgen.core.providers.base import JobHandle, ProviderBase, ResolvedHandle, provider_registry

logger = logging.getLogger(__name__)

_HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


@provider_registry.register
class GeminiImageProvider(ProviderBase):
    """Request/response image API with inline inputs and outputs."""

    name = "gemini"
    description = "Synchronous multimodal image generation"
    kind = "sync"
    input_transport = "inline"

    def endpoint(self, upstream_model: str) -> str:
        base = self.config.gemini_base_url.rstrip("/")
        return f"{base}/models/{upstream_model}:generateContent"

    def build_payload(self, job: ProviderJob, family: str = "inline") -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        for media in job.inputs:
            if media.data is None:
                continue
            parts.append(
                {
                    "inlineData": {
                        "mimeType": media.mime_type,
                        "data": base64.b64encode(media.data).decode("ascii"),
                    }
                }
            )
        parts.append({"text": job.prompt})

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": 0.7,
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": {"aspectRatio": job.aspect_ratio},
            },
        }
        if job.safety_threshold:
            payload["safetySettings"] = [
                {"category": category, "threshold": job.safety_threshold}
                for category in _HARM_CATEGORIES
            ]
        return payload

    async def submit(self, job: ProviderJob, upstream_model: str, family: str = "inline") -> JobHandle:
        try:
            url = await self._generate(job, upstream_model)
        except GenerationError as e:
            return ResolvedHandle(ProviderOutcome(error=e))
        return ResolvedHandle(ProviderOutcome(result_url=url))

    async def _generate(self, job: ProviderJob, upstream_model: str) -> str:
        payload = self.build_payload(job)
        response = await self._post_with_retry(self.endpoint(upstream_model), payload)

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderFailure(
                "Provider returned a non-JSON response",
                upstream_status=response.status_code,
            ) from e

        if not response.is_success:
            logger.error("Synchronous provider error %d: %s", response.status_code, body)
            raise ProviderFailure(
                f"Provider returned {response.status_code}",
                upstream_status=response.status_code,
                details=body,
            )

        inline = _first_inline_image(body)
        if inline is None:
            raise ProviderFailure("No image returned", details=body)

        mime_type, data = inline
        if self.outputs is None:
            raise ProviderFailure("No output storage configured for inline results")
        try:
            return await self.outputs.store(job.user_id, data, mime_type)
        except (OSError, ValueError) as e:
            logger.error("Could not store generated image for user %s: %s", job.user_id, e)
            raise ProviderFailure("Could not store generated image") from e

    async def _post_with_retry(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        headers = {
            "x-goog-api-key": self.config.gemini_api_key,
            "Content-Type": "application/json",
        }

        for attempt in (1, 2):
            try:
                response = await self.http.post(
                    url,
                    json=payload,
                    headers=headers,
                    timeout=self.config.http_timeout_seconds,
                )
            except httpx.HTTPError as e:
                raise ProviderFailure(f"Provider request failed: {e}") from e

            if response.status_code != 429:
                return response

            if attempt == 1:
                logger.warning(
                    "Synchronous provider rate limited; retrying in %.1fs",
                    self.config.rate_limit_retry_delay_seconds,
                )
                await asyncio.sleep(self.config.rate_limit_retry_delay_seconds)

        raise ProviderRateLimited(upstream_status=429)


def _first_inline_image(body: Any) -> tuple[str, bytes] | None:
    """Return ``(mime_type, bytes)`` of the first inline image part, if any."""
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(parts, list):
        return None

    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if not inline or not inline.get("data"):
            continue
        mime_type = str(inline.get("mimeType") or "")
        if mime_type.startswith("image/"):
            try:
                return mime_type, base64.b64decode(inline["data"])
            except ValueError:
                continue
    return None
