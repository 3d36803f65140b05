"""Queue-polling provider (fal.ai queue API).

Jobs are submitted to ``<queue_url>/<upstream_model>[/edit]`` and polled at
``.../requests/<request_id>/status`` until they settle.

Polling State Machine
---------------------
::

    SUBMIT ──(images in response)──────────────────────────► DONE
       │
       └─(request_id)─► POLLING ──(IN_QUEUE / IN_PROGRESS)─► POLLING
                          │  ├──(poll HTTP error)──────────► POLLING (logged)
                          │  ├──(images in poll response)──► DONE
                          │  ├──(COMPLETED)──► fetch result ► DONE
                          │  └──(FAILED / ERROR / unknown)─► ProviderFailure
                          └──(budget exhausted)────────────► GenerationTimeout

The interval is ``config.poll_interval_seconds`` (1s) and the wall-clock
budget ``config.poll_budget_seconds`` (290s).  Each poll request is capped at
the remaining budget, so the loop never outlives its deadline by more than
one scheduling tick.  Cancelling the awaiting task abandons the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from creatorgen.core.errors import GenerationError, GenerationTimeout, ProviderFailure
from creatorgen.core.models import ProviderJob, ProviderOutcome
from creatorgen.core.providers.base import JobHandle, ProviderBase, ResolvedHandle, provider_registry

logger = logging.getLogger(__name__)

_PENDING_STATUSES = {"IN_QUEUE", "IN_PROGRESS"}
_FAILED_STATUSES = {"FAILED", "ERROR", "CANCELLED"}


def _first_image_url(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    images = body.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict):
        url = images[0].get("url")
        if url:
            return str(url)
    image = body.get("image")
    if isinstance(image, dict) and image.get("url"):
        return str(image["url"])
    return None


@provider_registry.register
class FalQueueProvider(ProviderBase):
    """Submit-then-poll job API with URL inputs."""

    name = "fal-queue"
    description = "Asynchronous queue job API"
    kind = "queue"
    input_transport = "url"

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Key {self.config.fal_key}", "Content-Type": "application/json"}

    def _base(self, upstream_model: str) -> str:
        return f"{self.config.fal_queue_url.rstrip('/')}/{upstream_model.strip('/')}"

    def endpoint(self, upstream_model: str, family: str, has_inputs: bool) -> str:
        """Return the submit URL; compositing models edit via ``/edit``."""
        base = self._base(upstream_model)
        if family == "multi_image" and has_inputs:
            return f"{base}/edit"
        return base

    def build_payload(self, job: ProviderJob, family: str) -> dict[str, Any]:
        urls = [media.url for media in job.inputs if media.url]

        if family == "multi_image":
            return {
                "prompt": job.prompt,
                "image_urls": urls,
                "aspect_ratio": job.aspect_ratio,
            }

        payload: dict[str, Any] = {
            "prompt": job.prompt,
            "image_size": {"width": job.width, "height": job.height},
        }
        if urls:
            # single_image family accepts one input only.
            payload["image_url"] = urls[0]
            if job.strength is not None:
                payload["strength"] = job.strength
        return payload

    async def submit(self, job: ProviderJob, upstream_model: str, family: str) -> JobHandle:
        url = self.endpoint(upstream_model, family, bool(job.inputs))
        payload = self.build_payload(job, family)
        logger.info(
            "Queue submit (%s): endpoint=%s inputs=%d prompt=%r",
            upstream_model,
            url,
            job.input_count,
            job.prompt[:50],
        )

        try:
            response = await self.http.post(
                url,
                json=payload,
                headers=self._headers,
                timeout=self.config.http_timeout_seconds,
            )
        except httpx.HTTPError as e:
            return ResolvedHandle(ProviderOutcome(error=ProviderFailure(f"Queue request failed: {e}")))

        if not response.is_success:
            logger.error("Queue submit failed %d: %s", response.status_code, response.text)
            return ResolvedHandle(
                ProviderOutcome(
                    error=ProviderFailure(
                        f"Queue request failed: {response.status_code}",
                        upstream_status=response.status_code,
                        details=response.text,
                    )
                )
            )

        body = _json_or_none(response)
        result_url = _first_image_url(body)
        if result_url:
            logger.info("Queue provider answered synchronously")
            return ResolvedHandle(ProviderOutcome(result_url=result_url))

        request_id = body.get("request_id") if isinstance(body, dict) else None
        if not request_id:
            return ResolvedHandle(
                ProviderOutcome(
                    error=ProviderFailure("Queue returned no request_id and no images", details=body)
                )
            )

        job.job_id = str(request_id)
        base = self._base(upstream_model)
        status_url = body.get("status_url") or f"{base}/requests/{request_id}/status"
        response_url = body.get("response_url") or f"{base}/requests/{request_id}"
        return QueueJobHandle(self, job, status_url, response_url)


class QueueJobHandle(JobHandle):
    """Pollable handle for a job accepted by the queue."""

    def __init__(self, provider: FalQueueProvider, job: ProviderJob, status_url: str, response_url: str) -> None:
        self.provider = provider
        self.job = job
        self.status_url = status_url
        self.response_url = response_url
        self.attempts = 0
        self.last_status: str | None = None

    async def wait(self, budget_seconds: float) -> ProviderOutcome:
        try:
            url = await self._poll(budget_seconds)
        except GenerationError as e:
            return ProviderOutcome(error=e, job_id=self.job.job_id)
        return ProviderOutcome(result_url=url, job_id=self.job.job_id)

    async def _poll(self, budget_seconds: float) -> str:
        interval = self.provider.config.poll_interval_seconds
        deadline = time.monotonic() + budget_seconds

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(interval, remaining))
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            self.attempts += 1
            body = await self._get(self.status_url, remaining)
            if body is None:
                continue

            result_url = _first_image_url(body)
            if result_url:
                return result_url

            status = str(body.get("status", "")).upper()
            self.last_status = status
            logger.debug("Job %s attempt %d: status=%s", self.job.job_id, self.attempts, status)

            if status == "COMPLETED":
                return await self._fetch_result(deadline)
            if status in _PENDING_STATUSES:
                continue
            if status in _FAILED_STATUSES or body.get("error"):
                raise ProviderFailure("Generation failed", job_id=self.job.job_id, details=body)

            logger.error("Unknown queue status for job %s: %s", self.job.job_id, body)
            raise ProviderFailure("Generation failed", job_id=self.job.job_id, details=body)

        logger.error(
            "Polling budget exhausted for job %s after %d attempts (last status %s)",
            self.job.job_id,
            self.attempts,
            self.last_status,
        )
        raise GenerationTimeout(
            f"Generation timed out after {budget_seconds:.0f}s",
            job_id=self.job.job_id,
            last_status=self.last_status,
        )

    async def _fetch_result(self, deadline: float) -> str:
        remaining = max(deadline - time.monotonic(), 0.1)
        body = await self._get(self.response_url, remaining)
        result_url = _first_image_url(body)
        if not result_url:
            raise ProviderFailure("Job completed but returned no image URL", job_id=self.job.job_id)
        return result_url

    async def _get(self, url: str, remaining: float) -> dict | None:
        timeout = min(self.provider.config.http_timeout_seconds, remaining)
        try:
            response = await self.provider.http.get(
                url,
                headers=self.provider._headers,
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Attempt %d: status check failed for %s: %s", self.attempts, url, e)
            return None

        if not response.is_success:
            logger.warning(
                "Attempt %d: status check failed (%d) for %s: %s",
                self.attempts,
                response.status_code,
                url,
                response.text,
            )
            return None

        body = _json_or_none(response)
        return body if isinstance(body, dict) else None


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
