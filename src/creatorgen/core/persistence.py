"""Generation provenance records.

One immutable record is written per attempt that reached a provider: on
success with the result URL, on failure with ``image_url=None`` and the last
known state (error kind, message, job id) in ``settings``.  Records are never
updated or deleted here.
"""

from __future__ import annotations

import logging
from typing import Any

from creatorgen.core.models import GenerationRecord, ProviderJob, ProviderOutcome
from creatorgen.core.providers.catalog import ModelSpec
from creatorgen.storage.base import GenerationRecordStore

logger = logging.getLogger(__name__)


def build_settings(spec: ModelSpec, job: ProviderJob, outcome: ProviderOutcome, **extra: Any) -> dict[str, Any]:
    """Assemble the ``settings`` blob stored with a record."""
    settings: dict[str, Any] = {
        "provider": spec.provider,
        "model": spec.id,
        "upstream_model": spec.upstream_model,
        "input_images": job.input_count,
        "aspectRatio": job.aspect_ratio,
        "status": "succeeded" if outcome.ok else "failed",
    }
    if job.strength is not None:
        settings["strength"] = job.strength
    job_id = outcome.job_id or job.job_id
    if job_id:
        settings["job_id"] = job_id
    if outcome.error is not None:
        settings["error"] = getattr(outcome.error, "kind", type(outcome.error).__name__)
        settings["error_message"] = str(outcome.error)
    settings.update({key: value for key, value in extra.items() if value is not None})
    return settings


class PersistenceWriter:
    """Write generation records through a :class:`GenerationRecordStore`."""

    def __init__(self, records: GenerationRecordStore) -> None:
        self._records = records

    async def write(self, record: GenerationRecord) -> str | None:
        """Insert *record* and return its id.

        An insert failure is logged and reported as ``None``: the image was
        already produced and must still be returned to the caller.
        """
        try:
            record_id = await self._records.insert(record)
        except Exception:
            logger.exception("prompt_generations insert failed for user %s", record.user_id)
            return None
        logger.info(
            "Recorded generation %s for user %s (%s)",
            record_id,
            record.user_id,
            record.settings.get("status"),
        )
        return record_id
