"""Tests for creatorgen.core.orchestrator — end-to-end request flow.

Real components run against the SQLite datastore, local storage, and the
fake upstream; only outbound HTTP is scripted.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from conftest import GEMINI_URL, QUEUE_URL, RESULT_URL, gemini_image_response
from creatorgen.core.admission import AdmissionController
from creatorgen.core.assets import AssetResolver
from creatorgen.core.errors import (
    AssetUnavailable,
    InsufficientCredits,
    ProfileNotFound,
    ProviderFailure,
    SystemPaused,
)
from creatorgen.core.models import GenerationRequest, MediaReference, TemplateRules
from creatorgen.core.orchestrator import GenerationOrchestrator
from creatorgen.core.outputs import OutputWriter
from creatorgen.core.pause_gate import PAUSE_FLAG, PauseGate
from creatorgen.core.persistence import PersistenceWriter
from creatorgen.core.providers import FalQueueProvider, GeminiImageProvider, ProviderGateway
from creatorgen.core.rules import DEFAULT_RULES

NANO_BASE = f"{QUEUE_URL}/fal-ai/nano-banana-pro"
TEMPLATE_URL = "https://cdn.test/templates/summer-sale.png"
GEMINI_ENDPOINT = f"{GEMINI_URL}/models/gemini-3-pro-image-preview:generateContent"


@pytest.fixture
def orchestrator(test_config, http_client, datastore, storage) -> GenerationOrchestrator:
    outputs = OutputWriter(storage)
    gateway = ProviderGateway(
        test_config,
        {
            "fal-queue": FalQueueProvider(test_config, http_client, outputs),
            "gemini": GeminiImageProvider(test_config, http_client, outputs),
        },
    )
    return GenerationOrchestrator(
        admission=AdmissionController(datastore, test_config.privileged_roles),
        pause_gate=PauseGate(datastore, test_config.privileged_roles),
        assets=AssetResolver(http_client, storage),
        gateway=gateway,
        persistence=PersistenceWriter(datastore),
        config_store=datastore,
        image_cost=test_config.image_cost,
    )


def _submitted(upstream, prefix: str = QUEUE_URL) -> dict:
    return json.loads(upstream.calls("POST", prefix)[0].content)


class TestTextToImage:
    def test_success_charges_and_records(self, orchestrator, datastore, upstream, make_profile):
        datastore.upsert_profile(make_profile(credits=10))
        upstream.queue_job()

        result = asyncio.run(orchestrator.generate(GenerationRequest(user_id="user-1", prompt="a red bicycle")))

        assert result.image_url == RESULT_URL
        assert result.remaining_credits == 7
        assert result.model_id == "nano-banana-pro"
        assert asyncio.run(datastore.get_profile("user-1")).credits == 7

        (record,) = datastore.list_generations("user-1")
        assert record["id"] == result.generation_id
        assert record["image_url"] == RESULT_URL
        assert record["settings"]["input_images"] == 0
        assert record["settings"]["model"] == "nano-banana-pro"
        assert record["combined_prompt_text"] == result.prompt

        assert upstream.calls("POST", f"{NANO_BASE}/edit") == []
        assert _submitted(upstream)["image_urls"] == []

    def test_repeated_request_charges_each_time(self, orchestrator, datastore, upstream, make_profile):
        datastore.upsert_profile(make_profile(credits=10))
        upstream.queue_job()
        request = GenerationRequest(user_id="user-1", prompt="a red bicycle")

        first = asyncio.run(orchestrator.generate(request))
        second = asyncio.run(orchestrator.generate(request))

        assert (first.remaining_credits, second.remaining_credits) == (7, 4)
        assert first.generation_id != second.generation_id
        assert len(datastore.list_generations("user-1")) == 2

    def test_admin_with_zero_credits(self, orchestrator, datastore, upstream, make_profile):
        datastore.upsert_profile(make_profile(credits=0, role="admin"))
        upstream.queue_job()

        result = asyncio.run(orchestrator.generate(GenerationRequest(user_id="user-1", prompt="x")))

        assert result.remaining_credits == 0
        assert asyncio.run(datastore.get_profile("user-1")).credits == 0


class TestRejections:
    """Rejected requests never reach a provider and leave no record."""

    def test_insufficient_credits(self, orchestrator, datastore, upstream, make_profile):
        datastore.upsert_profile(make_profile(credits=2))

        with pytest.raises(InsufficientCredits) as exc_info:
            asyncio.run(orchestrator.generate(GenerationRequest(user_id="user-1", prompt="x")))

        assert exc_info.value.details["required"] == 3
        assert exc_info.value.details["available"] == 2
        assert upstream.requests == []
        assert datastore.list_generations() == []

    def test_paused(self, orchestrator, datastore, upstream, make_profile):
        datastore.upsert_profile(make_profile(credits=10))
        datastore.set_flag(PAUSE_FLAG, True)

        with pytest.raises(SystemPaused):
            asyncio.run(orchestrator.generate(GenerationRequest(user_id="user-1", prompt="x")))

        assert upstream.requests == []
        assert datastore.list_generations() == []
        assert asyncio.run(datastore.get_profile("user-1")).credits == 10

    def test_paused_admin_proceeds(self, orchestrator, datastore, upstream, make_profile):
        datastore.upsert_profile(make_profile(credits=0, role="super_admin"))
        datastore.set_flag(PAUSE_FLAG, True)
        upstream.queue_job()

        assert asyncio.run(orchestrator.generate(GenerationRequest(user_id="user-1", prompt="x"))).image_url

    def test_unknown_profile(self, orchestrator, upstream):
        with pytest.raises(ProfileNotFound):
            asyncio.run(orchestrator.generate(GenerationRequest(user_id="ghost", prompt="x")))
        assert upstream.requests == []

    def test_unavailable_reference(self, orchestrator, datastore, upstream, make_profile):
        datastore.upsert_profile(make_profile(credits=10))
        request = GenerationRequest(
            user_id="user-1",
            prompt="x",
            images=(MediaReference(url="https://cdn.test/missing.png"),),
        )

        with pytest.raises(AssetUnavailable):
            asyncio.run(orchestrator.generate(request))

        assert upstream.calls("POST") == []
        assert datastore.list_generations() == []
        assert asyncio.run(datastore.get_profile("user-1")).credits == 10


class TestProviderFailure:
    def test_failure_recorded_not_charged(self, orchestrator, datastore, upstream, make_profile):
        datastore.upsert_profile(make_profile(credits=10))
        upstream.queue_job(statuses=("IN_QUEUE", "FAILED"))

        with pytest.raises(ProviderFailure):
            asyncio.run(orchestrator.generate(GenerationRequest(user_id="user-1", prompt="x")))

        assert asyncio.run(datastore.get_profile("user-1")).credits == 10
        (record,) = datastore.list_generations("user-1")
        assert record["image_url"] is None
        assert record["settings"]["status"] == "failed"
        assert record["settings"]["job_id"] == "req-1"

    def test_unstorable_result_recorded(
        self, orchestrator, datastore, storage, upstream, make_profile, png_bytes, monkeypatch
    ):
        """A sync result that cannot be written still leaves a failed record."""
        datastore.upsert_profile(make_profile(credits=10))
        upstream.add("POST", GEMINI_ENDPOINT, (200, gemini_image_response(png_bytes)))
        monkeypatch.setattr(storage, "upload", AsyncMock(side_effect=OSError("disk full")))
        request = GenerationRequest(user_id="user-1", prompt="x", model_id="gemini-3-preview")

        with pytest.raises(ProviderFailure) as exc_info:
            asyncio.run(orchestrator.generate(request))

        assert exc_info.value.message == "Could not store generated image"
        assert asyncio.run(datastore.get_profile("user-1")).credits == 10
        (record,) = datastore.list_generations("user-1")
        assert record["image_url"] is None
        assert record["settings"]["status"] == "failed"
        assert record["settings"]["error"] == "provider_error"

    def test_cancelled_while_polling_not_charged(self, orchestrator, datastore, upstream, make_profile, test_config):
        test_config.poll_budget_seconds = 5.0
        datastore.upsert_profile(make_profile(credits=10))
        upstream.queue_job(statuses=("IN_PROGRESS",))

        async def run() -> None:
            task = asyncio.create_task(orchestrator.generate(GenerationRequest(user_id="user-1", prompt="x")))
            while not upstream.calls("GET"):
                await asyncio.sleep(0.005)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert asyncio.run(datastore.get_profile("user-1")).credits == 10
        assert datastore.list_generations() == []


class TestRemix:
    def test_template_plus_subject(self, orchestrator, datastore, storage, upstream, make_profile, png_bytes):
        datastore.upsert_profile(make_profile(credits=10))
        upstream.add_asset(TEMPLATE_URL, png_bytes)
        upstream.queue_job(edit=True)
        request = GenerationRequest(
            user_id="user-1",
            prompt="summer vibes",
            model_id="seedream-4k",
            template_reference_image=TEMPLATE_URL,
            images=(MediaReference(data=png_bytes, mime_type="image/png"),),
            subject_lock=True,
            keep_outfit=True,
        )

        result = asyncio.run(orchestrator.generate(request))

        assert result.model_id == "nano-banana-pro"
        payload = _submitted(upstream, f"{NANO_BASE}/edit")
        assert payload["image_urls"][0] == TEMPLATE_URL
        assert "/storage/generations/uploads/user-1/" in payload["image_urls"][1]
        assert DEFAULT_RULES.face_swap_directive in payload["prompt"]
        assert DEFAULT_RULES.keep_outfit in payload["prompt"]

    def test_subject_same_as_template_is_not_remix(self, orchestrator, datastore, upstream, make_profile, png_bytes):
        datastore.upsert_profile(make_profile(credits=10))
        upstream.add_asset(TEMPLATE_URL, png_bytes)
        upstream.queue_job(edit=True)
        request = GenerationRequest(
            user_id="user-1",
            prompt="x",
            template_reference_image=TEMPLATE_URL,
            images=(MediaReference(url=TEMPLATE_URL),),
        )

        result = asyncio.run(orchestrator.generate(request))

        payload = _submitted(upstream, f"{NANO_BASE}/edit")
        assert payload["image_urls"] == [TEMPLATE_URL]
        assert DEFAULT_RULES.face_swap_directive not in result.prompt

    def test_logo_is_last_input(self, orchestrator, datastore, upstream, make_profile, png_bytes):
        datastore.upsert_profile(make_profile(credits=10))
        upstream.add_asset(TEMPLATE_URL, png_bytes)
        upstream.queue_job(edit=True)
        request = GenerationRequest(
            user_id="user-1",
            prompt="x",
            template_reference_image=TEMPLATE_URL,
            images=(MediaReference(data=png_bytes),),
            logo=MediaReference(data=b"logo-bytes", mime_type="image/webp"),
        )

        result = asyncio.run(orchestrator.generate(request))

        urls = _submitted(upstream, f"{NANO_BASE}/edit")["image_urls"]
        assert len(urls) == 3
        assert urls[-1].endswith(".webp")
        assert DEFAULT_RULES.logo_replace in result.prompt
        (record,) = datastore.list_generations()
        assert record["settings"]["input_images"] == 3


class TestTemplateRules:
    def test_rules_and_subject_mode_from_store(self, orchestrator, datastore, upstream, make_profile, png_bytes):
        datastore.upsert_profile(make_profile(credits=10))
        datastore.upsert_template_rules(
            TemplateRules(template_id="tpl-1", rules="Keep the gold border.", subject_mode="non_human")
        )
        upstream.queue_job(edit=True)
        request = GenerationRequest(
            user_id="user-1",
            prompt="x",
            template_id="tpl-1",
            prompt_slug="gold-frame",
            images=(MediaReference(data=png_bytes),),
        )

        result = asyncio.run(orchestrator.generate(request))

        assert "[TEMPLATE RULES]\nKeep the gold border." in result.prompt
        assert DEFAULT_RULES.non_human_subject in result.prompt
        (record,) = datastore.list_generations()
        assert record["prompt_id"] == "tpl-1"
        assert record["prompt_slug"] == "gold-frame"

    def test_explicit_subject_mode_wins(self, orchestrator, datastore, upstream, make_profile, png_bytes):
        datastore.upsert_profile(make_profile(credits=10))
        datastore.upsert_template_rules(TemplateRules(template_id="tpl-1", subject_mode="non_human"))
        upstream.queue_job(edit=True)
        request = GenerationRequest(
            user_id="user-1",
            prompt="x",
            template_id="tpl-1",
            subject_mode="human",
            images=(MediaReference(data=png_bytes),),
        )

        result = asyncio.run(orchestrator.generate(request))
        assert DEFAULT_RULES.human_subject in result.prompt


class TestSyncProvider:
    def test_inline_inputs(self, orchestrator, datastore, upstream, make_profile, png_bytes):
        datastore.upsert_profile(make_profile(credits=10))
        upstream.add_asset(TEMPLATE_URL, png_bytes)
        endpoint = f"{GEMINI_URL}/models/gemini-3-pro-image-preview:generateContent"
        upstream.add("POST", endpoint, (200, gemini_image_response(png_bytes)))
        request = GenerationRequest(
            user_id="user-1",
            prompt="x",
            model_id="gemini-3-preview",
            template_reference_image=TEMPLATE_URL,
        )

        result = asyncio.run(orchestrator.generate(request))

        parts = _submitted(upstream, GEMINI_URL)["contents"][0]["parts"]
        assert "inlineData" in parts[0]
        assert "/storage/generations/users/user-1/" in result.image_url
        assert result.remaining_credits == 7
