"""Tests for creatorgen.core.errors — the error taxonomy."""

from __future__ import annotations

import pytest

from creatorgen.core.errors import (
    AssetUnavailable,
    GenerationError,
    GenerationTimeout,
    InsufficientCredits,
    ProfileNotFound,
    ProviderFailure,
    ProviderRateLimited,
    SystemPaused,
    ValidationError,
)


class TestStatusCodes:
    """Each error class maps to one HTTP status."""

    @pytest.mark.parametrize(
        "error, status",
        [
            (ValidationError("bad"), 400),
            (AssetUnavailable("gone"), 400),
            (InsufficientCredits(required=3, available=2), 402),
            (ProfileNotFound("missing"), 404),
            (ProviderRateLimited(), 429),
            (ProviderFailure("boom"), 502),
            (SystemPaused(), 503),
            (GenerationTimeout("slow"), 504),
        ],
    )
    def test_status(self, error: GenerationError, status: int):
        assert error.status_code == status
        assert isinstance(error, GenerationError)

    def test_provider_failure_passes_upstream_status(self):
        """An upstream error status is surfaced as is."""
        assert ProviderFailure("bad request", upstream_status=400).status_code == 400
        assert ProviderFailure("overloaded", upstream_status=503).status_code == 503

    def test_provider_failure_ignores_success_status(self):
        """A 2xx upstream status with a failure still answers 502."""
        assert ProviderFailure("no image", upstream_status=200).status_code == 502


class TestErrorBody:
    """Structured JSON bodies."""

    def test_insufficient_credits_body(self):
        body = InsufficientCredits(required=3, available=2, plan="starter").to_dict()
        assert body["error"] == "insufficient_credits"
        assert body["required"] == 3
        assert body["available"] == 2
        assert body["plan"] == "starter"
        assert "message" in body

    def test_details_merged(self):
        body = GenerationTimeout("timed out", job_id="req-1", last_status="IN_QUEUE").to_dict()
        assert body == {
            "error": "timeout",
            "message": "timed out",
            "job_id": "req-1",
            "last_status": "IN_QUEUE",
        }

    def test_system_paused_default_message(self):
        error = SystemPaused()
        assert "paused" in error.message.lower()
        assert str(error) == error.message
