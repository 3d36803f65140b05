"""Domain models shared by the orchestrator components.

These are plain dataclasses rather than Pydantic models: they never cross the
HTTP boundary directly (see :mod:`creatorgen.api.models` for that) and only
carry already-validated values between components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

ProviderKind = Literal["sync", "queue"]


@dataclass(frozen=True)
class Profile:
    """The slice of a user profile this core reads.

    Attributes:
        user_id: Owner of the profile.
        credits: Current integer credit balance.
        role: Account role (``"user"``, ``"admin"``, ``"super_admin"`` ...).
        plan: Subscription plan name, surfaced in 402 responses.
        auto_recharge_enabled: Whether a saved card is charged automatically.
        auto_recharge_pack_id: Credit pack bought on recharge.
        auto_recharge_threshold: Balance at or below which recharge fires.
    """

    user_id: str
    credits: int = 0
    role: str = "user"
    plan: str | None = None
    auto_recharge_enabled: bool = False
    auto_recharge_pack_id: str | None = None
    auto_recharge_threshold: int | None = None


@dataclass(frozen=True)
class TemplateRules:
    """Rules attached to a known template (prompt pack entry)."""

    template_id: str
    rules: str = ""
    subject_mode: Literal["human", "non_human"] = "non_human"


@dataclass(frozen=True)
class MediaReference:
    """One input image, either uploaded bytes or a URL.

    Exactly one of ``data`` and ``url`` is set.
    """

    data: bytes | None = None
    url: str | None = None
    mime_type: str = "image/png"
    filename: str | None = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.url is None):
            raise ValueError("MediaReference needs exactly one of data or url")

    @property
    def is_upload(self) -> bool:
        return self.data is not None

    @property
    def size(self) -> int:
        return len(self.data) if self.data is not None else 0


@dataclass(frozen=True)
class GenerationRequest:
    """A validated creative request, one per call.

    Attributes:
        user_id: Requesting user.
        prompt: Free-text instructions.
        aspect_ratio: Target aspect ratio.
        images: Subject reference images, in upload order.
        template_reference_image: URL of the compositional blueprint.
        template_id: Known template (prompt pack entry) the request remixes.
        prompt_slug: Slug of that template, kept for provenance.
        logo: Uploaded logo image.
        headline, subheadline, cta, promotion, business_name: Copy fields.
        subject_lock: Identity lock requested.
        subject_mode: ``"human"`` or ``"non_human"``; ``None`` defers to the
            template.
        keep_outfit: Keep the subject's clothing.
        force_cutout: Extract and composite the subject instead of redrawing it.
        custom_outfit: Free-text outfit override.
        industry_intent: Business context replacing the template's.
        model_id: Requested model; ``None`` selects the configured default.
        original_prompt_text, remix_prompt_text: Provenance text.
    """

    user_id: str
    prompt: str
    aspect_ratio: str = "9:16"
    images: tuple[MediaReference, ...] = ()
    template_reference_image: str | None = None
    template_id: str | None = None
    prompt_slug: str | None = None
    logo: MediaReference | None = None
    headline: str | None = None
    subheadline: str | None = None
    cta: str | None = None
    promotion: str | None = None
    business_name: str | None = None
    subject_lock: bool = False
    subject_mode: Literal["human", "non_human"] | None = None
    keep_outfit: bool = False
    force_cutout: bool = False
    custom_outfit: str | None = None
    industry_intent: str | None = None
    model_id: str | None = None
    original_prompt_text: str | None = None
    remix_prompt_text: str | None = None

    @property
    def has_subject(self) -> bool:
        return bool(self.images)

    @property
    def distinct_subject(self) -> bool:
        """True when a subject image exists that is not the template itself."""
        return any(ref.is_upload or ref.url != self.template_reference_image for ref in self.images)


@dataclass(frozen=True)
class GenerationResult:
    """What a successful attempt returns to the caller."""

    image_url: str
    generation_id: str | None
    remaining_credits: int
    model_id: str
    prompt: str


@dataclass(frozen=True)
class ResolvedMedia:
    """Provider-ready input: bytes for inline providers, a URL for queue ones."""

    mime_type: str
    data: bytes | None = None
    url: str | None = None


@dataclass
class ProviderJob:
    """A generation job derived from a request, addressed to one provider.

    ``job_id`` is only ever set by queue providers once the job has been
    accepted; synchronous providers leave it ``None``.
    """

    model_id: str
    provider_kind: ProviderKind
    prompt: str
    inputs: list[ResolvedMedia]
    width: int
    height: int
    aspect_ratio: str
    user_id: str
    strength: float | None = None
    safety_threshold: str | None = None
    job_id: str | None = None

    @property
    def input_count(self) -> int:
        return len(self.inputs)


@dataclass(frozen=True)
class ProviderOutcome:
    """Normalized provider result: a URL on success, an error otherwise."""

    result_url: str | None = None
    error: Exception | None = None
    job_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.result_url is not None and self.error is None


@dataclass(frozen=True)
class GenerationRecord:
    """Immutable provenance record of one generation attempt."""

    user_id: str
    combined_prompt_text: str
    settings: dict[str, Any]
    image_url: str | None = None
    prompt_id: str | None = None
    prompt_slug: str | None = None
    template_reference_image: str | None = None
    original_prompt_text: str | None = None
    remix_prompt_text: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
