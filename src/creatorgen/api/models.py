"""Pydantic request and response models for the generation API.

Clients send camelCase keys (``userId``, ``aspectRatio``, ``modelId``); the
models accept both those aliases and the snake_case field names.  The same
model validates JSON bodies and the text fields of multipart forms, so
booleans may arrive as ``"true"`` / ``"false"`` strings.

Models
------
GenerateRequest
    Payload for ``POST /generate`` (everything except uploaded files).
GenerateResponse
    Success body of ``POST /generate``.
ModelInfo
    One entry of ``GET /models``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from creatorgen.core.config import AspectRatio
from creatorgen.core.models import GenerationRequest, MediaReference


class GenerateRequest(BaseModel):
    """Request body for the ``POST /generate`` endpoint.

    Attributes:
        user_id: Requesting user (``userId``).
        prompt: Free-text instructions.  Must not be blank.
        aspect_ratio: One of the supported aspect ratios.  ``None`` selects
            the configured default.
        model_id: Catalog model id.  ``None`` selects the configured default.
        images: Subject reference image URLs.  Uploaded files are added by
            the route handler.
        template_reference_image: URL of the template image being remixed.
        template_id: Template (prompt pack entry) id, accepted as
            ``templateId`` or ``promptId``.
        prompt_slug: Slug of that template.
        headline, subheadline, cta, promotion, business_name: Text to render.
        subject_lock: Preserve the subject's identity.
        subject_mode: ``"human"`` or ``"non_human"``.
        keep_outfit: Keep the subject's clothing.
        force_cutout: Cutout-and-composite mode.
        custom_outfit: Outfit override.
        industry_intent: Business context overriding the template's.
        original_prompt_text, remix_prompt_text: Provenance text stored with
            the record.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(..., alias="userId", min_length=1)
    prompt: str = Field(..., description="Free-text generation instructions.")
    aspect_ratio: AspectRatio | None = Field(default=None, alias="aspectRatio")
    model_id: str | None = Field(default=None, alias="modelId")
    images: list[str] = Field(default_factory=list, description="Reference image URLs.")
    template_reference_image: str | None = Field(default=None, alias="templateReferenceImage")
    template_id: str | None = Field(default=None, alias="templateId")
    prompt_id: str | None = Field(default=None, alias="promptId")
    prompt_slug: str | None = Field(default=None, alias="promptSlug")
    headline: str | None = None
    subheadline: str | None = None
    cta: str | None = None
    promotion: str | None = None
    business_name: str | None = Field(default=None, alias="businessName")
    subject_lock: bool = Field(default=False, alias="subjectLock")
    subject_mode: Literal["human", "non_human"] | None = Field(default=None, alias="subjectMode")
    keep_outfit: bool = Field(default=False, alias="keepOutfit")
    force_cutout: bool = Field(default=False, alias="forceCutout")
    custom_outfit: str | None = Field(default=None, alias="customOutfit")
    industry_intent: str | None = Field(default=None, alias="industryIntent")
    original_prompt_text: str | None = Field(default=None, alias="originalPromptText")
    remix_prompt_text: str | None = Field(default=None, alias="remixPromptText")

    @field_validator("user_id", "prompt")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator(
        "model_id",
        "template_reference_image",
        "template_id",
        "prompt_id",
        "prompt_slug",
        "headline",
        "subheadline",
        "cta",
        "promotion",
        "business_name",
        "custom_outfit",
        "industry_intent",
    )
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("images", mode="before")
    @classmethod
    def _single_url(cls, value):
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value

    def to_domain(
        self,
        *,
        uploads: list[MediaReference] | None = None,
        logo: MediaReference | None = None,
        default_aspect_ratio: str = "9:16",
    ) -> GenerationRequest:
        """Build the core :class:`GenerationRequest`.

        URL references come first, followed by uploaded files in form order.
        """
        references = [MediaReference(url=url) for url in self.images if url.strip()]
        references.extend(uploads or [])
        return GenerationRequest(
            user_id=self.user_id,
            prompt=self.prompt,
            aspect_ratio=self.aspect_ratio or default_aspect_ratio,
            images=tuple(references),
            template_reference_image=self.template_reference_image,
            template_id=self.template_id or self.prompt_id,
            prompt_slug=self.prompt_slug,
            logo=logo,
            headline=self.headline,
            subheadline=self.subheadline,
            cta=self.cta,
            promotion=self.promotion,
            business_name=self.business_name,
            subject_lock=self.subject_lock,
            subject_mode=self.subject_mode,
            keep_outfit=self.keep_outfit,
            force_cutout=self.force_cutout,
            custom_outfit=self.custom_outfit,
            industry_intent=self.industry_intent,
            model_id=self.model_id,
            original_prompt_text=self.original_prompt_text,
            remix_prompt_text=self.remix_prompt_text,
        )


class GenerateResponse(BaseModel):
    """Success body of ``POST /generate``."""

    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(..., alias="imageURL")
    generation_id: str | None = Field(default=None, alias="generationID")
    remaining_credits: int = Field(..., alias="remainingCredits")


class ModelInfo(BaseModel):
    """Catalog entry exposed by ``GET /models``."""

    id: str
    label: str
    description: str
    provider: str
    requires_input_image: bool
    max_input_images: int | None
    supports_compositing: bool
