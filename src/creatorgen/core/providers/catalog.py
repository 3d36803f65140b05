"""Catalog of generation models offered to callers.

A catalog entry maps a public model id (what clients send as ``modelId``) to
the provider that serves it, the upstream model name, and the payload family
the provider must shape for it.

Payload Families
----------------
``multi_image``
    ``{prompt, image_urls[], aspect_ratio}``.  Accepts any number of input
    images and composites them; also does pure text-to-image.
``single_image``
    ``{prompt, image_size{width,height}, image_url, strength}``.  At most one
    input image; edit-only models require it.
``inline``
    Multimodal ``generateContent`` request with inline base64 image parts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

PayloadFamily = Literal["multi_image", "single_image", "inline"]

# Output dimensions per aspect ratio.
ASPECT_DIMENSIONS: dict[str, tuple[int, int]] = {
    "9:16": (832, 1216),
    "16:9": (1216, 832),
    "1:1": (1024, 1024),
    "4:5": (896, 1120),
    "3:4": (768, 1024),
}


@dataclass(frozen=True)
class ModelSpec:
    """One selectable generation model.

    Attributes:
        id: Public identifier sent by clients.
        label: Display name.
        description: Short description for model pickers.
        provider: Registry name of the provider serving this model.
        upstream_model: Model name or path on the provider.
        family: Payload family the provider shapes for this model.
        requires_input_image: Edit-only model; needs at least one input.
        max_input_images: Upper bound on inputs (``None`` = unbounded).
        supports_compositing: Can blend a template and a distinct subject.
    """

    id: str
    label: str
    description: str
    provider: str
    upstream_model: str
    family: PayloadFamily
    requires_input_image: bool = False
    max_input_images: int | None = None
    supports_compositing: bool = False

    @property
    def supports_text_to_image(self) -> bool:
        return not self.requires_input_image


GENERATION_MODELS: tuple[ModelSpec, ...] = (
    ModelSpec(
        id="nano-banana-pro",
        label="Nano Banana Pro",
        description="Multi-image compositing and text-to-image",
        provider="fal-queue",
        upstream_model="fal-ai/nano-banana-pro",
        family="multi_image",
        supports_compositing=True,
    ),
    ModelSpec(
        id="seedream-4k",
        label="SeeDream 4K",
        description="Ultra detail single-image edit",
        provider="fal-queue",
        upstream_model="fal-ai/bytedance/seedream/v4/edit",
        family="single_image",
        requires_input_image=True,
        max_input_images=1,
    ),
    ModelSpec(
        id="gemini-3-preview",
        label="Gemini 3",
        description="Fast synchronous generation",
        provider="gemini",
        upstream_model="gemini-3-pro-image-preview",
        family="inline",
        max_input_images=10,
    ),
)


def get_model_spec(model_id: str, catalog: tuple[ModelSpec, ...] = GENERATION_MODELS) -> ModelSpec | None:
    """Return the catalog entry for *model_id*, or ``None``."""
    return next((spec for spec in catalog if spec.id == model_id), None)
