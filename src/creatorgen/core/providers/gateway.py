"""Provider gateway: model selection, job shaping, execution, normalization.

The gateway is the only component that knows which provider serves a
request.  Per attempt it runs::

    BUILD_PAYLOAD → SUBMIT → (SYNC_DONE | POLLING → POLL_DONE) → NORMALIZE

and always returns a :class:`~creatorgen.core.models.ProviderOutcome`.

Model Selection
---------------
1. Template plus a distinct subject image (a remix) forces
   ``config.compositing_model_id``, whatever the caller asked for.
2. Otherwise the caller's ``model_id``, or ``config.default_model_id``.
3. If that model requires an input image and there is none, fall back to
   ``config.text_to_image_model_id``.

Strength
--------
How far the output may diverge from the input image, highest rule first:

========================================  ========
Condition                                 Strength
========================================  ========
Industry intent (context switch)          1.0
Remix (template + distinct subject)       0.95
Outfit change (custom outfit / no keep)   0.93
Keep outfit and identity                  0.85
========================================  ========
"""

from __future__ import annotations

import logging

from creatorgen.core.config import CreatorGenConfig
from creatorgen.core.errors import GenerationError, ProviderFailure, ValidationError
from creatorgen.core.models import ProviderJob, ProviderOutcome, ResolvedMedia
from creatorgen.core.prompt_composer import CompositionFlags
from creatorgen.core.providers.base import ProviderBase
from creatorgen.core.providers.catalog import ASPECT_DIMENSIONS, GENERATION_MODELS, ModelSpec, get_model_spec

logger = logging.getLogger(__name__)

STRENGTH_INDUSTRY_SWITCH = 1.0
STRENGTH_REMIX = 0.95
STRENGTH_OUTFIT_CHANGE = 0.93
STRENGTH_PRESERVE = 0.85


def derive_strength(flags: CompositionFlags) -> float:
    """Return the edit strength implied by the outfit and identity flags."""
    if flags.industry:
        return STRENGTH_INDUSTRY_SWITCH
    if flags.is_remix:
        return STRENGTH_REMIX
    if flags.outfit_locked:
        return STRENGTH_PRESERVE
    return STRENGTH_OUTFIT_CHANGE


class ProviderGateway:
    """Select a model, build the job, run it, and normalize the result.

    Args:
        config: Configuration with default model ids, budgets, and knobs.
        providers: Provider instances keyed by registry name.
        catalog: Selectable models.
    """

    def __init__(
        self,
        config: CreatorGenConfig,
        providers: dict[str, ProviderBase],
        catalog: tuple[ModelSpec, ...] = GENERATION_MODELS,
    ) -> None:
        self.config = config
        self.providers = providers
        self.catalog = catalog

    def _spec(self, model_id: str) -> ModelSpec:
        spec = get_model_spec(model_id, self.catalog)
        if spec is None:
            raise ValidationError(f"Unknown model: {model_id}", model_id=model_id)
        return spec

    def select_model(
        self,
        requested_model_id: str | None,
        *,
        input_count: int,
        is_remix: bool,
    ) -> ModelSpec:
        """Pick the model that will serve the request.

        Raises:
            ValidationError: The requested model id is not in the catalog.
        """
        if is_remix:
            spec = self._spec(self.config.compositing_model_id)
            if requested_model_id and requested_model_id != spec.id:
                logger.info("Remix request: overriding model %s with %s", requested_model_id, spec.id)
            return spec

        spec = self._spec(requested_model_id or self.config.default_model_id)
        if spec.requires_input_image and input_count == 0:
            fallback = self._spec(self.config.text_to_image_model_id)
            logger.info("Model %s needs an input image; using %s", spec.id, fallback.id)
            return fallback
        return spec

    def provider_for(self, spec: ModelSpec) -> ProviderBase:
        try:
            return self.providers[spec.provider]
        except KeyError:
            raise GenerationError(f"No provider configured for model {spec.id}") from None

    def build_job(
        self,
        spec: ModelSpec,
        *,
        prompt: str,
        inputs: list[ResolvedMedia],
        flags: CompositionFlags,
        user_id: str,
    ) -> ProviderJob:
        """Shape a :class:`ProviderJob` for *spec*, trimming excess inputs."""
        provider = self.provider_for(spec)
        if spec.max_input_images is not None and len(inputs) > spec.max_input_images:
            logger.info(
                "Model %s takes at most %d input(s); dropping %d",
                spec.id,
                spec.max_input_images,
                len(inputs) - spec.max_input_images,
            )
            inputs = inputs[: spec.max_input_images]

        width, height = ASPECT_DIMENSIONS.get(flags.aspect_ratio, ASPECT_DIMENSIONS["9:16"])
        strength = derive_strength(flags) if spec.family == "single_image" and inputs else None

        return ProviderJob(
            model_id=spec.id,
            provider_kind=provider.kind,
            prompt=prompt,
            inputs=list(inputs),
            width=width,
            height=height,
            aspect_ratio=flags.aspect_ratio,
            user_id=user_id,
            strength=strength,
            safety_threshold=self.config.gemini_safety_threshold if provider.kind == "sync" else None,
        )

    async def execute(self, spec: ModelSpec, job: ProviderJob) -> ProviderOutcome:
        """Submit *job* and wait for it within the polling budget."""
        provider = self.provider_for(spec)
        logger.info(
            "Executing %s on %s (%s, %d input(s))",
            spec.id,
            provider.name,
            provider.kind,
            job.input_count,
        )

        try:
            handle = await provider.submit(job, spec.upstream_model, spec.family)
            outcome = await handle.wait(self.config.poll_budget_seconds)
        except GenerationError as e:
            return ProviderOutcome(error=e, job_id=job.job_id)
        except Exception:
            logger.exception("Unexpected error executing %s", spec.id)
            return ProviderOutcome(error=ProviderFailure("Provider execution failed"), job_id=job.job_id)

        if outcome.ok:
            logger.info("Model %s produced %s", spec.id, outcome.result_url)
        else:
            logger.warning("Model %s failed: %s", spec.id, outcome.error)
        return outcome
