"""Generation request orchestration.

:class:`GenerationOrchestrator` runs one creative request end to end::

    profile lookup ─► pause gate ─► credit pre-check ─► model selection
        ─► asset resolution ─► prompt composition ─► provider execution
        ─► provenance record ─► credit settlement ─► result

Ordering Guarantees
-------------------
- The pause gate and the credit pre-check complete before any asset is
  fetched or any provider is called.
- A record is written for every attempt that reached a provider.
- Credits are settled once, only after a confirmed result URL.  Failures,
  timeouts and cancellations never charge.

All collaborators are injected, so the orchestrator holds no state of its own
between requests.
"""

from __future__ import annotations

import logging

from creatorgen.core.admission import AdmissionController
from creatorgen.core.assets import AssetResolver
from creatorgen.core.errors import SystemPaused
from creatorgen.core.models import (
    GenerationRecord,
    GenerationRequest,
    GenerationResult,
    MediaReference,
    TemplateRules,
)
from creatorgen.core.pause_gate import PauseGate
from creatorgen.core.persistence import PersistenceWriter, build_settings
from creatorgen.core.prompt_composer import CompositionFlags, compose
from creatorgen.core.providers.gateway import ProviderGateway
from creatorgen.core.rules import DEFAULT_RULES, RuleLibrary
from creatorgen.storage.base import ConfigStore

logger = logging.getLogger(__name__)


class GenerationOrchestrator:
    """Turn a :class:`GenerationRequest` into a generated image.

    Args:
        admission: Credit pre-check and settlement.
        pause_gate: Global pause flag reader.
        assets: Reference resolver.
        gateway: Provider selection and execution.
        persistence: Generation record writer.
        config_store: Source of per-template rules.
        image_cost: Credits charged per successful image.
        rules: Instruction fragment library.
    """

    def __init__(
        self,
        *,
        admission: AdmissionController,
        pause_gate: PauseGate,
        assets: AssetResolver,
        gateway: ProviderGateway,
        persistence: PersistenceWriter,
        config_store: ConfigStore,
        image_cost: int,
        rules: RuleLibrary = DEFAULT_RULES,
    ) -> None:
        self.admission = admission
        self.pause_gate = pause_gate
        self.assets = assets
        self.gateway = gateway
        self.persistence = persistence
        self.config_store = config_store
        self.image_cost = image_cost
        self.rules = rules

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run one generation attempt.

        Raises:
            ProfileNotFound: Unknown user.
            SystemPaused: Generation is paused for this user's role.
            InsufficientCredits: Balance below ``image_cost``.
            ValidationError: Unknown model id.
            AssetUnavailable: A reference image could not be loaded.
            ProviderRateLimited, ProviderFailure, GenerationTimeout: The
                provider did not deliver.  A failure record is written first.
        """
        # --- Gate and pre-check (before any provider work) ---------------
        profile = await self.admission.load_profile(request.user_id)
        if await self.pause_gate.is_paused(profile.role):
            logger.info("Rejected user %s: generations paused", request.user_id)
            raise SystemPaused()

        decision = self.admission.decide(profile, self.image_cost)
        decision.raise_if_denied()

        template_rules = await self._template_rules(request.template_id)

        # --- Model selection -----------------------------------------------
        references = self._ordered_references(request)
        is_remix = bool(request.template_reference_image) and request.distinct_subject
        spec = self.gateway.select_model(
            request.model_id,
            input_count=len(references),
            is_remix=is_remix,
        )
        provider = self.gateway.provider_for(spec)

        # --- Inputs and instructions --------------------------------------
        inputs = await self.assets.resolve_all(
            references,
            user_id=request.user_id,
            as_url=provider.input_transport == "url",
        )
        flags = self.composition_flags(request, template_rules)
        prompt = compose(self.rules, flags)

        # --- Execute ---------------------------------------------------------
        job = self.gateway.build_job(
            spec,
            prompt=prompt,
            inputs=inputs,
            flags=flags,
            user_id=request.user_id,
        )
        outcome = await self.gateway.execute(spec, job)

        record = GenerationRecord(
            user_id=request.user_id,
            combined_prompt_text=prompt,
            settings=build_settings(
                spec,
                job,
                outcome,
                template_id=request.template_id,
                industry_intent=request.industry_intent,
            ),
            image_url=outcome.result_url if outcome.ok else None,
            prompt_id=request.template_id,
            prompt_slug=request.prompt_slug,
            template_reference_image=request.template_reference_image,
            original_prompt_text=request.original_prompt_text,
            remix_prompt_text=request.remix_prompt_text,
        )
        generation_id = await self.persistence.write(record)

        if not outcome.ok:
            raise outcome.error

        # --- Settle (exactly once, after confirmed success) ---------------
        remaining = await self.admission.settle(decision)

        return GenerationResult(
            image_url=outcome.result_url,
            generation_id=generation_id,
            remaining_credits=remaining,
            model_id=spec.id,
            prompt=prompt,
        )

    @staticmethod
    def _ordered_references(request: GenerationRequest) -> list[MediaReference]:
        """Template first, then subjects, then the logo last."""
        references: list[MediaReference] = []
        if request.template_reference_image:
            references.append(MediaReference(url=request.template_reference_image))
        for ref in request.images:
            if not ref.is_upload and ref.url == request.template_reference_image:
                continue
            references.append(ref)
        if request.logo is not None:
            references.append(request.logo)
        return references

    @staticmethod
    def composition_flags(request: GenerationRequest, template_rules: TemplateRules | None) -> CompositionFlags:
        subject_mode = request.subject_mode
        if subject_mode is None:
            subject_mode = template_rules.subject_mode if template_rules else "human"

        return CompositionFlags(
            instructions=request.prompt,
            aspect_ratio=request.aspect_ratio,
            has_subject=request.has_subject,
            subject_mode=subject_mode,
            subject_lock=request.subject_lock,
            force_cutout=request.force_cutout,
            keep_outfit=request.keep_outfit,
            custom_outfit=request.custom_outfit,
            industry_intent=request.industry_intent,
            has_template=bool(request.template_reference_image),
            distinct_subject=request.distinct_subject,
            has_logo=request.logo is not None,
            template_rules=template_rules.rules if template_rules else None,
            headline=request.headline,
            subheadline=request.subheadline,
            cta=request.cta,
            promotion=request.promotion,
            business_name=request.business_name,
        )

    async def _template_rules(self, template_id: str | None) -> TemplateRules | None:
        if not template_id:
            return None
        try:
            return await self.config_store.get_template_rules(template_id)
        except Exception:
            logger.exception("Could not load rules for template %s; composing without them", template_id)
            return None
