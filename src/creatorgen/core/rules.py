"""Instruction fragments used to compose provider prompts.

The rule library is pure data: a frozen :class:`RuleLibrary` holding every
named fragment the prompt composer may emit.  The defaults below define the
house behaviour of the product (reference-first editing, photorealism,
identity preservation).  Deployments or tests can build a different library
with :func:`dataclasses.replace` without touching the composer.

Fragments containing ``{placeholders}`` are formatted by the composer with
request values (industry, outfit text, business name).
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Global behaviour.
# ---------------------------------------------------------------------------

_GLOBAL_RULES = (
    "[GLOBAL SYSTEM INSTRUCTIONS]\n"
    "1. Reference-First Behavior: The first image provided (the Template) is the COMPOSITION "
    "BLUEPRINT. Maintain its framing/layout. Apply user instructions as edits to this blueprint. "
    "YOU ARE ALLOWED to change subject clothing, appearance, or background if explicitly requested.\n"
    "2. Photorealism Default: Generate photorealistic, studio-quality results. Enhance texture, "
    "lighting, and detail. Avoid cartoonish or plastic looks unless requested.\n"
    "3. Safe Rules: You may change clothing, background, lighting, and style. You must NOT change "
    "face geometry or distort the subject.\n"
    "4. FRAMING ADAPTATION: If the Subject Reference pose differs significantly from the Template, "
    "you may adapt the composition/framing to fit the subject naturally."
)

# ---------------------------------------------------------------------------
# Subject category.
# ---------------------------------------------------------------------------

_HUMAN_SUBJECT = (
    "[SUBJECT: PERSON]\n"
    "The uploaded subject is a person. Keep natural anatomy, realistic skin texture, and a "
    "natural neck and shoulder transition. Do not squash or stretch the head."
)

_NON_HUMAN_SUBJECT = (
    "[SUBJECT: PRODUCT / OBJECT]\n"
    "The uploaded subject is an object or product. Preserve its exact shape, proportions, "
    "materials, colours, labels, and branding. Do not add people unless explicitly requested."
)

# ---------------------------------------------------------------------------
# Identity lock and cutout.
# ---------------------------------------------------------------------------

_IDENTITY_LOCK = (
    "[STRICT IDENTITY LOCK]\n"
    "1. REPLACE SUBJECT: Replace the main subject in the template with the subject in the "
    "Uploaded Photo.\n"
    "2. ABSOLUTE LIKENESS: The face and identity MUST match the uploaded photo 100%. Do NOT "
    '"enhance", "beautify", or modify facial features.\n'
    "3. PRESERVE UPLOAD DETAILS: Maintain the exact facial structure, skin tone, and "
    "distinguishing features of the upload.\n"
    "4. ADAPT DESIGN: Build the scene around the subject. Do not warp the subject to fit the "
    "template."
)

_CUTOUT = (
    "[CUTOUT MODE - PIXEL LOCK]\n"
    "1. EXTRACT: Cut the subject out of the Uploaded Photo exactly as it appears. Do NOT redraw, "
    "reimagine, or regenerate the subject.\n"
    "2. COMPOSITE: Place the extracted subject into the scene at the template's subject position "
    "and scale.\n"
    "3. EDGES: Produce clean, natural edges with no halo, ghosting, or double exposure.\n"
    "4. LIKENESS: Every visible pixel of the face must match the upload."
)

_LIGHTING = (
    "LIGHTING INTEGRATION: Apply scene lighting ONLY to match the environment, but NEVER alter "
    "the subject's core appearance or identity. Match the depth of field and camera angle of the "
    "scene."
)

# ---------------------------------------------------------------------------
# Outfit.
# ---------------------------------------------------------------------------

_KEEP_OUTFIT = (
    "PRESERVE OUTFIT: Keep the subject's clothing exactly as it is in the reference image."
)

_TEMPLATE_OUTFIT = (
    "OUTFIT: The subject is wearing the EXACT outfit shown in the Base Image (Image 1). Use the "
    "clothing from the Base Image."
)

_CHANGE_OUTFIT = (
    "CHANGE OUTFIT: The subject must wear a COMPLETELY NEW OUTFIT that fits the context of the "
    "scene. Do NOT use the clothing from the reference image."
)

_CUSTOM_OUTFIT = "OUTFIT OVERRIDE: Dress the subject in: {outfit}."

# ---------------------------------------------------------------------------
# Industry / context switch.
# ---------------------------------------------------------------------------

_INDUSTRY_SWITCH = (
    "[CONTEXT SWITCH]\n"
    "Re-theme the scene for the {industry} industry. Replace the background, props, and setting "
    "with ones that belong to {industry}. Rewrite any wording in the design so it fits {industry}. "
    "Keep the layout, composition, and the subject's face unchanged."
)

_GENERATE_ATTIRE = (
    "ATTIRE: Generate attire appropriate for a professional in the {industry} industry. The "
    "original outfit does NOT need to be preserved."
)

# ---------------------------------------------------------------------------
# Remix prefixes for the caller's instructions.
# ---------------------------------------------------------------------------

_FACE_SWAP_DIRECTIVE = (
    "[SUBJECT REPLACEMENT MODE - STRICT LAYOUT LOCK] Replace the person in the Base Image "
    "(Image 1) with the Subject from the Reference Image (Image 2). Resize the subject to fit the "
    "EXACT proportions of the Base Image. Do NOT zoom in and do NOT cover the template's text."
)

_CUTOUT_DIRECTIVE = (
    "[CUTOUT COMPOSITE MODE] Cut the Subject out of the Reference Image (Image 2) and composite "
    "it into the Base Image (Image 1) at the original subject's position and scale. Do NOT "
    "regenerate the subject and do NOT cover the template's text."
)

# ---------------------------------------------------------------------------
# Logo and text replacement.
# ---------------------------------------------------------------------------

_LOGO_REPLACE = (
    "LOGO REPLACEMENT: The FINAL IMAGE in the input list is the LOGO. Replace the template's "
    "existing logo/brand text with this exact logo image. Maintain its aspect ratio."
)

_LOGO_GENERATE = (
    "LOGO GENERATION: Generate a professional logo for '{business_name}' and place it in the "
    "template's designated logo area."
)

_TEXT_HEADER = (
    "[TEXT REPLACEMENT MANDATE]: You must REPLACE the text in the original image with the new "
    "text provided below. Do NOT render the original text. Render the new text clearly and "
    "professionally, maintaining the original layout style where possible but adapting to the "
    "new length."
)

_TEXT_FOOTER = "Typography must be legible, sharp, and integrated into the scene."

_TEXT_LABELS = {
    "headline": "Headline",
    "subheadline": "Subhead",
    "cta": "Button/CTA",
    "promotion": "Offer",
    "business_name": "Business Name",
}

# ---------------------------------------------------------------------------
# Aspect ratio.
# ---------------------------------------------------------------------------

_ASPECT_DIRECTIVES = {
    "16:9": "Output image in 16:9 landscape framing.",
    "1:1": "Output image in 1:1 square framing.",
    "4:5": "Output image in 4:5 portrait framing.",
    "3:4": "Output image in 3:4 portrait framing.",
    "9:16": "Output image in 9:16 vertical framing (TikTok/Reels style).",
}


@dataclass(frozen=True)
class RuleLibrary:
    """Named instruction fragments consumed by the prompt composer."""

    global_rules: str = _GLOBAL_RULES
    human_subject: str = _HUMAN_SUBJECT
    non_human_subject: str = _NON_HUMAN_SUBJECT
    identity_lock: str = _IDENTITY_LOCK
    cutout: str = _CUTOUT
    lighting: str = _LIGHTING
    keep_outfit: str = _KEEP_OUTFIT
    template_outfit: str = _TEMPLATE_OUTFIT
    change_outfit: str = _CHANGE_OUTFIT
    custom_outfit: str = _CUSTOM_OUTFIT
    industry_switch: str = _INDUSTRY_SWITCH
    generate_attire: str = _GENERATE_ATTIRE
    face_swap_directive: str = _FACE_SWAP_DIRECTIVE
    cutout_directive: str = _CUTOUT_DIRECTIVE
    logo_replace: str = _LOGO_REPLACE
    logo_generate: str = _LOGO_GENERATE
    text_header: str = _TEXT_HEADER
    text_footer: str = _TEXT_FOOTER
    text_labels: dict[str, str] = field(default_factory=lambda: dict(_TEXT_LABELS))
    aspect_directives: dict[str, str] = field(default_factory=lambda: dict(_ASPECT_DIRECTIVES))

    def aspect_directive(self, aspect_ratio: str) -> str:
        """Return the framing directive, defaulting to vertical 9:16."""
        return self.aspect_directives.get(aspect_ratio, self.aspect_directives["9:16"])


DEFAULT_RULES = RuleLibrary()
