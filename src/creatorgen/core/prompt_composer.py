"""Layered instruction composition for generation requests.

The composer turns a :class:`CompositionFlags` value and a
:class:`~creatorgen.core.rules.RuleLibrary` into the final instruction text
sent to a provider.  It is a pure function: identical flags and rules always
produce byte-identical output.

Composition Order
-----------------
Fragments are evaluated from a fixed rule table.  Later fragments are
emphasised by the models, so the order is part of the contract::

    [Global behaviour rules]
    [Template-specific rules]            known template only
    [Subject category: person / object]  subject image present
    [Identity lock or cutout + lighting] subject image present and lock requested
    [Outfit directive]                   identity locked person
    [Context switch + attire]            industry intent present
    [Logo replacement / generation]      logo image or business name
    USER INSTRUCTIONS:
    [Remix directive] [Caller's free text]
    [Text replacement block]             non-empty copy fields only
    [Aspect-ratio directive]

Sections are separated by double newlines and empty sections are omitted.

Outfit Precedence
-----------------
1. A custom outfit text always wins.
2. An industry intent relaxes outfit lock, even when ``keep_outfit`` is set.
   Without a custom outfit, the context switch appends an explicit
   "generate appropriate attire" directive.  Face lock is unaffected.
3. ``keep_outfit`` preserves the subject's own clothing.
4. In a remix, the subject takes the template's outfit.
5. Otherwise the subject gets a new outfit fitting the scene.

Usage
-----
::

    flags = CompositionFlags(instructions="a red bicycle", aspect_ratio="1:1")
    text = compose(DEFAULT_RULES, flags)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from creatorgen.core.rules import DEFAULT_RULES, RuleLibrary

SubjectMode = Literal["human", "non_human"]


@dataclass(frozen=True)
class CompositionFlags:
    """Request facts that drive prompt composition.

    Attributes:
        instructions: Caller's free-text instructions.
        aspect_ratio: Target aspect ratio (``"9:16"``, ``"1:1"`` ...).
        has_subject: A subject reference image was supplied.
        subject_mode: Whether the subject is a person or an object.
        subject_lock: Identity lock requested.
        force_cutout: Use the stricter cutout variant of the identity lock.
        keep_outfit: Keep the subject's own clothing.
        custom_outfit: Free-text outfit override.
        industry_intent: Business context that replaces the template's.
        has_template: A template reference image was supplied.
        distinct_subject: The subject image differs from the template image.
        has_logo: A logo image was uploaded.
        template_rules: Rules attached to a known template.
        headline, subheadline, cta, promotion, business_name: Copy fields.
    """

    instructions: str = ""
    aspect_ratio: str = "9:16"
    has_subject: bool = False
    subject_mode: SubjectMode = "human"
    subject_lock: bool = False
    force_cutout: bool = False
    keep_outfit: bool = False
    custom_outfit: str | None = None
    industry_intent: str | None = None
    has_template: bool = False
    distinct_subject: bool = False
    has_logo: bool = False
    template_rules: str | None = None
    headline: str | None = None
    subheadline: str | None = None
    cta: str | None = None
    promotion: str | None = None
    business_name: str | None = None

    @property
    def identity_locked(self) -> bool:
        return self.has_subject and self.subject_lock

    @property
    def is_remix(self) -> bool:
        """Template plus a distinct subject reference."""
        return self.has_template and self.has_subject and self.distinct_subject

    @property
    def industry(self) -> str | None:
        """Stripped industry intent, or ``None`` when blank."""
        if self.industry_intent and self.industry_intent.strip():
            return self.industry_intent.strip()
        return None

    @property
    def outfit_locked(self) -> bool:
        # Industry intent is the deciding rule over keep_outfit.
        return self.keep_outfit and not self.industry and not self.custom_outfit

    def text_fields(self) -> list[tuple[str, str]]:
        """Return ``(field, value)`` pairs for the non-empty copy fields."""
        pairs = [
            ("headline", self.headline),
            ("subheadline", self.subheadline),
            ("cta", self.cta),
            ("promotion", self.promotion),
            ("business_name", self.business_name),
        ]
        return [(name, value.strip()) for name, value in pairs if value and value.strip()]


# ---------------------------------------------------------------------------
# Fragment renderers.  Each takes the rule library and the flags and returns
# a string; an empty string means "emit nothing".
# ---------------------------------------------------------------------------


def _template_rules(rules: RuleLibrary, flags: CompositionFlags) -> str:
    return f"[TEMPLATE RULES]\n{flags.template_rules.strip()}"


def _subject_category(rules: RuleLibrary, flags: CompositionFlags) -> str:
    if flags.subject_mode == "non_human":
        return rules.non_human_subject
    return rules.human_subject


def _identity(rules: RuleLibrary, flags: CompositionFlags) -> str:
    lock = rules.cutout if flags.force_cutout else rules.identity_lock
    return f"{lock}\n{rules.lighting}"


def _outfit(rules: RuleLibrary, flags: CompositionFlags) -> str:
    if flags.custom_outfit:
        return rules.custom_outfit.format(outfit=flags.custom_outfit.strip())
    if flags.industry:
        # Attire is handled by the context switch.
        return ""
    if flags.outfit_locked:
        return rules.keep_outfit
    if flags.is_remix:
        return rules.template_outfit
    return rules.change_outfit


def _industry(rules: RuleLibrary, flags: CompositionFlags) -> str:
    industry = flags.industry
    parts = [rules.industry_switch.format(industry=industry)]
    if not flags.custom_outfit:
        parts.append(rules.generate_attire.format(industry=industry))
    return "\n".join(parts)


def _logo(rules: RuleLibrary, flags: CompositionFlags) -> str:
    if flags.has_logo:
        return rules.logo_replace
    return rules.logo_generate.format(business_name=flags.business_name.strip())


def _instructions(rules: RuleLibrary, flags: CompositionFlags) -> str:
    text = flags.instructions.strip()
    if flags.is_remix:
        directive = rules.cutout_directive if flags.force_cutout else rules.face_swap_directive
        text = f"{directive} {text}".strip()
    return f"USER INSTRUCTIONS:\n{text}"


def _text_block(rules: RuleLibrary, flags: CompositionFlags) -> str:
    lines = [rules.text_header]
    for name, value in flags.text_fields():
        lines.append(f'{rules.text_labels.get(name, name)}: "{value}".')
    lines.append(rules.text_footer)
    return "\n".join(lines)


def _aspect(rules: RuleLibrary, flags: CompositionFlags) -> str:
    return rules.aspect_directive(flags.aspect_ratio)


# ---------------------------------------------------------------------------
# Rule table.  Evaluated top to bottom; the order is the composition order.
# ---------------------------------------------------------------------------

Predicate = Callable[[CompositionFlags], bool]
Renderer = Callable[[RuleLibrary, CompositionFlags], str]

RULE_TABLE: tuple[tuple[str, Predicate, Renderer], ...] = (
    ("global", lambda f: True, lambda r, f: r.global_rules),
    ("template", lambda f: bool(f.template_rules and f.template_rules.strip()), _template_rules),
    ("subject_category", lambda f: f.has_subject, _subject_category),
    ("identity", lambda f: f.identity_locked, _identity),
    ("outfit", lambda f: f.identity_locked and f.subject_mode == "human", _outfit),
    ("industry", lambda f: f.industry is not None, _industry),
    ("logo", lambda f: f.has_logo or bool(f.business_name and f.business_name.strip()), _logo),
    ("instructions", lambda f: True, _instructions),
    ("text", lambda f: bool(f.text_fields()), _text_block),
    ("aspect", lambda f: True, _aspect),
)


def applied_rules(flags: CompositionFlags) -> list[str]:
    """Return the names of the rule table entries whose predicate holds."""
    return [name for name, predicate, _ in RULE_TABLE if predicate(flags)]


def compose(rules: RuleLibrary | None, flags: CompositionFlags) -> str:
    """Compose the final instruction text.

    Args:
        rules: Fragment library.  ``None`` uses :data:`DEFAULT_RULES`.
        flags: Request facts driving which fragments are emitted.

    Returns:
        The instruction text with sections separated by double newlines.
    """
    library = rules or DEFAULT_RULES
    sections: list[str] = []

    for _, predicate, render in RULE_TABLE:
        if not predicate(flags):
            continue
        fragment = render(library, flags).strip()
        if fragment:
            sections.append(fragment)

    return "\n\n".join(sections)
