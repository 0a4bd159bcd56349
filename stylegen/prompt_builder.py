"""
Prompt builder — turns GenerationInputs into the instruction text sent to Gemini.

Two paths, keyed by the generation model:

  reference-guided (flash image)   ordered directive sections joined by blank lines
  text-to-image (Imagen)           "subject, keywords. <one-sentence style>"

Every function here is pure: same inputs → same string.
"""

from __future__ import annotations

from typing import List, Tuple

from .models import (
    CompositionImage,
    CompositionPreset,
    GenerationInputs,
    GenerationModel,
    RawStyle,
    parse_style_document,
)

QUALITY_KEYWORDS = "masterpiece, 4k, high resolution, ultra-detailed, sharp focus"

TRANSPARENT_KEYWORDS = (
    "transparent background, isolated subject, no background, clean cutout, "
    "white background, plain background"
)

BACKGROUND_EXCLUSION_KEYWORDS = (
    "background, scenery, environment, context, indoor, outdoor, landscape, shadows, "
    "cast shadow, drop shadow, contact shadow, texture, pattern, gradient, noise, messy, "
    "complex, detailed background, wall, floor, ground, furniture, plants, objects"
)

SECTION_SEPARATOR = "\n\n"

DEFAULT_SESSION_PROMPT = "Composition/Style Generation"


# ── Keywords ──────────────────────────────────────────────────────────────────

def build_keyword_strings(inputs: GenerationInputs) -> Tuple[str, str]:
    """Return (positive, negative) keyword strings for the execution block."""
    positive = (
        f"{inputs.supportive_prompt}, {QUALITY_KEYWORDS}"
        if inputs.supportive_prompt
        else QUALITY_KEYWORDS
    )
    negative = inputs.negative_prompt

    if inputs.remove_background:
        positive = f"{positive}, {TRANSPARENT_KEYWORDS}"
        negative = (
            f"{negative}, {BACKGROUND_EXCLUSION_KEYWORDS}"
            if negative
            else BACKGROUND_EXCLUSION_KEYWORDS
        )

    return positive, negative


# ── Reference-guided sections ─────────────────────────────────────────────────

def _task_header(inputs: GenerationInputs) -> str:
    return f"**Task**: Generate a new, high-quality image with a {inputs.aspect_ratio} aspect ratio."


def _subject_instruction(inputs: GenerationInputs) -> str:
    subject = inputs.subject_prompt
    if inputs.subject_reference_images:
        if subject:
            return (
                f'**Subject**: Create an image of "{subject}", using the provided subject '
                "reference images as a strong visual guide for the subject's appearance "
                "and characteristics."
            )
        return "**Subject**: Create a new image based on the provided subject reference images."
    if subject:
        return f'**Subject**: Create an image of "{subject}".'
    return "**Subject**: Create a new image based on the composition reference."


def _background_mandate() -> str:
    return (
        "**BACKGROUND MANDATE**: The subject MUST be isolated on a completely TRANSPARENT "
        "background. Do NOT generate any background elements, scenery, environment, context, "
        "or shadows. The background pixels must be empty/transparent. This is a strict "
        "requirement for a cutout asset."
    )


def _subject_reference_mandate() -> str:
    return (
        "**SUBJECT REFERENCE**: Subject reference images are provided. Use them as the primary "
        "visual source for the subject of the new image. **CRITICAL**: The visual "
        "characteristics, features, and details of the subject in these reference images must "
        "be replicated with extreme fidelity. However, the overall ART STYLE (e.g., brushwork, "
        "lighting, color grading) of the subject reference(s) should be completely IGNORED and "
        "replaced with the art style defined by the main style references."
    )


def _composition_mandate(inputs: GenerationInputs) -> str:
    if isinstance(inputs.composition, CompositionImage):
        return (
            "**COMPOSITION REFERENCE**: A composition reference image is provided. Use its "
            "composition, layout, and subject placement as a strong guide for the new image. "
            "The STYLE of the composition reference image should be IGNORED."
        )
    if isinstance(inputs.composition, CompositionPreset):
        return (
            f'**COMPOSITION MANDATE**: The new image MUST be rendered from a "{inputs.composition.view}" '
            "perspective. This is a strict compositional requirement."
        )
    return ""


def _style_mandate(inputs: GenerationInputs) -> str:
    if inputs.use_ai_style_analysis:
        return (
            "**CRITICAL STYLE MANDATE**: This is a command, not a suggestion. The artistic style "
            "of the new image must be a PERFECT, FLAWLESS REPLICATION of the style embodied by the "
            "provided reference images. The reference images are the absolute ground truth for "
            "the style. Style fidelity is the number one priority, overriding all other "
            "interpretations. The detailed style description below is your guide to achieving "
            "this perfection."
        )
    return (
        "**STYLE MANDATE**: The artistic style of the new image must be a PERFECT, FLAWLESS "
        "REPLICATION of the style embodied by the provided reference images. Style fidelity is "
        "the number one priority."
    )


def _execution_instructions(inputs: GenerationInputs) -> str:
    positive, negative = build_keyword_strings(inputs)
    lines = [
        "**Execution Instructions**:",
        f"- Positive Keywords (Enhance these qualities): {positive}",
    ]
    if negative:
        lines.append(f"- Negative Keywords (Strictly avoid these elements): {negative}")
    return "\n".join(lines)


def _precision_reminder() -> str:
    return (
        "Execute this task with extreme precision. The subject of the reference images must be "
        "completely ignored and replaced with the new subject, but the style must be preserved "
        "exactly."
    )


def build_reference_sections(inputs: GenerationInputs) -> List[str]:
    """
    Ordered directive sections for the reference-guided model.

    Order is fixed; a section whose gate is off is simply absent:
      task → subject → background → subject refs → composition
           → style mandate (+ Style DNA) → execution → precision reminder
    """
    has_style_refs = bool(inputs.uploaded_images)

    sections = [_task_header(inputs), _subject_instruction(inputs)]

    if inputs.remove_background:
        sections.append(_background_mandate())

    if inputs.subject_reference_images:
        sections.append(_subject_reference_mandate())

    if inputs.has_composition:
        sections.append(_composition_mandate(inputs))

    if has_style_refs:
        sections.append(_style_mandate(inputs))
        if inputs.use_ai_style_analysis and inputs.style_description:
            sections.append(
                f"**Style DNA Analysis (from reference images)**: \n{inputs.style_description}"
            )

    if inputs.use_style_guidance:
        sections.append(_execution_instructions(inputs))

    if has_style_refs:
        sections.append(_precision_reminder())

    return sections


def build_reference_prompt(inputs: GenerationInputs) -> str:
    return SECTION_SEPARATOR.join(build_reference_sections(inputs))


# ── Text-to-image ─────────────────────────────────────────────────────────────

def build_style_sentence(style_text: str) -> str:
    """
    Condense a style description into one sentence for a text-only model.

    Structured Style DNA contributes one fragment per non-empty field;
    anything else is embedded verbatim.
    """
    doc = parse_style_document(style_text)

    if isinstance(doc, RawStyle):
        return f"Render this in the artistic style described as: {doc.text}"

    dna = doc.description
    fragments = []
    if dna.overall_aesthetic:
        fragments.append(dna.overall_aesthetic)
    if dna.material_and_texture.surface_texture:
        fragments.append(f"with a {dna.material_and_texture.surface_texture} texture")
    if dna.lighting.style:
        fragments.append(f"using {dna.lighting.style} lighting")
    if dna.composition.complexity:
        fragments.append(f"in a {dna.composition.complexity} composition")
    if dna.color_palette.usage_description:
        fragments.append(f"with a color palette that is {dna.color_palette.usage_description}")

    if not fragments:
        return ""
    return f"Render this in an artistic style described as: {', '.join(fragments)}."


def build_text_to_image_prompt(inputs: GenerationInputs) -> str:
    prompt = ", ".join(p for p in (inputs.subject_prompt, inputs.supportive_prompt) if p)
    if inputs.use_ai_style_analysis and inputs.style_description:
        sentence = build_style_sentence(inputs.style_description)
        if sentence:
            prompt = f"{prompt}. {sentence}"
    return prompt


def build_prompt(inputs: GenerationInputs) -> str:
    """Dispatch to the assembly path of the selected model."""
    if inputs.generation_model is GenerationModel.IMAGEN:
        return build_text_to_image_prompt(inputs)
    return build_reference_prompt(inputs)


def session_prompt_text(inputs: GenerationInputs) -> str:
    return inputs.subject_prompt or DEFAULT_SESSION_PROMPT


# ── Mask edit ─────────────────────────────────────────────────────────────────

def build_edit_prompt(instruction: str, style_description: str) -> str:
    return (
        "**Task**: Edit the provided image within the masked area.\n\n"
        "**Style Mandate**: The edits MUST EXACTLY match the artistic style of the unmasked parts "
        "of the image. The style description below is a guide to help understand the key "
        "elements of the style. The original image is the definitive source for the style.\n\n"
        f"**Style Description (from AI analysis)**:\n{style_description}\n\n"
        f'**Edit Instruction**: Apply the following instruction to the masked area ONLY: "{instruction}".\n\n'
        "The rest of the image outside the mask must remain completely unchanged."
    )
