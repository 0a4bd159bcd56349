"""
Gemini service — every call the studio makes to Google's generative models.

  analyze_style()              images and/or text → Style DNA JSON (gemini-2.5-flash)
  generate_reference_guided()  prompt + style/subject/composition images → N images (flash image)
  generate_text_to_image()     prompt → N images in one call (Imagen)
  critique_generation()        references + one result → suggested style/positive/negative
  edit_masked()                source + painted mask + instruction → edited image

Callers are expected to normalize images first (see imaging.resize_image).
Any upstream failure surfaces as GenerationError; nothing here retries.
"""

from __future__ import annotations

import base64
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

from google.genai import types
from pydantic import ValidationError

from .config import ANALYSIS_MODEL, FLASH_IMAGE_MODEL, IMAGEN_MODEL, get_client
from .errors import GenerationError, InputValidationError
from .models import ImageAsset, StyleDescription, SuggestionSet, CamelModel
from .prompt_builder import build_edit_prompt

logger = logging.getLogger(__name__)


# ── Prompts ───────────────────────────────────────────────────────────────────

STYLE_EXTRACTION_PROMPT = """\
You are a world-renowned art historian with a specialty in digital art forensics. Your mission is to analyze the provided images and distill their "Style DNA"—a highly detailed, structured description of their unique artistic fingerprint.
You must completely IGNORE the subject matter and focus exclusively on the aesthetic and technical execution.
Your analysis must be output as a JSON object that strictly adheres to the provided schema. Be incredibly thorough and perceptive in your descriptions.

Key directives for your analysis:
- **Overall Aesthetic:** Capture the essence, the immediate feeling, and the genre of the style. What is its soul?
- **Color Palette:** Go beyond simple hex codes. Describe the color harmony, the temperature, the mood the colors create, and their interplay. Analyze color weight and proportion—is one color dominant, or is it a balanced palette?
- **Material & Texture:** Think like a physicist. Describe the surfaces. How do they interact with light? Are they rough, smooth, viscous, ethereal? What tools (digital or physical) might have created these textures?
- **Lighting:** Is the light a gentle narrator or a dramatic spotlight? Describe its quality, direction, color, and the emotional atmosphere it creates. Identify subtle effects like caustics, subsurface scattering, or volumetric light.
- **Composition:** Analyze the visual architecture. How are elements arranged? Is there a clear focal point? Describe the balance, rhythm, and flow. What is the underlying "shape language"? Assess the overall complexity: is the composition minimal with a lot of negative space, or is it dense, complex, and detailed?
- **Post-Processing:** Identify the final touches that unify the piece. Is there film grain, chromatic aberration, a specific type of bloom, or a unique color grading LUT applied?

Every field in the JSON schema must be populated with a rich, detailed analysis that would allow another artist to replicate this style perfectly."""

TEXT_TO_STYLE_PROMPT = """\
You are an expert art style analyst. Your task is to read the user's free-form description of an art style and convert it into a structured JSON object that strictly adheres to the provided schema.

Extract all relevant details directly from the provided text. Populate the corresponding fields in the JSON only with information that is explicitly mentioned. If a specific detail is not present in the text, you MUST leave the corresponding field in the JSON object as an empty string or an empty array. Do NOT infer, guess, or add any information that is not directly stated in the user's description.

The user's description is provided. Analyze it carefully and generate the JSON output based *only* on the given text."""

SUGGESTION_GENERATION_PROMPT = """\
You are an exacting AI Art Director, and your sole purpose is to ensure perfect style replication. A junior artist has attempted to replicate a style defined by a set of REFERENCE images, producing a GENERATED image. The attempt has failed to capture the style's true essence.

Your task is to conduct a rigorous forensic analysis comparing the GENERATED image to the core "Style DNA" of the REFERENCE images. Identify every single deviation, no matter how subtle. Explain *why* these deviations break the style.

Based on this forensic analysis, your output must be a JSON object with three critical corrections to guide the artist's next attempt:
1. 'suggestedStyleDescription': Take the user's current JSON style description and surgically modify it. Do not rewrite it from scratch. Refine the descriptions, add missing nuances, and correct inaccuracies to make it a perfect representation of the REFERENCE style. The goal is precision.
2. 'suggestedPositivePrompt': Enhance the user's current positive prompt. Add specific, targeted keywords that will better align the output with the core style, focusing on qualities present in the REFERENCE images but missed in the GENERATED one.
3. 'suggestedNegativePrompt': Enhance the user's current negative prompt. Add specific, targeted keywords that will actively suppress the stylistic errors you identified in the GENERATED image. Be direct and unambiguous."""


class SuggestionResponse(CamelModel):
    """Response schema for the critique call."""
    suggested_style_description: str
    suggested_positive_prompt: str
    suggested_negative_prompt: str


# ── Helpers ───────────────────────────────────────────────────────────────────

def _image_part(image: ImageAsset) -> types.Part:
    return types.Part.from_bytes(data=image.data, mime_type=image.mime_type)


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()
    return text


def _response_text(response) -> str:
    return (getattr(response, "text", None) or "").strip()


def _first_inline_image(response) -> Tuple[Optional[bytes], str]:
    """
    Return (image bytes, "") for the first inline image in a response,
    or (None, reason) explaining why there is none.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        block = getattr(feedback, "block_reason", None) if feedback else None
        return None, f"blocked ({block})" if block else "empty response"

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    for part in (getattr(content, "parts", None) or []):
        inline = getattr(part, "inline_data", None)
        if inline and inline.data:
            data = inline.data
            if isinstance(data, str):
                data = base64.b64decode(data)
            return data, ""

    finish = getattr(candidate, "finish_reason", None)
    return None, f"no image (finish_reason={finish})" if finish else "no image in response"


# ── Style analysis ────────────────────────────────────────────────────────────

def analyze_style(images: Sequence[ImageAsset], text_hint: Optional[str] = None) -> str:
    """
    Produce a Style DNA description.

    With images: forensic style extraction, text_hint added as user context.
    Without images: text_hint is converted into the schema verbatim.

    Returns pretty-printed JSON, or the raw model text if it does not parse.
    """
    hint = (text_hint or "").strip()
    if not images and not hint:
        raise InputValidationError("Either images or a text description is required to analyze a style.")

    if images:
        parts = [types.Part.from_text(text=STYLE_EXTRACTION_PROMPT)]
        if hint:
            parts.append(types.Part.from_text(
                text=f'Additional context provided by user: "{hint}". Incorporate this into your analysis of the images.'
            ))
        parts.extend(_image_part(img) for img in images)
    else:
        parts = [
            types.Part.from_text(text=TEXT_TO_STYLE_PROMPT),
            types.Part.from_text(text=hint),
        ]

    try:
        response = get_client().models.generate_content(
            model=ANALYSIS_MODEL,
            contents=parts,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=StyleDescription,
            ),
        )
    except Exception as e:
        raise GenerationError(f"Style analysis failed: {e}") from e

    raw = _strip_fences(_response_text(response))
    try:
        return json.dumps(json.loads(raw), indent=2, ensure_ascii=False)
    except ValueError:
        logger.warning("Style analysis returned non-JSON text; keeping it verbatim")
        return raw


# ── Reference-guided generation ───────────────────────────────────────────────

def build_reference_contents(
    prompt: str,
    style_images: Sequence[ImageAsset],
    composition_image: Optional[ImageAsset] = None,
    subject_images: Sequence[ImageAsset] = (),
) -> List[types.Part]:
    """Multimodal part list: prompt, then labelled style / subject / composition blocks."""
    parts = [types.Part.from_text(text=prompt)]

    if style_images:
        parts.append(types.Part.from_text(
            text="--- STYLE REFERENCE IMAGES START --- \n The following images are the STYLE "
                 "REFERENCES mentioned in the prompt. Use their art style."
        ))
        parts.extend(_image_part(img) for img in style_images)
        parts.append(types.Part.from_text(text="--- STYLE REFERENCE IMAGES END ---"))

    if subject_images:
        parts.append(types.Part.from_text(
            text="--- SUBJECT REFERENCE IMAGES START --- \n The following images are the SUBJECT "
                 "REFERENCES mentioned in the prompt. Use their subject matter, features, and "
                 "characteristics."
        ))
        parts.extend(_image_part(img) for img in subject_images)
        parts.append(types.Part.from_text(text="--- SUBJECT REFERENCE IMAGES END ---"))

    if composition_image is not None:
        parts.append(types.Part.from_text(
            text="--- COMPOSITION REFERENCE IMAGE START --- \n The following image is the "
                 "COMPOSITION REFERENCE. Use its layout and perspective."
        ))
        parts.append(_image_part(composition_image))
        parts.append(types.Part.from_text(text="--- COMPOSITION REFERENCE IMAGE END ---"))

    return parts


def _generate_one(contents: List[types.Part], index: int) -> Optional[bytes]:
    """One flash-image call. Returns None (and logs why) when no image came back."""
    try:
        response = get_client().models.generate_content(
            model=FLASH_IMAGE_MODEL,
            contents=contents,
            config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
        )
    except Exception as e:
        logger.warning("generation call %d failed: %s", index + 1, e)
        return None

    data, reason = _first_inline_image(response)
    if data is None:
        logger.warning("generation call %d dropped: %s", index + 1, reason)
    return data


def generate_reference_guided(
    prompt: str,
    style_images: Sequence[ImageAsset],
    count: int = 1,
    composition_image: Optional[ImageAsset] = None,
    subject_images: Sequence[ImageAsset] = (),
) -> List[bytes]:
    """
    Issue `count` independent flash-image calls concurrently.

    Each call contributes at most one image; calls that return nothing are
    dropped. Raises GenerationError only when every call came back empty.
    """
    if count <= 0:
        return []

    contents = build_reference_contents(prompt, style_images, composition_image, subject_images)

    with ThreadPoolExecutor(max_workers=count) as executor:
        futures = [executor.submit(_generate_one, contents, i) for i in range(count)]
        results = [f.result() for f in futures]

    images = [img for img in results if img]
    if not images:
        raise GenerationError(
            "Image generation failed to produce any images. "
            "The response may have been blocked due to safety settings."
        )
    if len(images) < count:
        logger.info("reference-guided generation returned %d of %d images", len(images), count)
    return images


# ── Text-to-image ─────────────────────────────────────────────────────────────

def generate_text_to_image(prompt: str, count: int = 1, aspect_ratio: str = "1:1") -> List[bytes]:
    """Single Imagen call requesting `count` images."""
    if not prompt:
        raise InputValidationError("Prompt is required")

    try:
        response = get_client().models.generate_images(
            model=IMAGEN_MODEL,
            prompt=prompt,
            config=types.GenerateImagesConfig(
                number_of_images=count,
                output_mime_type="image/jpeg",
                aspect_ratio=aspect_ratio,
            ),
        )
    except Exception as e:
        raise GenerationError(f"Imagen generation failed: {e}") from e

    images = [
        g.image.image_bytes
        for g in (response.generated_images or [])
        if g.image is not None and g.image.image_bytes
    ]
    if not images:
        raise GenerationError(
            "Imagen generation failed to produce any images. The prompt may have been blocked."
        )
    return images


# ── Critique ──────────────────────────────────────────────────────────────────

def critique_generation(
    style_images: Sequence[ImageAsset],
    generated_image: ImageAsset,
    current_style: str,
    current_positive: str,
    current_negative: str,
) -> SuggestionSet:
    """Compare one generated image against the references and propose corrections."""
    text = (
        f"{SUGGESTION_GENERATION_PROMPT}\n\n"
        f'The user\'s current style description is: "{current_style}"\n'
        f'The user\'s current positive prompt is: "{current_positive}"\n'
        f'The user\'s current negative prompt is: "{current_negative}"\n'
    )
    parts = [
        types.Part.from_text(text=text),
        types.Part.from_text(text="== REFERENCE IMAGES START =="),
        *(_image_part(img) for img in style_images),
        types.Part.from_text(text="== REFERENCE IMAGES END =="),
        types.Part.from_text(text="== GENERATED IMAGE START =="),
        _image_part(generated_image),
        types.Part.from_text(text="== GENERATED IMAGE END =="),
    ]

    try:
        response = get_client().models.generate_content(
            model=ANALYSIS_MODEL,
            contents=parts,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=SuggestionResponse,
            ),
        )
    except Exception as e:
        raise GenerationError(f"Failed to generate suggestions: {e}") from e

    try:
        parsed = SuggestionResponse.model_validate_json(_strip_fences(_response_text(response)))
    except ValidationError as e:
        raise GenerationError(f"Suggestion response violated its schema: {e}") from e

    return SuggestionSet(
        style_description=parsed.suggested_style_description,
        positive_prompt=parsed.suggested_positive_prompt,
        negative_prompt=parsed.suggested_negative_prompt,
    )


# ── Mask edit ─────────────────────────────────────────────────────────────────

def edit_masked(
    prompt: str,
    source_image: ImageAsset,
    mask_image: ImageAsset,
    style_description: str,
) -> bytes:
    """
    Regenerate the painted region of source_image.

    Mask convention: non-transparent pixels mark the region to alter.
    """
    parts = [
        types.Part.from_text(text=build_edit_prompt(prompt, style_description)),
        _image_part(source_image),
        _image_part(mask_image),
    ]

    try:
        response = get_client().models.generate_content(
            model=FLASH_IMAGE_MODEL,
            contents=parts,
            config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
        )
    except Exception as e:
        raise GenerationError(f"Image editing failed: {e}") from e

    data, reason = _first_inline_image(response)
    if data is None:
        raise GenerationError(
            f"Image editing failed to produce an image ({reason}). "
            "The response may have been blocked due to safety settings."
        )
    return data
