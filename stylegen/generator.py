"""
Generator — runs one generation from an immutable GenerationInputs snapshot.

  flash image (reference-guided)  normalize style / subject / composition images
                                  → N concurrent calls, each ≤ 1 image
  Imagen (text-to-image)          one call requesting N images

Partial results are fine (2 of 3 is a success); an empty result set is not.
The caller (StyleStudio) owns history and the feedback loop.
"""

from __future__ import annotations

import time
from typing import List, Sequence

from rich.console import Console

from . import gemini_service
from .config import ASPECT_RATIOS, DEFAULT_IMAGE_COUNT, GENERATION_INPUT_MAX_DIMENSION
from .errors import GenerationError, InputValidationError
from .imaging import bytes_to_data_url, resize_all, resize_image
from .models import GenerationInputs, GenerationModel, GenerationSession
from .prompt_builder import build_reference_prompt, build_text_to_image_prompt, session_prompt_text

console = Console()


def validate_inputs(inputs: GenerationInputs) -> None:
    """Raise InputValidationError if the inputs cannot drive the selected model."""
    if inputs.aspect_ratio not in ASPECT_RATIOS:
        raise InputValidationError(
            f"Unsupported aspect ratio {inputs.aspect_ratio!r}. Choose one of: {', '.join(ASPECT_RATIOS)}"
        )

    if inputs.generation_model is GenerationModel.FLASH_IMAGE:
        if not (inputs.subject_prompt or inputs.has_composition or inputs.subject_reference_images):
            raise InputValidationError(
                "Please enter a subject prompt or provide a composition or subject reference."
            )
        return

    if not inputs.subject_prompt:
        raise InputValidationError("Please enter a subject prompt to generate an image.")
    if inputs.use_ai_style_analysis and not inputs.style_description and inputs.uploaded_images:
        raise InputValidationError("Style description is not available. Please analyze style first.")


def generate_images(
    inputs: GenerationInputs,
    count: int = DEFAULT_IMAGE_COUNT,
    service=gemini_service,
) -> List[str]:
    """
    Generate up to `count` images for the inputs and return them as data URLs.

    `service` is any object exposing the gemini_service call signatures.
    """
    validate_inputs(inputs)
    if count <= 0:
        return []

    t0 = time.monotonic()
    model = inputs.generation_model

    if model is GenerationModel.IMAGEN:
        prompt = build_text_to_image_prompt(inputs)
        console.print(f"  [dim]imagen prompt: {prompt[:100]}…[/dim]")
        raw_images = service.generate_text_to_image(prompt, count, inputs.aspect_ratio)
    else:
        prompt = build_reference_prompt(inputs)
        style_images = resize_all(inputs.uploaded_images, GENERATION_INPUT_MAX_DIMENSION)
        subject_images = resize_all(inputs.subject_reference_images, GENERATION_INPUT_MAX_DIMENSION)
        composition_image = (
            resize_image(inputs.composition_image, GENERATION_INPUT_MAX_DIMENSION)
            if inputs.composition_image is not None
            else None
        )
        console.print(
            f"  [dim]refs: {len(style_images)} style, {len(subject_images)} subject, "
            f"composition={'image' if composition_image else inputs.composition_view or 'none'}[/dim]"
        )
        raw_images = service.generate_reference_guided(
            prompt, style_images, count, composition_image, subject_images
        )

    images = [bytes_to_data_url(data) for data in raw_images if data]
    if not images:
        raise GenerationError("Image generation failed to produce any images.")

    elapsed = time.monotonic() - t0
    console.print(
        f"  [green]✓ {len(images)}/{count} image(s)[/green] ({model.label}) "
        f"[dim]({elapsed:.1f}s)[/dim]"
    )
    return images


def create_session(inputs: GenerationInputs, images: Sequence[str]) -> GenerationSession:
    return GenerationSession(
        prompt_text=session_prompt_text(inputs),
        result_images=tuple(images),
        model=inputs.generation_model,
        input_snapshot=inputs,
    )


def should_request_feedback(inputs: GenerationInputs, images: Sequence[str]) -> bool:
    """Critique only runs after a reference-guided generation that produced something."""
    return inputs.generation_model is GenerationModel.FLASH_IMAGE and len(images) > 0
