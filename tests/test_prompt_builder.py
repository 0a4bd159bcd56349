"""Tests for prompt assembly on both generation paths."""

import json

import pytest

from stylegen.models import (
    CompositionImage,
    CompositionPreset,
    GenerationInputs,
    GenerationModel,
)
from stylegen.prompt_builder import (
    BACKGROUND_EXCLUSION_KEYWORDS,
    DEFAULT_SESSION_PROMPT,
    QUALITY_KEYWORDS,
    SECTION_SEPARATOR,
    TRANSPARENT_KEYWORDS,
    build_edit_prompt,
    build_keyword_strings,
    build_prompt,
    build_reference_prompt,
    build_reference_sections,
    build_style_sentence,
    build_text_to_image_prompt,
    session_prompt_text,
)

# ============================================================================
# Reference-guided path
# ============================================================================


def test_minimal_prompt_has_task_and_subject_only():
    inputs = GenerationInputs(subject_prompt="a red fox", use_style_guidance=False)

    sections = build_reference_sections(inputs)

    assert len(sections) == 2
    assert sections[0].startswith("**Task**")
    assert "1:1 aspect ratio" in sections[0]
    assert sections[1] == '**Subject**: Create an image of "a red fox".'
    prompt = build_reference_prompt(inputs)
    for marker in ("STYLE", "COMPOSITION", "SUBJECT REFERENCE", "BACKGROUND"):
        assert marker not in prompt


def test_style_guidance_adds_execution_block():
    inputs = GenerationInputs(subject_prompt="a red fox")

    sections = build_reference_sections(inputs)

    assert len(sections) == 3
    assert sections[2].startswith("**Execution Instructions**")
    assert QUALITY_KEYWORDS in sections[2]
    assert "Negative Keywords" not in sections[2]


def test_remove_background_keywords():
    inputs = GenerationInputs(subject_prompt="x", supportive_prompt="cinematic", remove_background=True)

    positive, negative = build_keyword_strings(inputs)

    assert positive.startswith("cinematic, ")
    assert positive.endswith(TRANSPARENT_KEYWORDS)
    assert negative == BACKGROUND_EXCLUSION_KEYWORDS


def test_remove_background_appends_to_existing_negative():
    inputs = GenerationInputs(negative_prompt="blurry", remove_background=True)

    _, negative = build_keyword_strings(inputs)

    assert negative == f"blurry, {BACKGROUND_EXCLUSION_KEYWORDS}"


def test_keywords_without_background_removal():
    inputs = GenerationInputs(supportive_prompt="vivid", negative_prompt="text")
    assert build_keyword_strings(inputs) == (f"vivid, {QUALITY_KEYWORDS}", "text")


def test_background_mandate_section():
    inputs = GenerationInputs(subject_prompt="a mug", remove_background=True, use_style_guidance=False)

    sections = build_reference_sections(inputs)

    assert len(sections) == 3
    assert sections[2].startswith("**BACKGROUND MANDATE**")


def test_composition_preset_mandate():
    inputs = GenerationInputs(subject_prompt="castle", composition=CompositionPreset("Top-down view"))

    prompt = build_reference_prompt(inputs)

    assert '**COMPOSITION MANDATE**: The new image MUST be rendered from a "Top-down view" perspective' in prompt
    assert "COMPOSITION REFERENCE" not in prompt


def test_composition_image_mandate(style_image):
    inputs = GenerationInputs(composition=CompositionImage(style_image), use_style_guidance=False)

    sections = build_reference_sections(inputs)

    assert sections[1] == "**Subject**: Create a new image based on the composition reference."
    assert sections[2].startswith("**COMPOSITION REFERENCE**")
    assert "COMPOSITION MANDATE" not in build_reference_prompt(inputs)


@pytest.mark.parametrize(
    "subject, expected",
    [
        ("a cat", "Create an image of \"a cat\", using the provided subject reference images"),
        ("", "Create a new image based on the provided subject reference images."),
    ],
)
def test_subject_instruction_with_subject_references(style_image, subject, expected):
    inputs = GenerationInputs(subject_prompt=subject, subject_reference_images=(style_image,))

    sections = build_reference_sections(inputs)

    assert expected in sections[1]
    assert any(s.startswith("**SUBJECT REFERENCE**") for s in sections)


def test_full_section_order(style_image, style_json):
    inputs = GenerationInputs(
        uploaded_images=(style_image,),
        style_description=style_json,
        subject_prompt="a red fox",
        remove_background=True,
        composition=CompositionPreset("Isometric"),
        subject_reference_images=(style_image,),
    )

    sections = build_reference_sections(inputs)
    heads = [s.split(":", 1)[0] for s in sections]

    assert heads == [
        "**Task**",
        "**Subject**",
        "**BACKGROUND MANDATE**",
        "**SUBJECT REFERENCE**",
        "**COMPOSITION MANDATE**",
        "**CRITICAL STYLE MANDATE**",
        "**Style DNA Analysis (from reference images)**",
        "**Execution Instructions**",
        "Execute this task with extreme precision. The subject of the reference images must be completely ignored and replaced with the new subject, but the style must be preserved exactly.",
    ]
    assert style_json in sections[6]
    assert build_reference_prompt(inputs) == SECTION_SEPARATOR.join(sections)


def test_style_mandate_without_ai_analysis(style_image, style_json):
    inputs = GenerationInputs(
        uploaded_images=(style_image,),
        style_description=style_json,
        subject_prompt="x",
        use_ai_style_analysis=False,
    )

    prompt = build_reference_prompt(inputs)

    assert "**STYLE MANDATE**" in prompt
    assert "CRITICAL STYLE MANDATE" not in prompt
    assert "Style DNA Analysis" not in prompt


def test_reference_prompt_is_pure():
    inputs = GenerationInputs(subject_prompt="a red fox", supportive_prompt="moody")
    assert build_reference_prompt(inputs) == build_reference_prompt(inputs)


# ============================================================================
# Text-to-image path
# ============================================================================


def test_style_sentence_skips_empty_fields(empty_style):
    empty_style["overallAesthetic"] = "cel-shaded"
    empty_style["lighting"]["style"] = "rim lighting"

    sentence = build_style_sentence(json.dumps(empty_style))

    assert sentence == "Render this in an artistic style described as: cel-shaded, using rim lighting lighting."
    assert "texture" not in sentence
    assert "composition" not in sentence
    assert "color palette" not in sentence


def test_style_sentence_all_fields(empty_style):
    empty_style["overallAesthetic"] = "watercolor"
    empty_style["materialAndTexture"]["surfaceTexture"] = "grainy paper"
    empty_style["lighting"]["style"] = "soft"
    empty_style["composition"]["complexity"] = "minimalist"
    empty_style["colorPalette"]["usageDescription"] = "muted and cool"

    sentence = build_style_sentence(json.dumps(empty_style))

    assert sentence == (
        "Render this in an artistic style described as: watercolor, with a grainy paper texture, "
        "using soft lighting, in a minimalist composition, with a color palette that is muted and cool."
    )


def test_style_sentence_raw_fallback():
    sentence = build_style_sentence("dreamy pastel gouache, {broken json")
    assert sentence == "Render this in the artistic style described as: dreamy pastel gouache, {broken json"


def test_style_sentence_partial_json_is_raw():
    text = json.dumps({"overallAesthetic": "noir"})
    assert build_style_sentence(text) == f"Render this in the artistic style described as: {text}"


def test_style_sentence_empty_structured_document(empty_style):
    assert build_style_sentence(json.dumps(empty_style)) == ""


def test_text_to_image_prompt(style_json):
    inputs = GenerationInputs(
        subject_prompt="a lighthouse",
        supportive_prompt="dramatic sky",
        style_description=style_json,
        generation_model=GenerationModel.IMAGEN,
    )

    prompt = build_text_to_image_prompt(inputs)

    assert prompt.startswith("a lighthouse, dramatic sky. Render this in an artistic style described as: ")
    assert "flat vector illustration" in prompt
    assert build_prompt(inputs) == prompt


def test_text_to_image_prompt_ignores_style_without_ai_analysis(style_json):
    inputs = GenerationInputs(
        subject_prompt="a lighthouse",
        style_description=style_json,
        use_ai_style_analysis=False,
    )
    assert build_text_to_image_prompt(inputs) == "a lighthouse"


def test_build_prompt_dispatches_to_reference_path():
    inputs = GenerationInputs(subject_prompt="a red fox")
    assert build_prompt(inputs) == build_reference_prompt(inputs)


# ============================================================================
# Misc
# ============================================================================


def test_session_prompt_text():
    assert session_prompt_text(GenerationInputs(subject_prompt="a fox")) == "a fox"
    assert session_prompt_text(GenerationInputs()) == DEFAULT_SESSION_PROMPT


def test_edit_prompt_embeds_instruction_and_style():
    prompt = build_edit_prompt("add a hat", "ink wash")

    assert '"add a hat"' in prompt
    assert "ink wash" in prompt
    assert prompt.endswith("must remain completely unchanged.")
