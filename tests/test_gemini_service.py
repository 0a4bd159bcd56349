"""Tests for the Gemini service layer against a mocked google-genai client."""

import base64
import json
import threading
from types import SimpleNamespace

import pytest

from stylegen import gemini_service
from stylegen.errors import GenerationError, InputValidationError
from stylegen.gemini_service import (
    STYLE_EXTRACTION_PROMPT,
    TEXT_TO_STYLE_PROMPT,
    analyze_style,
    build_reference_contents,
    critique_generation,
    edit_masked,
    generate_reference_guided,
    generate_text_to_image,
)


class FakeModels:
    """Replays canned responses (or raises canned exceptions) in call order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []
        self._lock = threading.Lock()

    def _next(self, kwargs):
        with self._lock:
            self.requests.append(kwargs)
            response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def generate_content(self, **kwargs):
        return self._next(kwargs)

    def generate_images(self, **kwargs):
        return self._next(kwargs)


@pytest.fixture
def mock_client(monkeypatch):
    def _install(*responses):
        models = FakeModels(responses)
        monkeypatch.setattr(gemini_service, "get_client", lambda: SimpleNamespace(models=models))
        return models
    return _install


def image_response(data):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type="image/png"), text=None)
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason="STOP")
    return SimpleNamespace(candidates=[candidate], prompt_feedback=None, text=None)


def blocked_response():
    return SimpleNamespace(candidates=[], prompt_feedback=SimpleNamespace(block_reason="SAFETY"), text=None)


def text_only_response(text="I cannot draw that"):
    part = SimpleNamespace(inline_data=None, text=text)
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason="STOP")
    return SimpleNamespace(candidates=[candidate], prompt_feedback=None, text=text)


def json_response(text):
    return SimpleNamespace(candidates=[], prompt_feedback=None, text=text)


# ============================================================================
# Style analysis
# ============================================================================


def test_analyze_requires_images_or_text(mock_client):
    models = mock_client()

    with pytest.raises(InputValidationError):
        analyze_style([], "   ")

    assert models.requests == []


def test_analyze_images_with_hint(mock_client, style_image, empty_style):
    models = mock_client(json_response(json.dumps(empty_style)))

    result = analyze_style([style_image], "neon noir")

    assert json.loads(result) == empty_style
    request = models.requests[0]
    assert request["config"].response_schema is not None
    assert request["config"].response_mime_type == "application/json"
    contents = request["contents"]
    assert contents[0].text == STYLE_EXTRACTION_PROMPT
    assert "neon noir" in contents[1].text
    assert len(contents) == 3


def test_analyze_text_only(mock_client, empty_style):
    models = mock_client(json_response("```json\n" + json.dumps(empty_style) + "\n```"))

    result = analyze_style([], "moody watercolor")

    assert json.loads(result) == empty_style
    contents = models.requests[0]["contents"]
    assert contents[0].text == TEXT_TO_STYLE_PROMPT
    assert contents[1].text == "moody watercolor"


def test_analyze_keeps_non_ascii_characters(mock_client, style_image):
    mock_client(json_response('{"overallAesthetic": "café noir — ink"}'))

    result = analyze_style([style_image])

    assert "café noir — ink" in result
    assert "\\u00e9" not in result


def test_analyze_returns_raw_text_when_not_json(mock_client, style_image):
    mock_client(json_response("A soft, dreamy pastel style."))
    assert analyze_style([style_image]) == "A soft, dreamy pastel style."


def test_analyze_upstream_error(mock_client, style_image):
    mock_client(RuntimeError("503"))
    with pytest.raises(GenerationError, match="Style analysis failed"):
        analyze_style([style_image])


# ============================================================================
# Reference-guided generation
# ============================================================================


def test_reference_contents_blocks(style_image):
    parts = build_reference_contents("PROMPT", [style_image, style_image], style_image, [style_image])
    texts = [p.text for p in parts if p.text]

    assert texts[0] == "PROMPT"
    assert texts[1].startswith("--- STYLE REFERENCE IMAGES START ---")
    assert "--- STYLE REFERENCE IMAGES END ---" in texts
    assert texts[3].startswith("--- SUBJECT REFERENCE IMAGES START ---")
    assert texts[5].startswith("--- COMPOSITION REFERENCE IMAGE START ---")
    assert len(parts) == 1 + 4 + 3 + 3


def test_reference_contents_prompt_only():
    assert len(build_reference_contents("PROMPT", [])) == 1


def test_partial_results_are_dropped_not_failed(mock_client, style_image, png_bytes):
    models = mock_client(image_response(png_bytes), blocked_response(), image_response(png_bytes))

    images = generate_reference_guided("PROMPT", [style_image], count=3)

    assert images == [png_bytes, png_bytes]
    assert len(models.requests) == 3
    assert all(r["config"].response_modalities == ["IMAGE"] for r in models.requests)


def test_exception_in_one_call_is_dropped(mock_client, style_image, png_bytes):
    mock_client(RuntimeError("timeout"), image_response(png_bytes), text_only_response())
    assert generate_reference_guided("PROMPT", [style_image], count=3) == [png_bytes]


def test_all_calls_empty_raises(mock_client, style_image):
    mock_client(blocked_response(), text_only_response())
    with pytest.raises(GenerationError):
        generate_reference_guided("PROMPT", [style_image], count=2)


def test_base64_string_inline_data_is_decoded(mock_client, style_image, png_bytes):
    mock_client(image_response(base64.b64encode(png_bytes).decode("ascii")))
    assert generate_reference_guided("PROMPT", [style_image], count=1) == [png_bytes]


# ============================================================================
# Text-to-image
# ============================================================================


def _imagen_response(*payloads):
    return SimpleNamespace(generated_images=[
        SimpleNamespace(image=SimpleNamespace(image_bytes=p) if p is not None else None)
        for p in payloads
    ])


def test_text_to_image(mock_client, png_bytes):
    models = mock_client(_imagen_response(png_bytes, None, png_bytes))

    images = generate_text_to_image("a fox", count=3, aspect_ratio="9:16")

    assert images == [png_bytes, png_bytes]
    config = models.requests[0]["config"]
    assert config.number_of_images == 3
    assert config.aspect_ratio == "9:16"


def test_text_to_image_no_images(mock_client):
    mock_client(_imagen_response())
    with pytest.raises(GenerationError):
        generate_text_to_image("a fox", count=2)


def test_text_to_image_requires_prompt(mock_client):
    with pytest.raises(InputValidationError):
        generate_text_to_image("", count=1)


# ============================================================================
# Critique
# ============================================================================


def test_critique_parses_suggestions(mock_client, style_image):
    models = mock_client(json_response(json.dumps({
        "suggestedStyleDescription": "{}",
        "suggestedPositivePrompt": "crisp",
        "suggestedNegativePrompt": "",
    })))

    result = critique_generation([style_image], style_image, "style", "pos", "neg")

    assert result.style_description == "{}"
    assert result.positive_prompt == "crisp"
    assert result.negative_prompt == ""
    prompt = models.requests[0]["contents"][0].text
    assert 'current positive prompt is: "pos"' in prompt


def test_critique_missing_field_is_an_error(mock_client, style_image):
    mock_client(json_response(json.dumps({
        "suggestedStyleDescription": "{}",
        "suggestedPositivePrompt": "crisp",
    })))
    with pytest.raises(GenerationError, match="schema"):
        critique_generation([style_image], style_image, "s", "p", "n")


# ============================================================================
# Mask edit
# ============================================================================


def test_edit_masked_returns_image(mock_client, style_image, png_bytes):
    models = mock_client(image_response(png_bytes))

    assert edit_masked("add a hat", style_image, style_image, "ink") == png_bytes
    contents = models.requests[0]["contents"]
    assert '"add a hat"' in contents[0].text
    assert len(contents) == 3


def test_edit_masked_blocked(mock_client, style_image):
    mock_client(blocked_response())
    with pytest.raises(GenerationError, match="SAFETY"):
        edit_masked("add a hat", style_image, style_image, "ink")
