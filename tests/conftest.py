"""Shared pytest fixtures for stylegen tests.

Everything here is offline: images are drawn with Pillow, the Gemini service
is replaced by FakeService, and background work runs on ManualExecutor.
"""

from __future__ import annotations

import io
import json
from concurrent.futures import Executor, Future
from typing import List, Optional

import pytest
from PIL import Image

from stylegen.models import ImageAsset, SuggestionSet

# ============================================================================
# Image Fixtures
# ============================================================================


def make_image_bytes(size=(64, 64), color=(200, 30, 30), fmt: str = "PNG", mode: str = "RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def image_factory():
    """Build image bytes of a given size/color/format."""
    return make_image_bytes


@pytest.fixture
def style_image(png_bytes) -> ImageAsset:
    return ImageAsset.from_bytes(png_bytes, name="style.png")


# ============================================================================
# Style DNA Fixtures
# ============================================================================


@pytest.fixture
def empty_style() -> dict:
    """A schema-complete Style DNA document with every field empty."""
    return {
        "overallAesthetic": "",
        "colorPalette": {
            "dominantColors": [],
            "accentColors": [],
            "usageDescription": "",
            "colorWeight": "",
        },
        "materialAndTexture": {"material": "", "surfaceTexture": "", "brushwork": ""},
        "lighting": {"style": "", "effects": []},
        "composition": {"shapeLanguage": "", "depthAndPerspective": "", "complexity": ""},
        "postProcessingEffects": [],
    }


@pytest.fixture
def style_json(empty_style) -> str:
    doc = dict(empty_style)
    doc["overallAesthetic"] = "flat vector illustration"
    doc["lighting"] = {"style": "soft ambient", "effects": ["bloom"]}
    return json.dumps(doc, indent=2)


# ============================================================================
# Service / Executor Fakes
# ============================================================================


class FakeService:
    """Stands in for stylegen.gemini_service; records every call."""

    def __init__(self, images: Optional[List[bytes]] = None):
        self.images = images if images is not None else [make_image_bytes()] * 3
        self.style = '{"overallAesthetic": "analyzed"}'
        self.suggestions: List[SuggestionSet] = []
        self.critique_error: Optional[Exception] = None
        self.edited = make_image_bytes(color=(0, 0, 255))
        self.calls: List[tuple] = []

    def analyze_style(self, images, text_hint=None):
        self.calls.append(("analyze_style", list(images), text_hint))
        return self.style

    def generate_reference_guided(self, prompt, style_images, count=1, composition_image=None, subject_images=()):
        self.calls.append(("generate_reference_guided", prompt, list(style_images), count,
                           composition_image, list(subject_images)))
        return list(self.images[:count])

    def generate_text_to_image(self, prompt, count=1, aspect_ratio="1:1"):
        self.calls.append(("generate_text_to_image", prompt, count, aspect_ratio))
        return list(self.images[:count])

    def critique_generation(self, style_images, generated_image, current_style, current_positive, current_negative):
        self.calls.append(("critique_generation", list(style_images), generated_image,
                           current_style, current_positive, current_negative))
        if self.critique_error is not None:
            raise self.critique_error
        return self.suggestions.pop(0)

    def edit_masked(self, prompt, source_image, mask_image, style_description):
        self.calls.append(("edit_masked", prompt, source_image, mask_image, style_description))
        return self.edited

    def calls_to(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


class ManualExecutor(Executor):
    """Queues submitted work until the test runs it."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_next(self) -> None:
        future, fn, args, kwargs = self.pending.pop(0)
        future.set_result(fn(*args, **kwargs))

    def run_all(self) -> None:
        while self.pending:
            self.run_next()


@pytest.fixture
def fake_service() -> FakeService:
    return FakeService()


@pytest.fixture
def manual_executor() -> ManualExecutor:
    return ManualExecutor()
