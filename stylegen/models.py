"""
Models — the data passed between the studio, the prompt builder and Gemini.

  ImageAsset            one image held in memory as base64 + mime type
  StyleDescription      "Style DNA" JSON schema (also the Gemini response schema)
  StyleDocument         StructuredStyle | RawStyle — how a style text parsed
  CompositionReference  NoComposition | CompositionImage | CompositionPreset
  GenerationInputs      immutable snapshot of everything a generation reads
  GenerationSession     one finished generation, kept in history
  SuggestionSet         critique output: replacement style / positive / negative
"""

from __future__ import annotations

import base64
import re
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)

_EXT_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}


# ── Images ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ImageAsset:
    name: str
    base64: str
    mime_type: str

    @property
    def data(self) -> bytes:
        return base64.b64decode(self.base64)

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "image.png", mime_type: str = "image/png") -> "ImageAsset":
        return cls(name=name, base64=base64.b64encode(data).decode("ascii"), mime_type=mime_type)

    @classmethod
    def from_data_url(cls, data_url: str, name: str = "image.png") -> "ImageAsset":
        m = _DATA_URL_RE.match(data_url.strip())
        if not m or not m.group("data"):
            raise ValueError("Invalid data URL")
        mime = m.group("mime") or "application/octet-stream"
        return cls(name=name, base64=m.group("data"), mime_type=mime)

    @classmethod
    def from_path(cls, path: Path) -> "ImageAsset":
        path = Path(path)
        ext = path.suffix.lower().lstrip(".")
        mime = _EXT_MIME.get(ext, f"image/{ext or 'png'}")
        return cls.from_bytes(path.read_bytes(), name=path.name, mime_type=mime)


# ── Style DNA schema ──────────────────────────────────────────────────────────

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ColorPalette(CamelModel):
    dominant_colors: List[str] = Field(description="An array of dominant hex color codes found in the image.")
    accent_colors: List[str] = Field(description="An array of accent hex color codes.")
    usage_description: str = Field(
        description=(
            "Describe how colors are used (e.g., fills, strokes, gradients) and the overall "
            "color harmony and temperature (warm, cool, muted, vibrant)."
        )
    )
    color_weight: str = Field(
        description=(
            "Describe the balance and proportion of colors. Is there one color that dominates, "
            "or is it a more even distribution?"
        )
    )


class MaterialAndTexture(CamelModel):
    material: str = Field(description="Describe the depicted material (e.g., glass, metal, paper, fabric).")
    surface_texture: str = Field(description="Describe the texture (e.g., smooth, polished, rough, painterly, gritty).")
    brushwork: str = Field(
        description="Describe any visible brushwork or stroke style (e.g., digital, clean lines, textured strokes)."
    )


class Lighting(CamelModel):
    style: str = Field(description="Describe the lighting style (e.g., studio HDRI, dramatic, soft, flat, rim lighting).")
    effects: List[str] = Field(
        description="List any notable lighting effects observed (e.g., reflections, refractions, bloom, dispersion)."
    )


class Composition(CamelModel):
    shape_language: str = Field(description="Describe the nature of shapes used (e.g., geometric, organic, sharp, soft).")
    depth_and_perspective: str = Field(description="How is depth created (e.g., shading, layering, atmospheric effects)?")
    complexity: str = Field(description="Describe the visual complexity, from 'minimalist' to 'highly detailed and dense'.")


class StyleDescription(CamelModel):
    """Style DNA: the aesthetic of a set of artworks, excluding subject matter."""
    overall_aesthetic: str = Field(
        description=(
            "A concise summary of the overall style and mood "
            "(e.g., photorealistic 3D render, whimsical watercolor, retro comic book)."
        )
    )
    color_palette: ColorPalette = Field(description="Detailed analysis of the color usage.")
    material_and_texture: MaterialAndTexture = Field(description="Analysis of surface qualities.")
    lighting: Lighting = Field(description="Analysis of the lighting.")
    composition: Composition = Field(description="Analysis of composition and form.")
    post_processing_effects: List[str] = Field(
        description=(
            "List any post-processing effects detected "
            "(e.g., chromatic aberration, glow, high contrast, vignette)."
        )
    )


@dataclass(frozen=True)
class StructuredStyle:
    text: str
    description: StyleDescription


@dataclass(frozen=True)
class RawStyle:
    text: str


StyleDocument = Union[StructuredStyle, RawStyle]


def parse_style_document(text: str) -> StyleDocument:
    """Classify a style text as schema-conforming Style DNA or opaque raw text."""
    try:
        return StructuredStyle(text=text, description=StyleDescription.model_validate_json(text))
    except (ValidationError, ValueError):
        return RawStyle(text=text)


# ── Composition reference ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class NoComposition:
    pass


@dataclass(frozen=True)
class CompositionImage:
    image: ImageAsset


@dataclass(frozen=True)
class CompositionPreset:
    view: str


CompositionReference = Union[NoComposition, CompositionImage, CompositionPreset]


# ── Generation state ──────────────────────────────────────────────────────────

class GenerationModel(str, Enum):
    FLASH_IMAGE = "gemini-2.5-flash-image"     # reference-guided, multimodal
    IMAGEN = "imagen-4.0-generate-001"         # text-to-image

    @property
    def label(self) -> str:
        return "flash" if self is GenerationModel.FLASH_IMAGE else "imagen"


@dataclass(frozen=True)
class GenerationInputs:
    uploaded_images: Tuple[ImageAsset, ...] = ()            # style references
    free_form_style_text: str = ""
    style_description: str = ""                             # Style DNA JSON or hand-edited text
    subject_prompt: str = ""
    supportive_prompt: str = ""                             # positive keywords
    negative_prompt: str = ""
    aspect_ratio: str = "1:1"
    remove_background: bool = False
    composition: CompositionReference = field(default_factory=NoComposition)
    subject_reference_images: Tuple[ImageAsset, ...] = ()
    generation_model: GenerationModel = GenerationModel.FLASH_IMAGE
    use_ai_style_analysis: bool = True
    use_style_guidance: bool = True

    @property
    def composition_image(self) -> Optional[ImageAsset]:
        if isinstance(self.composition, CompositionImage):
            return self.composition.image
        return None

    @property
    def composition_view(self) -> Optional[str]:
        if isinstance(self.composition, CompositionPreset):
            return self.composition.view
        return None

    @property
    def has_composition(self) -> bool:
        return not isinstance(self.composition, NoComposition)


@dataclass(frozen=True)
class GenerationSession:
    prompt_text: str
    result_images: Tuple[str, ...]                          # data URLs
    model: GenerationModel
    input_snapshot: GenerationInputs
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SuggestionSet:
    style_description: str
    positive_prompt: str
    negative_prompt: str
