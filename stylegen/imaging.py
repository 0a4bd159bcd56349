"""
Imaging — Pillow helpers for the images that travel to and from Gemini.

  resize_image()       bound an image to max_dimension before it is embedded in a request
  detect_mime()        sniff the real format of bytes returned by a model
  load_images()        collect image files from paths / folders (the "images added" entry point)
  preserve_unmasked()  put source pixels back everywhere the edit mask is not painted
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Iterable, List, Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import JPEG_QUALITY
from .errors import InputValidationError
from .models import ImageAsset

logger = logging.getLogger(__name__)

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp"}


class ImageDecodeError(InputValidationError):
    """Bytes could not be decoded as an image."""


def _open(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        return img
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Failed to load image: {e}") from e


def check_decodable(image: ImageAsset) -> None:
    """Raise ImageDecodeError unless the asset holds a readable image."""
    try:
        data = image.data
    except ValueError as e:
        raise ImageDecodeError(f"Failed to load image {image.name}: invalid base64") from e
    _open(data)


def resize_image(image: ImageAsset, max_dimension: int) -> ImageAsset:
    """
    Downscale an image so neither side exceeds max_dimension.

    Images already inside the box are returned unchanged (same object).
    Larger images are scaled so the longer side equals max_dimension,
    the shorter side rounded half-up, and re-encoded as JPEG.
    """
    img = _open(image.data)
    width, height = img.size

    if width <= max_dimension and height <= max_dimension:
        return image

    if width > height:
        new_width = max_dimension
        new_height = int(height * max_dimension / width + 0.5)
    else:
        new_height = max_dimension
        new_width = int(width * max_dimension / height + 0.5)
    new_width, new_height = max(new_width, 1), max(new_height, 1)

    resized = img.convert("RGB").resize((new_width, new_height), Image.LANCZOS)
    buf = io.BytesIO()
    resized.save(buf, format="JPEG", quality=JPEG_QUALITY)

    logger.debug(
        "resized %s %dx%d -> %dx%d", image.name, width, height, new_width, new_height
    )
    return ImageAsset.from_bytes(buf.getvalue(), name=image.name, mime_type="image/jpeg")


def resize_all(images: Iterable[ImageAsset], max_dimension: int) -> List[ImageAsset]:
    return [resize_image(img, max_dimension) for img in images]


def detect_mime(data: bytes, default: str = "image/jpeg") -> str:
    """Return the mime type Pillow identifies for data, or default if unknown."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format or "", default)
    except (UnidentifiedImageError, OSError, ValueError):
        return default


def bytes_to_data_url(data: bytes) -> str:
    return ImageAsset.from_bytes(data, mime_type=detect_mime(data)).to_data_url()


def load_images(sources: Iterable[Union[str, Path]]) -> List[ImageAsset]:
    """
    Read image files into ImageAssets.

    Each source may be a file or a folder; folders contribute every file with
    a known image extension, sorted by name.
    """
    assets: List[ImageAsset] = []
    for src in sources:
        p = Path(src)
        if p.is_dir():
            for child in sorted(p.iterdir()):
                if child.is_file() and child.suffix.lower() in IMAGE_EXTS:
                    assets.append(ImageAsset.from_path(child))
        elif p.is_file():
            assets.append(ImageAsset.from_path(p))
        else:
            raise FileNotFoundError(f"Image not found: {p}")
    return assets


def _painted_region(mask: Image.Image, size: Tuple[int, int]) -> np.ndarray:
    """Boolean array, True where the mask marks pixels to change."""
    if mask.mode == "P":
        mask = mask.convert("RGBA")
    mask = mask.resize(size, Image.NEAREST)
    if "A" in mask.getbands():
        return np.array(mask.getchannel("A")) > 0
    return np.array(mask.convert("L")) > 0


def preserve_unmasked(source: bytes, edited: bytes, mask: bytes) -> bytes:
    """
    Composite an edited image over its source so only the painted mask changes.

    The edited image is scaled to the source size; the result is PNG so the
    untouched pixels stay bit-identical to the decoded source.
    """
    src = _open(source).convert("RGBA")
    out = _open(edited).convert("RGBA")
    if out.size != src.size:
        out = out.resize(src.size, Image.LANCZOS)

    painted = _painted_region(_open(mask), src.size)
    merged = np.where(painted[:, :, None], np.array(out), np.array(src))

    buf = io.BytesIO()
    Image.fromarray(merged.astype(np.uint8)).save(buf, format="PNG")
    return buf.getvalue()
