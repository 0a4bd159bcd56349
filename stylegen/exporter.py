"""
exporter.py — write generated images to disk for "download all".

  export_images()      generated_image_1.jpeg, generated_image_2.png, ... in order
  create_images_zip()  same files bundled into one ZIP
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import List, Optional, Sequence

from .models import ImageAsset

logger = logging.getLogger(__name__)

_MIME_EXT = {
    "image/jpeg": "jpeg",
    "image/png": "png",
    "image/webp": "webp",
}


def _export_name(index: int, image: ImageAsset) -> str:
    ext = _MIME_EXT.get(image.mime_type, "jpeg")
    return f"generated_image_{index + 1}.{ext}"


def export_images(images: Sequence[str], output_dir: Path) -> List[Path]:
    """
    Save data-URL images sequentially into output_dir.

    An empty sequence writes nothing and returns [].
    """
    if not images:
        logger.info("No images to export.")
        return []

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for i, data_url in enumerate(images):
        image = ImageAsset.from_data_url(data_url)
        path = output_dir / _export_name(i, image)
        path.write_bytes(image.data)
        paths.append(path)

    logger.info(f"Exported {len(paths)} image(s) → {output_dir}")
    return paths


def create_images_zip(images: Sequence[str], zip_path: Path) -> Optional[Path]:
    """Bundle data-URL images into one ZIP. Returns None when there is nothing to write."""
    if not images:
        return None

    zip_path = Path(zip_path)
    zip_path.parent.mkdir(parents=True, exist_ok=True)

    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zf:
        for i, data_url in enumerate(images):
            image = ImageAsset.from_data_url(data_url)
            zf.writestr(_export_name(i, image), image.data)

    logger.info(f"ZIP created: {zip_path.name} ({zip_path.stat().st_size // 1024} KB)")
    return zip_path
