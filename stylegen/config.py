"""
Config — environment, model names and shared generation constants.

Values come from the process environment (a local .env is loaded on import).

  GEMINI_API_KEY                required for every Gemini call
  STYLEGEN_FLASH_IMAGE_MODEL    reference-guided image model
  STYLEGEN_IMAGEN_MODEL         text-to-image model
  STYLEGEN_ANALYSIS_MODEL       style analysis + critique model
"""

from __future__ import annotations

import os
from typing import List, Optional

from dotenv import load_dotenv
from google import genai

load_dotenv()

API_KEY_ENV = "GEMINI_API_KEY"

FLASH_IMAGE_MODEL = os.environ.get("STYLEGEN_FLASH_IMAGE_MODEL", "gemini-2.5-flash-image")
IMAGEN_MODEL = os.environ.get("STYLEGEN_IMAGEN_MODEL", "imagen-4.0-generate-001")
ANALYSIS_MODEL = os.environ.get("STYLEGEN_ANALYSIS_MODEL", "gemini-2.5-flash")

# Every image embedded in a request is normalized to this bounding box first
GENERATION_INPUT_MAX_DIMENSION = 1024
JPEG_QUALITY = 90

DEFAULT_IMAGE_COUNT = 3
DEFAULT_ASPECT_RATIO = "1:1"
ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")

COMPOSITION_VIEWS = (
    "Isometric",
    "Top-down view",
    "First-person view",
    "Low-angle shot",
    "High-angle shot",
    "Wide-angle shot",
    "Dutch angle",
    "Portrait",
    "Landscape",
)

_client: Optional[genai.Client] = None


def get_api_key() -> str:
    return os.environ.get(API_KEY_ENV, "")


def get_client() -> genai.Client:
    """Return the shared Gemini client, creating it on first use."""
    global _client
    if _client is None:
        api_key = get_api_key()
        if not api_key:
            raise RuntimeError(
                f"{API_KEY_ENV} environment variable not set. "
                "Create a .env file from .env.example and add your key."
            )
        _client = genai.Client(api_key=api_key)
    return _client


def check_env() -> List[str]:
    """Names of required environment variables that are missing."""
    return [name for name in (API_KEY_ENV,) if not os.environ.get(name)]
