"""
Suggestions — the critique loop that refines style, positive and negative prompts.

After a reference-guided generation, one result is compared against the style
references; the critique proposes full replacements for the three text fields.
The user applies any subset of them.

The critique runs as a detached task: its failure is logged and never touches
the generation that triggered it.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Sequence

from . import gemini_service
from .config import GENERATION_INPUT_MAX_DIMENSION
from .imaging import resize_all, resize_image
from .models import GenerationInputs, ImageAsset, SuggestionSet

logger = logging.getLogger(__name__)

SUGGESTION_FIELDS = ("style", "positive", "negative")


def request_suggestions(
    reference_images: Sequence[ImageAsset],
    generated_image: ImageAsset,
    current_style: str,
    current_positive: str,
    current_negative: str,
    service=gemini_service,
) -> SuggestionSet:
    references = resize_all(reference_images, GENERATION_INPUT_MAX_DIMENSION)
    generated = resize_image(generated_image, GENERATION_INPUT_MAX_DIMENSION)
    return service.critique_generation(
        references, generated, current_style, current_positive, current_negative
    )


def launch_feedback(
    executor: Executor,
    inputs: GenerationInputs,
    generated_image: ImageAsset,
    on_ready: Callable[[SuggestionSet], None],
    service=gemini_service,
) -> "Future[Optional[SuggestionSet]]":
    """
    Run the critique for `inputs` in the background.

    on_ready receives the SuggestionSet on success. The returned future
    resolves to the set, or to None when the critique failed.
    """
    def _run() -> Optional[SuggestionSet]:
        try:
            suggestions = request_suggestions(
                inputs.uploaded_images,
                generated_image,
                inputs.style_description,
                inputs.supportive_prompt,
                inputs.negative_prompt,
                service=service,
            )
        except Exception as e:
            logger.warning("Failed to generate suggestions: %s", e)
            return None
        on_ready(suggestions)
        return suggestions

    return executor.submit(_run)


def apply_suggestions(
    inputs: GenerationInputs,
    suggestions: SuggestionSet,
    fields: Iterable[str],
) -> GenerationInputs:
    """Return inputs with only the selected fields replaced by their suggestions."""
    selected = set(fields)
    unknown = selected - set(SUGGESTION_FIELDS)
    if unknown:
        raise ValueError(f"Unknown suggestion field(s): {', '.join(sorted(unknown))}")

    changes = {}
    if "style" in selected:
        changes["style_description"] = suggestions.style_description
    if "positive" in selected:
        changes["supportive_prompt"] = suggestions.positive_prompt
    if "negative" in selected:
        changes["negative_prompt"] = suggestions.negative_prompt
    return replace(inputs, **changes)


# ── Review helpers ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KeywordDiff:
    added: List[str]
    removed: List[str]
    unchanged: List[str]

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def _split_keywords(text: str) -> List[str]:
    seen = dict.fromkeys(k.strip() for k in text.split(","))
    return [k for k in seen if k]


def keyword_diff(current: str, suggested: str) -> KeywordDiff:
    """Comma-separated keyword diff, order preserved."""
    cur = _split_keywords(current)
    sug = _split_keywords(suggested)
    cur_set, sug_set = set(cur), set(sug)
    return KeywordDiff(
        added=[k for k in sug if k not in cur_set],
        removed=[k for k in cur if k not in sug_set],
        unchanged=[k for k in cur if k in sug_set],
    )


def _leaf_paths(value, prefix: str = "") -> dict:
    if isinstance(value, dict) and value:
        out = {}
        for key, child in value.items():
            out.update(_leaf_paths(child, f"{prefix}.{key}" if prefix else key))
        return out
    return {prefix: value}


def modified_style_paths(current: str, suggested: str) -> Optional[List[str]]:
    """
    Dotted paths of Style DNA fields that differ between two documents.

    The suggested style replaces the whole document; this only drives
    highlighting. Returns None when either side is not a JSON object.
    """
    try:
        old = json.loads(current)
        new = json.loads(suggested)
    except ValueError:
        return None
    if not isinstance(old, dict) or not isinstance(new, dict):
        return None

    old_leaves, new_leaves = _leaf_paths(old), _leaf_paths(new)
    paths = [p for p, v in new_leaves.items() if old_leaves.get(p, object()) != v]
    paths += [p for p in old_leaves if p not in new_leaves]
    return paths
