"""
Studio — the session controller that owns all mutable state.

StyleStudio holds the current GenerationInputs (replaced wholesale on every
edit, never mutated), the session history, the current result set and any
pending critique suggestions. Prompt assembly and generation only ever see a
snapshot of the inputs.

Concurrency constraint: one studio serves one user. A second generate() while
one is in flight raises StudioBusyError. The critique runs on a background
worker and only writes pending_suggestions, and only if its session is still
the newest one. Serving several clients means one studio per client.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

from rich.console import Console

from . import gemini_service
from .config import DEFAULT_IMAGE_COUNT, GENERATION_INPUT_MAX_DIMENSION
from .errors import InputValidationError, StudioBusyError
from .exporter import create_images_zip, export_images
from .generator import create_session, generate_images, should_request_feedback, validate_inputs
from .history import SessionHistory
from .imaging import bytes_to_data_url, check_decodable, load_images, preserve_unmasked, resize_all
from .models import (
    CompositionImage,
    CompositionPreset,
    GenerationInputs,
    GenerationModel,
    GenerationSession,
    ImageAsset,
    NoComposition,
    SuggestionSet,
)
from .suggestions import apply_suggestions, launch_feedback

logger = logging.getLogger(__name__)

console = Console()

RESTORE_QUESTION = "Restore settings from this session? This will overwrite your current inputs."

_IMAGE_TUPLE_FIELDS = ("uploaded_images", "subject_reference_images")


class StyleStudio:
    def __init__(
        self,
        service=gemini_service,
        executor: Optional[Executor] = None,
        inputs: Optional[GenerationInputs] = None,
    ) -> None:
        self.service = service
        self.inputs = inputs or GenerationInputs()
        self.history = SessionHistory()
        self.current_results: Optional[List[str]] = None
        self.pending_suggestions: Optional[SuggestionSet] = None
        self.status_message = "Upload images or describe a style."

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="critique")
        self._feedback_future: Optional[Future] = None
        self._feedback_session_id: Optional[str] = None
        self._feedback_lock = threading.Lock()
        self._generating = False
        self._added_to_assets: set = set()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def __enter__(self) -> "StyleStudio":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def is_generating(self) -> bool:
        return self._generating

    # ── Input editing ────────────────────────────────────────────────────────

    def update(self, **fields) -> GenerationInputs:
        """Replace any GenerationInputs fields; image lists are stored as tuples."""
        for name in _IMAGE_TUPLE_FIELDS:
            if name in fields:
                fields[name] = tuple(fields[name])
        self.inputs = replace(self.inputs, **fields)
        return self.inputs

    def add_images(self, images: Iterable[ImageAsset]) -> int:
        """Single entry point for uploads, pastes and drops."""
        new = tuple(images)
        if not new:
            return 0
        self.update(uploaded_images=self.inputs.uploaded_images + new)
        self.status_message = 'Images added. Run "analyze" to update the style analysis.'
        return len(new)

    def add_image_files(self, paths: Iterable[Union[str, Path]]) -> int:
        return self.add_images(load_images(paths))

    def remove_image(self, index: int) -> None:
        images = list(self.inputs.uploaded_images)
        del images[index]
        self.update(uploaded_images=images)
        self.status_message = "Image removed. Remember to re-analyze if needed."

    def set_composition_image(self, image: ImageAsset) -> None:
        self.update(composition=CompositionImage(image))

    def set_composition_view(self, view: str) -> None:
        if not view:
            raise InputValidationError("Composition view must not be empty.")
        self.update(composition=CompositionPreset(view))

    def clear_composition(self) -> None:
        self.update(composition=NoComposition())

    def set_subject_references(self, images: Sequence[ImageAsset]) -> None:
        self.update(subject_reference_images=images)

    def remove_subject_reference(self, index: int) -> None:
        images = list(self.inputs.subject_reference_images)
        del images[index]
        self.update(subject_reference_images=images)

    # ── Style analysis ───────────────────────────────────────────────────────

    def analyze_style(self) -> str:
        """Run Style DNA analysis on the uploaded images and/or free-form text."""
        inputs = self.inputs
        text = inputs.free_form_style_text.strip()
        if not inputs.uploaded_images and not text:
            raise InputValidationError("Please upload images or enter a text description to analyze.")

        self.status_message = "Analyzing style..."
        images = resize_all(inputs.uploaded_images, GENERATION_INPUT_MAX_DIMENSION)
        try:
            description = self.service.analyze_style(images, text or None)
        except Exception:
            self.status_message = "Error analyzing style."
            raise

        self.update(style_description=description)
        self.status_message = "Style analysis complete."
        return description

    # ── Generation ───────────────────────────────────────────────────────────

    def generate(self, count: int = DEFAULT_IMAGE_COUNT) -> GenerationSession:
        """
        Generate from the current inputs, record the session and, for the
        reference-guided model, start the critique in the background.
        """
        if self._generating:
            raise StudioBusyError("A generation is already in progress.")
        inputs = self.inputs
        validate_inputs(inputs)
        if inputs.generation_model is GenerationModel.FLASH_IMAGE:
            references = inputs.uploaded_images + inputs.subject_reference_images
            if inputs.composition_image is not None:
                references += (inputs.composition_image,)
            for image in references:
                check_decodable(image)

        self._generating = True
        self.clear_suggestions()
        try:
            images = generate_images(inputs, count, service=self.service)
        finally:
            self._generating = False

        session = create_session(inputs, images)
        self.history.add(session)
        self.current_results = list(images)
        self.status_message = f"Generated {len(images)} image(s)."

        if should_request_feedback(inputs, images):
            self._start_feedback(session, inputs, images[0])
        return session

    def _start_feedback(self, session: GenerationSession, inputs: GenerationInputs, first_image: str) -> None:
        session_id = session.id
        with self._feedback_lock:
            self._feedback_session_id = session_id
        self.status_message = "Analyzing result for refinement suggestions..."
        generated = ImageAsset.from_data_url(first_image, name="generated.jpg")

        def _deliver(suggestions: SuggestionSet) -> None:
            with self._feedback_lock:
                if self._feedback_session_id != session_id:
                    logger.info("discarding suggestions for superseded session %s", session_id)
                    return
                self.pending_suggestions = suggestions
                self.status_message = "Style refinement suggestions are ready!"

        def _done(future: Future) -> None:
            if future.result() is not None:
                return
            with self._feedback_lock:
                if self._feedback_session_id == session_id:
                    self.status_message = "Image generated. Could not retrieve suggestions."

        future = launch_feedback(self._executor, inputs, generated, _deliver, service=self.service)
        future.add_done_callback(_done)
        self._feedback_future = future

    def wait_for_suggestions(self, timeout: Optional[float] = None) -> Optional[SuggestionSet]:
        """Block until the running critique settles; returns the pending suggestions, if any."""
        if self._feedback_future is not None:
            self._feedback_future.result(timeout=timeout)
        return self.pending_suggestions

    def clear_suggestions(self) -> None:
        with self._feedback_lock:
            self.pending_suggestions = None
            self._feedback_session_id = None

    def apply_suggestions(self, fields: Iterable[str]) -> GenerationInputs:
        """Overwrite only the chosen fields ("style", "positive", "negative")."""
        if self.pending_suggestions is None:
            raise InputValidationError("No suggestions are available to apply.")
        fields = list(fields)
        self.inputs = apply_suggestions(self.inputs, self.pending_suggestions, fields)
        if fields:
            self.status_message = "Suggestions applied! Ready for the next generation."
        return self.inputs

    # ── History ──────────────────────────────────────────────────────────────

    def restore(self, session: GenerationSession, confirm: Callable[[str], bool]) -> bool:
        """
        Overwrite every input with the session snapshot and show its images.

        Destructive: `confirm` is asked first and a False answer changes nothing.
        """
        if not confirm(RESTORE_QUESTION):
            return False
        self.inputs = session.input_snapshot
        self.current_results = list(session.result_images)
        restored_at = time.strftime("%H:%M:%S", time.localtime(session.timestamp))
        self.status_message = f"Restored session from {restored_at}"
        return True

    def download_all(self) -> List[str]:
        return self.history.download_all(self.current_results)

    def export_all(self, output_dir: Path, as_zip: bool = False) -> List[Path]:
        images = self.download_all()
        if as_zip:
            zip_path = create_images_zip(images, Path(output_dir) / "generated_images.zip")
            return [zip_path] if zip_path else []
        return export_images(images, Path(output_dir))

    # ── Result actions ───────────────────────────────────────────────────────

    def add_to_assets(self, data_url: str) -> bool:
        """Feed a generated image back in as a style reference (once per image)."""
        if data_url in self._added_to_assets:
            return False
        asset = ImageAsset.from_data_url(
            data_url, name=f"generated_asset_{int(time.time() * 1000)}.jpeg"
        )
        self._added_to_assets.add(data_url)
        self.add_images([asset])
        return True

    def edit_image(
        self,
        index: int,
        instruction: str,
        mask: ImageAsset,
        enforce_mask: bool = True,
    ) -> str:
        """
        Mask-edit one of the current results and append the edit to them.

        With enforce_mask, pixels outside the painted mask are copied back from
        the source so the edit cannot leak outside it.
        """
        if not self.current_results:
            raise InputValidationError("There are no generated images to edit.")
        if not instruction.strip():
            raise InputValidationError("Please describe the edit to apply.")

        source = ImageAsset.from_data_url(self.current_results[index], name="source.jpg")
        check_decodable(mask)
        edited = self.service.edit_masked(instruction, source, mask, self.inputs.style_description)
        if enforce_mask:
            edited = preserve_unmasked(source.data, edited, mask.data)

        data_url = bytes_to_data_url(edited)
        self.current_results.append(data_url)
        console.print(f"  [green]✓ edit applied[/green] → result #{len(self.current_results)}")
        return data_url
