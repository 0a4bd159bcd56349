"""Exception types raised by the studio pipeline."""

from __future__ import annotations


class StudioError(Exception):
    """Base class for every error the studio surfaces to the user."""


class InputValidationError(StudioError, ValueError):
    """Inputs are incomplete for the requested operation. Raised before any network call."""


class GenerationError(StudioError):
    """An upstream Gemini call failed, was blocked, or broke its response contract."""


class StudioBusyError(StudioError):
    """A generation is already in flight for this studio."""
