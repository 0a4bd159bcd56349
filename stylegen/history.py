"""
History — the in-memory list of finished generations, newest first.

Sessions are immutable; history only grows. Restoring a session is done by
the studio, which owns the mutable input state.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from .models import GenerationSession


class SessionHistory:
    def __init__(self) -> None:
        self._sessions: List[GenerationSession] = []

    def add(self, session: GenerationSession) -> None:
        """Prepend a session; most recent is always first."""
        self._sessions.insert(0, session)

    def __iter__(self) -> Iterator[GenerationSession]:
        return iter(tuple(self._sessions))

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def sessions(self) -> tuple:
        return tuple(self._sessions)

    @property
    def latest(self) -> Optional[GenerationSession]:
        return self._sessions[0] if self._sessions else None

    def download_all(self, current_results: Optional[Iterable[str]] = None) -> List[str]:
        return flatten_images(self._sessions, current_results)


def flatten_images(
    sessions: Iterable[GenerationSession],
    current_results: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    Every image in export order: sessions as given (newest first), then the
    current result set. Sessions without images contribute nothing.
    """
    images: List[str] = []
    for session in sessions:
        images.extend(session.result_images)
    if current_results:
        images.extend(current_results)
    return images
