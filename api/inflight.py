"""
SympVis Triage Engine – In-Flight Guard
========================================
At most one evaluation per session id may be outstanding. The engine holds no
cross-call state, so the API (its caller) rejects concurrent duplicates here.

In-memory, per process. Multi-worker deployments need sticky routing by
session id.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Set

logger = logging.getLogger(__name__)


class DuplicateSubmissionError(RuntimeError):
    def __init__(self, session_id: str):
        super().__init__(f"An evaluation for session {session_id} is already in progress.")
        self.session_id = session_id


class InFlightRegistry:
    """Thread-safe set of session ids currently being evaluated."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Set[str] = set()

    def is_active(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._active

    @contextmanager
    def claim(self, session_id: str) -> Iterator[None]:
        with self._lock:
            if session_id in self._active:
                logger.warning("Rejected duplicate submission for session %s", session_id)
                raise DuplicateSubmissionError(session_id)
            self._active.add(session_id)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(session_id)
