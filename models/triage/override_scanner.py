"""
SympVis Triage Engine – Keyword Override Scanner
=================================================
Deterministic urgent-indicator scan that runs independently of (and before)
the collaborator. Any hit forces a Red result regardless of what the
collaborator concludes.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Tuple

from models.session.schema_definition import UserSession

logger = logging.getLogger(__name__)


class KeywordOverrideScanner:
    """Case-insensitive substring scan over narrative, tags and timeline."""

    def __init__(self, keywords: Iterable[str]):
        # Keep configured order for stable reporting
        seen = set()
        unique: List[str] = []
        for kw in keywords:
            kw = (kw or "").strip()
            if kw and kw.lower() not in seen:
                seen.add(kw.lower())
                unique.append(kw)

        self.keywords: Tuple[str, ...] = tuple(unique)
        self._needles = tuple(k.lower() for k in self.keywords)

    def scan(self, session: UserSession) -> Tuple[str, ...]:
        """
        Return the configured keywords found in the session.

        Sources are matched independently: the narrative, each selected tag,
        and each timeline symptom. A keyword found in several sources is
        reported once.
        """
        sources = self._build_sources(session)

        detected: List[str] = []
        for keyword, needle in zip(self.keywords, self._needles):
            if any(needle in source for source in sources):
                detected.append(keyword)

        if detected:
            logger.warning(
                "Urgent keywords detected in session %s: %s",
                session.session_id, detected,
            )
        return tuple(detected)

    @staticmethod
    def _build_sources(session: UserSession) -> List[str]:
        # Kept separate so a phrase cannot be stitched together across sources
        sources = [(session.symptoms_text or "").lower()]
        sources.extend((tag or "").lower() for tag in session.tags)
        sources.extend((event.symptom or "").lower() for event in session.timeline)
        return [s for s in sources if s]
