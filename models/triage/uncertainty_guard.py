"""
SympVis Triage Engine – Uncertainty Guard
==========================================
Detects the degenerate "insufficient information" case and labels it.
Only cosmetic fields and the Yellow tier are forced here; the keyword override
always takes priority and is applied by the ResultMerger.
"""

from __future__ import annotations

import logging
import re

from core.config import EngineConfig
from models.session.schema_definition import RiskLevel, TriageCandidate, UserSession

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^a-z0-9' ]+")
_SPACES = re.compile(r"\s+")


def _normalize(text: str) -> str:
    text = (text or "").lower().replace("’", "'")
    text = _NON_WORD.sub(" ", text)
    return _SPACES.sub(" ", text).strip()


class UncertaintyGuard:
    """Decide whether a candidate must be reported as uncertain."""

    def __init__(self, config: EngineConfig):
        self.sentence = config.uncertainty.short_explanation
        self.vague_phrases = frozenset(
            _normalize(p) for p in config.uncertainty.vague_phrases if p
        )

    def is_information_insufficient(self, session: UserSession) -> bool:
        """True when the session carries no physiological detail at all."""
        if session.tags or session.timeline:
            return False
        vitals = session.vitals_reported
        if vitals.fever_f is not None or vitals.heart_rate is not None:
            return False

        narrative = _normalize(session.symptoms_text)
        return narrative == "" or narrative in self.vague_phrases

    def applies(self, session: UserSession, candidate: TriageCandidate) -> bool:
        """
        The guard fires when the collaborator flags uncertainty, or when the
        input is deterministically too vague and the collaborator did not
        already reach Red (the guard never lowers a Red tier on its own).
        """
        if candidate.is_uncertain:
            return True
        if candidate.risk_level is RiskLevel.RED:
            return False
        if self.is_information_insufficient(session):
            logger.info(
                "Session %s lacks physiological detail – applying uncertainty guard",
                session.session_id,
            )
            return True
        return False
