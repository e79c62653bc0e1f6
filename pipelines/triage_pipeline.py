"""
SympVis Triage Engine – Triage Pipeline
========================================
One evaluation round:
  keyword scan → collaborator call → boundary validation → uncertainty guard
  → override merge → TriageResult

A round yields a whole result or raises; the merger only ever sees a
successfully validated candidate.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Tuple

from core.config import EngineConfig
from core.logging_utils import log_pipeline_event
from models.session.schema_definition import TriageResult, UserSession
from models.triage.override_scanner import KeywordOverrideScanner
from models.triage.result_merger import ResultMerger
from models.triage.risk_client import RiskClient

logger = logging.getLogger(__name__)


class TriagePipeline:
    """Runs a single round for a single session. Holds no per-session state."""

    def __init__(
        self,
        config: EngineConfig,
        risk_client: RiskClient,
        scanner: Optional[KeywordOverrideScanner] = None,
        merger: Optional[ResultMerger] = None,
    ):
        self.config = config
        self.risk_client = risk_client
        self.scanner = scanner or KeywordOverrideScanner(config.urgent_keywords)
        self.merger = merger or ResultMerger(config)

    def run(
        self,
        session: UserSession,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[TriageResult, List[str]]:
        """
        Evaluate one round.

        Returns
        -------
        (TriageResult, list[str]) – the final result and the safety
        adjustments applied on top of the collaborator's candidate.
        """
        round_label = "follow-up" if session.is_follow_up_round else "initial"

        # Rule-based scan (always runs, never fails)
        detected = self.scanner.scan(session)
        log_pipeline_event(
            logger, "scan", "keyword scan complete",
            {"session_id": session.session_id, "round": round_label, "detected": list(detected)},
        )

        # Collaborator call + validation; failures propagate untouched
        candidate = self.risk_client.assess(session, cancel_event=cancel_event)
        log_pipeline_event(
            logger, "collaborator", "candidate accepted",
            {
                "session_id": session.session_id,
                "risk_level": candidate.risk_level.value,
                "confidence": candidate.confidence,
                "is_uncertain": candidate.is_uncertain,
            },
        )

        result, overrides = self.merger.merge(session, candidate, detected)
        log_pipeline_event(
            logger, "merge", "result finalized",
            {
                "session_id": session.session_id,
                "risk_level": result.risk_level.value,
                "override": result.override_reason is not None,
                "follow_ups": len(result.follow_up_questions or []),
            },
        )
        return result, overrides
