"""
SympVis Triage Engine – Follow-Up Controller
=============================================
Explicit state machine for the clarification protocol:

    initial ──evaluate──▶ awaiting_clarification   (Yellow + questions)
    initial ──evaluate──▶ finalized                (anything else)
    awaiting_clarification ──all answered, re-evaluate──▶ finalized

The state is a plain, serialisable value returned with every round; the
caller threads it (and the session) into the next call. The controller never
auto-advances and never allows a third round.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.errors import FollowUpProtocolError
from models.session.schema_definition import (
    FollowUpAnswer,
    FollowUpAnswerValue,
    RiskLevel,
    TriageResult,
    UserSession,
)
from pipelines.triage_pipeline import TriagePipeline

logger = logging.getLogger(__name__)


class FollowUpStage(str, Enum):
    INITIAL = "initial"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    FINALIZED = "finalized"


class FollowUpState(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    stage: FollowUpStage = FollowUpStage.INITIAL
    pending_questions: Optional[List[str]] = None


class TriageRound(BaseModel):
    """What one call to the controller hands back to the caller."""
    model_config = ConfigDict(frozen=True)

    result: TriageResult
    state: FollowUpState
    safety_overrides_applied: List[str] = Field(default_factory=list)


class FollowUpController:
    """Drives at most two rounds of the same session."""

    def __init__(self, pipeline: TriagePipeline):
        self.pipeline = pipeline

    # ── Public API ──────────────────────────────────────────────────────

    def start(
        self,
        session: UserSession,
        cancel_event: Optional[threading.Event] = None,
    ) -> TriageRound:
        """Run the first round for a fresh session."""
        if session.is_follow_up_round:
            raise FollowUpProtocolError(
                "Follow-up answers were supplied but no questions are outstanding "
                f"for session {session.session_id}."
            )

        result, overrides = self.pipeline.run(session, cancel_event=cancel_event)
        state = self.transition(result)
        logger.info(
            "Session %s: initial → %s (%s)",
            session.session_id, state.stage.value, result.risk_level.value,
        )
        return TriageRound(result=result, state=state, safety_overrides_applied=overrides)

    def resume(
        self,
        state: FollowUpState,
        session: UserSession,
        cancel_event: Optional[threading.Event] = None,
    ) -> TriageRound:
        """Run the second round once every issued question has an answer."""
        if state.stage is not FollowUpStage.AWAITING_CLARIFICATION:
            raise FollowUpProtocolError(
                f"Session {state.session_id} is {state.stage.value}; "
                "no follow-up round can be evaluated."
            )
        if session.session_id != state.session_id:
            raise FollowUpProtocolError(
                f"Session id mismatch: expected {state.session_id}, got {session.session_id}."
            )
        if not session.is_follow_up_round:
            raise FollowUpProtocolError(
                f"Session {session.session_id} carries no follow-up answers."
            )
        self.check_answers(state.pending_questions or [], session.follow_up_answers or [])

        result, overrides = self.pipeline.run(session, cancel_event=cancel_event)
        # The merger already nulls questions on a final round
        final_state = FollowUpState(session_id=session.session_id, stage=FollowUpStage.FINALIZED)
        logger.info(
            "Session %s: awaiting_clarification → finalized (%s)",
            session.session_id, result.risk_level.value,
        )
        return TriageRound(result=result, state=final_state, safety_overrides_applied=overrides)

    def advance(
        self,
        state: Optional[FollowUpState],
        session: UserSession,
        cancel_event: Optional[threading.Event] = None,
    ) -> TriageRound:
        """Dispatch on the current stage; ``None`` means a fresh session."""
        if state is None or state.stage is FollowUpStage.INITIAL:
            return self.start(session, cancel_event=cancel_event)
        return self.resume(state, session, cancel_event=cancel_event)

    # ── Transitions ─────────────────────────────────────────────────────

    @staticmethod
    def transition(result: TriageResult) -> FollowUpState:
        """State after a first-round result."""
        if result.risk_level is RiskLevel.YELLOW and result.follow_up_questions:
            return FollowUpState(
                session_id=result.session_id,
                stage=FollowUpStage.AWAITING_CLARIFICATION,
                pending_questions=list(result.follow_up_questions),
            )
        return FollowUpState(session_id=result.session_id, stage=FollowUpStage.FINALIZED)

    @staticmethod
    def check_answers(questions: List[str], answers: List[FollowUpAnswer]) -> None:
        """Every issued question answered exactly once, verbatim; nothing extra."""
        by_question: Dict[str, FollowUpAnswerValue] = {}
        for a in answers:
            if a.question in by_question:
                raise FollowUpProtocolError(f"Question answered more than once: {a.question!r}")
            if a.question not in questions:
                raise FollowUpProtocolError(f"Answer to a question that was not asked: {a.question!r}")
            by_question[a.question] = a.answer

        missing = [q for q in questions if q not in by_question]
        if missing:
            raise FollowUpProtocolError(
                f"{len(missing)} follow-up question(s) still unanswered: {missing}"
            )
