"""
SympVis Triage Engine – Engine
===============================
One-call entrypoint: loads configuration once, builds the collaborator
client, and drives rounds through the follow-up controller.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from core.config import EngineConfig, load_engine_config, load_model_config
from models.session.schema_definition import UserSession
from models.triage.risk_client import RiskClient, create_risk_client
from pipelines.follow_up_controller import FollowUpController, FollowUpState, TriageRound
from pipelines.triage_pipeline import TriagePipeline

logger = logging.getLogger(__name__)


class TriageEngine:
    """Stateless across calls; the session and FollowUpState carry round state."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        rules_path: Optional[str] = None,
        engine_config: Optional[EngineConfig] = None,
        risk_client: Optional[RiskClient] = None,
    ):
        self.engine_config = engine_config or load_engine_config(rules_path)
        self.model_config = load_model_config(config_path)

        self.risk_client = risk_client or create_risk_client(
            self.model_config, self.engine_config
        )
        logger.info("Collaborator backend: %s", self.risk_client.backend)

        self.pipeline = TriagePipeline(self.engine_config, self.risk_client)
        self.controller = FollowUpController(self.pipeline)

    def evaluate(
        self,
        session: UserSession,
        state: Optional[FollowUpState] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> TriageRound:
        """
        Evaluate the next round of ``session``.

        Parameters
        ----------
        session : UserSession
            First-round session, or the second-round session built with
            ``UserSession.with_answers``.
        state : FollowUpState, optional
            The state returned with the previous round; omit for a new session.
        cancel_event : threading.Event, optional
            Set it to abandon the round; no result is produced.

        Returns
        -------
        TriageRound – the result, the next state and the applied overrides.
        """
        return self.controller.advance(state, session, cancel_event=cancel_event)
