"""Shared test doubles and payload builders."""

import json
from typing import Any, Dict, List, Optional

from core.config import EngineConfig
from models.triage.risk_client import RiskClient


def candidate_payload(**overrides: Any) -> Dict[str, Any]:
    """A structurally valid collaborator reply; override any field."""
    payload: Dict[str, Any] = {
        "session_id": "ses_test00001",
        "timestamp": "2026-10-18T10:00:00Z",
        "risk_level": "Green",
        "confidence": 80,
        "confidence_reason": "Mild, short-lived symptoms in a healthy adult.",
        "short_explanation": "Likely low risk; self-care is appropriate.",
        "supporting_signals": ["runny nose", "no fever"],
        "recommended_action": "Rest, fluids, and monitor symptoms.",
        "recommended_timeline": "Reassess in 48 hours",
        "override_reason": None,
        "follow_up_questions": None,
        "is_uncertain": False,
        "export_summary": {
            "title": "Triage Summary",
            "risk_level": "Green",
            "confidence": 80,
            "what_to_do_now": ["Rest"],
            "when_to_see_doctor": "If symptoms persist beyond a week",
            "notes_for_clinician": "",
        },
        "safety_disclaimer": "model-written disclaimer",
    }
    payload.update(overrides)
    return payload


YELLOW_QUESTIONS = [
    "Is the pain worse when you take deep breaths?",
    "Do you have a fever above 100°F?",
]


def yellow_payload(**overrides: Any) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "risk_level": "Yellow",
        "confidence": 70,
        "short_explanation": "Symptoms warrant a prompt evaluation.",
        "recommended_action": "Book a GP appointment.",
        "recommended_timeline": "Within 24 hours",
        "follow_up_questions": list(YELLOW_QUESTIONS),
    }
    fields.update(overrides)
    return candidate_payload(**fields)


class ScriptedRiskClient(RiskClient):
    """Collaborator double: replays raw replies and records every prompt."""

    backend = "scripted"

    def __init__(self, config: EngineConfig, replies: Optional[List[Any]] = None):
        super().__init__(config)
        self.replies = list(replies or [])
        self.prompts: List[str] = []

    def queue(self, reply: Any) -> None:
        self.replies.append(reply)

    def _call_model(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return reply
        return json.dumps(reply)
