"""Pytest configuration and fixtures."""

from typing import Any, Dict

import pytest

from core.config import EngineConfig
from models.session.schema_definition import (
    Severity,
    Sex,
    TimelineEvent,
    UserInfo,
    UserSession,
)
from pipelines.follow_up_controller import FollowUpController
from pipelines.triage_pipeline import TriagePipeline
from tests.helpers import ScriptedRiskClient


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(emergency_signs=("Chest pain", "Blue lips"))


@pytest.fixture
def make_session():
    def _make(**overrides: Any) -> UserSession:
        fields: Dict[str, Any] = {
            "session_id": "ses_test00001",
            "user": UserInfo(age=30, sex=Sex.FEMALE, known_conditions=[], pregnant=False),
            "symptoms_text": "Runny nose and mild sore throat since yesterday",
            "tags": ["Runny nose", "Sore throat"],
            "timeline": [],
            "duration_hours": 24,
            "severity": Severity.LOW,
        }
        fields.update(overrides)
        return UserSession(**fields)

    return _make


@pytest.fixture
def timeline_session(make_session):
    return make_session(
        symptoms_text="Getting worse over three days",
        tags=["Fever", "Cough"],
        timeline=[
            TimelineEvent(timeframe="Day 1", symptom="Fever"),
            TimelineEvent(timeframe="Day 2", symptom="Cough"),
            TimelineEvent(timeframe="Day 3", symptom="Tired"),
        ],
    )


@pytest.fixture
def risk_client(engine_config) -> ScriptedRiskClient:
    return ScriptedRiskClient(engine_config)


@pytest.fixture
def pipeline(engine_config, risk_client) -> TriagePipeline:
    return TriagePipeline(engine_config, risk_client)


@pytest.fixture
def controller(pipeline) -> FollowUpController:
    return FollowUpController(pipeline)
