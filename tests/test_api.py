import pytest
from fastapi.testclient import TestClient

from api.main import app, get_engine, inflight
from core.engine import TriageEngine
from core.errors import AuthFailureError, RateLimitedError
from models.session.schema_definition import FollowUpAnswer, FollowUpAnswerValue
from tests.helpers import YELLOW_QUESTIONS, ScriptedRiskClient, candidate_payload, yellow_payload


@pytest.fixture
def scripted(engine_config):
    return ScriptedRiskClient(engine_config)


@pytest.fixture
def client(engine_config, scripted):
    engine = TriageEngine(engine_config=engine_config, risk_client=scripted)
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _body(session):
    return session.model_dump(mode="json")


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["backend"] == "scripted"
    assert data["urgent_keywords"] == 19


def test_triage_green(client, scripted, make_session):
    scripted.queue(candidate_payload())

    response = client.post("/triage", json=_body(make_session()))

    assert response.status_code == 200
    data = response.json()
    assert data["result"]["risk_level"] == "Green"
    assert data["result"]["session_id"] == "ses_test00001"
    assert data["state"]["stage"] == "finalized"


def test_keyword_override_through_api(client, scripted, make_session):
    scripted.queue(candidate_payload())

    response = client.post(
        "/triage", json=_body(make_session(symptoms_text="Crushing chest pain"))
    )

    data = response.json()
    assert data["result"]["risk_level"] == "Red"
    assert data["result"]["override_reason"] == "Rule-based override: detected [chest pain]"
    assert data["safety_overrides_applied"]


def test_two_round_follow_up(client, scripted, make_session):
    session = make_session()
    scripted.queue(yellow_payload())
    first = client.post("/triage", json=_body(session)).json()

    assert first["state"]["stage"] == "awaiting_clarification"
    assert first["result"]["follow_up_questions"] == YELLOW_QUESTIONS

    answered = session.with_answers(
        [FollowUpAnswer(question=q, answer=FollowUpAnswerValue.UNSURE) for q in YELLOW_QUESTIONS]
    )
    scripted.queue(candidate_payload())
    second = client.post(
        "/triage/follow-up", json={"state": first["state"], "session": _body(answered)}
    )

    assert second.status_code == 200
    assert second.json()["state"]["stage"] == "finalized"
    assert second.json()["result"]["follow_up_questions"] is None


def test_follow_up_on_finalized_state_is_conflict(client, make_session):
    answered = make_session(
        follow_up_answers=[{"question": YELLOW_QUESTIONS[0], "answer": "Yes"}]
    )
    state = {"session_id": "ses_test00001", "stage": "finalized"}

    response = client.post("/triage/follow-up", json={"state": state, "session": _body(answered)})

    assert response.status_code == 409
    assert response.json()["category"] == "protocol"


@pytest.mark.parametrize(
    "error, status, category",
    [
        (RateLimitedError("429"), 429, "rate_limited"),
        (AuthFailureError("401"), 503, "auth_failure"),
    ],
)
def test_collaborator_errors_map_to_status(client, scripted, make_session, error, status, category):
    scripted.queue(error)

    response = client.post("/triage", json=_body(make_session()))

    assert response.status_code == status
    data = response.json()
    assert data["category"] == category
    assert data["message"] == error.user_message


def test_contract_violation_is_bad_gateway(client, scripted, make_session):
    scripted.queue("not json at all")

    response = client.post("/triage", json=_body(make_session()))

    assert response.status_code == 502
    assert response.json()["category"] == "contract_violation"
    assert response.json()["retryable"] is False


def test_invalid_session_is_rejected(client):
    response = client.post("/triage", json={"symptoms_text": "no user block"})

    assert response.status_code == 422


def test_duplicate_submission_is_rejected(client, scripted, make_session):
    scripted.queue(candidate_payload())

    with inflight.claim("ses_test00001"):
        response = client.post("/triage", json=_body(make_session()))

    assert response.status_code == 409
    assert response.json()["category"] == "duplicate_submission"
    assert not inflight.is_active("ses_test00001")
    assert scripted.prompts == []
