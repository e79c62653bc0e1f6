import pytest

from models.session.schema_definition import TimelineEvent, TriageCandidate, VitalsReported
from models.triage.uncertainty_guard import UncertaintyGuard
from tests.helpers import candidate_payload


@pytest.fixture
def guard(engine_config):
    return UncertaintyGuard(engine_config)


@pytest.mark.parametrize("text", ["", "   ", "I feel bad", "I DON'T KNOW!", "Something is wrong..."])
def test_vague_narratives_are_insufficient(guard, make_session, text):
    assert guard.is_information_insufficient(make_session(symptoms_text=text, tags=[]))


def test_tags_make_input_sufficient(guard, make_session):
    assert not guard.is_information_insufficient(
        make_session(symptoms_text="I feel bad", tags=["Headache"])
    )


def test_timeline_or_vitals_make_input_sufficient(guard, make_session):
    timeline = make_session(
        symptoms_text="", tags=[], timeline=[TimelineEvent(timeframe="Day 1", symptom="Fever")]
    )
    vitals = make_session(symptoms_text="", tags=[], vitals_reported=VitalsReported(fever_f=101.5))

    assert not guard.is_information_insufficient(timeline)
    assert not guard.is_information_insufficient(vitals)


def test_specific_narrative_is_sufficient(guard, make_session):
    assert not guard.is_information_insufficient(
        make_session(symptoms_text="Sharp pain in my left knee after running", tags=[])
    )


def test_collaborator_flag_always_applies(guard, make_session):
    candidate = TriageCandidate.model_validate(candidate_payload(is_uncertain=True))

    assert guard.applies(make_session(), candidate)


def test_red_candidate_not_downgraded_by_vague_input(guard, make_session):
    candidate = TriageCandidate.model_validate(candidate_payload(risk_level="Red"))

    assert not guard.applies(make_session(symptoms_text="i feel sick", tags=[]), candidate)


def test_sentence_comes_from_config(guard, engine_config):
    assert guard.sentence == engine_config.uncertainty.short_explanation
