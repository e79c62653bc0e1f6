import json

import pytest

from core.errors import ContractViolationError, ParseError
from core.validation import (
    Accepted,
    Rejected,
    extract_json_object,
    parse_candidate,
    require_candidate,
    validate_candidate,
)
from models.session.schema_definition import RiskLevel
from tests.helpers import candidate_payload


def test_valid_payload_is_accepted():
    outcome = parse_candidate(json.dumps(candidate_payload()))

    assert isinstance(outcome, Accepted)
    assert outcome.kind == "accepted"
    assert outcome.candidate.risk_level is RiskLevel.GREEN


def test_fenced_json_is_accepted():
    text = "```json\n" + json.dumps(candidate_payload()) + "\n```"

    assert isinstance(parse_candidate(text), Accepted)


def test_prose_around_json_is_rejected():
    text = "Here is the result: " + json.dumps(candidate_payload())

    outcome = parse_candidate(text)
    assert isinstance(outcome, Rejected)
    assert outcome.kind == "rejected"


@pytest.mark.parametrize(
    "overrides",
    [
        {"risk_level": "Orange"},
        {"confidence": 101},
        {"confidence": -1},
        {"confidence": 100.5},
        {"confidence": True},
        {"supporting_signals": ["only one"]},
        {"supporting_signals": ["a", "b", "c"]},
        {"is_uncertain": "maybe"},
        {"confidence": "87"},
        {"is_uncertain": "false"},
        {"is_uncertain": 0},
    ],
)
def test_contract_violations_are_rejected(overrides):
    outcome = validate_candidate(candidate_payload(**overrides))

    assert isinstance(outcome, Rejected)
    assert outcome.errors


def test_missing_required_field_is_rejected():
    payload = candidate_payload()
    del payload["recommended_action"]

    outcome = validate_candidate(payload)
    assert isinstance(outcome, Rejected)
    assert any("recommended_action" in e for e in outcome.errors)


def test_float_confidence_is_rounded():
    outcome = validate_candidate(candidate_payload(confidence=86.6))

    assert isinstance(outcome, Accepted)
    assert outcome.candidate.confidence == 87


def test_non_object_json_is_rejected():
    assert isinstance(parse_candidate("[1, 2]"), Rejected)


def test_empty_text_raises_value_error():
    with pytest.raises(ValueError):
        extract_json_object("   ")


def test_require_candidate_raises_parse_error():
    outcome = parse_candidate("not json")

    with pytest.raises(ParseError) as exc_info:
        require_candidate(outcome)
    assert isinstance(exc_info.value, ContractViolationError)
    assert exc_info.value.errors
    assert exc_info.value.retryable is False


def test_fractional_numbers_in_export_summary_are_rounded():
    summary = candidate_payload()["export_summary"]
    summary.update(confidence=87.5, user_info={"age": 34.0, "sex": "female"})

    outcome = validate_candidate(candidate_payload(export_summary=summary))

    assert isinstance(outcome, Accepted)
    assert outcome.candidate.export_summary.confidence == 88
    assert outcome.candidate.export_summary.user_info.age == 34
