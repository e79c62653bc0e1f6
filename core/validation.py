"""
SympVis Triage Engine – Collaborator Output Validation
=======================================================
The trust boundary: raw collaborator text becomes either an ``Accepted``
candidate or a ``Rejected`` outcome. Nothing downstream sees untyped data.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Union

from pydantic import ValidationError

from core.errors import ContractViolationError
from models.session.schema_definition import TriageCandidate

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"^```(?:json)?\s*(\{.*\})\s*```$", re.DOTALL)


@dataclass(frozen=True)
class Accepted:
    candidate: TriageCandidate
    kind: str = field(default="accepted", init=False)


@dataclass(frozen=True)
class Rejected:
    errors: List[str]
    raw: str = ""
    kind: str = field(default="rejected", init=False)


ParseOutcome = Union[Accepted, Rejected]


def extract_json_object(text: str) -> Any:
    """
    Parse the collaborator's reply as a single JSON value.

    The reply must be the JSON document itself, optionally wrapped in one
    markdown code fence. Prose around the object is a contract violation.
    """
    text = (text or "").strip()
    if not text:
        raise ValueError("Empty response from collaborator")

    fence = _FENCED_JSON.match(text)
    if fence:
        text = fence.group(1)

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Response is not a single JSON object: {e.msg}") from e


def validate_candidate(data: Any) -> ParseOutcome:
    """Validate an already-decoded payload against the candidate schema."""
    if not isinstance(data, dict):
        return Rejected(errors=[f"Expected a JSON object, got {type(data).__name__}"])

    try:
        return Accepted(candidate=TriageCandidate.model_validate(data))
    except ValidationError as e:
        errors = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"]) or "<root>"
            errors.append(f"Validation error at '{loc}': {err['msg']}")
        logger.warning("Collaborator output validation failed: %d errors", len(errors))
        return Rejected(errors=errors)


def parse_candidate(raw_text: str) -> ParseOutcome:
    """Decode and validate raw collaborator text."""
    try:
        data = extract_json_object(raw_text)
    except ValueError as e:
        logger.warning("Collaborator output is not parseable JSON: %s", e)
        return Rejected(errors=[str(e)], raw=(raw_text or "")[:300])

    outcome = validate_candidate(data)
    if isinstance(outcome, Rejected):
        return Rejected(errors=outcome.errors, raw=(raw_text or "")[:300])
    return outcome


def require_candidate(outcome: ParseOutcome) -> TriageCandidate:
    """Unwrap an outcome, raising ContractViolationError on rejection."""
    if isinstance(outcome, Accepted):
        return outcome.candidate
    raise ContractViolationError(
        "Collaborator response failed validation: " + "; ".join(outcome.errors),
        errors=outcome.errors,
    )
