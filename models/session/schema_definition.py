"""
SympVis Triage Engine – Schema Definitions
===========================================
Pydantic models for one evaluation round:
  Input:  UserSession (profile + symptoms, optionally prior follow-up answers)
  Middle: TriageCandidate (collaborator output, validated at the boundary)
  Output: TriageResult (merged, safety-checked verdict)
"""

from __future__ import annotations

import random
import string
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class RiskLevel(str, Enum):
    GREEN = "Green"
    YELLOW = "Yellow"
    RED = "Red"

    @property
    def severity(self) -> int:
        return _RISK_SEVERITY[self]

    def at_least(self, other: "RiskLevel") -> bool:
        return self.severity >= other.severity


_RISK_SEVERITY = {RiskLevel.GREEN: 0, RiskLevel.YELLOW: 1, RiskLevel.RED: 2}


class Sex(str, Enum):
    FEMALE = "female"
    MALE = "male"
    OTHER = "other"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FollowUpAnswerValue(str, Enum):
    YES = "Yes"
    NO = "No"
    UNSURE = "Unsure"


def new_session_id() -> str:
    """Return an opaque id of the form ``ses_xxxxxxxxx``."""
    alphabet = string.ascii_lowercase + string.digits
    return "ses_" + "".join(random.choices(alphabet, k=9))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def round_number(value):
    """Round JSON floats (87.0, 86.6) to int; bools are not numbers."""
    if isinstance(value, bool):
        raise ValueError("expected a number, got a boolean")
    if isinstance(value, float):
        return int(round(value))
    return value


# ── Session ─────────────────────────────────────────────────────────────────


class UserInfo(BaseModel):
    """Profile attributes captured before symptom entry."""
    model_config = ConfigDict(frozen=True)

    age: int = Field(ge=0)
    sex: Sex
    known_conditions: List[str] = Field(default_factory=list)
    pregnant: bool = False


class TimelineEvent(BaseModel):
    """One step of the symptom progression; list order is significant."""
    model_config = ConfigDict(frozen=True)

    timeframe: str
    symptom: str


class VitalsReported(BaseModel):
    model_config = ConfigDict(frozen=True)

    fever_f: Optional[float] = None
    heart_rate: Optional[int] = None


class FollowUpAnswer(BaseModel):
    """Answer to a clarifying question; ``question`` repeats it verbatim."""
    model_config = ConfigDict(frozen=True)

    question: str
    answer: FollowUpAnswerValue


class UserSession(BaseModel):
    """Everything the engine knows about one round of one session."""
    model_config = ConfigDict(frozen=True)

    session_id: str = Field(default_factory=new_session_id, min_length=1)
    timestamp: str = Field(default_factory=utc_now_iso)
    user: UserInfo
    symptoms_text: str = ""
    tags: List[str] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)
    duration_hours: float = Field(default=0, ge=0)
    severity: Severity = Severity.MEDIUM
    vitals_reported: VitalsReported = Field(default_factory=VitalsReported)
    locale: str = "en"
    device: str = "unknown"
    follow_up_answers: Optional[List[FollowUpAnswer]] = None

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, tags: List[str]) -> List[str]:
        seen = set()
        unique = []
        for tag in tags:
            if tag not in seen:
                seen.add(tag)
                unique.append(tag)
        return unique

    @property
    def is_follow_up_round(self) -> bool:
        return bool(self.follow_up_answers)

    def with_answers(self, answers: List[FollowUpAnswer]) -> "UserSession":
        """Build the second-round session: same id, answers attached."""
        return self.model_copy(
            update={"follow_up_answers": list(answers), "timestamp": utc_now_iso()}
        )


# ── Collaborator candidate / final result ───────────────────────────────────


class ExportUserInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    age: Optional[int] = None
    sex: str = ""
    known_conditions: List[str] = Field(default_factory=list)

    @field_validator("age", mode="before")
    @classmethod
    def _round_age(cls, value):
        return round_number(value)


class ExportSummary(BaseModel):
    """Denormalised read model of a result, used for report export."""
    model_config = ConfigDict(frozen=True)

    title: str = "SympVis Triage Summary"
    date_time: str = ""
    symptoms_text: str = ""
    symptom_tags: List[str] = Field(default_factory=list)
    user_info: ExportUserInfo = Field(default_factory=ExportUserInfo)
    risk_level: str = ""
    confidence: int = 0
    one_sentence_reasoning: str = ""
    supporting_signals: List[str] = Field(default_factory=list)
    what_to_do_now: List[str] = Field(default_factory=list)
    when_to_see_doctor: str = ""
    emergency_signs: List[str] = Field(default_factory=list)
    notes_for_clinician: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _round_confidence(cls, value):
        return round_number(value)


class TriageCandidate(BaseModel):
    """Collaborator output after structural validation. Not yet safety-checked."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    session_id: str = ""
    timestamp: str = ""
    risk_level: RiskLevel
    # Strict scalars: "87" or "false" from the collaborator is a contract violation
    confidence: int = Field(ge=0, le=100, strict=True)
    confidence_reason: str
    short_explanation: str
    supporting_signals: List[str] = Field(min_length=2, max_length=2)
    recommended_action: str
    recommended_timeline: str
    override_reason: Optional[str] = None
    follow_up_questions: Optional[List[str]] = None
    is_uncertain: bool = Field(strict=True)
    export_summary: ExportSummary = Field(default_factory=ExportSummary)
    safety_disclaimer: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _round_confidence(cls, value):
        if isinstance(value, float) and not 0 <= value <= 100:
            raise ValueError("confidence must be within 0-100")
        return round_number(value)


class TriageResult(BaseModel):
    """Final verdict for one round. Never mutated after it is returned."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    timestamp: str
    risk_level: RiskLevel
    confidence: int = Field(ge=0, le=100)
    confidence_reason: str
    short_explanation: str
    supporting_signals: List[str] = Field(min_length=2, max_length=2)
    recommended_action: str
    recommended_timeline: str
    override_reason: Optional[str] = None
    follow_up_questions: Optional[List[str]] = None
    is_uncertain: bool = False
    export_summary: ExportSummary
    safety_disclaimer: str
