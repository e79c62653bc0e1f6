"""
SympVis Triage Engine – Result Merger
======================================
Combines the collaborator's candidate with the deterministic keyword scan
and the uncertainty guard to produce the final, safety-adjusted result.

Precedence (highest first):
  1. Keyword override  → Red, confidence ≥ 90, no follow-ups, not uncertain
  2. Uncertainty guard → Yellow, fixed explanation, no follow-ups
  3. Collaborator candidate, passed through
Follow-up questions survive only on a first-round Yellow result.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from core.config import EngineConfig
from models.session.schema_definition import (
    ExportSummary,
    ExportUserInfo,
    RiskLevel,
    TriageCandidate,
    TriageResult,
    UserSession,
    utc_now_iso,
)
from models.triage.uncertainty_guard import UncertaintyGuard

logger = logging.getLogger(__name__)


def format_override_reason(keywords: Sequence[str]) -> str:
    return f"Rule-based override: detected [{', '.join(keywords)}]"


class ResultMerger:
    """Produces the final TriageResult for one round."""

    def __init__(self, config: EngineConfig, guard: Optional[UncertaintyGuard] = None):
        self.config = config
        self.guard = guard or UncertaintyGuard(config)

    def merge(
        self,
        session: UserSession,
        candidate: TriageCandidate,
        detected_keywords: Sequence[str],
    ) -> Tuple[TriageResult, List[str]]:
        """
        Apply safety rules on top of a validated candidate.

        Returns
        -------
        (TriageResult, list[str]) – the merged result and a human-readable
        list of every adjustment made to the candidate.
        """
        overrides: List[str] = []
        fields = candidate.model_dump(exclude={"export_summary"})
        fields["session_id"] = session.session_id
        fields["timestamp"] = utc_now_iso()
        fields["override_reason"] = None

        override_fired = bool(detected_keywords)
        uncertain = False

        # ── Keyword override (final authority) ──────────────────────────
        if override_fired:
            overrides.extend(self._apply_override(fields, candidate, detected_keywords))

        # ── Uncertainty guard (only without an override) ────────────────
        elif self.guard.applies(session, candidate):
            uncertain = True
            if candidate.risk_level is not RiskLevel.YELLOW:
                overrides.append(
                    f"Risk set {candidate.risk_level.value} → Yellow by uncertainty guard"
                )
            fields["risk_level"] = RiskLevel.YELLOW
            fields["short_explanation"] = self.guard.sentence

        fields["is_uncertain"] = uncertain

        # ── Follow-up questions ─────────────────────────────────────────
        fields["follow_up_questions"] = self._resolve_follow_ups(
            session, candidate, fields["risk_level"], override_fired, uncertain, overrides
        )
        overrides.extend(self.unquoted_signals(session, fields["supporting_signals"]))

        fields["safety_disclaimer"] = self.config.safety_disclaimer
        fields["export_summary"] = self._build_export_summary(
            session, candidate, fields, detected_keywords
        )

        result = TriageResult(**fields)
        if overrides:
            logger.info(
                "Session %s: %d safety adjustments applied: %s",
                session.session_id, len(overrides), overrides,
            )
        return result, overrides

    # ── Override ────────────────────────────────────────────────────────

    def _apply_override(
        self,
        fields: dict,
        candidate: TriageCandidate,
        detected_keywords: Sequence[str],
    ) -> List[str]:
        copy = self.config.override
        applied: List[str] = []

        if candidate.risk_level is not RiskLevel.RED:
            applied.append(
                f"Risk upgraded {candidate.risk_level.value} → Red by keyword rules"
            )
            # Narrative written for a lower tier contradicts Red
            fields["short_explanation"] = copy.short_explanation
            fields["recommended_action"] = copy.recommended_action
            fields["recommended_timeline"] = copy.recommended_timeline

        fields["risk_level"] = RiskLevel.RED
        fields["override_reason"] = format_override_reason(detected_keywords)

        if candidate.is_uncertain:
            applied.append("Uncertainty cleared by keyword override")

        if candidate.confidence < copy.min_confidence:
            fields["confidence"] = copy.confidence
            fields["confidence_reason"] = copy.confidence_reason
            applied.append(
                f"Confidence raised {candidate.confidence} → {copy.confidence} by keyword override"
            )

        return applied

    # ── Follow-ups ──────────────────────────────────────────────────────

    def _resolve_follow_ups(
        self,
        session: UserSession,
        candidate: TriageCandidate,
        risk_level: RiskLevel,
        override_fired: bool,
        uncertain: bool,
        overrides: List[str],
    ) -> Optional[List[str]]:
        asked = [q for q in (candidate.follow_up_questions or []) if q and q.strip()]
        if not asked:
            return None

        if override_fired or uncertain or risk_level is not RiskLevel.YELLOW:
            overrides.append("Follow-up questions discarded (tier does not allow them)")
            return None
        if session.is_follow_up_round:
            overrides.append("Follow-up questions discarded (final round)")
            return None

        return self.normalize_questions(asked, overrides)

    def normalize_questions(self, questions: Sequence[str], overrides: List[str]) -> List[str]:
        """Deduplicate, then truncate or pad to the configured question count."""
        wanted = self.config.follow_up.question_count

        cleaned: List[str] = []
        for q in questions:
            q = q.strip()
            if q and q not in cleaned:
                cleaned.append(q)

        if len(cleaned) > wanted:
            overrides.append(f"Follow-up questions truncated {len(cleaned)} → {wanted}")
            return cleaned[:wanted]

        if len(cleaned) < wanted:
            original = len(cleaned)
            for fallback in self.config.follow_up.fallback_questions:
                if len(cleaned) >= wanted:
                    break
                if fallback not in cleaned:
                    cleaned.append(fallback)
            overrides.append(f"Follow-up questions padded {original} → {len(cleaned)}")

        return cleaned

    @staticmethod
    def unquoted_signals(session: UserSession, signals: Sequence[str]) -> List[str]:
        """Flag supporting signals that do not appear in anything the user wrote."""
        corpus = " ".join(
            [
                session.symptoms_text,
                *session.tags,
                *(e.symptom for e in session.timeline),
                *(a.question for a in session.follow_up_answers or []),
            ]
        ).lower()
        return [
            f"Supporting signal not found in user input: {s!r}"
            for s in signals
            if s.strip().lower() not in corpus
        ]

    # ── Export summary ──────────────────────────────────────────────────

    def _build_export_summary(
        self,
        session: UserSession,
        candidate: TriageCandidate,
        fields: dict,
        detected_keywords: Sequence[str],
    ) -> ExportSummary:
        base = candidate.export_summary
        risk: RiskLevel = fields["risk_level"]
        tier_changed = risk is not candidate.risk_level

        what_to_do = list(base.what_to_do_now)
        when_to_see = base.when_to_see_doctor
        if tier_changed or not what_to_do:
            what_to_do = [fields["recommended_action"]]
        if tier_changed or not when_to_see:
            when_to_see = fields["recommended_timeline"]

        emergency_signs = list(base.emergency_signs) or list(self.config.emergency_signs)

        notes = base.notes_for_clinician or self._clinician_notes(session)
        if detected_keywords:
            notes = f"{notes} {format_override_reason(detected_keywords)}.".strip()

        return ExportSummary(
            title=base.title or "SympVis Triage Summary",
            date_time=fields["timestamp"],
            symptoms_text=session.symptoms_text,
            symptom_tags=list(session.tags),
            user_info=ExportUserInfo(
                age=session.user.age,
                sex=session.user.sex.value,
                known_conditions=list(session.user.known_conditions),
            ),
            risk_level=risk.value,
            confidence=fields["confidence"],
            one_sentence_reasoning=fields["short_explanation"],
            supporting_signals=list(fields["supporting_signals"]),
            what_to_do_now=what_to_do,
            when_to_see_doctor=when_to_see,
            emergency_signs=emergency_signs,
            notes_for_clinician=notes,
        )

    @staticmethod
    def _clinician_notes(session: UserSession) -> str:
        parts = [
            f"Self-reported severity: {session.severity.value}.",
            f"Duration: {session.duration_hours:g} h.",
        ]
        vitals = session.vitals_reported
        if vitals.fever_f is not None:
            parts.append(f"Reported temperature: {vitals.fever_f:g}°F.")
        if vitals.heart_rate is not None:
            parts.append(f"Reported heart rate: {vitals.heart_rate} bpm.")
        if session.timeline:
            parts.append(
                "Progression: "
                + " -> ".join(f"[{e.timeframe}] {e.symptom}" for e in session.timeline)
                + "."
            )
        for a in session.follow_up_answers or []:
            parts.append(f"Q: {a.question} A: {a.answer.value}.")
        return " ".join(parts)
