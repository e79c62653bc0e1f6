#!/usr/bin/env python3
"""
SympVis Triage Engine – Main Entrypoint
========================================
Usage:
    python main.py --file data/session.json
    python main.py --file data/session.json --no-follow-up
    python main.py --interactive

Importable convenience function:
    from main import run_triage
    triage_round = run_triage(session_dict)
"""

from __future__ import annotations

import argparse
import json
import os
import sys

from dotenv import load_dotenv
load_dotenv(override=True)

from core.engine import TriageEngine
from core.errors import TriageError
from core.logging_utils import setup_logging
from models.session.schema_definition import (
    FollowUpAnswer,
    FollowUpAnswerValue,
    Severity,
    Sex,
    TimelineEvent,
    UserInfo,
    UserSession,
)
from pipelines.follow_up_controller import FollowUpStage, TriageRound

# Module-level singleton engine (lazy-initialised on first call)
_engine: TriageEngine | None = None


def _get_engine(config_path: str | None = None) -> TriageEngine:
    global _engine
    if _engine is None:
        _engine = TriageEngine(config_path=config_path)
    return _engine


def run_triage(session: dict | UserSession, config_path: str | None = None) -> TriageRound:
    """
    Run the first triage round for a session.

    Parameters
    ----------
    session : dict | UserSession
        Session payload (see models/session/schema_definition.py).
    config_path : str, optional
        Path to a custom ``model_config.yaml``.
    """
    if isinstance(session, dict):
        session = UserSession.model_validate(session)
    return _get_engine(config_path).evaluate(session)


# ── Presentation helpers ────────────────────────────────────────────────────

COLORS = {"Red": "\033[91m", "Yellow": "\033[93m", "Green": "\033[92m"}
RESET = "\033[0m"


def print_result(triage_round: TriageRound, verbose: bool = False):
    """Pretty-print a triage round to stdout."""
    result = triage_round.result
    level = result.risk_level.value
    color = COLORS.get(level, "")

    print(f"\n{'=' * 60}")
    print(f"  SYMPVIS TRIAGE RESULT  |  Session: {result.session_id}")
    print(f"{'=' * 60}")
    print(f"  Risk:       {color}{level}{RESET}")
    print(f"  Confidence: {result.confidence} ({result.confidence_reason})")
    print(f"  Why:        {result.short_explanation}")
    print(f"{'─' * 60}")

    if result.override_reason:
        print(f"  🚩 {result.override_reason}")

    print("  Supporting signals:")
    for signal in result.supporting_signals:
        print(f"     • {signal}")

    print(f"\n  📋 {result.recommended_action}")
    print(f"     When: {result.recommended_timeline}")

    if result.follow_up_questions:
        print("\n  ❓ FOLLOW-UP QUESTIONS:")
        for q in result.follow_up_questions:
            print(f"     • {q}")

    if triage_round.safety_overrides_applied:
        print("\n  🔒 SAFETY ADJUSTMENTS:")
        for o in triage_round.safety_overrides_applied:
            print(f"     • {o}")

    if verbose:
        print("\n  📊 Full result JSON:")
        print(result.model_dump_json(indent=2))

    print(f"\n{'─' * 60}")
    print(f"  ⚕️  {result.safety_disclaimer}")
    print(f"{'=' * 60}\n")


def _ask(prompt: str, default: str = "") -> str:
    value = input(f"{prompt}{f' [{default}]' if default else ''}: ").strip()
    return value or default


def ask_follow_ups(questions: list[str]) -> list[FollowUpAnswer]:
    """Prompt until every question has a Yes / No / Unsure answer."""
    choices = {v.value.lower(): v for v in FollowUpAnswerValue}
    answers = []
    for q in questions:
        while True:
            raw = _ask(f"{q} (Yes/No/Unsure)").lower()
            if raw in choices:
                answers.append(FollowUpAnswer(question=q, answer=choices[raw]))
                break
            print("  Please answer Yes, No or Unsure.")
    return answers


def run_rounds(
    engine: TriageEngine,
    session: UserSession,
    follow_up: bool = True,
    verbose: bool = False,
):
    """Run round one and, if clarification is requested, round two."""
    triage_round = engine.evaluate(session)
    print_result(triage_round, verbose=verbose)

    if follow_up and triage_round.state.stage is FollowUpStage.AWAITING_CLARIFICATION:
        answers = ask_follow_ups(triage_round.state.pending_questions or [])
        final_round = engine.evaluate(session.with_answers(answers), state=triage_round.state)
        print_result(final_round, verbose=verbose)


def build_session_interactively() -> UserSession:
    """Collect a session from stdin."""
    age = int(_ask("Age", "30"))
    sex = Sex(_ask("Sex (female/male/other)", "other").lower())
    pregnant = sex is Sex.FEMALE and _ask("Pregnant? (y/n)", "n").lower().startswith("y")
    conditions = [c.strip() for c in _ask("Known conditions (comma-separated)").split(",") if c.strip()]
    text = _ask("Describe your symptoms")
    tags = [t.strip() for t in _ask("Symptom tags (comma-separated)").split(",") if t.strip()]

    timeline = []
    print("Timeline – enter 'timeframe: symptom' per line, blank line to finish.")
    while True:
        line = input("  > ").strip()
        if not line:
            break
        timeframe, _, symptom = line.partition(":")
        timeline.append(TimelineEvent(timeframe=timeframe.strip(), symptom=symptom.strip() or timeframe.strip()))

    return UserSession(
        user=UserInfo(age=age, sex=sex, known_conditions=conditions, pregnant=pregnant),
        symptoms_text=text,
        tags=tags,
        timeline=timeline,
        duration_hours=float(_ask("Duration in hours", "24")),
        severity=Severity(_ask("Severity (low/medium/high)", "medium").lower()),
        device="cli",
    )


def main():
    parser = argparse.ArgumentParser(description="SympVis Triage Engine")
    parser.add_argument("--file", "-f", help="Path to a JSON session (or list of sessions)")
    parser.add_argument("--interactive", "-i", action="store_true", help="Interactive mode")
    parser.add_argument("--no-follow-up", action="store_true", help="Do not ask follow-up questions")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--config", "-c", help="Path to model config YAML")

    args = parser.parse_args()

    setup_logging(level=os.environ.get("LOG_LEVEL", "INFO"))

    try:
        engine = TriageEngine(config_path=args.config)

        if args.interactive:
            run_rounds(engine, build_session_interactively(), verbose=args.verbose)
        elif args.file:
            with open(args.file) as f:
                data = json.load(f)
            sessions = data if isinstance(data, list) else data.get("sessions", [data])
            for payload in sessions:
                run_rounds(
                    engine,
                    UserSession.model_validate(payload),
                    follow_up=not args.no_follow_up,
                    verbose=args.verbose,
                )
        else:
            parser.print_help()
    except TriageError as e:
        print(f"\n❌ {e.user_message}\n", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nGoodbye.")


if __name__ == "__main__":
    main()
