"""
SympVis Triage Engine – FastAPI Application
============================================
REST API for the triage decision engine.

Endpoints:
  POST /triage            – First round for a new session
  POST /triage/follow-up  – Second round with answers to the issued questions
  GET  /health            – Health check
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dotenv import load_dotenv
load_dotenv(override=True)

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.inflight import DuplicateSubmissionError, InFlightRegistry
from api.schemas import ErrorResponse, FollowUpRequest, HealthResponse, TriageResponse
from core.engine import TriageEngine
from core.errors import ErrorCategory, TriageError
from core.logging_utils import setup_logging
from models.session.schema_definition import UserSession
from pipelines.follow_up_controller import TriageRound

# ── Setup ───────────────────────────────────────────────────────────────────

setup_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_format=os.environ.get("LOG_JSON", "").lower() in ("1", "true", "yes"),
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"

app = FastAPI(
    title="SympVis Triage Engine",
    description=(
        "Explainable symptom triage with a deterministic safety override layer "
        "on top of an adaptive reasoning service."
    ),
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_BY_CATEGORY = {
    ErrorCategory.RATE_LIMITED: 429,
    ErrorCategory.AUTH_FAILURE: 503,
    ErrorCategory.CONTRACT_VIOLATION: 502,
    ErrorCategory.TRANSPORT: 502,
    ErrorCategory.CANCELLED: 409,
    ErrorCategory.PROTOCOL: 409,
}

# Lazy – collaborator credentials are only needed on first use
_engine: Optional[TriageEngine] = None
inflight = InFlightRegistry()


def get_engine() -> TriageEngine:
    global _engine
    if _engine is None:
        logger.info("Initialising TriageEngine …")
        _engine = TriageEngine()
    return _engine


# ── Error handlers ──────────────────────────────────────────────────────────


@app.exception_handler(TriageError)
async def triage_error_handler(request: Request, exc: TriageError):
    status = _STATUS_BY_CATEGORY.get(exc.category, 500)
    logger.error("Triage request failed (%s): %s", exc.category.value, exc)
    body = ErrorResponse(
        category=exc.category.value, message=exc.user_message, retryable=exc.retryable
    )
    return JSONResponse(status_code=status, content=body.model_dump())


@app.exception_handler(DuplicateSubmissionError)
async def duplicate_submission_handler(request: Request, exc: DuplicateSubmissionError):
    body = ErrorResponse(category="duplicate_submission", message=str(exc), retryable=True)
    return JSONResponse(status_code=409, content=body.model_dump())


# ── Endpoints ───────────────────────────────────────────────────────────────


@app.get("/health", response_model=HealthResponse)
def health(engine: TriageEngine = Depends(get_engine)):
    """Health check."""
    return HealthResponse(
        status="ok",
        version=VERSION,
        backend=engine.risk_client.backend,
        urgent_keywords=len(engine.engine_config.urgent_keywords),
    )


@app.post("/triage", response_model=TriageResponse)
def triage(session: UserSession, engine: TriageEngine = Depends(get_engine)):
    """Run the first round for a session."""
    with inflight.claim(session.session_id):
        return _build_response(engine.evaluate(session))


@app.post("/triage/follow-up", response_model=TriageResponse)
def triage_follow_up(request: FollowUpRequest, engine: TriageEngine = Depends(get_engine)):
    """Run the second round with answers to the issued questions."""
    with inflight.claim(request.session.session_id):
        return _build_response(engine.evaluate(request.session, state=request.state))


# ── Helpers ─────────────────────────────────────────────────────────────────


def _build_response(triage_round: TriageRound) -> TriageResponse:
    return TriageResponse(
        result=triage_round.result,
        state=triage_round.state,
        safety_overrides_applied=triage_round.safety_overrides_applied,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
