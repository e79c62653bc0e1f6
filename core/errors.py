"""
SympVis Triage Engine – Error Taxonomy
=======================================
Every failure of an evaluation round surfaces as one of these. A round either
returns a complete TriageResult or raises; nothing in between.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

GENERIC_FAILURE_MESSAGE = (
    "Analysis failed. Please try again or check your internet connection."
)


class ErrorCategory(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_FAILURE = "auth_failure"
    CONTRACT_VIOLATION = "contract_violation"
    TRANSPORT = "transport"
    CANCELLED = "cancelled"
    PROTOCOL = "protocol"


class TriageError(RuntimeError):
    """Base class; carries what the caller should show and whether to retry."""

    category: ErrorCategory = ErrorCategory.TRANSPORT
    user_message: str = GENERIC_FAILURE_MESSAGE
    retryable: bool = True

    def __init__(self, detail: str = "", *, status_code: Optional[int] = None):
        super().__init__(detail or self.user_message)
        self.detail = detail
        self.status_code = status_code


class RateLimitedError(TriageError):
    category = ErrorCategory.RATE_LIMITED
    user_message = "Rate limit exceeded. Please wait 30 seconds and try again."
    retryable = True


class AuthFailureError(TriageError):
    category = ErrorCategory.AUTH_FAILURE
    user_message = (
        "API key issue. Please verify the reasoning service credentials "
        "in your environment configuration."
    )
    retryable = False


class ContractViolationError(TriageError):
    """The collaborator's response did not match the result schema."""

    category = ErrorCategory.CONTRACT_VIOLATION
    retryable = False

    def __init__(self, detail: str = "", *, errors: Optional[List[str]] = None):
        super().__init__(detail)
        self.errors = list(errors or [])


ParseError = ContractViolationError


class TransportError(TriageError):
    category = ErrorCategory.TRANSPORT
    retryable = True


class EvaluationCancelled(TriageError):
    category = ErrorCategory.CANCELLED
    user_message = "Evaluation was cancelled."
    retryable = True


class FollowUpProtocolError(TriageError):
    """The caller broke the follow-up protocol (wrong stage, missing answers, …)."""

    category = ErrorCategory.PROTOCOL
    retryable = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.user_message = detail


def classify_http_status(status_code: int, body: str = "", detail: str = "") -> TriageError:
    """Map a failed collaborator HTTP status to the error taxonomy."""
    if status_code == 429:
        return RateLimitedError(detail, status_code=status_code)
    if status_code in (401, 403):
        return AuthFailureError(detail, status_code=status_code)
    # Gemini answers a bad key with 400 + API_KEY_INVALID
    if status_code == 400 and "API_KEY_INVALID" in (body or ""):
        return AuthFailureError(detail, status_code=status_code)
    return TransportError(detail, status_code=status_code)
