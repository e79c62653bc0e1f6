"""
SympVis Triage Engine – Adaptive Risk Client
=============================================
Delegates adaptive, explainable risk judgment to an external reasoning
service (the collaborator). Supports three backends:

  - "gemini"     : Google Generative Language REST API (JSON mode + schema)
  - "vertex_ai"  : Google Cloud Vertex AI GenerativeModel (JSON mode)
  - "ollama"     : Local Ollama server via LangChain (JSON format)

Every backend sends the full session plus a restated personalization summary,
and validates the reply at the trust boundary (core.validation) before
anything else sees it.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Optional

from core.config import EngineConfig
from core.errors import (
    AuthFailureError,
    EvaluationCancelled,
    RateLimitedError,
    TransportError,
    classify_http_status,
)
from core.validation import parse_candidate, require_candidate
from models.session.schema_definition import TriageCandidate, UserSession

logger = logging.getLogger(__name__)

# ── Policy prompt ───────────────────────────────────────────────────────────

SYSTEM_PROMPT_TEMPLATE = """You are SympVis — an explainable symptom triage and self-care coach. Read a single user session described in JSON and produce a concise, safe triage result. Output ONLY the JSON object described below — no markdown, no preamble, no commentary.

PRINCIPLES:
1. Triage only: no diagnostic claims. Use language like "likely risk level", "recommend", "seek evaluation".
2. Explainability: give a single-sentence short_explanation and EXACTLY TWO supporting_signals quoted or closely paraphrased from the user's own input.
3. Safety override: if any urgent keyword is present, risk_level is "Red" and override_reason cites the detected keyword(s).
4. Confidence: an integer 0–100, with a one-sentence confidence_reason. If an override applies, confidence >= 90.
5. Tone: brief, clear, non-alarming, accessible.
6. Always include the canonical safety_disclaimer.

UNCERTAINTY MODE:
If the input is extremely vague ("I feel bad", "I don't know", "something is wrong") or lacks any physiological detail:
- is_uncertain = true, risk_level = "Yellow"
- short_explanation = exactly "{uncertainty_sentence}"
- recommended_action: seek professional advice to clarify symptoms
- follow_up_questions = null

PERSONALIZATION & ADAPTIVE RISK (MANDATORY — only ever adjust UPWARD):
- Age: infants (<2y) and elderly (>65y) are high-risk. Symptoms that are Green for a young adult (mild fever, persistent cough) become Yellow or Red.
- Pregnancy: if pregnant, escalate abdominal pain, dizziness, or systemic symptoms (fever, swelling) to Yellow or Red.
- Chronic conditions: diabetes, hypertension, asthma, COPD, heart disease, or immunocompromise lower the threshold (a foot sore in a diabetic, breathlessness in an asthmatic) to Yellow or Red.

Examples: 25yo with fever 100°F -> Green. 80yo with the same fever -> Yellow. Pregnant with dizziness -> Yellow. Diabetic with nausea -> Yellow.

TEMPORAL ANALYSIS:
The ORDER of the timeline matters. A progression toward systemic or respiratory deterioration ("Fever -> Cough -> Shortness of breath") is more urgent than the same symptoms unordered or improving ("Cough -> Fever").

SMART FOLLOW-UP:
- If your assessment is "Yellow" and NO follow_up_answers are present, return exactly {question_count} specific follow_up_questions that would clarify the risk (e.g. "Is the pain worse when you take deep breaths?").
- If follow_up_answers are present, use them for the FINAL result and set follow_up_questions to null.
- If risk_level is "Red" or "Green", follow_up_questions is null.

URGENT KEYWORDS (force Red if found, case-insensitive):
{keywords}

CANONICAL SAFETY DISCLAIMER:
"{disclaimer}"

REQUIRED OUTPUT — valid JSON only:
{{
  "session_id": "<echo input>",
  "timestamp": "<ISO-8601>",
  "risk_level": "Green|Yellow|Red",
  "confidence": <int 0-100>,
  "confidence_reason": "<string>",
  "short_explanation": "<one sentence>",
  "supporting_signals": ["<signal 1>", "<signal 2>"],
  "recommended_action": "<string>",
  "recommended_timeline": "<string>",
  "override_reason": "<string>|null",
  "follow_up_questions": ["<question>", "<question>"] | null,
  "is_uncertain": <bool>,
  "export_summary": {{
    "title": "<string>", "date_time": "<string>", "symptoms_text": "<string>",
    "symptom_tags": ["<string>"],
    "user_info": {{"age": <int>, "sex": "<string>", "known_conditions": ["<string>"]}},
    "risk_level": "<string>", "confidence": <int>, "one_sentence_reasoning": "<string>",
    "supporting_signals": ["<string>", "<string>"], "what_to_do_now": ["<string>"],
    "when_to_see_doctor": "<string>", "emergency_signs": ["<string>"],
    "notes_for_clinician": "<string>"
  }},
  "safety_disclaimer": "<canonical disclaimer>"
}}"""

_STRING = {"type": "STRING"}
_STRING_LIST = {"type": "ARRAY", "items": _STRING}

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "session_id": _STRING,
        "timestamp": _STRING,
        "risk_level": {"type": "STRING", "enum": ["Green", "Yellow", "Red"], "format": "enum"},
        "confidence": {"type": "NUMBER"},
        "confidence_reason": _STRING,
        "short_explanation": _STRING,
        "supporting_signals": _STRING_LIST,
        "recommended_action": _STRING,
        "recommended_timeline": _STRING,
        "override_reason": {"type": "STRING", "nullable": True},
        "follow_up_questions": {"type": "ARRAY", "items": _STRING, "nullable": True},
        "is_uncertain": {"type": "BOOLEAN"},
        "export_summary": {
            "type": "OBJECT",
            "properties": {
                "title": _STRING,
                "date_time": _STRING,
                "symptoms_text": _STRING,
                "symptom_tags": _STRING_LIST,
                "user_info": {
                    "type": "OBJECT",
                    "properties": {
                        "age": {"type": "NUMBER"},
                        "sex": _STRING,
                        "known_conditions": _STRING_LIST,
                    },
                },
                "risk_level": _STRING,
                "confidence": {"type": "NUMBER"},
                "one_sentence_reasoning": _STRING,
                "supporting_signals": _STRING_LIST,
                "what_to_do_now": _STRING_LIST,
                "when_to_see_doctor": _STRING,
                "emergency_signs": _STRING_LIST,
                "notes_for_clinician": _STRING,
            },
        },
        "safety_disclaimer": _STRING,
    },
    "required": [
        "session_id", "timestamp", "risk_level", "confidence", "confidence_reason",
        "short_explanation", "supporting_signals", "recommended_action",
        "recommended_timeline", "export_summary", "safety_disclaimer", "is_uncertain",
    ],
}


def build_system_prompt(config: EngineConfig) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        uncertainty_sentence=config.uncertainty.short_explanation,
        question_count=config.follow_up.question_count,
        keywords=json.dumps(list(config.urgent_keywords)),
        disclaimer=config.safety_disclaimer,
    )


def render_timeline(session: UserSession) -> str:
    """Render the timeline as an explicit ordered progression."""
    if not session.timeline:
        return "No structured timeline provided"
    return " -> ".join(
        f"{i}. [{event.timeframe}] {event.symptom}"
        for i, event in enumerate(session.timeline, start=1)
    )


def build_personalization_context(session: UserSession) -> str:
    """Restate the profile facts the policy keys on, ahead of the raw session."""
    user = session.user
    vitals = session.vitals_reported

    fever = f"{vitals.fever_f:g}°F" if vitals.fever_f is not None else "No fever reported"
    heart_rate = (
        f"{vitals.heart_rate} bpm" if vitals.heart_rate is not None else "not reported"
    )
    if session.follow_up_answers:
        answers = json.dumps(
            [a.model_dump(mode="json") for a in session.follow_up_answers]
        )
    else:
        answers = "None provided yet"

    return (
        "CRITICAL CONTEXT:\n"
        f"User Age: {user.age}\n"
        f"User Sex: {user.sex.value}\n"
        f"Pregnant: {'true' if user.pregnant else 'false'}\n"
        f"Known Conditions: {', '.join(user.known_conditions) or 'None reported'}\n"
        f"Vitals: {fever}; heart rate {heart_rate}\n"
        f"Follow-up Answers: {answers}\n"
        "\n"
        "TEMPORAL SYMPTOM PROGRESSION (ORDER MATTERS):\n"
        f"{render_timeline(session)}"
    )


def build_user_prompt(session: UserSession) -> str:
    return (
        f"{build_personalization_context(session)}\n\n"
        f"{session.model_dump_json(indent=2)}"
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Base client: shared request / validation flow
# ═══════════════════════════════════════════════════════════════════════════════


class RiskClient(ABC):
    """Backend-independent flow: prompt → call → cancel check → validate."""

    backend = "base"

    def __init__(self, config: EngineConfig):
        self.engine_config = config
        self.system_prompt = build_system_prompt(config)

    @abstractmethod
    def _call_model(self, prompt: str) -> str:
        """Send ``prompt`` to the backend and return its raw text reply."""

    def assess(
        self,
        session: UserSession,
        cancel_event: Optional[threading.Event] = None,
    ) -> TriageCandidate:
        """
        Ask the collaborator for a candidate result.

        Raises
        ------
        RateLimitedError, AuthFailureError, TransportError
            Classified failures of the call itself.
        ContractViolationError
            The reply did not match the result schema.
        EvaluationCancelled
            ``cancel_event`` was set before the reply was validated.
        """
        prompt = build_user_prompt(session)
        _raise_if_cancelled(cancel_event, session)

        raw_output = self._call_model(prompt)
        logger.debug("Collaborator raw output (%s): %s", self.backend, raw_output[:500])

        _raise_if_cancelled(cancel_event, session)
        return require_candidate(parse_candidate(raw_output))


def _raise_if_cancelled(cancel_event: Optional[threading.Event], session: UserSession):
    if cancel_event is not None and cancel_event.is_set():
        logger.info("Evaluation of session %s cancelled", session.session_id)
        raise EvaluationCancelled(f"Evaluation of session {session.session_id} was cancelled")


# ═══════════════════════════════════════════════════════════════════════════════
# Gemini REST backend (default)
# ═══════════════════════════════════════════════════════════════════════════════


class GeminiRiskClient(RiskClient):
    """Calls the Generative Language API ``generateContent`` in JSON mode."""

    backend = "gemini"
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        config: EngineConfig,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
        timeout: int = 60,
        **_,  # absorb keys meant for other backends
    ):
        super().__init__(config)
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        if not self.api_key:
            raise AuthFailureError(
                "GEMINI_API_KEY is not set. "
                "Add it to your .env file or pass api_key= to GeminiRiskClient()."
            )
        self.model = model or os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout

    def _build_payload(self, prompt: str) -> dict:
        return {
            "systemInstruction": {"parts": [{"text": self.system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    def _call_model(self, prompt: str) -> str:
        import requests

        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        logger.info("Calling Gemini model %s", self.model)
        try:
            response = requests.post(
                url, headers=headers, json=self._build_payload(prompt), timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error("Gemini request failed: %s", e)
            raise TransportError(f"Gemini request failed: {e}") from e

        if response.status_code >= 400:
            body = response.text or ""
            error = classify_http_status(
                response.status_code,
                body,
                f"Gemini returned HTTP {response.status_code}: {body[:200]}",
            )
            logger.error("Gemini call failed (%s): HTTP %s", error.category.value, response.status_code)
            raise error

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("Gemini returned a non-JSON transport response") from e

        return self._extract_text(data)

    @staticmethod
    def _extract_text(data: dict) -> str:
        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            feedback = data.get("promptFeedback") if isinstance(data, dict) else None
            raise TransportError(f"Gemini returned no candidates: {feedback!r}")

        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text:
            reason = candidates[0].get("finishReason", "unknown")
            raise TransportError(f"No response text from Gemini (finishReason={reason})")
        return text


# ═══════════════════════════════════════════════════════════════════════════════
# Vertex AI backend
# ═══════════════════════════════════════════════════════════════════════════════


class VertexAIRiskClient(RiskClient):
    """
    Collaborator backed by Vertex AI Model Garden (``GenerativeModel``).

    Required env vars:
      GOOGLE_CLOUD_PROJECT   : your GCP project ID
      GOOGLE_CLOUD_LOCATION  : region (defaults to us-central1)
    """

    backend = "vertex_ai"

    def __init__(
        self,
        config: EngineConfig,
        model: str = "gemini-2.5-flash",
        project: Optional[str] = None,
        location: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
        **_,
    ):
        super().__init__(config)
        try:
            import vertexai  # noqa: F401 (verify the package is installed)
        except ImportError:
            raise ImportError(
                "google-cloud-aiplatform is required for the Vertex AI backend.\n"
                "Install it with:  pip install google-cloud-aiplatform"
            )

        self.project = project or os.environ.get("GOOGLE_CLOUD_PROJECT")
        if not self.project:
            raise AuthFailureError(
                "GOOGLE_CLOUD_PROJECT is not set. "
                "Add it to your .env file or pass project= to VertexAIRiskClient()."
            )
        self.location = location or os.environ.get("GOOGLE_CLOUD_LOCATION", "us-central1")
        self.model_name = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

        # Lazy: SDK objects are created on first use so startup does not
        # depend on credentials being ready.
        self._generative_model = None
        self._gen_config = None

        logger.info(
            "VertexAIRiskClient configured, model=%s location=%s "
            "(SDK will connect on first call)",
            self.model_name, self.location,
        )

    def _ensure_sdk(self):
        if self._generative_model is not None:
            return

        import vertexai
        from vertexai.generative_models import GenerationConfig, GenerativeModel

        vertexai.init(project=self.project, location=self.location)
        self._generative_model = GenerativeModel(
            model_name=self.model_name,
            system_instruction=self.system_prompt,
        )
        self._gen_config = GenerationConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            response_mime_type="application/json",
        )

    def _call_model(self, prompt: str) -> str:
        from google.api_core import exceptions as gexc

        self._ensure_sdk()
        logger.info("Calling Vertex AI model=%s …", self.model_name)
        try:
            response = self._generative_model.generate_content(
                prompt, generation_config=self._gen_config
            )
            return response.text
        except gexc.ResourceExhausted as e:
            raise RateLimitedError(str(e), status_code=429) from e
        except (gexc.PermissionDenied, gexc.Unauthenticated) as e:
            raise AuthFailureError(str(e), status_code=getattr(e, "code", None)) from e
        except gexc.GoogleAPIError as e:
            logger.error("Vertex AI call failed: %s", e)
            raise TransportError(str(e)) from e
        except ValueError as e:
            # .text raises when the response was blocked or empty
            raise TransportError(f"No response text from Vertex AI: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# Ollama backend (local, LangChain-powered)
# ═══════════════════════════════════════════════════════════════════════════════


class OllamaRiskClient(RiskClient):
    """
    Collaborator backed by a local Ollama server via LangChain.

    Requires Ollama running locally (default http://localhost:11434) and
    ``pip install langchain-ollama``.
    """

    backend = "ollama"

    def __init__(
        self,
        config: EngineConfig,
        model: str = "llama3.1:8b",
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
        **_,
    ):
        super().__init__(config)
        try:
            from langchain_ollama import ChatOllama
        except ImportError:
            raise ImportError(
                "langchain-ollama is required for the Ollama backend.\n"
                "Install it with:  pip install langchain-ollama"
            )

        self.model = model
        self._llm = ChatOllama(
            model=model,
            base_url=base_url or os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434"),
            temperature=temperature,
            num_predict=max_output_tokens,
            format="json",
        )
        logger.info("OllamaRiskClient initialised, model=%s", model)

    def _call_model(self, prompt: str) -> str:
        from langchain_core.messages import HumanMessage, SystemMessage

        messages = [
            SystemMessage(content=self.system_prompt),
            HumanMessage(content=prompt),
        ]
        try:
            response = self._llm.invoke(messages)
        except Exception as e:
            logger.error("Ollama call failed: %s", e)
            raise TransportError(f"Ollama call failed: {e}") from e
        return response.content if isinstance(response.content, str) else str(response.content)


# ═══════════════════════════════════════════════════════════════════════════════
# Factory: selects backend from config
# ═══════════════════════════════════════════════════════════════════════════════


def create_risk_client(config: dict, engine_config: EngineConfig) -> RiskClient:
    """
    Return the collaborator client for ``config["backend"]``.

      "gemini"    →  GeminiRiskClient     (default)
      "vertex_ai" →  VertexAIRiskClient
      "ollama"    →  OllamaRiskClient
    """
    backend = config.get("backend", "gemini")
    common = {
        "temperature": config.get("temperature", 0.2),
        "max_output_tokens": config.get("max_output_tokens", 2048),
    }

    if backend == "vertex_ai":
        return VertexAIRiskClient(
            engine_config,
            model=config.get("vertex_model", "gemini-2.5-flash"),
            project=config.get("vertex_project"),
            location=config.get("vertex_location"),
            **common,
        )

    if backend == "ollama":
        return OllamaRiskClient(
            engine_config,
            model=config.get("ollama_model", "llama3.1:8b"),
            base_url=config.get("ollama_base_url"),
            **common,
        )

    if backend != "gemini":
        raise ValueError(f"Unknown collaborator backend: {backend!r}")

    return GeminiRiskClient(
        engine_config,
        model=config.get("gemini_model"),
        timeout=config.get("timeout", 60),
        **common,
    )
