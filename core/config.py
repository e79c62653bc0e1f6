"""
SympVis Triage Engine – Engine Configuration
=============================================
Immutable, process-wide safety configuration (urgent keywords, canonical
disclaimer, override / uncertainty copy). Built once from
configs/safety_rules.yaml and injected into every component.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_RULES_PATH = _ROOT / "configs" / "safety_rules.yaml"
DEFAULT_MODEL_CONFIG_PATH = _ROOT / "configs" / "model_config.yaml"

DEFAULT_URGENT_KEYWORDS: Tuple[str, ...] = (
    "chest pain", "chest tightness", "severe bleeding", "unconscious",
    "stroke", "slurred speech", "difficulty breathing", "shortness of breath",
    "suffocating", "severe abdominal pain", "sudden weakness",
    "sudden numbness", "loss of vision", "severe burn",
    "severe allergic reaction", "anaphylaxis", "blue lips",
    "severe trauma", "severe head injury",
)

DEFAULT_DISCLAIMER = (
    "SympVis is a triage and self-care support tool, not a diagnostic service. "
    "If you are worried, if symptoms are severe or worsening, or if emergency "
    "signs are present, seek immediate medical care or call emergency services."
)

UNCERTAINTY_SENTENCE = "Based on limited information, risk cannot be confidently assessed."


class OverrideCopy(BaseModel):
    """Text and thresholds applied when a keyword override fires."""
    model_config = ConfigDict(frozen=True)

    # An override always reports confidence >= 90; YAML can only tighten this
    confidence: int = Field(default=95, ge=90, le=100)
    min_confidence: int = Field(default=90, ge=90, le=100)
    confidence_reason: str = (
        "High confidence: Safety rule override triggered by specific high-risk indicators."
    )
    short_explanation: str = "You reported warning signs that need emergency assessment."
    recommended_action: str = (
        "Seek emergency medical care now or call your local emergency number."
    )
    recommended_timeline: str = "Immediately"


class UncertaintyCopy(BaseModel):
    model_config = ConfigDict(frozen=True)

    short_explanation: str = UNCERTAINTY_SENTENCE
    vague_phrases: Tuple[str, ...] = (
        "i feel bad", "i feel sick", "i feel unwell", "i don't know",
        "i dont know", "something is wrong", "something feels wrong",
        "not feeling well", "not well",
    )


class FollowUpCopy(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_count: int = Field(default=2, ge=1)
    fallback_questions: Tuple[str, ...] = (
        "Have your symptoms gotten worse since they started?",
        "Do you have a fever above 100°F?",
    )


class EngineConfig(BaseModel):
    """Everything deterministic the engine needs. Read-only after creation."""
    model_config = ConfigDict(frozen=True)

    urgent_keywords: Tuple[str, ...] = DEFAULT_URGENT_KEYWORDS
    safety_disclaimer: str = DEFAULT_DISCLAIMER
    override: OverrideCopy = Field(default_factory=OverrideCopy)
    uncertainty: UncertaintyCopy = Field(default_factory=UncertaintyCopy)
    follow_up: FollowUpCopy = Field(default_factory=FollowUpCopy)
    emergency_signs: Tuple[str, ...] = ()


def load_engine_config(rules_path: Optional[str] = None) -> EngineConfig:
    """Load safety rules from YAML; fall back to built-in defaults if absent."""
    path = Path(rules_path) if rules_path else DEFAULT_RULES_PATH

    if not path.exists():
        logger.warning("Safety rules not found at %s – using built-in defaults", path)
        return EngineConfig()

    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    config = EngineConfig(**{k: v for k, v in raw.items() if v is not None})
    logger.info(
        "Loaded %d urgent keywords from %s", len(config.urgent_keywords), path
    )
    return config


def load_model_config(config_path: Optional[str] = None) -> dict:
    """Return the ``collaborator`` section of model_config.yaml, flattened."""
    path = Path(config_path) if config_path else DEFAULT_MODEL_CONFIG_PATH

    raw: dict = {}
    if path.exists():
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    c = raw.get("collaborator", {}) or {}
    params = c.get("parameters", {}) or {}
    return {
        "backend": c.get("backend", "gemini"),
        # gemini
        "gemini_model": c.get("gemini_model", "gemini-2.5-flash"),
        # vertex_ai
        "vertex_model": c.get("vertex_model", "gemini-2.5-flash"),
        "vertex_location": c.get("vertex_location", "us-central1"),
        "vertex_project": c.get("vertex_project"),        # falls back to env var
        # ollama
        "ollama_model": c.get("ollama_model", "llama3.1:8b"),
        "ollama_base_url": c.get("ollama_base_url"),
        "timeout": c.get("timeout", 60),
        "temperature": params.get("temperature", 0.2),
        "max_output_tokens": params.get("max_output_tokens", 2048),
    }
