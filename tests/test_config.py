import json
import logging

import pytest
from pydantic import ValidationError

from core.config import (
    DEFAULT_DISCLAIMER,
    DEFAULT_URGENT_KEYWORDS,
    EngineConfig,
    OverrideCopy,
    load_engine_config,
    load_model_config,
)
from core.logging_utils import JsonFormatter, log_pipeline_event, setup_logging


def test_bundled_rules_load():
    config = load_engine_config()

    assert config.urgent_keywords == DEFAULT_URGENT_KEYWORDS
    assert config.safety_disclaimer == DEFAULT_DISCLAIMER
    assert config.follow_up.question_count == 2
    assert len(config.emergency_signs) == 5


def test_missing_rules_fall_back_to_defaults(tmp_path):
    config = load_engine_config(str(tmp_path / "absent.yaml"))

    assert config == EngineConfig()


def test_partial_rules_file(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "urgent_keywords:\n  - purple rash\noverride:\n  confidence: 97\n",
        encoding="utf-8",
    )

    config = load_engine_config(str(path))

    assert config.urgent_keywords == ("purple rash",)
    assert config.override.confidence == 97
    assert config.override.min_confidence == 90
    assert config.safety_disclaimer == DEFAULT_DISCLAIMER


def test_engine_config_is_immutable():
    config = EngineConfig()

    with pytest.raises(ValidationError):
        config.safety_disclaimer = "changed"


@pytest.mark.parametrize("override", [{"confidence": 50}, {"min_confidence": 40}, {"confidence": 89}])
def test_override_confidence_below_90_is_rejected(override):
    with pytest.raises(ValidationError):
        OverrideCopy(**override)


def test_rules_file_cannot_weaken_override(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("override:\n  confidence: 50\n  min_confidence: 40\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        load_engine_config(str(path))


def test_model_config_defaults_without_file(tmp_path):
    config = load_model_config(str(tmp_path / "absent.yaml"))

    assert config["backend"] == "gemini"
    assert config["gemini_model"] == "gemini-2.5-flash"
    assert config["temperature"] == 0.2


def test_model_config_reads_collaborator_section(tmp_path):
    path = tmp_path / "model.yaml"
    path.write_text(
        "collaborator:\n  backend: ollama\n  ollama_model: qwen2\n"
        "  parameters:\n    temperature: 0.0\n",
        encoding="utf-8",
    )

    config = load_model_config(str(path))

    assert config["backend"] == "ollama"
    assert config["ollama_model"] == "qwen2"
    assert config["temperature"] == 0.0
    assert config["max_output_tokens"] == 2048


def test_pipeline_event_formats_as_json(caplog):
    logger = logging.getLogger("tests.pipeline")

    with caplog.at_level(logging.INFO, logger="tests.pipeline"):
        log_pipeline_event(logger, "scan", "keyword scan complete", {"detected": ["stroke"]})

    record = caplog.records[-1]
    entry = json.loads(JsonFormatter().format(record))
    assert entry["stage"] == "scan"
    assert entry["details"] == {"detected": ["stroke"]}
    assert entry["message"].startswith("[scan] keyword scan complete")


def test_setup_logging_quiets_collaborator_libraries():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        setup_logging(level="DEBUG")

        assert root.level == logging.DEBUG
        for name in ("urllib3", "google", "langchain_core", "langchain_ollama"):
            assert logging.getLogger(name).level == logging.WARNING
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
