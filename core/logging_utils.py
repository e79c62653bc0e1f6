"""
SympVis Triage Engine – Logging Utilities
==========================================
Root-logger setup for the entrypoints and structured pipeline events.
Session narratives are never logged; events carry ids, tiers and counts.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

_PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> logging.Logger:
    """
    Configure logging for SympVis.

    Parameters
    ----------
    level : str
        Logging level (DEBUG, INFO, WARNING, ERROR).
    log_file : str, optional
        Path to log file. If None, logs to stderr only.
    json_format : bool
        If True, emit one JSON object per line.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if json_format:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=_PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root_logger.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Collaborator transports; requests logs through urllib3
    for name in ("urllib3", "google", "langchain_core", "langchain_ollama"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


class JsonFormatter(logging.Formatter):
    """JSON-structured log formatter; pipeline events keep their fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        stage = getattr(record, "stage", None)
        if stage:
            log_entry["stage"] = stage
            log_entry["details"] = getattr(record, "details", None) or {}
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry, default=str)


def log_pipeline_event(
    logger: logging.Logger,
    stage: str,
    event: str,
    details: Optional[dict] = None,
):
    """Log a structured pipeline event."""
    msg = f"[{stage}] {event}"
    if details:
        msg += f" | {json.dumps(details, default=str)}"
    logger.info(msg, extra={"stage": stage, "details": details or {}})
