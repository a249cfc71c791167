"""
Logging configuration for analysis events.

Module loggers (``logging.getLogger(__name__)``) carry free-text
diagnostics. In addition, each analysis emits a few structured events
(sandbox runs, test generation attempts, completed analyses) on the
``codejudge.analysis_events`` logger, formatted as JSON lines so they can
be aggregated later.
"""

import json
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Any

EVENTS_LOGGER_NAME = "codejudge.analysis_events"

# Extra fields copied from log records into the JSON entry
_CONTEXT_FIELDS = ["event", "execution_id", "code_id", "phase", "status"]
_OUTCOME_FIELDS = [
    "skip_reason", "failure_reason", "attempt", "max_attempts",
    "duration_ms", "total_score", "reduced_confidence", "test_count",
]


class AnalysisEventFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log records with structured data."""
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _CONTEXT_FIELDS + _OUTCOME_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if hasattr(record, "error"):
            log_entry["error"] = str(record.error)

        return json.dumps(log_entry, default=str)


def configure_analysis_logging(
    log_file: str | None = None,
    log_level: str = "INFO",
    enable_console: bool = True,
) -> None:
    """
    Configure the structured analysis event logger.

    Args:
        log_file: Path to log file for analysis events (optional)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_console: Whether to also log to console
    """
    logger = logging.getLogger(EVENTS_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.propagate = False

    logger.handlers.clear()
    formatter = AnalysisEventFormatter()

    if log_file:
        file_handler = TimedRotatingFileHandler(
            log_file,
            when="H",
            interval=1,
            backupCount=168,  # 7 days of hourly files
            encoding="utf-8",
            utc=False,
        )
        file_handler.suffix = "%Y%m%d_%H%M%S.log"
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)


def get_analysis_logger() -> logging.Logger:
    """Get the structured analysis events logger."""
    return logging.getLogger(EVENTS_LOGGER_NAME)


def summarize_analysis_logs(log_file: str) -> dict[str, Any]:
    """
    Aggregate analysis event logs.

    Args:
        log_file: Path to the log file

    Returns:
        Dictionary with counts of analyses, sandbox outcomes and
        test generation failures
    """
    stats: dict[str, Any] = {
        "analyses": 0,
        "reduced_confidence": 0,
        "sandbox_runs": 0,
        "sandbox_skipped": 0,
        "skip_reasons": {},
        "generation_failures": 0,
        "average_score": None,
    }
    scores: list[float] = []

    try:
        with open(log_file, encoding="utf-8") as f:
            for line in f:
                try:
                    entry = json.loads(line.strip())
                except json.JSONDecodeError:
                    continue

                event = entry.get("event")
                if event == "analysis_completed":
                    stats["analyses"] += 1
                    if entry.get("reduced_confidence"):
                        stats["reduced_confidence"] += 1
                    if isinstance(entry.get("total_score"), (int, float)):
                        scores.append(float(entry["total_score"]))

                elif event == "sandbox_run":
                    stats["sandbox_runs"] += 1
                    if entry.get("status") == "skipped":
                        stats["sandbox_skipped"] += 1
                        kind = str(entry.get("skip_reason", "unknown")).split(":", 1)[0]
                        stats["skip_reasons"][kind] = stats["skip_reasons"].get(kind, 0) + 1

                elif event == "test_generation" and entry.get("status") == "failed":
                    stats["generation_failures"] += 1

    except FileNotFoundError:
        pass

    if scores:
        stats["average_score"] = round(sum(scores) / len(scores), 2)
    return stats
