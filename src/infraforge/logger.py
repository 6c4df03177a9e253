"""
Logging setup and structured claim lifecycle events.

Outputs JSON-formatted logs for Loki ingestion. Only lifecycle events
are logged through ClaimLogger; ordinary diagnostics go through the
module loggers.

Logged events:
- claim.phase_changed
- claim.step_failed
- claim.reconciled
- claim.cleanup_retry
- claim.cleanup_abandoned

Usage:
    from infraforge.logger import ClaimLogger

    events = ClaimLogger(kind="ApplicationClaim")
    events.log_phase_changed("team-a/web", from_phase="Pending", to_phase="Provisioning")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Structured event logger for Loki
_claim_logger = logging.getLogger("infraforge.claims")


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.name == _claim_logger.name:
            # Already a JSON document
            return message
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": message,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """
    Configure the root logger.

    Args:
        level: debug, info, warning or error
        fmt: json (for Loki) or text (for console)
    """
    root = logging.getLogger()
    root.setLevel(_LEVELS.get(level, logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)


class ClaimLogger:
    """
    Structured logger for claim lifecycle events.

    Each log entry includes standard fields for filtering:
    - kind and claim key (namespace/name)
    - event type and event-specific attributes
    """

    def __init__(
        self,
        kind: str,
        service_name: str = "infraforge-operator",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        self.kind = kind
        self.service_name = service_name
        self.extra_labels = extra_labels or {}
        self._logger = _claim_logger

    def _emit(self, event: str, claim: str, level: str = "info", **extra_fields: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
            "kind": self.kind,
            "claim": claim,
        }
        entry.update({k: v for k, v in extra_fields.items() if v is not None})

        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_phase_changed(self, claim: str, from_phase: Optional[str], to_phase: str,
                          message: Optional[str] = None) -> None:
        """Log a phase transition."""
        self._emit(
            "claim.phase_changed",
            claim,
            from_phase=from_phase or "",
            to_phase=to_phase,
            message=message,
        )

    def log_step_failed(self, claim: str, step: str, error: BaseException,
                        retryable: bool) -> None:
        """Log a failed reconciliation step."""
        self._emit(
            "claim.step_failed",
            claim,
            level="warn" if retryable else "error",
            step=step,
            error=str(error),
            error_type=type(error).__name__,
            retryable=retryable,
        )

    def log_reconciled(self, claim: str, phase: str, duration_ms: float,
                       requeue_after: Optional[float] = None) -> None:
        """Log the end of a reconciliation pass."""
        self._emit(
            "claim.reconciled",
            claim,
            phase=phase,
            duration_ms=round(duration_ms, 2),
            requeue_after=requeue_after,
        )

    def log_cleanup_retry(self, claim: str, attempt: int, max_attempts: int,
                          error: BaseException) -> None:
        """Log a failed cleanup attempt that will be retried."""
        self._emit(
            "claim.cleanup_retry",
            claim,
            level="warn",
            attempt=attempt,
            max_attempts=max_attempts,
            error=str(error),
        )

    def log_cleanup_abandoned(self, claim: str, attempts: int, error: BaseException) -> None:
        """Log that cleanup gave up and the finalizer is removed anyway."""
        self._emit(
            "claim.cleanup_abandoned",
            claim,
            level="warn",
            attempts=attempts,
            error=str(error),
        )
