"""
Structured Logging Service

Operational diagnostic channel for the audit subsystem. Audit failures are
never surfaced to the caller of the audited operation; this is where they
end up instead.

Events:
- audit.recorded         (entry written)
- audit.skipped          (operation opted out or logging disabled)
- audit.extraction_failed (record id / value derivation raised)
- audit.write_failed     (composition or storage raised)

Each log entry includes:
- action
- table_name / record_id (if known)
- severity (INFO/WARN/ERROR)
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional, Any
from uuid import UUID
from enum import Enum


class LogSeverity(str, Enum):
    """Log severity levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class StructuredLogger:
    """
    Structured logging service for audit events.

    Logs are emitted as one JSON object per line so they can be shipped to
    the platform's log pipeline and grepped by event name.
    """

    def __init__(self, logger_name: str = "audittrail.audit"):
        self.logger = logging.getLogger(logger_name)
        self._ensure_handler()

    def _ensure_handler(self):
        """Ensure logger has a proper handler configured."""
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def _serialize(self, value: Any) -> Any:
        """Serialize UUID values to strings."""
        if isinstance(value, UUID):
            return str(value)
        return value

    def _create_log_entry(
        self,
        event: str,
        severity: LogSeverity,
        action: Optional[str] = None,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        message: Optional[str] = None,
        **extra
    ) -> dict:
        """Create a structured log entry."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "severity": severity.value,
        }

        if action:
            entry["action"] = action
        if table_name:
            entry["table_name"] = table_name
        if record_id:
            entry["record_id"] = str(record_id)
        if message:
            entry["message"] = message

        for key, value in extra.items():
            entry[key] = self._serialize(value)

        return entry

    def _log(self, entry: dict, severity: LogSeverity, exc_info: bool = False):
        """Emit the log entry at the appropriate level."""
        log_str = json.dumps(entry, default=str)
        if severity == LogSeverity.ERROR:
            self.logger.error(log_str, exc_info=exc_info)
        elif severity == LogSeverity.WARN:
            self.logger.warning(log_str, exc_info=exc_info)
        elif severity == LogSeverity.DEBUG:
            self.logger.debug(log_str)
        else:
            self.logger.info(log_str)

    def audit_recorded(
        self,
        action: str,
        table_name: Optional[str],
        record_id: Optional[str],
        actor_id: Optional[UUID] = None,
    ):
        """Log a successfully written audit entry."""
        entry = self._create_log_entry(
            event="audit.recorded",
            severity=LogSeverity.DEBUG,
            action=action,
            table_name=table_name,
            record_id=record_id,
            actor_id=actor_id,
        )
        self._log(entry, LogSeverity.DEBUG)

    def audit_skipped(self, operation: str, reason: str):
        """Log an operation that was deliberately not audited."""
        entry = self._create_log_entry(
            event="audit.skipped",
            severity=LogSeverity.DEBUG,
            message=f"Audit skipped for {operation}: {reason}",
            operation=operation,
            reason=reason,
        )
        self._log(entry, LogSeverity.DEBUG)

    def audit_extraction_failed(self, action: str, stage: str, error: Exception):
        """Log a failure while deriving record id or value snapshots."""
        entry = self._create_log_entry(
            event="audit.extraction_failed",
            severity=LogSeverity.WARN,
            action=action,
            message=f"Audit extraction failed during {stage}: {error}",
            stage=stage,
            error_type=type(error).__name__,
        )
        self._log(entry, LogSeverity.WARN, exc_info=True)

    def audit_write_failed(
        self,
        action: str,
        table_name: Optional[str],
        record_id: Optional[str],
        error: Exception,
    ):
        """Log a failure to compose or persist an audit entry."""
        entry = self._create_log_entry(
            event="audit.write_failed",
            severity=LogSeverity.ERROR,
            action=action,
            table_name=table_name,
            record_id=record_id,
            message=f"Failed to write audit log entry: {error}",
            error_type=type(error).__name__,
        )
        self._log(entry, LogSeverity.ERROR, exc_info=True)


# Global logger instance
audit_ops_logger = StructuredLogger()
