# Vault - Audit Logging
#
# Append-only structured log of every security-relevant vault event:
# account writes and removals, master key generation/loading,
# per-field decryption failures that degrade a read, and secrets found
# stored unencrypted.
#
# Secrets never reach this log. Callers pass account ids and field names,
# and key events carry only a short fingerprint of the derived key.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of vault events that can be logged."""
    # Account Events
    ACCOUNT_SAVED = "account.saved"
    ACCOUNT_REMOVED = "account.removed"
    ACCOUNT_DECRYPT_FAILED = "account.decrypt.failed"
    ACCOUNT_PLAINTEXT_SECRET = "account.secret.plaintext"

    # Master Key Events
    KEY_GENERATED = "key.generated"
    KEY_LOADED = "key.loaded"
    KEY_UNREADABLE = "key.unreadable"

    # System Events
    SYSTEM_START = "system.start"


class EventSeverity(str, Enum):
    """
    Severity levels for vault events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Something unusual worth a look (e.g. a secret stored unencrypted)
    - ALERT: Data could not be used as stored (e.g. a secret failed to decrypt)
    - CRITICAL: Operation aborted, user action required
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only audit logger for vault events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - One log file per day in ``log_dir``
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self.log_file = self._setup_file_handler()

        self.logger = structlog.get_logger("mail_manager.audit")

    def _setup_file_handler(self) -> Path:
        """Attach a handler for today's log file to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        audit_logger = logging.getLogger("mail_manager.audit")
        for handler in audit_logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(log_file):
                return log_file

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog handles formatting

        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        # stdout may be a tool protocol channel; keep audit lines out of it
        audit_logger.propagate = False

        return log_file

    def close(self) -> None:
        """Detach and close this logger's file handler."""
        audit_logger = logging.getLogger("mail_manager.audit")
        for handler in list(audit_logger.handlers):
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(self.log_file):
                audit_logger.removeHandler(handler)
                handler.close()

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log a vault event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
            "user_context": self._get_default_user_context(),
        }

        self.logger.info("vault_event", **event_data)

        return event_id

    def log_account_event(
        self,
        event_type: EventType,
        account_id: str,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log an event about one account record.

        Args:
            event_type: Type of account event
            account_id: Identifier of the affected account
            message: Event description
            severity: Event severity
            details: Additional details (never log actual credentials!)

        Returns:
            str: Event ID
        """
        event_details = dict(details or {})
        event_details["account_id"] = account_id

        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Accounts: {message}",
            details=event_details
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, etc.)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
            "pid": os.getpid(),
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        from ..config import VaultConfig
        _audit_logger = AuditLogger(VaultConfig.from_env(load_env_file=False).log_dir)
    return _audit_logger


def set_audit_logger(logger: Optional[AuditLogger]) -> None:
    """Replace the global audit logger (for testing)."""
    global _audit_logger
    _audit_logger = logger
