# Core - Audit Logging
#
# Append-only audit trail for vault security events (setup, unlock,
# rotation, reset, credential access, export). One JSON object per line in
# a daily file under the audit log directory.
#
# Never pass master passwords, plaintext secrets or ciphertext in details.

import json
import logging
import os
import socket
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

import structlog

AUDIT_LOGGER_NAME = "securepass.audit"


class EventType(str, Enum):
    """Types of security events that can be logged."""

    # Vault lifecycle
    VAULT_CREATED = "vault.created"
    VAULT_UNLOCKED = "vault.unlocked"
    VAULT_LOCKED = "vault.locked"
    VAULT_UNLOCK_FAILED = "vault.unlock.failed"
    VAULT_ROTATED = "vault.rotated"
    VAULT_ROTATION_FAILED = "vault.rotation.failed"
    VAULT_RESET = "vault.reset"
    VAULT_EXPORTED = "vault.export"
    VAULT_ERROR = "vault.error"

    # Credentials
    VAULT_PASSWORD_ADDED = "vault.password.added"
    VAULT_PASSWORD_ACCESSED = "vault.password.accessed"
    VAULT_PASSWORD_UPDATED = "vault.password.updated"
    VAULT_PASSWORD_DELETED = "vault.password.deleted"

    # System Events
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"


class EventSeverity(str, Enum):
    """
    Severity levels for security events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Unusual, worth a look (e.g. a credential failed rotation)
    - ALERT: Possible attack (failed or throttled unlocks)
    - CRITICAL: Destructive or data-loss events (vault reset)
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only audit logger for security events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - User and system context capture
    - Simple forensic queries over the daily files
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # Setup structured logging
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

        self._setup_file_handler()

        self.logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    @property
    def log_file(self) -> Path:
        today = datetime.now().strftime("%Y-%m-%d")
        return self.log_dir / f"audit_{today}.log"

    def _setup_file_handler(self):
        """Attach a daily file handler to the audit logger (replacing old ones)."""
        file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog handles formatting

        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        for handler in list(audit_logger.handlers):
            audit_logger.removeHandler(handler)
            handler.close()
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        audit_logger.propagate = False

    def close(self):
        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        for handler in list(audit_logger.handlers):
            audit_logger.removeHandler(handler)
            handler.close()

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a security event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details
            user_context: User context (owner_id, etc.)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.utcnow().isoformat(),
            "details": details or {},
            "user_context": user_context or self._get_default_user_context(),
        }

        self.logger.info("security_event", **event_data)

        return event_id

    def log_vault_event(
        self,
        event_type: EventType,
        message: str,
        owner_id: Optional[str] = None,
        severity: EventSeverity = EventSeverity.INFO,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a Vault security event for one owner.

        Args:
            event_type: Type of Vault event
            message: Event description
            owner_id: Owner the event concerns
            severity: Event severity
            details: Additional details (never log actual passwords!)

        Returns:
            str: Event ID
        """
        user_context = None
        if owner_id is not None:
            user_context = self._get_default_user_context()
            user_context["owner_id"] = owner_id

        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Vault: {message}",
            details=details,
            user_context=user_context,
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, etc.)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }

    def query_events(
        self,
        event_types: Optional[List[EventType]] = None,
        severity: Optional[EventSeverity] = None,
        owner_id: Optional[str] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """
        Query audit logs (forensic analysis).

        Reads every daily file in the log directory, oldest first, and
        returns the newest `limit` matching events.

        Args:
            event_types: Filter by event types
            severity: Filter by severity level
            owner_id: Filter by owner
            limit: Maximum number of events to return

        Returns:
            list: Matching events (dicts as written to disk)
        """
        wanted_types = {t.value for t in event_types} if event_types else None
        matches = []

        for log_file in sorted(self.log_dir.glob("audit_*.log")):
            with open(log_file, "r", encoding="utf-8") as f:
                for line in f:
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if event.get("event") != "security_event":
                        continue
                    if wanted_types and event.get("event_type") not in wanted_types:
                        continue
                    if severity and event.get("severity") != severity.value:
                        continue
                    if owner_id and (event.get("user_context") or {}).get("owner_id") != owner_id:
                        continue
                    matches.append(event)

        return matches[-limit:] if limit else matches


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        log_dir = os.getenv("SECUREPASS_AUDIT_LOG_DIR")
        _audit_logger = AuditLogger(Path(log_dir) if log_dir else None)
    return _audit_logger


def set_audit_logger(logger: Optional[AuditLogger]) -> None:
    """Replace the global audit logger (tests, embedding)."""
    global _audit_logger
    _audit_logger = logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging security events.

    Usage:
        log_security_event(
            EventType.VAULT_EXPORTED,
            EventSeverity.INFO,
            "Vault exported",
            details={"count": 12}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
