# SecurePass - Main Package
#
# Password manager core: master-password key derivation, per-secret
# encryption, vault lifecycle, password generation and strength scoring,
# plus pluggable credential storage and a REST API.

__version__ = "0.3.0"
__author__ = "SecurePass Team"
__description__ = "Password manager with master-password based encryption"

from .core import (
    EventType,
    EventSeverity,
    get_audit_logger,
)

__all__ = [
    "__version__",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
