# Vault Module - Master password cryptography
#
# PBKDF2-SHA256 key derivation, per-secret AES-256 encryption,
# master password lifecycle, password generation and strength scoring.

from .encryption import VaultCipher, derive_key
from .exceptions import (
    AuthenticationError,
    DecryptionError,
    InvalidConfig,
    InvalidStateError,
    PartialRotationFailure,
    ResetNotConfirmed,
    UnlockThrottled,
    VaultError,
    VaultLockedError,
)
from .generator import GeneratorConfig, generate_password
from .lifecycle import MasterPasswordManager, RotationResult, VaultState
from .strength import StrengthResult, score_password

__all__ = [
    "AuthenticationError",
    "DecryptionError",
    "GeneratorConfig",
    "InvalidConfig",
    "InvalidStateError",
    "MasterPasswordManager",
    "PartialRotationFailure",
    "ResetNotConfirmed",
    "RotationResult",
    "StrengthResult",
    "UnlockThrottled",
    "VaultCipher",
    "VaultError",
    "VaultLockedError",
    "VaultState",
    "derive_key",
    "generate_password",
    "score_password",
]
