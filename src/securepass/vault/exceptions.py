"""
Vault Exception Classes
"""

from typing import List


class VaultError(Exception):
    """Base exception for vault operations"""
    pass


class AuthenticationError(VaultError):
    """Raised when a submitted master password does not match the stored verifier"""

    def __init__(self, message: str = "Incorrect master password"):
        super().__init__(message)


class UnlockThrottled(AuthenticationError):
    """Raised when unlock attempts arrive during a backoff window"""

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(
            f"Too many failed attempts. Please wait {retry_after} seconds."
        )


class DecryptionError(VaultError):
    """Raised when ciphertext cannot be decrypted.

    Wrong master password and corrupted data are reported identically.
    """

    def __init__(self, message: str = "Wrong master password or corrupted data"):
        super().__init__(message)


class InvalidConfig(VaultError):
    """Raised when the password generator gets an impossible configuration"""
    pass


class InvalidStateError(VaultError):
    """Raised when a lifecycle operation is called from the wrong state"""
    pass


class VaultLockedError(InvalidStateError):
    """Raised when an operation needs the master password but the vault is locked"""

    def __init__(self, message: str = "Vault is locked. Unlock vault first."):
        super().__init__(message)


class ResetNotConfirmed(VaultError):
    """Raised when a destructive reset is requested without confirmation"""
    pass


class PartialRotationFailure(VaultError):
    """Raised on demand when a master password rotation left credentials behind"""

    def __init__(self, rotated: int, failed_ids: List[str]):
        self.rotated = rotated
        self.failed_ids = list(failed_ids)
        super().__init__(
            f"{len(self.failed_ids)} credential(s) could not be re-encrypted "
            f"({rotated} rotated)"
        )
