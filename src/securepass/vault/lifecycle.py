# Vault - Master Password Lifecycle
#
# States: UNINITIALIZED (no verifier) -> LOCKED (verifier stored, no secret
# in memory) -> UNLOCKED (master password held in memory).
#
# Security:
# - The master password is only ever held in memory by an UNLOCKED manager
# - Unlock checks the salted verifier, then an encrypted canary when present
# - Failed unlocks back off exponentially after a few free attempts
# - Rotation re-encrypts every credential and never rolls back partial work

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from ..storage.base import Credential, CredentialStore, VerifierStore
from .encryption import VaultCipher
from .exceptions import (
    AuthenticationError,
    DecryptionError,
    InvalidStateError,
    PartialRotationFailure,
    ResetNotConfirmed,
    UnlockThrottled,
    VaultLockedError,
)
from .verifier import is_legacy_verifier, make_verifier, verify_password

logger = logging.getLogger(__name__)

VERIFIER_KEY = "masterPasswordHash"
CANARY_KEY = "masterPasswordCanary"
CANARY_PLAINTEXT = "SECUREPASS_VAULT_OK"

RESET_WARNING = (
    "Resetting the master password deletes the stored verifier. Passwords "
    "encrypted under the old master password can never be decrypted again. "
    "Export your vault first, then repeat the reset with confirmation."
)


class VaultState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass
class RotationResult:
    """
    Aggregate outcome of a master password change.

    Attributes:
        rotated: Credentials re-encrypted under the new master password
        failed: Credentials left under the old master password
        failed_ids: Ids of the failed credentials, in listing order
        errors: Failure reason per failed credential id
    """
    rotated: int = 0
    failed: int = 0
    failed_ids: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.rotated + self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def raise_for_failures(self):
        """Raise PartialRotationFailure if any credential failed."""
        if self.failed:
            raise PartialRotationFailure(self.rotated, self.failed_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rotated": self.rotated,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
            "errors": dict(self.errors),
        }


class MasterPasswordManager:
    """
    Owns one owner's master password session.

    The manager is the only place the master password lives. Encryption of
    credential secrets goes through encrypt_secret()/decrypt_secret(), which
    require the UNLOCKED state.

    Unlock rate limiting:
    - First `free_attempts` consecutive failures: no delay
    - Then 1s, 2s, 4s, ... capped at `max_backoff`
    - Attempts inside the window raise UnlockThrottled without checking
    """

    def __init__(
        self,
        owner_id: str,
        verifier_store: VerifierStore,
        credential_store: CredentialStore,
        cipher: Optional[VaultCipher] = None,
        audit_logger: Optional[AuditLogger] = None,
        free_attempts: int = 3,
        max_backoff: int = 16,
        rotation_workers: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.owner_id = owner_id
        self.verifier_store = verifier_store
        self.credential_store = credential_store
        self.cipher = cipher or VaultCipher()
        self.free_attempts = free_attempts
        self.max_backoff = max_backoff
        self.rotation_workers = max(1, rotation_workers)
        self._audit = audit_logger
        self._clock = clock

        self._lock = threading.RLock()
        self._master_password: Optional[str] = None

        # Rate limiting for unlock attempts (prevent brute force)
        self.failed_attempts = 0
        self._lockout_until: Optional[float] = None

    @property
    def audit(self) -> AuditLogger:
        if self._audit is None:
            self._audit = get_audit_logger()
        return self._audit

    # State

    @property
    def state(self) -> VaultState:
        with self._lock:
            if self._master_password is not None:
                return VaultState.UNLOCKED
            if self.verifier_store.get_value(self.owner_id, VERIFIER_KEY):
                return VaultState.LOCKED
            return VaultState.UNINITIALIZED

    @property
    def is_unlocked(self) -> bool:
        return self._master_password is not None

    def retry_after(self) -> int:
        """Seconds left in the current unlock backoff window (0 if none)."""
        if self._lockout_until is None:
            return 0
        remaining = self._lockout_until - self._clock()
        return max(0, math.ceil(remaining))

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failed_attempts": self.failed_attempts,
            "retry_after": self.retry_after(),
            "cipher_mode": self.cipher.mode,
        }

    # Transitions

    def setup(self, password: str):
        """
        Set the first master password. UNINITIALIZED -> UNLOCKED.

        Raises:
            InvalidStateError: A master password is already set up
        """
        with self._lock:
            if self.state is not VaultState.UNINITIALIZED:
                raise InvalidStateError("Master password is already set up")

            self._store_verifier(password)
            self._master_password = password
            self.failed_attempts = 0
            self._lockout_until = None

        self.audit.log_vault_event(
            EventType.VAULT_CREATED,
            "Master password set up",
            owner_id=self.owner_id,
        )

    def unlock(self, password: str):
        """
        Unlock with the master password. LOCKED -> UNLOCKED.

        Raises:
            InvalidStateError: Vault is not in the LOCKED state
            UnlockThrottled: Called during a backoff window
            AuthenticationError: Password does not match
        """
        with self._lock:
            state = self.state
            if state is VaultState.UNLOCKED:
                raise InvalidStateError("Vault is already unlocked")
            if state is VaultState.UNINITIALIZED:
                raise InvalidStateError("No master password set up. Run setup first.")

            remaining = self.retry_after()
            if remaining > 0:
                self.audit.log_vault_event(
                    EventType.VAULT_UNLOCK_FAILED,
                    f"Unlock attempt during lockout period ({remaining}s remaining)",
                    owner_id=self.owner_id,
                    severity=EventSeverity.ALERT,
                )
                raise UnlockThrottled(remaining)

            verifier = self.verifier_store.get_value(self.owner_id, VERIFIER_KEY)
            if not verify_password(password, verifier):
                self._handle_failed_unlock()

            canary = self.verifier_store.get_value(self.owner_id, CANARY_KEY)
            if canary:
                try:
                    if self.cipher.decrypt(canary, password) != CANARY_PLAINTEXT:
                        raise DecryptionError()
                except DecryptionError:
                    logger.warning(
                        "Verifier matched but canary did not decrypt for owner %s",
                        self.owner_id,
                    )
                    self._handle_failed_unlock()

            if canary is None or is_legacy_verifier(verifier):
                # Upgrade vaults written without a canary or with the unsalted digest
                self._store_verifier(password)
                logger.info("Upgraded master password verifier for owner %s", self.owner_id)

            self._master_password = password
            self.failed_attempts = 0
            self._lockout_until = None

        self.audit.log_vault_event(
            EventType.VAULT_UNLOCKED,
            "Vault unlocked successfully",
            owner_id=self.owner_id,
        )

    def _handle_failed_unlock(self):
        """Record a failed unlock, start backoff if due, and raise."""
        self.failed_attempts += 1
        over = self.failed_attempts - self.free_attempts
        delay = min(2 ** (over - 1), self.max_backoff) if over > 0 else 0
        if delay:
            self._lockout_until = self._clock() + delay

        self.audit.log_vault_event(
            EventType.VAULT_UNLOCK_FAILED,
            f"Vault unlock failed: incorrect password (attempt {self.failed_attempts}, {delay}s lockout)",
            owner_id=self.owner_id,
            severity=EventSeverity.ALERT,
        )

        if delay:
            raise AuthenticationError(
                f"Incorrect master password. Please wait {delay} seconds before trying again."
            )
        raise AuthenticationError()

    def lock(self):
        """Discard the master password. UNLOCKED -> LOCKED."""
        with self._lock:
            if self._master_password is None:
                raise InvalidStateError("Vault is not unlocked")
            self._master_password = None

        self.audit.log_vault_event(
            EventType.VAULT_LOCKED,
            "Vault locked",
            owner_id=self.owner_id,
        )

    def change_master_password(self, current: str, new: str) -> RotationResult:
        """
        Replace the master password and re-encrypt every credential.

        The credential list is taken first, then the new verifier is
        persisted (restored to the old one if that write fails). Each
        credential is then decrypted with `current` and re-encrypted with
        `new` on a thread pool; failures are logged and collected, never
        rolled back. The vault is left LOCKED so the next unlock uses the
        new password. Secrets cannot be encrypted with the old password
        while this runs: encrypt_secret() waits on the same lock.

        Raises:
            VaultLockedError: Vault is not unlocked
            AuthenticationError: `current` does not match the verifier
            Exception: Storage errors before the verifier changes; the
                vault is then still UNLOCKED under `current`

        Returns:
            RotationResult (call raise_for_failures() to get an exception)
        """
        with self._lock:
            self._require_unlocked()

            verifier = self.verifier_store.get_value(self.owner_id, VERIFIER_KEY)
            if not verify_password(current, verifier):
                self.audit.log_vault_event(
                    EventType.VAULT_UNLOCK_FAILED,
                    "Master password change rejected: current password incorrect",
                    owner_id=self.owner_id,
                    severity=EventSeverity.ALERT,
                )
                raise AuthenticationError("Current master password is incorrect")

            credentials = self.credential_store.list_credentials(self.owner_id)

            previous = {
                key: self.verifier_store.get_value(self.owner_id, key)
                for key in (VERIFIER_KEY, CANARY_KEY)
            }
            try:
                self._store_verifier(new)
            except Exception:
                logger.error(
                    "Storing new verifier failed for owner %s, restoring the old one",
                    self.owner_id,
                )
                self._restore_values(previous)
                raise

            # From here on the stored verifier belongs to `new`
            try:
                result = self._rotate_credentials(credentials, current, new)
            finally:
                self._master_password = None
                self.failed_attempts = 0
                self._lockout_until = None

        for credential_id in result.failed_ids:
            self.audit.log_vault_event(
                EventType.VAULT_ROTATION_FAILED,
                "Credential could not be re-encrypted",
                owner_id=self.owner_id,
                severity=EventSeverity.INVESTIGATE,
                details={"password_id": credential_id, "error": result.errors[credential_id]},
            )
        self.audit.log_vault_event(
            EventType.VAULT_ROTATED,
            f"Master password changed ({result.rotated} rotated, {result.failed} failed)",
            owner_id=self.owner_id,
            severity=EventSeverity.INFO if result.ok else EventSeverity.INVESTIGATE,
            details={"rotated": result.rotated, "failed": result.failed},
        )
        return result

    def _rotate_one(self, credential: Credential, current: str, new: str) -> str:
        plaintext = self.cipher.decrypt(credential.encrypted_password, current)
        updated = self.credential_store.update_credential(
            credential.id,
            self.owner_id,
            {"encrypted_password": self.cipher.encrypt(plaintext, new)},
        )
        if updated is None:
            raise LookupError("Credential no longer exists")
        return credential.id

    def _rotate_credentials(
        self, credentials: List[Credential], current: str, new: str
    ) -> RotationResult:
        result = RotationResult()
        if not credentials:
            return result

        logger.info(
            "Rotating %d credential(s) for owner %s", len(credentials), self.owner_id
        )

        workers = min(self.rotation_workers, len(credentials))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._rotate_one, credential, current, new): credential.id
                for credential in credentials
            }
            for future in as_completed(futures):
                credential_id = futures[future]
                try:
                    future.result()
                    result.rotated += 1
                except DecryptionError as e:
                    logger.error("Rotation failed for credential %s: %s", credential_id, e)
                    result.errors[credential_id] = str(e)
                except Exception as e:
                    logger.error(
                        "Rotation failed for credential %s: %s: %s",
                        credential_id, type(e).__name__, e,
                    )
                    result.errors[credential_id] = f"{type(e).__name__}: {e}"

        result.failed_ids = [c.id for c in credentials if c.id in result.errors]
        result.failed = len(result.failed_ids)
        return result

    def reset_master_password(self, confirm: bool = False, purge_credentials: bool = False) -> int:
        """
        Forget the master password. LOCKED -> UNINITIALIZED.

        Deletes the verifier and canary without decrypting anything. Use
        export_vault() first; stored secrets become unrecoverable.

        Args:
            confirm: Must be True to proceed
            purge_credentials: Also delete every credential and category

        Raises:
            InvalidStateError: Vault is not LOCKED
            ResetNotConfirmed: confirm was not given (carries the warning)

        Returns:
            Number of credentials deleted
        """
        with self._lock:
            state = self.state
            if state is VaultState.UNLOCKED:
                raise InvalidStateError("Lock the vault before resetting the master password")
            if state is VaultState.UNINITIALIZED:
                raise InvalidStateError("No master password set up")
            if not confirm:
                raise ResetNotConfirmed(RESET_WARNING)

            self.verifier_store.delete_value(self.owner_id, VERIFIER_KEY)
            self.verifier_store.delete_value(self.owner_id, CANARY_KEY)
            purged = 0
            if purge_credentials:
                purged = self.credential_store.purge_owner(self.owner_id)
            self.failed_attempts = 0
            self._lockout_until = None

        self.audit.log_vault_event(
            EventType.VAULT_RESET,
            "Master password reset",
            owner_id=self.owner_id,
            severity=EventSeverity.CRITICAL,
            details={"purge_credentials": purge_credentials, "purged": purged},
        )
        return purged

    # Secrets

    def _require_unlocked(self) -> str:
        password = self._master_password
        if password is None:
            raise VaultLockedError()
        return password

    def _store_verifier(self, password: str):
        self.verifier_store.set_value(
            self.owner_id, VERIFIER_KEY, make_verifier(password, self.cipher.iterations)
        )
        self.verifier_store.set_value(
            self.owner_id, CANARY_KEY, self.cipher.encrypt(CANARY_PLAINTEXT, password)
        )

    def _restore_values(self, previous: Dict[str, Optional[str]]):
        for key, value in previous.items():
            if value is None:
                self.verifier_store.delete_value(self.owner_id, key)
            else:
                self.verifier_store.set_value(self.owner_id, key, value)

    def encrypt_secret(self, plaintext: str) -> str:
        """
        Encrypt with the in-memory master password. Requires UNLOCKED.

        Holds the manager lock, so a call made during a master password
        change waits for it and then fails with VaultLockedError.
        """
        with self._lock:
            return self.cipher.encrypt(plaintext, self._require_unlocked())

    def decrypt_secret(self, transport: str) -> str:
        """Decrypt with the in-memory master password. Requires UNLOCKED."""
        with self._lock:
            return self.cipher.decrypt(transport, self._require_unlocked())

    def export_vault(self) -> Dict[str, Any]:
        """
        Export the owner's vault as a JSON-ready dict.

        UNLOCKED: every credential carries its plaintext `password`;
        credentials that fail to decrypt keep only `encrypted_password` and
        are listed under `undecryptable`. Otherwise only ciphertext is
        exported.
        """
        with self._lock:
            password = self._master_password
            credentials = self.credential_store.list_credentials(self.owner_id)
            categories = self.credential_store.list_categories(self.owner_id)

            exported = []
            undecryptable = []
            for credential in credentials:
                entry = credential.to_dict()
                if password is not None:
                    try:
                        entry["password"] = self.cipher.decrypt(credential.encrypted_password, password)
                        del entry["encrypted_password"]
                    except DecryptionError:
                        undecryptable.append(credential.id)
                exported.append(entry)

        self.audit.log_vault_event(
            EventType.VAULT_EXPORTED,
            f"Vault exported ({len(exported)} passwords)",
            owner_id=self.owner_id,
            severity=EventSeverity.INFO if password is None else EventSeverity.INVESTIGATE,
            details={"count": len(exported), "plaintext": password is not None},
        )

        return {
            "owner_id": self.owner_id,
            "exported_at": datetime.utcnow().isoformat(),
            "encrypted": password is None,
            "passwords": exported,
            "categories": [c.to_dict() for c in categories],
            "undecryptable": undecryptable,
        }
