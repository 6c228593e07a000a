# API Services - Shared backend state for route modules
#
# One storage backend and one MasterPasswordManager per owner, created on
# first use. Route modules reach them through the FastAPI dependencies
# below so tests can swap the whole set with configure_services().

import logging
import threading
from typing import Dict, List, Optional

from fastapi import Depends, HTTPException, status

from ..core.audit_log import AuditLogger
from ..core.auth import get_current_user
from ..core.config import Settings, get_settings
from ..storage import StorageBackend, get_storage
from ..vault import (
    AuthenticationError,
    DecryptionError,
    InvalidConfig,
    InvalidStateError,
    MasterPasswordManager,
    ResetNotConfirmed,
    UnlockThrottled,
    VaultCipher,
    VaultError,
    VaultLockedError,
)

logger = logging.getLogger(__name__)

# Cached per-owner managers before idle ones are evicted
MAX_SESSIONS = 1024


class SessionRegistry:
    """
    Thread-safe map of owner id -> MasterPasswordManager.

    A manager holds its owner's master password while unlocked, so every
    request from the same owner must reach the same instance.

    Once `max_sessions` managers exist, idle ones (locked, no failed
    unlocks) are dropped before a new one is added. Their state lives in
    storage, so a later request simply gets a fresh manager. Unlocked
    managers and those carrying backoff state are never evicted.
    """

    def __init__(
        self,
        storage: StorageBackend,
        settings: Settings,
        audit_logger: Optional[AuditLogger] = None,
        max_sessions: int = MAX_SESSIONS,
    ):
        self.storage = storage
        self.settings = settings
        self.audit_logger = audit_logger
        self.max_sessions = max_sessions
        self.cipher = VaultCipher(
            iterations=settings.kdf_iterations, mode=settings.cipher_mode
        )
        self._lock = threading.Lock()
        self._managers: Dict[str, MasterPasswordManager] = {}

    def get(self, owner_id: str) -> MasterPasswordManager:
        with self._lock:
            manager = self._managers.get(owner_id)
            if manager is None:
                if len(self._managers) >= self.max_sessions:
                    self._evict_idle()
                manager = MasterPasswordManager(
                    owner_id,
                    verifier_store=self.storage,
                    credential_store=self.storage,
                    cipher=self.cipher,
                    audit_logger=self.audit_logger,
                    free_attempts=self.settings.unlock_free_attempts,
                    max_backoff=self.settings.unlock_max_backoff,
                    rotation_workers=self.settings.rotation_workers,
                )
                self._managers[owner_id] = manager
            return manager

    def _evict_idle(self) -> int:
        idle = [
            owner_id for owner_id, manager in self._managers.items()
            if not manager.is_unlocked and manager.failed_attempts == 0
        ]
        for owner_id in idle:
            del self._managers[owner_id]
        if idle:
            logger.debug(f"Evicted {len(idle)} idle vault session(s)")
        return len(idle)

    def owners(self) -> List[str]:
        with self._lock:
            return list(self._managers)

    def lock_all(self) -> int:
        """Lock every unlocked session (shutdown). Returns how many were locked."""
        locked = 0
        for owner_id in self.owners():
            manager = self._managers.get(owner_id)
            if manager is not None and manager.is_unlocked:
                manager.lock()
                locked += 1
        return locked


class VaultServices:
    """Storage + session registry bundle shared by all routers."""

    def __init__(
        self,
        settings: Settings,
        storage: Optional[StorageBackend] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.settings = settings
        self.storage = storage or get_storage(settings)
        self.registry = SessionRegistry(self.storage, settings, audit_logger)

    def close(self):
        self.registry.lock_all()
        self.storage.close()


_services: Optional[VaultServices] = None
_services_lock = threading.Lock()


def configure_services(
    settings: Optional[Settings] = None,
    storage: Optional[StorageBackend] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> VaultServices:
    """Create (or replace) the global services."""
    global _services
    with _services_lock:
        if _services is not None:
            _services.close()
        _services = VaultServices(settings or get_settings(), storage, audit_logger)
        return _services


def get_services() -> VaultServices:
    global _services
    with _services_lock:
        if _services is None:
            _services = VaultServices(get_settings())
        return _services


def shutdown_services():
    global _services
    with _services_lock:
        if _services is not None:
            _services.close()
            _services = None


# Dependencies

def get_storage_backend() -> StorageBackend:
    return get_services().storage


def get_owner_id(user: dict = Depends(get_current_user)) -> str:
    return user["id"]


def get_manager(owner_id: str = Depends(get_owner_id)) -> MasterPasswordManager:
    return get_services().registry.get(owner_id)


def vault_http_error(exc: VaultError) -> HTTPException:
    """Map a vault error to the HTTP error the API returns for it."""
    if isinstance(exc, UnlockThrottled):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={"Retry-After": str(exc.retry_after)},
        )
    if isinstance(exc, AuthenticationError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, VaultLockedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, (InvalidStateError, ResetNotConfirmed)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidConfig):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, DecryptionError):
        return HTTPException(status_code=422, detail=str(exc))
    logger.error(f"Unmapped vault error: {type(exc).__name__}: {exc}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
