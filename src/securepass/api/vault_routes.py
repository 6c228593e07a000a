# Vault API - Master password lifecycle endpoints
#
# - Status / setup / unlock / lock
# - Change master password (re-encrypts every stored password)
# - Reset (forgotten master password, destructive)
#
# Handlers are sync so PBKDF2 work runs in the threadpool, not on the loop.

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..vault import MasterPasswordManager, ResetNotConfirmed, VaultError
from .services import get_manager, vault_http_error

router = APIRouter(prefix="/api/vault", tags=["vault"])

MIN_MASTER_PASSWORD_LENGTH = 8


# Request Models
class SetupVaultRequest(BaseModel):
    master_password: str = Field(..., min_length=MIN_MASTER_PASSWORD_LENGTH)


class UnlockVaultRequest(BaseModel):
    master_password: str = Field(..., min_length=1)


class ChangeMasterPasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_MASTER_PASSWORD_LENGTH)


class ResetVaultRequest(BaseModel):
    confirm: bool = False
    purge_credentials: bool = False


# Endpoints

@router.get("/status")
def get_vault_status(manager: MasterPasswordManager = Depends(get_manager)):
    """
    Get the caller's vault state.

    Returns state (uninitialized | locked | unlocked), failed unlock count
    and seconds until the next unlock attempt is accepted.
    """
    return {"owner_id": manager.owner_id, **manager.status()}


@router.post("/setup")
def setup_vault(
    request: SetupVaultRequest,
    manager: MasterPasswordManager = Depends(get_manager),
):
    """
    Set the first master password (at least 8 characters).

    The vault is unlocked afterwards.
    """
    try:
        manager.setup(request.master_password)
    except VaultError as e:
        raise vault_http_error(e)

    return {"success": True, "message": "Master password set up", "state": manager.state.value}


@router.post("/unlock")
def unlock_vault(
    request: UnlockVaultRequest,
    manager: MasterPasswordManager = Depends(get_manager),
):
    """
    Unlock the vault with the master password.

    401 on a wrong password, 429 (with Retry-After) while backing off.
    """
    try:
        manager.unlock(request.master_password)
    except VaultError as e:
        raise vault_http_error(e)

    return {"success": True, "message": "Vault unlocked successfully!"}


@router.post("/lock")
def lock_vault(manager: MasterPasswordManager = Depends(get_manager)):
    """Lock the vault (forget the master password)."""
    try:
        manager.lock()
    except VaultError as e:
        raise vault_http_error(e)

    return {"success": True, "message": "Vault locked"}


@router.post("/change-master-password")
def change_master_password(
    request: ChangeMasterPasswordRequest,
    manager: MasterPasswordManager = Depends(get_manager),
):
    """
    Change the master password and re-encrypt every stored password.

    Partial failures do not fail the request: the response reports how
    many passwords were rotated and which ones were left under the old
    master password. The vault is locked afterwards.
    """
    try:
        result = manager.change_master_password(
            request.current_password, request.new_password
        )
    except VaultError as e:
        raise vault_http_error(e)

    return {"success": result.ok, "state": manager.state.value, **result.to_dict()}


@router.post("/reset")
def reset_vault(
    request: ResetVaultRequest,
    manager: MasterPasswordManager = Depends(get_manager),
):
    """
    Forget the master password (vault must be locked).

    Without confirm=true nothing is deleted and 409 carries the data loss
    warning plus the export endpoint to use first.
    """
    try:
        purged = manager.reset_master_password(
            confirm=request.confirm,
            purge_credentials=request.purge_credentials,
        )
    except ResetNotConfirmed as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(e), "export_url": "/api/export"},
        )
    except VaultError as e:
        raise vault_http_error(e)

    return {"success": True, "state": manager.state.value, "purged": purged}
