# Password API - Credential CRUD, statistics and export
#
# Plaintext passwords only ever cross this layer in request/response
# bodies; they are encrypted with the caller's master password before
# reaching storage. Creating, reading or changing a password needs an
# unlocked vault (403 otherwise).

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from ..core.audit_log import EventSeverity, EventType
from ..storage import StorageBackend
from ..storage.base import Credential
from ..vault import MasterPasswordManager, VaultError
from ..vault.strength import calculate_strength
from .services import get_manager, get_owner_id, get_storage_backend, vault_http_error

router = APIRouter(prefix="/api", tags=["passwords"])

NO_CATEGORY = "none"


# Request Models
class CreatePasswordRequest(BaseModel):
    website: str = Field(..., min_length=1, max_length=512)
    username: str = Field(..., min_length=1, max_length=512)
    password: str = Field(..., min_length=1)
    notes: Optional[str] = None
    category_id: Optional[str] = None
    is_favorite: bool = False


class UpdatePasswordRequest(BaseModel):
    website: Optional[str] = Field(None, min_length=1, max_length=512)
    username: Optional[str] = Field(None, min_length=1, max_length=512)
    password: Optional[str] = Field(None, min_length=1)
    notes: Optional[str] = None
    category_id: Optional[str] = None
    is_favorite: Optional[bool] = None


def _public(credential: Credential) -> dict:
    """Credential as returned by the API (no ciphertext)."""
    data = credential.to_dict()
    data.pop("encrypted_password", None)
    return data


def _resolve_category(store: StorageBackend, owner_id: str, category_id: Optional[str]) -> Optional[str]:
    if not category_id or category_id == NO_CATEGORY:
        return None
    if not any(c.id == category_id for c in store.list_categories(owner_id)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown category")
    return category_id


# Endpoints

@router.get("/passwords")
def list_passwords(
    search: Optional[str] = None,
    owner_id: str = Depends(get_owner_id),
    store: StorageBackend = Depends(get_storage_backend),
):
    """
    List the caller's passwords, most recently updated first.

    Decrypted passwords are never included; use GET /api/passwords/{id}.
    """
    return [_public(c) for c in store.list_credentials(owner_id, search=search)]


@router.get("/passwords/stats")
def password_stats(
    owner_id: str = Depends(get_owner_id),
    store: StorageBackend = Depends(get_storage_backend),
):
    """Totals: all, strong (score >= 3), weak (score <= 1), categories."""
    return store.get_stats(owner_id).to_dict()


@router.post("/passwords", status_code=status.HTTP_201_CREATED)
def create_password(
    request: CreatePasswordRequest,
    manager: MasterPasswordManager = Depends(get_manager),
    store: StorageBackend = Depends(get_storage_backend),
):
    """Encrypt and store a new password. Strength is computed server-side."""
    try:
        encrypted = manager.encrypt_secret(request.password)
    except VaultError as e:
        raise vault_http_error(e)

    credential = store.create_credential(manager.owner_id, {
        "website": request.website,
        "username": request.username,
        "encrypted_password": encrypted,
        "notes": request.notes,
        "category_id": _resolve_category(store, manager.owner_id, request.category_id),
        "is_favorite": request.is_favorite,
        "strength": calculate_strength(request.password),
    })

    manager.audit.log_vault_event(
        EventType.VAULT_PASSWORD_ADDED,
        "Password added to vault",
        owner_id=manager.owner_id,
        details={"password_id": credential.id},
    )
    return _public(credential)


@router.get("/passwords/{password_id}")
def get_password(
    password_id: str,
    manager: MasterPasswordManager = Depends(get_manager),
    store: StorageBackend = Depends(get_storage_backend),
):
    """Return one password with its decrypted value."""
    credential = store.get_credential(password_id, manager.owner_id)
    if credential is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Password not found")

    try:
        plaintext = manager.decrypt_secret(credential.encrypted_password)
    except VaultError as e:
        raise vault_http_error(e)

    manager.audit.log_vault_event(
        EventType.VAULT_PASSWORD_ACCESSED,
        "Password accessed",
        owner_id=manager.owner_id,
        details={"password_id": password_id},
    )
    return {**_public(credential), "password": plaintext}


@router.put("/passwords/{password_id}")
def update_password(
    password_id: str,
    request: UpdatePasswordRequest,
    manager: MasterPasswordManager = Depends(get_manager),
    store: StorageBackend = Depends(get_storage_backend),
):
    """
    Partially update a password entry.

    A new password value needs an unlocked vault and recomputes strength.
    category_id "none" clears the category.
    """
    if store.get_credential(password_id, manager.owner_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Password not found")

    fields = request.model_dump(exclude_unset=True)
    for required in ("website", "username", "is_favorite"):
        if fields.get(required, "") is None:
            del fields[required]
    password = fields.pop("password", None)
    if password is not None:
        try:
            fields["encrypted_password"] = manager.encrypt_secret(password)
        except VaultError as e:
            raise vault_http_error(e)
        fields["strength"] = calculate_strength(password)
    if "category_id" in fields:
        fields["category_id"] = _resolve_category(store, manager.owner_id, fields["category_id"])

    updated = store.update_credential(password_id, manager.owner_id, fields)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Password not found")

    manager.audit.log_vault_event(
        EventType.VAULT_PASSWORD_UPDATED,
        "Password updated",
        owner_id=manager.owner_id,
        details={"password_id": password_id, "password_changed": password is not None},
    )
    return _public(updated)


@router.delete("/passwords/{password_id}")
def delete_password(
    password_id: str,
    manager: MasterPasswordManager = Depends(get_manager),
    store: StorageBackend = Depends(get_storage_backend),
):
    """Delete a password entry."""
    if not store.delete_credential(password_id, manager.owner_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Password not found")

    manager.audit.log_vault_event(
        EventType.VAULT_PASSWORD_DELETED,
        "Password deleted from vault",
        owner_id=manager.owner_id,
        details={"password_id": password_id},
    )
    return {"success": True, "message": "Password deleted successfully"}


@router.get("/export")
def export_vault(manager: MasterPasswordManager = Depends(get_manager)):
    """
    Download the caller's vault as JSON.

    Plaintext passwords when unlocked, ciphertext only when locked.
    """
    data = manager.export_vault()
    if data["undecryptable"]:
        manager.audit.log_vault_event(
            EventType.VAULT_ERROR,
            f"{len(data['undecryptable'])} password(s) could not be decrypted for export",
            owner_id=manager.owner_id,
            severity=EventSeverity.INVESTIGATE,
        )
    return Response(
        content=json.dumps(data, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="securepass-export.json"'},
    )
