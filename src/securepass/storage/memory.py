# Storage - In-memory backend
#
# Process-local dicts guarded by an RLock. Used for local development and
# tests; everything is gone when the process exits.

import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .base import (
    CATEGORY_FIELDS,
    CREDENTIAL_FIELDS,
    Category,
    Credential,
    DEFAULT_CATEGORY_COLOR,
    StorageBackend,
    matches_search,
    new_id,
    pick_fields,
)


class MemoryStorage(StorageBackend):
    """Thread-safe in-memory storage. Returns copies, never live records."""

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._credentials: Dict[str, Credential] = {}
        self._categories: Dict[str, Category] = {}
        self._values: Dict[Tuple[str, str], str] = {}

    # Credentials

    def list_credentials(self, owner_id: str, search: Optional[str] = None) -> List[Credential]:
        with self._lock:
            found = [
                replace(c) for c in self._credentials.values()
                if c.owner_id == owner_id and matches_search(c, search)
            ]
        return sorted(found, key=lambda c: c.updated_at, reverse=True)

    def get_credential(self, credential_id: str, owner_id: str) -> Optional[Credential]:
        with self._lock:
            credential = self._credentials.get(credential_id)
            if credential is None or credential.owner_id != owner_id:
                return None
            return replace(credential)

    def create_credential(self, owner_id: str, fields: Dict[str, Any]) -> Credential:
        now = datetime.utcnow()
        credential = Credential(
            id=new_id(),
            owner_id=owner_id,
            website=fields.get("website", ""),
            username=fields.get("username", ""),
            encrypted_password=fields.get("encrypted_password", ""),
            notes=fields.get("notes"),
            category_id=fields.get("category_id"),
            is_favorite=bool(fields.get("is_favorite", False)),
            strength=int(fields.get("strength") or 0),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._credentials[credential.id] = credential
        return replace(credential)

    def update_credential(
        self, credential_id: str, owner_id: str, fields: Dict[str, Any]
    ) -> Optional[Credential]:
        with self._lock:
            existing = self._credentials.get(credential_id)
            if existing is None or existing.owner_id != owner_id:
                return None
            updated = replace(
                existing,
                updated_at=datetime.utcnow(),
                **pick_fields(fields, CREDENTIAL_FIELDS),
            )
            self._credentials[credential_id] = updated
            return replace(updated)

    def delete_credential(self, credential_id: str, owner_id: str) -> bool:
        with self._lock:
            existing = self._credentials.get(credential_id)
            if existing is None or existing.owner_id != owner_id:
                return False
            del self._credentials[credential_id]
            return True

    # Categories

    def list_categories(self, owner_id: str) -> List[Category]:
        with self._lock:
            found = [replace(c) for c in self._categories.values() if c.owner_id == owner_id]
        return sorted(found, key=lambda c: c.name or "")

    def create_category(self, owner_id: str, fields: Dict[str, Any]) -> Category:
        category = Category(
            id=new_id(),
            owner_id=owner_id,
            name=fields.get("name", ""),
            color=fields.get("color") or DEFAULT_CATEGORY_COLOR,
        )
        with self._lock:
            self._categories[category.id] = category
        return replace(category)

    def update_category(
        self, category_id: str, owner_id: str, fields: Dict[str, Any]
    ) -> Optional[Category]:
        with self._lock:
            existing = self._categories.get(category_id)
            if existing is None or existing.owner_id != owner_id:
                return None
            updated = replace(existing, **pick_fields(fields, CATEGORY_FIELDS))
            self._categories[category_id] = updated
            return replace(updated)

    def delete_category(self, category_id: str, owner_id: str) -> bool:
        with self._lock:
            existing = self._categories.get(category_id)
            if existing is None or existing.owner_id != owner_id:
                return False
            del self._categories[category_id]
            for credential_id, credential in self._credentials.items():
                if credential.owner_id == owner_id and credential.category_id == category_id:
                    self._credentials[credential_id] = replace(credential, category_id=None)
            return True

    # Verifier values

    def get_value(self, owner_id: str, name: str) -> Optional[str]:
        with self._lock:
            return self._values.get((owner_id, name))

    def set_value(self, owner_id: str, name: str, value: str) -> None:
        with self._lock:
            self._values[(owner_id, name)] = value

    def delete_value(self, owner_id: str, name: str) -> bool:
        with self._lock:
            return self._values.pop((owner_id, name), None) is not None
