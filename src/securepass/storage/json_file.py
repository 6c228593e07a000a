# Storage - JSON file backend
#
# One JSON document on disk (<data_dir>/local-data.json), read, modified
# and rewritten under a lock for every operation. Meant for single-user
# local persistence, not for concurrent processes.
#
# Document shape:
#   {"categories": {id: {...}}, "passwords": {id: {...}},
#    "verifiers": {owner_id: {name: value}}}

import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

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

logger = logging.getLogger(__name__)

DATA_FILENAME = "local-data.json"


def _empty_document() -> Dict[str, Dict[str, Any]]:
    return {"categories": {}, "passwords": {}, "verifiers": {}}


class JsonFileStorage(StorageBackend):
    """
    File-backed storage.

    Writes go to a temp file first and are renamed into place, so a crash
    mid-write leaves the previous document intact.
    """

    name = "json"

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / DATA_FILENAME
        self._lock = threading.RLock()
        self._ensure_file()

    def _ensure_file(self):
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._write(_empty_document())
            logger.info(f"Created local data file at {self.path}")

    def _read(self) -> Dict[str, Dict[str, Any]]:
        with open(self.path, "r", encoding="utf-8") as f:
            doc = json.load(f)
        for key, value in _empty_document().items():
            doc.setdefault(key, value)
        return doc

    def _write(self, doc: Dict[str, Dict[str, Any]]):
        tmp_path = str(self.path) + ".tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    @contextmanager
    def _transaction(self):
        """Read the document, yield it for mutation, write it back."""
        with self._lock:
            doc = self._read()
            yield doc
            self._write(doc)

    def _owned_credential(self, doc, credential_id: str, owner_id: str) -> Optional[Credential]:
        raw = doc["passwords"].get(credential_id)
        if raw is None or raw.get("owner_id") != owner_id:
            return None
        return Credential.from_dict(raw)

    def _owned_category(self, doc, category_id: str, owner_id: str) -> Optional[Category]:
        raw = doc["categories"].get(category_id)
        if raw is None or raw.get("owner_id") != owner_id:
            return None
        return Category.from_dict(raw)

    # Credentials

    def list_credentials(self, owner_id: str, search: Optional[str] = None) -> List[Credential]:
        with self._lock:
            doc = self._read()
        found = []
        for raw in doc["passwords"].values():
            if raw.get("owner_id") != owner_id:
                continue
            credential = Credential.from_dict(raw)
            if matches_search(credential, search):
                found.append(credential)
        return sorted(found, key=lambda c: c.updated_at, reverse=True)

    def get_credential(self, credential_id: str, owner_id: str) -> Optional[Credential]:
        with self._lock:
            doc = self._read()
        return self._owned_credential(doc, credential_id, owner_id)

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
        with self._transaction() as doc:
            doc["passwords"][credential.id] = credential.to_dict()
        return credential

    def update_credential(
        self, credential_id: str, owner_id: str, fields: Dict[str, Any]
    ) -> Optional[Credential]:
        with self._transaction() as doc:
            existing = self._owned_credential(doc, credential_id, owner_id)
            if existing is None:
                return None
            raw = existing.to_dict()
            raw.update(pick_fields(fields, CREDENTIAL_FIELDS))
            raw["updated_at"] = datetime.utcnow().isoformat()
            doc["passwords"][credential_id] = raw
        return Credential.from_dict(raw)

    def delete_credential(self, credential_id: str, owner_id: str) -> bool:
        with self._transaction() as doc:
            if self._owned_credential(doc, credential_id, owner_id) is None:
                return False
            del doc["passwords"][credential_id]
        return True

    # Categories

    def list_categories(self, owner_id: str) -> List[Category]:
        with self._lock:
            doc = self._read()
        found = [
            Category.from_dict(raw) for raw in doc["categories"].values()
            if raw.get("owner_id") == owner_id
        ]
        return sorted(found, key=lambda c: c.name or "")

    def create_category(self, owner_id: str, fields: Dict[str, Any]) -> Category:
        category = Category(
            id=new_id(),
            owner_id=owner_id,
            name=fields.get("name", ""),
            color=fields.get("color") or DEFAULT_CATEGORY_COLOR,
        )
        with self._transaction() as doc:
            doc["categories"][category.id] = category.to_dict()
        return category

    def update_category(
        self, category_id: str, owner_id: str, fields: Dict[str, Any]
    ) -> Optional[Category]:
        with self._transaction() as doc:
            existing = self._owned_category(doc, category_id, owner_id)
            if existing is None:
                return None
            raw = existing.to_dict()
            raw.update(pick_fields(fields, CATEGORY_FIELDS))
            doc["categories"][category_id] = raw
        return Category.from_dict(raw)

    def delete_category(self, category_id: str, owner_id: str) -> bool:
        with self._transaction() as doc:
            if self._owned_category(doc, category_id, owner_id) is None:
                return False
            del doc["categories"][category_id]
            for raw in doc["passwords"].values():
                if raw.get("owner_id") == owner_id and raw.get("category_id") == category_id:
                    raw["category_id"] = None
        return True

    # Verifier values

    def get_value(self, owner_id: str, name: str) -> Optional[str]:
        with self._lock:
            doc = self._read()
        return doc["verifiers"].get(owner_id, {}).get(name)

    def set_value(self, owner_id: str, name: str, value: str) -> None:
        with self._transaction() as doc:
            doc["verifiers"].setdefault(owner_id, {})[name] = value

    def delete_value(self, owner_id: str, name: str) -> bool:
        with self._transaction() as doc:
            values = doc["verifiers"].get(owner_id, {})
            if name not in values:
                return False
            del values[name]
        return True
