# Storage - Credential Store and Verifier Store interfaces
#
# Shared record types (Credential, Category, PasswordStats) and the abstract
# storage contract every backend implements. Backends only ever see
# ciphertext in Credential.encrypted_password.

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

DEFAULT_CATEGORY_COLOR = "#3b82f6"

# Stats thresholds on the 0-4 strength score
STRONG_SCORE = 3
WEAK_SCORE = 1

# Fields a caller may set through create/update
CREDENTIAL_FIELDS = (
    "website",
    "username",
    "encrypted_password",
    "notes",
    "category_id",
    "is_favorite",
    "strength",
)
CATEGORY_FIELDS = ("name", "color")


def new_id() -> str:
    return str(uuid4())


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return datetime.utcnow()


@dataclass
class Credential:
    """
    One stored login.

    Attributes:
        id: UUID string
        owner_id: Owning user id
        website: Site name or URL
        username: Login name
        encrypted_password: EncryptedSecret transport string
        notes: Optional free text
        category_id: Optional Category id
        is_favorite: Favorite flag
        strength: Strength score (0-4) of the plaintext at save time
        created_at: Creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
    """

    id: str
    owner_id: str
    website: str
    username: str
    encrypted_password: str
    notes: Optional[str] = None
    category_id: Optional[str] = None
    is_favorite: bool = False
    strength: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            website=data.get("website", ""),
            username=data.get("username", ""),
            encrypted_password=data.get("encrypted_password", ""),
            notes=data.get("notes"),
            category_id=data.get("category_id"),
            is_favorite=bool(data.get("is_favorite", False)),
            strength=int(data.get("strength") or 0),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )


@dataclass
class Category:
    id: str
    owner_id: str
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            name=data.get("name", ""),
            color=data.get("color") or DEFAULT_CATEGORY_COLOR,
            created_at=_parse_time(data.get("created_at")),
        )


@dataclass
class PasswordStats:
    """Per-owner vault statistics. strong: strength >= 3, weak: strength <= 1."""

    total: int = 0
    strong: int = 0
    weak: int = 0
    categories: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def pick_fields(fields: Dict[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    """Keep only the keys a caller is allowed to set."""
    return {k: v for k, v in fields.items() if k in allowed}


def matches_search(credential: Credential, search: Optional[str]) -> bool:
    """Case-insensitive substring match over website and username."""
    if not search:
        return True
    needle = search.lower()
    return (
        needle in (credential.website or "").lower()
        or needle in (credential.username or "").lower()
    )


def compute_stats(credentials: List[Credential], category_count: int) -> PasswordStats:
    return PasswordStats(
        total=len(credentials),
        strong=sum(1 for c in credentials if (c.strength or 0) >= STRONG_SCORE),
        weak=sum(1 for c in credentials if (c.strength or 0) <= WEAK_SCORE),
        categories=category_count,
    )


class CredentialStore(ABC):
    """
    Owner-scoped CRUD over credentials and categories.

    Every read and write is filtered by owner_id; a record belonging to
    another owner behaves exactly like a missing one.
    """

    @abstractmethod
    def list_credentials(self, owner_id: str, search: Optional[str] = None) -> List[Credential]:
        """List credentials, newest update first, optionally filtered by search."""

    @abstractmethod
    def get_credential(self, credential_id: str, owner_id: str) -> Optional[Credential]:
        """Return the credential, or None if missing or owned by someone else."""

    @abstractmethod
    def create_credential(self, owner_id: str, fields: Dict[str, Any]) -> Credential:
        """Create and return a credential from CREDENTIAL_FIELDS values."""

    @abstractmethod
    def update_credential(
        self, credential_id: str, owner_id: str, fields: Dict[str, Any]
    ) -> Optional[Credential]:
        """Apply a partial update and bump updated_at. None if not found."""

    @abstractmethod
    def delete_credential(self, credential_id: str, owner_id: str) -> bool:
        """Delete the credential. False if not found."""

    @abstractmethod
    def list_categories(self, owner_id: str) -> List[Category]:
        """List categories ordered by name."""

    @abstractmethod
    def create_category(self, owner_id: str, fields: Dict[str, Any]) -> Category:
        pass

    @abstractmethod
    def update_category(
        self, category_id: str, owner_id: str, fields: Dict[str, Any]
    ) -> Optional[Category]:
        pass

    @abstractmethod
    def delete_category(self, category_id: str, owner_id: str) -> bool:
        pass

    def get_stats(self, owner_id: str) -> PasswordStats:
        return compute_stats(
            self.list_credentials(owner_id), len(self.list_categories(owner_id))
        )

    def purge_owner(self, owner_id: str) -> int:
        """
        Delete every credential and category of an owner.

        Returns:
            Number of credentials deleted
        """
        deleted = 0
        for credential in self.list_credentials(owner_id):
            if self.delete_credential(credential.id, owner_id):
                deleted += 1
        for category in self.list_categories(owner_id):
            self.delete_category(category.id, owner_id)
        return deleted


class VerifierStore(ABC):
    """Small per-owner key/value store for the verifier and canary."""

    @abstractmethod
    def get_value(self, owner_id: str, name: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_value(self, owner_id: str, name: str, value: str) -> None:
        pass

    @abstractmethod
    def delete_value(self, owner_id: str, name: str) -> bool:
        pass


class StorageBackend(CredentialStore, VerifierStore):
    """A backend that provides both stores."""

    name = "abstract"

    def close(self) -> None:
        """Release backend resources (no-op by default)."""
