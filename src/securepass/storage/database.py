"""
Relational storage backend.

SQLAlchemy ORM models for:
- passwords: Stored credentials (password field is ciphertext only)
- categories: Per-owner credential categories
- vault_config: Per-owner key/value rows (master password verifier, canary)

Works with any SQLAlchemy URL; defaults to a SQLite file in the data dir.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, Column, DateTime, Integer, String, Text, Index, create_engine, func, or_,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from .base import (
    CATEGORY_FIELDS,
    CREDENTIAL_FIELDS,
    Category,
    Credential,
    DEFAULT_CATEGORY_COLOR,
    PasswordStats,
    STRONG_SCORE,
    StorageBackend,
    WEAK_SCORE,
    new_id,
    pick_fields,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

LIKE_ESCAPE = "\\"


def _escape_like(term: str) -> str:
    """Make % and _ match literally, like the in-memory substring search."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class PasswordModel(Base):
    """
    Stored credential.

    Attributes:
        id: UUID primary key
        owner_id: Owning user id
        encrypted_password: base64(salt + iv + ciphertext), never plaintext
        strength: 0-4 score of the plaintext at save time
    """
    __tablename__ = "passwords"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(255), nullable=False)
    website = Column(String(512), nullable=False, default="")
    username = Column(String(512), nullable=False, default="")
    encrypted_password = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    category_id = Column(String(36), nullable=True)
    is_favorite = Column(Boolean, default=False, nullable=False)
    strength = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_password_owner", "owner_id"),
        Index("idx_password_updated_at", "updated_at"),
    )

    def to_record(self) -> Credential:
        return Credential(
            id=self.id,
            owner_id=self.owner_id,
            website=self.website,
            username=self.username,
            encrypted_password=self.encrypted_password,
            notes=self.notes,
            category_id=self.category_id,
            is_favorite=bool(self.is_favorite),
            strength=self.strength or 0,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class CategoryModel(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    color = Column(String(16), default=DEFAULT_CATEGORY_COLOR, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_category_owner", "owner_id"),
    )

    def to_record(self) -> Category:
        return Category(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            color=self.color,
            created_at=self.created_at,
        )


class VaultConfigModel(Base):
    """Per-owner vault metadata (verifier, canary)."""
    __tablename__ = "vault_config"

    owner_id = Column(String(255), primary_key=True)
    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DatabaseStorage(StorageBackend):
    """
    SQLAlchemy-backed storage.

    Each call opens its own session, so one instance can be shared across
    threads (the rotation worker pool included).
    """

    name = "database"

    def __init__(self, database_url: str, echo: bool = False):
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)
        logger.info(f"Database storage ready ({self.engine.url.render_as_string(hide_password=True)})")

    @contextmanager
    def session(self):
        """Transactional session scope: commit on success, rollback on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()

    def _owned(self, session, model, record_id: str, owner_id: str):
        row = session.get(model, record_id)
        if row is None or row.owner_id != owner_id:
            return None
        return row

    # Credentials

    def list_credentials(self, owner_id: str, search: Optional[str] = None) -> List[Credential]:
        with self.session() as session:
            query = session.query(PasswordModel).filter(PasswordModel.owner_id == owner_id)
            if search:
                pattern = f"%{_escape_like(search.lower())}%"
                query = query.filter(or_(
                    func.lower(PasswordModel.website).like(pattern, escape=LIKE_ESCAPE),
                    func.lower(PasswordModel.username).like(pattern, escape=LIKE_ESCAPE),
                ))
            rows = query.order_by(PasswordModel.updated_at.desc()).all()
            return [row.to_record() for row in rows]

    def get_credential(self, credential_id: str, owner_id: str) -> Optional[Credential]:
        with self.session() as session:
            row = self._owned(session, PasswordModel, credential_id, owner_id)
            return row.to_record() if row else None

    def create_credential(self, owner_id: str, fields: Dict[str, Any]) -> Credential:
        now = datetime.utcnow()
        values = pick_fields(fields, CREDENTIAL_FIELDS)
        values.setdefault("website", "")
        values.setdefault("username", "")
        with self.session() as session:
            row = PasswordModel(
                id=new_id(),
                owner_id=owner_id,
                created_at=now,
                updated_at=now,
                **values,
            )
            session.add(row)
            session.flush()
            return row.to_record()

    def update_credential(
        self, credential_id: str, owner_id: str, fields: Dict[str, Any]
    ) -> Optional[Credential]:
        with self.session() as session:
            row = self._owned(session, PasswordModel, credential_id, owner_id)
            if row is None:
                return None
            for key, value in pick_fields(fields, CREDENTIAL_FIELDS).items():
                setattr(row, key, value)
            row.updated_at = datetime.utcnow()
            session.flush()
            return row.to_record()

    def delete_credential(self, credential_id: str, owner_id: str) -> bool:
        with self.session() as session:
            row = self._owned(session, PasswordModel, credential_id, owner_id)
            if row is None:
                return False
            session.delete(row)
            return True

    def get_stats(self, owner_id: str) -> PasswordStats:
        with self.session() as session:
            owned = session.query(PasswordModel).filter(PasswordModel.owner_id == owner_id)
            return PasswordStats(
                total=owned.count(),
                strong=owned.filter(PasswordModel.strength >= STRONG_SCORE).count(),
                weak=owned.filter(PasswordModel.strength <= WEAK_SCORE).count(),
                categories=session.query(CategoryModel)
                .filter(CategoryModel.owner_id == owner_id)
                .count(),
            )

    # Categories

    def list_categories(self, owner_id: str) -> List[Category]:
        with self.session() as session:
            rows = (
                session.query(CategoryModel)
                .filter(CategoryModel.owner_id == owner_id)
                .order_by(CategoryModel.name)
                .all()
            )
            return [row.to_record() for row in rows]

    def create_category(self, owner_id: str, fields: Dict[str, Any]) -> Category:
        with self.session() as session:
            row = CategoryModel(
                id=new_id(),
                owner_id=owner_id,
                name=fields.get("name", ""),
                color=fields.get("color") or DEFAULT_CATEGORY_COLOR,
                created_at=datetime.utcnow(),
            )
            session.add(row)
            session.flush()
            return row.to_record()

    def update_category(
        self, category_id: str, owner_id: str, fields: Dict[str, Any]
    ) -> Optional[Category]:
        with self.session() as session:
            row = self._owned(session, CategoryModel, category_id, owner_id)
            if row is None:
                return None
            for key, value in pick_fields(fields, CATEGORY_FIELDS).items():
                setattr(row, key, value)
            session.flush()
            return row.to_record()

    def delete_category(self, category_id: str, owner_id: str) -> bool:
        with self.session() as session:
            row = self._owned(session, CategoryModel, category_id, owner_id)
            if row is None:
                return False
            session.query(PasswordModel).filter(
                PasswordModel.owner_id == owner_id,
                PasswordModel.category_id == category_id,
            ).update({PasswordModel.category_id: None}, synchronize_session=False)
            session.delete(row)
            return True

    # Verifier values

    def get_value(self, owner_id: str, name: str) -> Optional[str]:
        with self.session() as session:
            row = session.get(VaultConfigModel, (owner_id, name))
            return row.value if row else None

    def set_value(self, owner_id: str, name: str, value: str) -> None:
        with self.session() as session:
            row = session.get(VaultConfigModel, (owner_id, name))
            if row is None:
                session.add(VaultConfigModel(owner_id=owner_id, key=name, value=value))
            else:
                row.value = value

    def delete_value(self, owner_id: str, name: str) -> bool:
        with self.session() as session:
            row = session.get(VaultConfigModel, (owner_id, name))
            if row is None:
                return False
            session.delete(row)
            return True
