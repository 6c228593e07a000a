# Core - Configuration
#
# Validated settings loaded from the environment (and a .env file, if one
# exists in the working directory). Never log secrets from here.
#
#   SECUREPASS_STORAGE               memory | json | database
#   SECUREPASS_DATA_DIR              directory for local-data.json / securepass.db
#   SECUREPASS_DATABASE_URL          SQLAlchemy URL (database storage)
#   SECUREPASS_KDF_ITERATIONS        PBKDF2 iterations (>= 100000)
#   SECUREPASS_CIPHER_MODE           gcm | cbc
#   SECUREPASS_LOCAL_USER            owner id when no identity header is sent
#   SECUREPASS_AUDIT_LOG_DIR         audit log directory
#   SECUREPASS_UNLOCK_FREE_ATTEMPTS  failed unlocks before backoff starts
#   SECUREPASS_UNLOCK_MAX_BACKOFF    backoff ceiling in seconds
#   SECUREPASS_ROTATION_WORKERS      thread pool size for re-encryption
#
# Legacy switches: DEV_LOCAL=true selects memory storage, and
# DEV_LOCAL_PERSIST=true together with it selects the JSON file.

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

from ..vault.encryption import CIPHER_MODES, MIN_PBKDF2_ITERATIONS, PBKDF2_ITERATIONS

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("memory", "json", "database")

ENV_PREFIX = "SECUREPASS_"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Validated application settings."""

    storage: str = Field(default="memory")
    data_dir: Path = Field(default=Path("data"))
    database_url: Optional[str] = None
    kdf_iterations: int = Field(default=PBKDF2_ITERATIONS, ge=MIN_PBKDF2_ITERATIONS)
    cipher_mode: str = Field(default="gcm")
    local_user: str = Field(default="local-user", min_length=1)
    audit_log_dir: Path = Field(default=Path("audit_logs"))
    unlock_free_attempts: int = Field(default=3, ge=0)
    unlock_max_backoff: int = Field(default=16, ge=1)
    rotation_workers: int = Field(default=4, ge=1, le=64)

    @field_validator("storage")
    @classmethod
    def validate_storage(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in STORAGE_BACKENDS:
            raise ValueError(f"Unsupported storage backend: {v}")
        return v

    @field_validator("cipher_mode")
    @classmethod
    def validate_cipher_mode(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in CIPHER_MODES:
            raise ValueError(f"Unsupported cipher mode: {v}")
        return v

    @property
    def resolved_database_url(self) -> str:
        """Configured database URL, or a SQLite file inside data_dir."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{(self.data_dir / 'securepass.db').as_posix()}"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            dotenv: Load a .env file first (existing variables win)

        Raises:
            pydantic.ValidationError: If a value is out of range or unknown
        """
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))

        values = {}
        for field_name in cls.model_fields:
            raw = os.getenv(ENV_PREFIX + field_name.upper())
            if raw is not None and raw != "":
                values[field_name] = raw

        if "storage" not in values and _env_flag("DEV_LOCAL"):
            values["storage"] = "json" if _env_flag("DEV_LOCAL_PERSIST") else "memory"

        settings = cls(**values)
        logger.debug(
            "Loaded settings: storage=%s cipher_mode=%s kdf_iterations=%d",
            settings.storage, settings.cipher_mode, settings.kdf_iterations,
        )
        return settings


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Optional[Settings]) -> None:
    """Replace the global settings (tests, embedding)."""
    global _settings
    _settings = settings
