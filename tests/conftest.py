"""
Shared pytest fixtures for the SecurePass test suite.

Autouse fixtures below isolate tests from the live application data:
  - Audit logger -> temp directory (prevents fake events in ./audit_logs)
  - Settings     -> memory storage, minimum KDF cost

Vault fixtures use the minimum PBKDF2 iteration count so the suite stays
fast; the algorithm is identical at any cost.
"""

import pytest

from securepass.storage import MemoryStorage
from securepass.vault import MasterPasswordManager, VaultCipher
from securepass.vault.encryption import MIN_PBKDF2_ITERATIONS

TEST_ITERATIONS = MIN_PBKDF2_ITERATIONS


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger().log_event(...)`` writes into the real
    ``./audit_logs/`` directory.
    """
    import securepass.core.audit_log as audit_mod

    # Reset the singleton so the next call to get_audit_logger() creates
    # a fresh instance pointing at the temp directory.
    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None
    monkeypatch.setenv("SECUREPASS_AUDIT_LOG_DIR", str(tmp_path / "audit_logs"))

    yield

    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_settings(tmp_path, monkeypatch):
    """Fresh settings per test: memory storage, data dir under tmp_path."""
    import securepass.core.config as config_mod

    for name in ("SECUREPASS_STORAGE", "SECUREPASS_DATABASE_URL", "DEV_LOCAL", "DEV_LOCAL_PERSIST"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SECUREPASS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SECUREPASS_KDF_ITERATIONS", str(TEST_ITERATIONS))

    old_settings = config_mod._settings
    config_mod._settings = None
    yield
    config_mod._settings = old_settings


@pytest.fixture
def cipher():
    """GCM cipher at the minimum KDF cost."""
    return VaultCipher(iterations=TEST_ITERATIONS)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def audit_logger(tmp_path):
    from securepass.core.audit_log import AuditLogger

    logger = AuditLogger(log_dir=tmp_path / "manager_audit")
    yield logger
    logger.close()


@pytest.fixture
def manager(storage, cipher, audit_logger):
    """Uninitialized vault for owner 'alice'."""
    return MasterPasswordManager(
        "alice",
        verifier_store=storage,
        credential_store=storage,
        cipher=cipher,
        audit_logger=audit_logger,
    )
