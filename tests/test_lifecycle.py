"""
Tests for MasterPasswordManager.

Covers the state machine (setup / unlock / lock / change / reset), unlock
backoff, bulk re-encryption with partial failures, and export.
"""

import hashlib
import threading

import pytest

from securepass.core.audit_log import EventType
from securepass.storage import MemoryStorage
from securepass.vault import (
    AuthenticationError,
    DecryptionError,
    InvalidStateError,
    MasterPasswordManager,
    PartialRotationFailure,
    ResetNotConfirmed,
    UnlockThrottled,
    VaultLockedError,
    VaultState,
)
from securepass.vault.lifecycle import CANARY_KEY, VERIFIER_KEY


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _add_credential(manager, storage, website, password):
    return storage.create_credential(manager.owner_id, {
        "website": website,
        "username": f"user@{website}",
        "encrypted_password": manager.encrypt_secret(password),
        "strength": 2,
    })


class TestStateMachine:

    def test_starts_uninitialized(self, manager):
        assert manager.state is VaultState.UNINITIALIZED
        assert not manager.is_unlocked

    def test_setup_unlocks(self, manager, storage):
        manager.setup("Correct1!")
        assert manager.state is VaultState.UNLOCKED
        verifier = storage.get_value("alice", VERIFIER_KEY)
        assert verifier.startswith("pbkdf2_sha256$")
        assert "Correct1!" not in verifier
        assert storage.get_value("alice", CANARY_KEY)

    def test_setup_twice_rejected(self, manager):
        manager.setup("Correct1!")
        with pytest.raises(InvalidStateError):
            manager.setup("Another1!")

    def test_lock_unlock_scenario(self, manager):
        manager.setup("Correct1!")
        manager.lock()
        assert manager.state is VaultState.LOCKED

        with pytest.raises(AuthenticationError):
            manager.unlock("WrongPass")
        assert manager.state is VaultState.LOCKED

        manager.unlock("Correct1!")
        assert manager.state is VaultState.UNLOCKED

    def test_unlock_requires_locked_state(self, manager):
        with pytest.raises(InvalidStateError):
            manager.unlock("Correct1!")
        manager.setup("Correct1!")
        with pytest.raises(InvalidStateError):
            manager.unlock("Correct1!")

    def test_lock_requires_unlocked(self, manager):
        with pytest.raises(InvalidStateError):
            manager.lock()

    def test_state_survives_new_manager(self, manager, storage, cipher, audit_logger):
        manager.setup("Correct1!")
        other = MasterPasswordManager(
            "alice", storage, storage, cipher=cipher, audit_logger=audit_logger
        )
        assert other.state is VaultState.LOCKED
        other.unlock("Correct1!")
        assert other.is_unlocked

    def test_owners_are_isolated(self, manager, storage, cipher, audit_logger):
        manager.setup("Correct1!")
        bob = MasterPasswordManager(
            "bob", storage, storage, cipher=cipher, audit_logger=audit_logger
        )
        assert bob.state is VaultState.UNINITIALIZED


class TestSecrets:

    def test_encrypt_decrypt_when_unlocked(self, manager):
        manager.setup("Correct1!")
        transport = manager.encrypt_secret("hunter2")
        assert transport != "hunter2"
        assert manager.decrypt_secret(transport) == "hunter2"

    def test_locked_vault_refuses(self, manager):
        manager.setup("Correct1!")
        transport = manager.encrypt_secret("hunter2")
        manager.lock()
        with pytest.raises(VaultLockedError):
            manager.encrypt_secret("x")
        with pytest.raises(VaultLockedError):
            manager.decrypt_secret(transport)


class TestUnlockBackoff:

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def locked(self, storage, cipher, audit_logger, clock):
        manager = MasterPasswordManager(
            "alice", storage, storage, cipher=cipher, audit_logger=audit_logger,
            free_attempts=2, max_backoff=4, clock=clock,
        )
        manager.setup("Correct1!")
        manager.lock()
        return manager

    def test_free_attempts_have_no_delay(self, locked):
        for _ in range(2):
            with pytest.raises(AuthenticationError) as exc:
                locked.unlock("WrongPass")
            assert not isinstance(exc.value, UnlockThrottled)
        assert locked.retry_after() == 0
        locked.unlock("Correct1!")

    def test_backoff_after_free_attempts(self, locked, clock):
        for _ in range(3):
            with pytest.raises(AuthenticationError):
                locked.unlock("WrongPass")
        assert locked.retry_after() == 1

        # Even the right password is refused inside the window
        with pytest.raises(UnlockThrottled) as exc:
            locked.unlock("Correct1!")
        assert exc.value.retry_after == 1

        clock.now += 1
        locked.unlock("Correct1!")
        assert locked.failed_attempts == 0

    def test_backoff_doubles_and_caps(self, locked, clock):
        delays = []
        for _ in range(6):
            with pytest.raises(AuthenticationError):
                locked.unlock("WrongPass")
            delays.append(locked.retry_after())
            clock.now += locked.retry_after()
        assert delays == [0, 0, 1, 2, 4, 4]

    def test_failures_are_audited(self, locked, audit_logger):
        with pytest.raises(AuthenticationError):
            locked.unlock("WrongPass")
        events = audit_logger.query_events(event_types=[EventType.VAULT_UNLOCK_FAILED])
        assert events
        assert events[-1]["user_context"]["owner_id"] == "alice"
        assert "WrongPass" not in str(events)


class TestCanary:

    def test_tampered_verifier_does_not_unlock(self, manager, storage, cipher):
        from securepass.vault.verifier import make_verifier

        manager.setup("Correct1!")
        manager.lock()
        # Attacker overwrites the verifier with one for their own password
        storage.set_value("alice", VERIFIER_KEY, make_verifier("Attacker1!", cipher.iterations))

        with pytest.raises(AuthenticationError):
            manager.unlock("Attacker1!")
        assert manager.state is VaultState.LOCKED

    def test_legacy_verifier_is_upgraded(self, storage, cipher, audit_logger):
        storage.set_value("alice", VERIFIER_KEY, hashlib.sha256(b"Correct1!").hexdigest())
        manager = MasterPasswordManager(
            "alice", storage, storage, cipher=cipher, audit_logger=audit_logger
        )
        assert manager.state is VaultState.LOCKED

        manager.unlock("Correct1!")
        assert storage.get_value("alice", VERIFIER_KEY).startswith("pbkdf2_sha256$")
        assert storage.get_value("alice", CANARY_KEY)


class TestChangeMasterPassword:

    def test_rotation_with_one_corrupted_credential(self, manager, storage):
        manager.setup("OldPass1!")
        first = _add_credential(manager, storage, "a.com", "alpha")
        second = _add_credential(manager, storage, "b.com", "bravo")
        third = _add_credential(manager, storage, "c.com", "charlie")
        storage.update_credential(third.id, "alice", {"encrypted_password": "Y29ycnVwdGVk"})

        result = manager.change_master_password("OldPass1!", "NewPass1!")

        assert result.rotated == 2
        assert result.failed == 1
        assert result.failed_ids == [third.id]
        assert third.id in result.errors
        assert not result.ok

        # Re-locked; the new password unlocks and decrypts rotated entries
        assert manager.state is VaultState.LOCKED
        with pytest.raises(AuthenticationError):
            manager.unlock("OldPass1!")
        manager.unlock("NewPass1!")
        assert manager.decrypt_secret(storage.get_credential(first.id, "alice").encrypted_password) == "alpha"
        assert manager.decrypt_secret(storage.get_credential(second.id, "alice").encrypted_password) == "bravo"
        with pytest.raises(DecryptionError):
            manager.decrypt_secret(storage.get_credential(third.id, "alice").encrypted_password)

    def test_raise_for_failures(self, manager, storage):
        manager.setup("OldPass1!")
        broken = _add_credential(manager, storage, "a.com", "alpha")
        storage.update_credential(broken.id, "alice", {"encrypted_password": "not-valid"})

        result = manager.change_master_password("OldPass1!", "NewPass1!")
        with pytest.raises(PartialRotationFailure) as exc:
            result.raise_for_failures()
        assert exc.value.failed_ids == [broken.id]
        assert exc.value.rotated == 0

    def test_left_behind_credential_still_opens_with_old_password(self, manager, storage, cipher):
        manager.setup("OldPass1!")
        good = _add_credential(manager, storage, "a.com", "alpha")
        # Encrypted under some other password: cannot be rotated
        foreign = storage.create_credential("alice", {
            "website": "x.com", "username": "x",
            "encrypted_password": cipher.encrypt("xray", "Elsewhere1!"),
        })

        result = manager.change_master_password("OldPass1!", "NewPass1!")
        assert result.failed_ids == [foreign.id]
        assert cipher.decrypt(storage.get_credential(foreign.id, "alice").encrypted_password, "Elsewhere1!") == "xray"
        assert cipher.decrypt(storage.get_credential(good.id, "alice").encrypted_password, "NewPass1!") == "alpha"

    def test_wrong_current_password(self, manager, storage):
        manager.setup("OldPass1!")
        credential = _add_credential(manager, storage, "a.com", "alpha")
        before = storage.get_credential(credential.id, "alice").encrypted_password

        with pytest.raises(AuthenticationError):
            manager.change_master_password("WrongPass", "NewPass1!")

        assert manager.state is VaultState.UNLOCKED
        assert storage.get_credential(credential.id, "alice").encrypted_password == before

    def test_requires_unlocked(self, manager):
        manager.setup("OldPass1!")
        manager.lock()
        with pytest.raises(VaultLockedError):
            manager.change_master_password("OldPass1!", "NewPass1!")

    def test_empty_vault(self, manager):
        manager.setup("OldPass1!")
        result = manager.change_master_password("OldPass1!", "NewPass1!")
        assert (result.rotated, result.failed, result.failed_ids) == (0, 0, [])

    def test_other_owners_untouched(self, manager, storage, cipher):
        manager.setup("OldPass1!")
        _add_credential(manager, storage, "a.com", "alpha")
        bobs = storage.create_credential("bob", {
            "website": "b.com", "username": "bob",
            "encrypted_password": cipher.encrypt("bobpass", "BobPass1!"),
        })

        result = manager.change_master_password("OldPass1!", "NewPass1!")
        assert result.rotated == 1
        assert storage.get_credential(bobs.id, "bob").encrypted_password == bobs.encrypted_password

    def test_store_failure_is_collected(self, manager, storage, monkeypatch):
        manager.setup("OldPass1!")
        ok = _add_credential(manager, storage, "a.com", "alpha")
        flaky = _add_credential(manager, storage, "b.com", "bravo")

        original = storage.update_credential

        def failing_update(credential_id, owner_id, fields):
            if credential_id == flaky.id:
                raise IOError("disk full")
            return original(credential_id, owner_id, fields)

        monkeypatch.setattr(storage, "update_credential", failing_update)
        result = manager.change_master_password("OldPass1!", "NewPass1!")

        assert result.rotated == 1
        assert result.failed_ids == [flaky.id]
        assert "disk full" in result.errors[flaky.id]
        assert ok.id not in result.errors

    def test_secret_saved_during_rotation_is_refused(self, manager, storage, monkeypatch):
        manager.setup("OldPass1!")
        _add_credential(manager, storage, "a.com", "alpha")

        listed = threading.Event()
        release = threading.Event()
        original_list = storage.list_credentials

        def blocking_list(owner_id, search=None):
            credentials = original_list(owner_id, search)
            listed.set()
            release.wait(timeout=10)
            return credentials

        monkeypatch.setattr(storage, "list_credentials", blocking_list)
        outcome = {}

        def change():
            outcome["result"] = manager.change_master_password("OldPass1!", "NewPass1!")

        def save():
            try:
                _add_credential(manager, storage, "b.com", "bravo")
                outcome["saved"] = True
            except VaultLockedError:
                outcome["saved"] = False

        rotation = threading.Thread(target=change)
        rotation.start()
        assert listed.wait(timeout=10)

        writer = threading.Thread(target=save)
        writer.start()
        writer.join(timeout=0.2)
        # Still waiting for the rotation to finish
        assert writer.is_alive()

        release.set()
        rotation.join(timeout=30)
        writer.join(timeout=30)

        assert outcome["saved"] is False
        assert outcome["result"].rotated == 1
        assert outcome["result"].failed_ids == []
        assert [c.website for c in storage.list_credentials("alice")] == ["a.com"]

    def test_listing_failure_leaves_vault_unchanged(self, manager, storage, monkeypatch):
        manager.setup("OldPass1!")
        verifier_before = storage.get_value("alice", VERIFIER_KEY)

        def broken_list(owner_id, search=None):
            raise IOError("database unavailable")

        monkeypatch.setattr(storage, "list_credentials", broken_list)
        with pytest.raises(IOError):
            manager.change_master_password("OldPass1!", "NewPass1!")

        assert storage.get_value("alice", VERIFIER_KEY) == verifier_before
        assert manager.state is VaultState.UNLOCKED

        # Secrets saved afterwards still open with the password that unlocks
        later = manager.encrypt_secret("later")
        manager.lock()
        manager.unlock("OldPass1!")
        assert manager.decrypt_secret(later) == "later"

    def test_verifier_write_failure_restores_old_values(self, manager, storage, monkeypatch):
        manager.setup("OldPass1!")
        before = {key: storage.get_value("alice", key) for key in (VERIFIER_KEY, CANARY_KEY)}

        original_set = storage.set_value
        failures = []

        def failing_set(owner_id, name, value):
            if name == CANARY_KEY and not failures:
                failures.append(name)
                raise IOError("disk full")
            return original_set(owner_id, name, value)

        monkeypatch.setattr(storage, "set_value", failing_set)
        with pytest.raises(IOError):
            manager.change_master_password("OldPass1!", "NewPass1!")

        assert {key: storage.get_value("alice", key) for key in before} == before
        assert manager.is_unlocked
        manager.lock()
        manager.unlock("OldPass1!")

    def test_unexpected_rotation_error_still_locks(self, manager, storage, monkeypatch):
        manager.setup("OldPass1!")
        _add_credential(manager, storage, "a.com", "alpha")

        def exploding_rotation(credentials, current, new):
            raise RuntimeError("worker pool failed")

        monkeypatch.setattr(manager, "_rotate_credentials", exploding_rotation)
        with pytest.raises(RuntimeError):
            manager.change_master_password("OldPass1!", "NewPass1!")

        assert manager.state is VaultState.LOCKED
        manager.unlock("NewPass1!")

    def test_rotation_is_audited(self, manager, storage, audit_logger):
        manager.setup("OldPass1!")
        broken = _add_credential(manager, storage, "a.com", "alpha")
        storage.update_credential(broken.id, "alice", {"encrypted_password": "bad"})

        manager.change_master_password("OldPass1!", "NewPass1!")

        failed = audit_logger.query_events(event_types=[EventType.VAULT_ROTATION_FAILED])
        rotated = audit_logger.query_events(event_types=[EventType.VAULT_ROTATED])
        assert failed[-1]["details"]["password_id"] == broken.id
        assert rotated[-1]["details"] == {"rotated": 0, "failed": 1}


class TestReset:

    def test_requires_confirmation(self, manager, storage):
        manager.setup("Correct1!")
        manager.lock()
        with pytest.raises(ResetNotConfirmed) as exc:
            manager.reset_master_password()
        assert "Export" in str(exc.value)
        assert manager.state is VaultState.LOCKED
        assert storage.get_value("alice", VERIFIER_KEY)

    def test_confirmed_reset_keeps_credentials_by_default(self, manager, storage):
        manager.setup("Correct1!")
        credential = _add_credential(manager, storage, "a.com", "alpha")
        manager.lock()

        assert manager.reset_master_password(confirm=True) == 0
        assert manager.state is VaultState.UNINITIALIZED
        assert storage.get_value("alice", CANARY_KEY) is None
        assert storage.get_credential(credential.id, "alice") is not None

        manager.setup("Fresh123!")
        assert manager.is_unlocked

    def test_purge_credentials(self, manager, storage):
        manager.setup("Correct1!")
        _add_credential(manager, storage, "a.com", "alpha")
        _add_credential(manager, storage, "b.com", "bravo")
        storage.create_category("alice", {"name": "Work"})
        manager.lock()

        assert manager.reset_master_password(confirm=True, purge_credentials=True) == 2
        assert storage.list_credentials("alice") == []
        assert storage.list_categories("alice") == []

    def test_only_from_locked(self, manager):
        with pytest.raises(InvalidStateError):
            manager.reset_master_password(confirm=True)
        manager.setup("Correct1!")
        with pytest.raises(InvalidStateError):
            manager.reset_master_password(confirm=True)

    def test_reset_clears_backoff(self, storage, cipher, audit_logger):
        clock = FakeClock()
        manager = MasterPasswordManager(
            "alice", storage, storage, cipher=cipher, audit_logger=audit_logger,
            free_attempts=0, clock=clock,
        )
        manager.setup("Correct1!")
        manager.lock()
        with pytest.raises(AuthenticationError):
            manager.unlock("WrongPass")
        assert manager.retry_after() > 0

        manager.reset_master_password(confirm=True)
        assert manager.retry_after() == 0
        assert manager.failed_attempts == 0


class TestExport:

    def test_unlocked_export_has_plaintext(self, manager, storage):
        manager.setup("Correct1!")
        _add_credential(manager, storage, "a.com", "alpha")
        storage.create_category("alice", {"name": "Work"})

        data = manager.export_vault()
        assert data["encrypted"] is False
        assert data["passwords"][0]["password"] == "alpha"
        assert "encrypted_password" not in data["passwords"][0]
        assert data["categories"][0]["name"] == "Work"
        assert data["exported_at"]

    def test_locked_export_has_ciphertext_only(self, manager, storage):
        manager.setup("Correct1!")
        credential = _add_credential(manager, storage, "a.com", "alpha")
        manager.lock()

        data = manager.export_vault()
        assert data["encrypted"] is True
        assert "password" not in data["passwords"][0]
        assert data["passwords"][0]["encrypted_password"] == credential.encrypted_password

    def test_undecryptable_entries_are_reported(self, manager, storage):
        manager.setup("Correct1!")
        broken = _add_credential(manager, storage, "a.com", "alpha")
        storage.update_credential(broken.id, "alice", {"encrypted_password": "bad"})

        data = manager.export_vault()
        assert data["undecryptable"] == [broken.id]
        assert "password" not in data["passwords"][0]
