"""
Tests for the key derivation function and VaultCipher.

Covers the transport layout base64(salt32 + iv16 + ciphertext), the
round-trip law, wrong-password and tamper detection in both cipher modes.
"""

import base64

import pytest

from securepass.vault import DecryptionError, VaultCipher, derive_key
from securepass.vault.encryption import (
    IV_LENGTH,
    MIN_PBKDF2_ITERATIONS,
    SALT_LENGTH,
)

TEST_ITERATIONS = MIN_PBKDF2_ITERATIONS


@pytest.fixture
def cbc_cipher():
    return VaultCipher(iterations=TEST_ITERATIONS, mode="cbc")


class TestDeriveKey:

    def test_key_is_32_bytes(self):
        key = derive_key("master", b"\x00" * SALT_LENGTH, TEST_ITERATIONS)
        assert len(key) == 32

    def test_deterministic(self):
        salt = b"s" * SALT_LENGTH
        assert derive_key("master", salt, TEST_ITERATIONS) == derive_key("master", salt, TEST_ITERATIONS)

    def test_salt_changes_key(self):
        a = derive_key("master", b"a" * SALT_LENGTH, TEST_ITERATIONS)
        b = derive_key("master", b"b" * SALT_LENGTH, TEST_ITERATIONS)
        assert a != b

    def test_password_changes_key(self):
        salt = b"s" * SALT_LENGTH
        assert derive_key("one", salt, TEST_ITERATIONS) != derive_key("two", salt, TEST_ITERATIONS)

    def test_empty_password_still_derives(self):
        assert len(derive_key("", b"s" * SALT_LENGTH, TEST_ITERATIONS)) == 32


class TestCipherConstruction:

    def test_defaults(self):
        cipher = VaultCipher()
        assert cipher.mode == "gcm"
        assert cipher.iterations == 600_000

    def test_rejects_low_iteration_count(self):
        with pytest.raises(ValueError):
            VaultCipher(iterations=MIN_PBKDF2_ITERATIONS - 1)

    def test_rejects_unknown_mode(self):
        with pytest.raises(ValueError):
            VaultCipher(iterations=TEST_ITERATIONS, mode="ecb")


@pytest.mark.parametrize("mode", ["gcm", "cbc"])
class TestRoundTrip:

    @pytest.mark.parametrize("plaintext", [
        "",
        "hunter2",
        "pässwörd ✓ 密码 🔐",
        "x" * 1000,
    ])
    def test_decrypt_returns_plaintext(self, mode, plaintext):
        cipher = VaultCipher(iterations=TEST_ITERATIONS, mode=mode)
        transport = cipher.encrypt(plaintext, "Correct1!")
        assert cipher.decrypt(transport, "Correct1!") == plaintext

    def test_transport_layout(self, mode):
        cipher = VaultCipher(iterations=TEST_ITERATIONS, mode=mode)
        blob = base64.b64decode(cipher.encrypt("secret", "Correct1!"))
        # salt + iv + at least one AES block (GCM tag or CBC padding)
        assert len(blob) >= SALT_LENGTH + IV_LENGTH + 16

    def test_fresh_salt_and_iv_per_call(self, mode):
        cipher = VaultCipher(iterations=TEST_ITERATIONS, mode=mode)
        first = base64.b64decode(cipher.encrypt("same", "Correct1!"))
        second = base64.b64decode(cipher.encrypt("same", "Correct1!"))
        assert first != second
        assert first[:SALT_LENGTH] != second[:SALT_LENGTH]
        assert first[SALT_LENGTH:SALT_LENGTH + IV_LENGTH] != second[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]


class TestDecryptFailures:

    def test_wrong_password_gcm(self, cipher):
        transport = cipher.encrypt("secret", "Correct1!")
        with pytest.raises(DecryptionError):
            cipher.decrypt(transport, "WrongPass")

    def test_wrong_password_cbc(self, cbc_cipher):
        transport = cbc_cipher.encrypt("a longer secret value", "Correct1!")
        # CBC has no tag; a wrong key is only caught by padding/UTF-8 checks
        try:
            result = cbc_cipher.decrypt(transport, "WrongPass")
        except DecryptionError:
            return
        assert result != "a longer secret value"

    def test_tampered_ciphertext_gcm(self, cipher):
        blob = bytearray(base64.b64decode(cipher.encrypt("secret", "Correct1!")))
        blob[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            cipher.decrypt(base64.b64encode(bytes(blob)).decode(), "Correct1!")

    def test_truncated_transport(self, cipher):
        blob = base64.b64decode(cipher.encrypt("secret", "Correct1!"))
        truncated = base64.b64encode(blob[:SALT_LENGTH + IV_LENGTH]).decode()
        with pytest.raises(DecryptionError):
            cipher.decrypt(truncated, "Correct1!")

    @pytest.mark.parametrize("garbage", ["", "not base64 !!!", "é", "QUJD"])
    def test_malformed_transport(self, cipher, garbage):
        with pytest.raises(DecryptionError):
            cipher.decrypt(garbage, "Correct1!")

    def test_non_string_transport(self, cipher):
        with pytest.raises(DecryptionError):
            cipher.decrypt(None, "Correct1!")

    def test_cbc_rejects_partial_block(self, cbc_cipher):
        blob = base64.b64decode(cbc_cipher.encrypt("secret", "Correct1!"))
        with pytest.raises(DecryptionError):
            cbc_cipher.decrypt(base64.b64encode(blob[:-1]).decode(), "Correct1!")

    def test_single_error_message(self, cipher):
        transport = cipher.encrypt("secret", "Correct1!")
        with pytest.raises(DecryptionError) as wrong:
            cipher.decrypt(transport, "WrongPass")
        with pytest.raises(DecryptionError) as corrupt:
            cipher.decrypt("QUJD", "Correct1!")
        assert str(wrong.value) == str(corrupt.value)

    def test_modes_do_not_interoperate(self, cipher, cbc_cipher):
        transport = cbc_cipher.encrypt("secret", "Correct1!")
        with pytest.raises(DecryptionError):
            cipher.decrypt(transport, "Correct1!")
