# Vault - Encryption Service
#
# Master password + per-secret salt -> encryption key (PBKDF2-SHA256)
# Secret encryption (AES-256-GCM, or AES-256-CBC in the reference mode)
# Transport string: base64(salt(32) + iv(16) + ciphertext)

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import DecryptionError

# PBKDF2 parameters (OWASP recommendations)
PBKDF2_ITERATIONS = 600_000  # OWASP 2023: 600k iterations for PBKDF2-SHA256
MIN_PBKDF2_ITERATIONS = 100_000
KEY_LENGTH = 32  # 256 bits for AES-256
SALT_LENGTH = 32  # 256-bit salt, unique per encrypted secret
IV_LENGTH = 16  # 128-bit IV (GCM nonce or CBC IV)
BLOCK_SIZE = 16  # AES block, also the GCM tag length

CIPHER_MODES = ("gcm", "cbc")


def derive_key(
    master_password: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """
    Derive encryption key from master password using PBKDF2.

    Deterministic: the same (master_password, salt, iterations) always
    yields the same key, which is what lets stored secrets be decrypted
    later. An empty password still derives a key; minimum-length policy
    belongs to the callers.

    Args:
        master_password: User's master password
        salt: Random salt (travels with the ciphertext, not secret)
        iterations: PBKDF2 iteration count

    Returns:
        256-bit encryption key
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(master_password.encode("utf-8"))


def generate_salt() -> bytes:
    """Generate cryptographically random salt."""
    return os.urandom(SALT_LENGTH)


def generate_iv() -> bytes:
    """Generate cryptographically random IV."""
    return os.urandom(IV_LENGTH)


def encode_for_storage(data: bytes) -> str:
    """Encode binary data as base64 text for storage and transport."""
    return base64.b64encode(data).decode("utf-8")


def decode_from_storage(data: str) -> bytes:
    """Decode base64 text produced by encode_for_storage."""
    return base64.b64decode(data.encode("ascii"), validate=True)


class VaultCipher:
    """
    Encrypts and decrypts a single secret string under a master password.

    Flow:
    1. A fresh 32-byte salt and 16-byte IV are drawn for every encrypt call
    2. PBKDF2 derives a 256-bit key from master password + salt
    3. AES-256 encrypts the UTF-8 plaintext
    4. salt + iv + ciphertext is base64-encoded into one transport string

    Modes:
    - "gcm" (default): AES-256-GCM, authenticated. Tampering or a wrong
      master password fails the tag check.
    - "cbc": AES-256-CBC with PKCS#7 padding. Not authenticated. Same
      mode and transport layout as the browser client, but that client
      derives its key differently, so its ciphertext cannot be decrypted
      here. A wrong key is only caught by the padding check, so garbage
      can slip through with low probability.

    The cipher holds no mutable state and is safe to share across threads.
    """

    def __init__(self, iterations: int = PBKDF2_ITERATIONS, mode: str = "gcm"):
        if iterations < MIN_PBKDF2_ITERATIONS:
            raise ValueError(
                f"PBKDF2 iterations must be at least {MIN_PBKDF2_ITERATIONS}"
            )
        if mode not in CIPHER_MODES:
            raise ValueError(f"Unsupported cipher mode: {mode}")
        self.iterations = iterations
        self.mode = mode

    def __repr__(self) -> str:
        return f"VaultCipher(mode={self.mode!r}, iterations={self.iterations})"

    def derive_key(self, master_password: str, salt: bytes) -> bytes:
        return derive_key(master_password, salt, self.iterations)

    def encrypt(self, plaintext: str, master_password: str) -> str:
        """
        Encrypt plaintext under the master password.

        Returns:
            base64(salt + iv + ciphertext). Two calls with identical
            arguments never return the same string.
        """
        salt = generate_salt()
        iv = generate_iv()
        key = self.derive_key(master_password, salt)
        data = plaintext.encode("utf-8")

        if self.mode == "gcm":
            ciphertext = AESGCM(key).encrypt(iv, data, None)
        else:
            padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
            padded = padder.update(data) + padder.finalize()
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()

        return encode_for_storage(salt + iv + ciphertext)

    def decrypt(self, transport: str, master_password: str) -> str:
        """
        Decrypt a transport string produced by encrypt().

        Raises:
            DecryptionError: Wrong master password, or the transport string
                is malformed, truncated or tampered with.
        """
        if not isinstance(transport, str):
            raise DecryptionError()
        try:
            blob = decode_from_storage(transport)
        except (binascii.Error, ValueError):
            raise DecryptionError()

        header = SALT_LENGTH + IV_LENGTH
        if len(blob) < header + BLOCK_SIZE:
            raise DecryptionError()

        salt = blob[:SALT_LENGTH]
        iv = blob[SALT_LENGTH:header]
        ciphertext = blob[header:]
        key = self.derive_key(master_password, salt)

        if self.mode == "gcm":
            try:
                data = AESGCM(key).decrypt(iv, ciphertext, None)
            except InvalidTag:
                raise DecryptionError()
        else:
            if len(ciphertext) % BLOCK_SIZE:
                raise DecryptionError()
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
            try:
                data = unpadder.update(padded) + unpadder.finalize()
            except ValueError:
                raise DecryptionError()

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError()
