# Vault - Master Password Verifier
#
# One-way digest of the master password, persisted so a later unlock can be
# checked without storing the password itself.
# Format: pbkdf2_sha256$<iterations>$<salt b64>$<digest b64>
# Bare 64-char hex SHA-256 digests (written by the browser client) are still
# accepted by verify_password().

import hashlib
import hmac
import re

from .encryption import (
    PBKDF2_ITERATIONS,
    decode_from_storage,
    derive_key,
    encode_for_storage,
    generate_salt,
)

VERIFIER_SCHEME = "pbkdf2_sha256"

_LEGACY_HEX = re.compile(r"^[0-9a-f]{64}$")


def make_verifier(master_password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """
    Compute the persisted verifier for a master password.

    The salt is drawn fresh here and is unrelated to any salt used for
    encrypting secrets.
    """
    salt = generate_salt()
    digest = derive_key(master_password, salt, iterations)
    return "$".join([
        VERIFIER_SCHEME,
        str(iterations),
        encode_for_storage(salt),
        encode_for_storage(digest),
    ])


def is_legacy_verifier(verifier: str) -> bool:
    return bool(_LEGACY_HEX.match(verifier or ""))


def verify_password(master_password: str, verifier: str) -> bool:
    """
    Check a candidate master password against a stored verifier.

    Comparison is constant time. Unknown or malformed verifiers never match.
    """
    if not verifier:
        return False

    if is_legacy_verifier(verifier):
        candidate = hashlib.sha256(master_password.encode("utf-8")).hexdigest()
        return hmac.compare_digest(candidate, verifier)

    parts = verifier.split("$")
    if len(parts) != 4 or parts[0] != VERIFIER_SCHEME:
        return False
    try:
        iterations = int(parts[1])
        salt = decode_from_storage(parts[2])
        expected = decode_from_storage(parts[3])
    except ValueError:
        return False
    if iterations <= 0:
        return False

    candidate = derive_key(master_password, salt, iterations)
    return hmac.compare_digest(candidate, expected)
