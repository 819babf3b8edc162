from __future__ import annotations

import secrets
from functools import lru_cache

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

SALT_BYTES = 16
KEY_LENGTH = 64
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
_SEPARATOR = ":"

# Stand-ins for malformed stored values so verification always pays for one KDF run.
_DUMMY_SALT_HEX = "0" * (SALT_BYTES * 2)
_DUMMY_KEY = bytes(KEY_LENGTH)


def _kdf(salt_hex: str) -> Scrypt:
    return Scrypt(
        salt=salt_hex.encode("utf-8"),
        length=KEY_LENGTH,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
    )


def _verify_key(plaintext: str, salt_hex: str, expected: bytes) -> bool:
    try:
        _kdf(salt_hex).verify(plaintext.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True


def _parse_stored(stored: str | None) -> tuple[str, bytes] | None:
    if not stored or _SEPARATOR not in stored:
        return None
    salt_hex, expected_hex = stored.split(_SEPARATOR, 1)
    try:
        expected = bytes.fromhex(expected_hex)
    except ValueError:
        return None
    if not salt_hex or len(expected) != KEY_LENGTH:
        return None
    return salt_hex, expected


def hash_password(plaintext: str) -> str:
    salt_hex = secrets.token_hex(SALT_BYTES)
    derived = _kdf(salt_hex).derive(plaintext.encode("utf-8"))
    return f"{salt_hex}{_SEPARATOR}{derived.hex()}"


def verify_password(stored: str | None, plaintext: str) -> bool:
    """Check ``plaintext`` against a ``salt_hex:hash_hex`` value.

    Malformed stored values are verified against a dummy salt and key, so
    they cost the same KDF run as a wrong password and always yield ``False``.
    """
    parsed = _parse_stored(stored)
    salt_hex, expected = parsed if parsed is not None else (_DUMMY_SALT_HEX, _DUMMY_KEY)
    try:
        matched = _verify_key(plaintext, salt_hex, expected)
    except Exception:
        # Corrupt stored values must look exactly like a wrong password.
        return False
    return matched and parsed is not None


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return hash_password(secrets.token_hex(SALT_BYTES))


def verify_dummy_password(plaintext: str) -> bool:
    """Spend one verification on a throwaway hash; used when no account matched."""
    return verify_password(_dummy_password_hash(), plaintext)
