"""
Password hashing for the account routes.

PBKDF2-HMAC-SHA256 with a per-password random salt. Stored form:

    pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>
"""

import hashlib
import hmac
import secrets

ALGORITHM = "pbkdf2_sha256"
ITERATIONS = 260_000
SALT_BYTES = 16
PASSWORD_MIN_LENGTH = 8

__all__ = ["PasswordError", "hash_password", "verify_password"]


class PasswordError(ValueError):
    """Raised when a password cannot be hashed."""


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def hash_password(password: str, *, iterations: int = ITERATIONS) -> str:
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    salt = secrets.token_bytes(SALT_BYTES)
    digest = _derive(password, salt, iterations)
    return f"{ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    """Constant-time check; malformed hashes never verify."""
    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != ALGORITHM or not password:
        return False
    return hmac.compare_digest(_derive(password, salt, rounds), expected)
