"""
Password hashing and temporary passwords.

Hashing goes through ``werkzeug.security``.  Stored hashes carry their own
method string (``pbkdf2:sha256:<iterations>$<salt>$<digest>``), so raising
the configured work factor never invalidates existing users.
"""

import secrets
import string

from werkzeug.security import check_password_hash, generate_password_hash

_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str, iterations: int = 260_000) -> str:
    """PBKDF2-SHA256 hash of ``password`` with a random salt."""
    return generate_password_hash(password, method=f"pbkdf2:sha256:{iterations}")


def verify_password(password: str, encoded: str) -> bool:
    """Malformed or foreign hashes never verify."""
    if not encoded or "$" not in encoded:
        return False
    try:
        return check_password_hash(encoded, password)
    except ValueError:
        return False


def generate_temporary_password(length: int = 12) -> str:
    """Random alphanumeric password containing at least one digit."""
    while True:
        candidate = "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))
        if any(ch.isdigit() for ch in candidate) and any(ch.isalpha() for ch in candidate):
            return candidate
