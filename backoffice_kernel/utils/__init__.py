"""Utility modules for the back-office kernel."""

from backoffice_kernel.utils.hashing import (
    generate_temporary_password,
    hash_password,
    verify_password,
)

__all__ = [
    "generate_temporary_password",
    "hash_password",
    "verify_password",
]
