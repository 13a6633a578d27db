"""Password hashing."""

from __future__ import annotations

from werkzeug.security import check_password_hash, generate_password_hash


class CredentialStore:
    """One-way password hashing backed by werkzeug.security."""

    def __init__(self, method: str = "scrypt"):
        self.method = method

    def hash_password(self, password: str) -> str:
        return generate_password_hash(password, method=self.method)

    def verify_password(self, password_hash: str | None, password: str) -> bool:
        if not password_hash:
            return False
        return check_password_hash(password_hash, password)
