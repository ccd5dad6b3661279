"""Password hashing helpers."""

from __future__ import annotations

from werkzeug.security import check_password_hash, generate_password_hash

PASSWORD_HASH_METHOD = "pbkdf2:sha256"
PASSWORD_SALT_LENGTH = 16


def hash_password(raw_password: str) -> str:
    return generate_password_hash(raw_password, method=PASSWORD_HASH_METHOD, salt_length=PASSWORD_SALT_LENGTH)


def verify_password(password_hash: str | None, raw_password: str) -> bool:
    if not password_hash or not raw_password:
        return False
    return check_password_hash(password_hash, raw_password)
