from __future__ import annotations

import secrets
import string

from werkzeug.security import check_password_hash, generate_password_hash

from app.utils import ApiError


MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 256

_GENERATED_ALPHABET = string.ascii_letters + string.digits + "!@#$%&*"


def validate_password(password: str) -> str:
    pwd = str(password or "")
    if len(pwd) < MIN_PASSWORD_LENGTH:
        raise ApiError("BAD_REQUEST", f"Password is required and must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(pwd) > MAX_PASSWORD_LENGTH:
        raise ApiError("BAD_REQUEST", "Password is too long")
    return pwd


def hash_password(password: str) -> str:
    pwd = validate_password(password)
    # Werkzeug 3 defaults to scrypt; pin explicitly for stability.
    return generate_password_hash(pwd, method="scrypt", salt_length=16)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return check_password_hash(str(password_hash or ""), str(password or ""))
    except Exception:
        return False


def generate_random_password(length: int = 12) -> str:
    """Invitation password: at least one upper, lower, digit and symbol."""
    length = max(MIN_PASSWORD_LENGTH, int(length))
    while True:
        pwd = "".join(secrets.choice(_GENERATED_ALPHABET) for _ in range(length))
        if (
            any(c.islower() for c in pwd)
            and any(c.isupper() for c in pwd)
            and any(c.isdigit() for c in pwd)
            and any(not c.isalnum() for c in pwd)
        ):
            return pwd
