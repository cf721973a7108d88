"""
User accounts: invitation, listing, deletion and login bookkeeping.
"""
from __future__ import annotations

import logging
import re
from typing import Any

from pymongo.errors import DuplicateKeyError

from app.db import USERS
from app.utils import ApiError, AuthContext, iso_utc_now, new_uuid, normalize_role, strip_mongo_id
from auth import revoke_user_sessions
from passwords import generate_random_password, hash_password, validate_password, verify_password

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_PUBLIC_PROJECTION = {"_id": 0, "password": 0}


def validate_email(email: Any) -> str:
    e = str(email or "").strip().lower()
    if not e or not _EMAIL_RE.match(e):
        raise ApiError("BAD_REQUEST", "Invalid email format")
    return e


def public_user(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    if doc is None:
        return None
    out = strip_mongo_id(doc)
    out.pop("password", None)
    return out


def list_users(db) -> list[dict[str, Any]]:
    return list(db[USERS].find({}, _PUBLIC_PROJECTION).sort("createdAt", -1))


def list_trainees(db) -> list[dict[str, Any]]:
    cur = db[USERS].find(
        {"role": "trainee"},
        {"_id": 0, "userId": 1, "firstName": 1, "lastName": 1, "email": 1, "status": 1},
    )
    return list(cur.sort([("firstName", 1), ("lastName", 1)]))


def list_trainers(db) -> list[dict[str, Any]]:
    cur = db[USERS].find(
        {"role": {"$in": ["admin", "superadmin"]}},
        {"_id": 0, "userId": 1, "firstName": 1, "lastName": 1, "email": 1, "role": 1},
    )
    return list(cur.sort([("firstName", 1), ("lastName", 1)]))


def create_user(
    db,
    *,
    first_name: str,
    last_name: str,
    email: str,
    role: str,
    password: str,
    status: str = STATUS_PENDING,
    invited_by: str = "",
    user_id: str | None = None,
) -> dict[str, Any]:
    now = iso_utc_now()
    doc = {
        "userId": user_id or f"user-{new_uuid()}",
        "firstName": first_name,
        "lastName": last_name,
        "email": email,
        "password": hash_password(password),
        "role": role,
        "status": status,
        "invitedBy": invited_by,
        "invitedAt": now if invited_by else "",
        "lastLoginAt": "",
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        db[USERS].insert_one(doc)
    except DuplicateKeyError:
        raise ApiError("BAD_REQUEST", "User with this email already exists")
    return public_user(doc)


def invite_user(db, data: dict[str, Any], auth: AuthContext) -> tuple[dict[str, Any], str]:
    """Create a pending user with a generated password. Returns (user, password)."""
    first_name = str((data or {}).get("firstName") or "").strip()
    last_name = str((data or {}).get("lastName") or "").strip()
    raw_email = str((data or {}).get("email") or "").strip()
    raw_role = str((data or {}).get("role") or "").strip()
    if not first_name or not last_name or not raw_email or not raw_role:
        raise ApiError("BAD_REQUEST", "All fields are required")

    email = validate_email(raw_email)
    role = normalize_role(raw_role)
    if not role:
        raise ApiError("BAD_REQUEST", "Invalid role")
    if role == "superadmin" and auth.role != "superadmin":
        raise ApiError("FORBIDDEN", "Only a superadmin can invite a superadmin")

    if db[USERS].find_one({"email": email}, {"_id": 1}):
        raise ApiError("BAD_REQUEST", "User with this email already exists")

    password = generate_random_password()
    user = create_user(
        db,
        first_name=first_name,
        last_name=last_name,
        email=email,
        role=role,
        password=password,
        invited_by=auth.userId,
    )
    logger.info("User invited userId=%s role=%s by=%s", user["userId"], role, auth.userId)
    return user, password


def delete_user(db, user_id: str, auth: AuthContext) -> dict[str, Any]:
    uid = str(user_id or "").strip()
    if not uid:
        raise ApiError("BAD_REQUEST", "Missing userId")
    if uid == auth.userId:
        raise ApiError("FORBIDDEN", "You cannot delete your own account")

    target = db[USERS].find_one({"userId": uid})
    if not target:
        raise ApiError("NOT_FOUND", "User not found")
    if target.get("role") == "superadmin" and auth.role != "superadmin":
        raise ApiError("FORBIDDEN", "Only a superadmin can delete a superadmin")

    db[USERS].delete_one({"userId": uid})
    revoked = revoke_user_sessions(db, user_id=uid, revoked_by=auth.userId)
    logger.info("User deleted userId=%s by=%s sessionsRevoked=%s", uid, auth.userId, revoked)
    return {"userId": uid, "deleted": True}


def authenticate(db, email: Any, password: Any) -> dict[str, Any]:
    """
    Check credentials and record the login (pending -> accepted).

    Unknown e-mail and wrong password give the same error.
    """
    email_n = validate_email(email)
    pwd = validate_password(password)

    user = db[USERS].find_one({"email": email_n})
    if not user or not verify_password(pwd, user.get("password") or ""):
        raise ApiError("AUTH_INVALID", "Invalid email or password")
    if not normalize_role(user.get("role")):
        raise ApiError("FORBIDDEN", "Account has no valid role")

    now = iso_utc_now()
    updates: dict[str, Any] = {"lastLoginAt": now, "updatedAt": now}
    if user.get("status") == STATUS_PENDING:
        updates["status"] = STATUS_ACCEPTED
    db[USERS].update_one({"userId": user["userId"]}, {"$set": updates})
    user.update(updates)
    return public_user(user)


def get_user(db, user_id: str) -> dict[str, Any] | None:
    return db[USERS].find_one({"userId": user_id}, _PUBLIC_PROJECTION)


def seed_superadmin(db, email: str, password: str) -> bool:
    """Create the first superadmin if that e-mail isn't registered. True when created."""
    email_n = validate_email(email)
    if db[USERS].find_one({"email": email_n}, {"_id": 1}):
        return False
    create_user(
        db,
        first_name="Super",
        last_name="Admin",
        email=email_n,
        role="superadmin",
        password=password,
        status=STATUS_ACCEPTED,
        user_id=f"superadmin-{new_uuid()}",
    )
    logger.info("Superadmin created email=%s", email_n)
    return True
