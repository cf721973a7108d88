from __future__ import annotations

import functools
import os
import secrets
from datetime import timezone
from typing import Any, Callable, Optional

from flask import g, request

from app.db import SESSIONS, USERS, get_db
from app.utils import ADMIN_ROLES, ROLES, ApiError, AuthContext, new_uuid, normalize_role, sha256_hex
from app.utils.datetime import iso_utc_in, iso_utc_now, parse_iso_utc, utc_now


TOKEN_COOKIE = "token"

ALL_ROLES = ROLES
ADMINS = ADMIN_ROLES

_INVALID = AuthContext(valid=False, userId="", email="", role="", expiresAt="")


def _new_token() -> str:
    return "ST-" + secrets.token_hex(32)


def request_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return (
        str(request.headers.get("X-Session-Token") or "").strip()
        or str(request.cookies.get(TOKEN_COOKIE) or "").strip()
    )


def issue_session_token(db, *, user_id: str, email: str, role: str, session_ttl_minutes: int) -> dict[str, str]:
    token = _new_token()
    issued_at = iso_utc_now()
    expires_at = iso_utc_in(session_ttl_minutes)
    db[SESSIONS].insert_one(
        {
            "sessionId": "SES-" + new_uuid(),
            "tokenHash": sha256_hex(token),
            "tokenPrefix": token[:12],
            "userId": str(user_id or ""),
            "email": str(email or ""),
            "role": normalize_role(role),
            "issuedAt": issued_at,
            "expiresAt": expires_at,
            "lastSeenAt": issued_at,
            "revokedAt": "",
            "revokedBy": "",
        }
    )
    return {"sessionToken": token, "expiresAt": expires_at}


def revoke_session(db, token: str, *, revoked_by: str) -> bool:
    if not token:
        return False
    res = db[SESSIONS].update_one(
        {"tokenHash": sha256_hex(token), "revokedAt": ""},
        {"$set": {"revokedAt": iso_utc_now(), "revokedBy": str(revoked_by or "")}},
    )
    return res.modified_count > 0


def revoke_user_sessions(db, *, user_id: str, revoked_by: str) -> int:
    """Revoke every active session of a user (used on deletion)."""
    uid = str(user_id or "").strip()
    if not uid:
        return 0
    res = db[SESSIONS].update_many(
        {"userId": uid, "revokedAt": ""},
        {"$set": {"revokedAt": iso_utc_now(), "revokedBy": str(revoked_by or "")}},
    )
    return int(res.modified_count)


def validate_session_token(db, token: Any) -> AuthContext:
    if not token or not isinstance(token, str):
        return _INVALID

    ses = db[SESSIONS].find_one({"tokenHash": sha256_hex(token)})
    if not ses:
        return _INVALID
    if ses.get("revokedAt"):
        return _INVALID

    expires_at = str(ses.get("expiresAt") or "")
    exp_dt = parse_iso_utc(expires_at)
    if not exp_dt or exp_dt < utc_now():
        return _INVALID

    user_id = str(ses.get("userId") or "").strip()
    usr = db[USERS].find_one({"userId": user_id}, {"_id": 0, "role": 1, "email": 1})
    if not usr:
        return _INVALID

    # The user document is authoritative for the role; sessions outlive role edits.
    role = normalize_role(usr.get("role"))
    if not role:
        return _INVALID

    # Avoid writing on every request: update lastSeenAt at most once per interval.
    try:
        interval_s = int(str(os.getenv("SESSION_LAST_SEEN_UPDATE_SECONDS", "300") or "300"))
    except ValueError:
        interval_s = 300
    last_dt = parse_iso_utc(ses.get("lastSeenAt"))
    if interval_s <= 0 or not last_dt or (utc_now() - last_dt.astimezone(timezone.utc)).total_seconds() >= interval_s:
        db[SESSIONS].update_one({"_id": ses["_id"]}, {"$set": {"lastSeenAt": iso_utc_now()}})

    return AuthContext(
        valid=True,
        userId=user_id,
        email=str(usr.get("email") or ses.get("email") or ""),
        role=role,
        expiresAt=expires_at,
    )


def current_auth() -> Optional[AuthContext]:
    return getattr(g, "auth", None)


def require_roles(*roles: str) -> Callable:
    """Route guard: valid session required, and the role must be one of ``roles``."""
    allowed = {normalize_role(r) for r in (roles or ALL_ROLES) if normalize_role(r)}

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            token = request_token()
            if not token:
                raise ApiError("AUTH_INVALID", "Unauthorized")
            auth_ctx = validate_session_token(get_db(), token)
            if not auth_ctx.valid:
                raise ApiError("AUTH_INVALID", "Invalid or expired session")
            if auth_ctx.role not in allowed:
                raise ApiError("FORBIDDEN", f"Not allowed for role: {auth_ctx.role}")
            g.auth = auth_ctx
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def is_admin(auth_ctx: Optional[AuthContext]) -> bool:
    return bool(auth_ctx and auth_ctx.valid and auth_ctx.role in ADMINS)
