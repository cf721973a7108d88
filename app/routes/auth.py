from __future__ import annotations

from flask import Blueprint, current_app, request

from app.db import get_db
from app.utils import ApiError, ok, parse_json_body
from auth import TOKEN_COOKIE, current_auth, issue_session_token, request_token, require_roles, revoke_session
from services.users import authenticate, get_user

auth_bp = Blueprint("auth", __name__)


@auth_bp.post("/login")
def login():
    cfg = current_app.config["CFG"]
    data = parse_json_body(request.get_data(as_text=True))
    db = get_db()

    user = authenticate(db, data.get("email"), data.get("password"))
    session = issue_session_token(
        db,
        user_id=user["userId"],
        email=user["email"],
        role=user["role"],
        session_ttl_minutes=cfg.SESSION_TTL_MINUTES,
    )

    resp, status = ok(
        {
            "user": {
                "userId": user["userId"],
                "email": user["email"],
                "firstName": user.get("firstName") or "",
                "lastName": user.get("lastName") or "",
                "role": user["role"],
            },
            "token": session["sessionToken"],
            "expiresAt": session["expiresAt"],
        }
    )
    resp.set_cookie(
        TOKEN_COOKIE,
        session["sessionToken"],
        max_age=cfg.SESSION_TTL_MINUTES * 60,
        httponly=True,
        secure=cfg.IS_PRODUCTION,
        samesite="Lax",
    )
    return resp, status


@auth_bp.post("/logout")
@require_roles()
def logout():
    auth_ctx = current_auth()
    revoked = revoke_session(get_db(), request_token(), revoked_by=auth_ctx.userId)
    resp, status = ok({"loggedOut": True, "revoked": revoked})
    resp.delete_cookie(TOKEN_COOKIE)
    return resp, status


@auth_bp.get("/me")
@require_roles()
def me():
    auth_ctx = current_auth()
    user = get_user(get_db(), auth_ctx.userId)
    if not user:
        raise ApiError("AUTH_INVALID", "User no longer exists")
    return ok({"user": user, "expiresAt": auth_ctx.expiresAt})
