from __future__ import annotations

from flask import Blueprint, current_app, request

from app.db import get_db
from app.utils import ok, parse_json_body
from auth import ADMINS, current_auth, require_roles
from services.email import send_invite_email
from services.users import delete_user, invite_user, list_trainees, list_trainers, list_users

users_bp = Blueprint("users", __name__)


@users_bp.get("")
@require_roles(*ADMINS)
def users_list():
    return ok({"users": list_users(get_db())})


@users_bp.post("")
@require_roles(*ADMINS)
def users_invite():
    cfg = current_app.config["CFG"]
    data = parse_json_body(request.get_data(as_text=True))
    user, password = invite_user(get_db(), data, current_auth())

    email_sent = send_invite_email(cfg, user["email"], user["firstName"], password)
    return ok(
        {
            "user": user,
            # Shared manually by the admin when e-mail is not available.
            "generatedPassword": password,
            "emailSent": email_sent,
            "message": (
                "User created and invitation email queued"
                if email_sent
                else "User created successfully. Please share the password manually as email could not be sent."
            ),
        },
        http_status=201,
    )


@users_bp.delete("/<user_id>")
@require_roles(*ADMINS)
def users_delete(user_id: str):
    return ok(delete_user(get_db(), user_id, current_auth()))


@users_bp.get("/trainees")
@require_roles(*ADMINS)
def trainees_list():
    return ok({"trainees": list_trainees(get_db())})


@users_bp.get("/trainers")
@require_roles(*ADMINS)
def trainers_list():
    return ok({"trainers": list_trainers(get_db())})
