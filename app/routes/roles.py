from __future__ import annotations

from flask import Blueprint

from app.db import DEFAULT_ROLES, ROLES, get_db
from app.utils import ok

roles_bp = Blueprint("roles", __name__)


@roles_bp.get("")
def roles_list():
    roles = list(get_db()[ROLES].find({}, {"_id": 0, "roleId": 1, "roleName": 1, "description": 1}))
    return ok({"roles": roles or [dict(r) for r in DEFAULT_ROLES]})
