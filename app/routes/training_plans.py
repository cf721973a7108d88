from __future__ import annotations

from flask import Blueprint, request

from app.db import get_db
from app.utils import ok, parse_json_body
from auth import ADMINS, ALL_ROLES, current_auth, is_admin, require_roles
from services.training_plans import (
    admin_plan_progress,
    create_training_plan,
    list_training_plans,
    trainee_plan_progress,
)

training_plans_bp = Blueprint("training_plans", __name__)


@training_plans_bp.get("")
@require_roles(*ADMINS)
def plans_list():
    return ok({"trainingPlans": list_training_plans(get_db())})


@training_plans_bp.post("")
@require_roles(*ADMINS)
def plans_create():
    data = parse_json_body(request.get_data(as_text=True))
    plan = create_training_plan(get_db(), data, current_auth())
    return ok({"trainingPlan": plan, "message": "Training plan created successfully"}, http_status=201)


@training_plans_bp.get("/progress")
@require_roles(*ALL_ROLES)
def plans_progress():
    auth_ctx = current_auth()
    db = get_db()
    if is_admin(auth_ctx):
        return ok({**admin_plan_progress(db), "userRole": "admin"})
    return ok({"progress": trainee_plan_progress(db, auth_ctx.userId), "userRole": "trainee"})
