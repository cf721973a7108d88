"""
Training plans: creation, module-completion fan-out and progress rollups.

Plan documents carry a ``version`` counter. Every write after creation is a
compare-and-set on (planId, version), so two completions touching the same
plan can't overwrite each other's module statuses.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from app.db import TRAINING_PLANS, USERS
from app.utils import ApiError, AuthContext, iso_utc_now, new_uuid, strip_mongo_id
from app.utils.datetime import parse_iso_utc, to_iso_utc
from services.course_progress import compute_progress

logger = logging.getLogger(__name__)

MODULE_PENDING = "pending"
MODULE_IN_PROGRESS = "in-progress"
MODULE_COMPLETED = "completed"
MODULE_STATUSES = (MODULE_PENDING, MODULE_IN_PROGRESS, MODULE_COMPLETED)

PLAN_DRAFT = "draft"
PLAN_SCHEDULED = "scheduled"
PLAN_IN_PROGRESS = "in-progress"
PLAN_COMPLETED = "completed"
PLAN_STATUSES = (PLAN_DRAFT, PLAN_SCHEDULED, PLAN_IN_PROGRESS, PLAN_COMPLETED)

MAX_SYNC_ATTEMPTS = 5


def apply_module_completion(plan: dict[str, Any], module_uid: str) -> tuple[list[dict[str, Any]], str]:
    """
    Mark ``module_uid`` completed in a copy of the plan's modules and roll up.

    All modules completed -> plan completed. Otherwise the first pending
    module is promoted when none is in progress, and a draft/scheduled plan
    moves to in-progress. The input plan is not modified.
    """
    modules = [dict(m) for m in plan.get("modules") or []]
    status = str(plan.get("status") or PLAN_DRAFT)

    touched = False
    for m in modules:
        if m.get("moduleUid") == module_uid:
            m["status"] = MODULE_COMPLETED
            touched = True
    if not touched:
        return modules, status

    if all(m.get("status") == MODULE_COMPLETED for m in modules):
        return modules, PLAN_COMPLETED

    if not any(m.get("status") == MODULE_IN_PROGRESS for m in modules):
        for m in modules:
            if m.get("status") == MODULE_PENDING:
                m["status"] = MODULE_IN_PROGRESS
                break

    if status in (PLAN_DRAFT, PLAN_SCHEDULED):
        status = PLAN_IN_PROGRESS
    return modules, status


def _sync_one(db, plan: dict[str, Any], module_uid: str) -> bool:
    """Apply the completion to one plan; True when a write happened."""
    plan_id = plan.get("planId")
    for attempt in range(MAX_SYNC_ATTEMPTS):
        modules, status = apply_module_completion(plan, module_uid)
        if modules == list(plan.get("modules") or []) and status == plan.get("status"):
            return False

        version = int(plan.get("version") or 0)
        version_filter: dict[str, Any] = {"version": version} if version else {"version": {"$in": [0, None]}}
        res = db[TRAINING_PLANS].update_one(
            {"planId": plan_id, **version_filter},
            {"$set": {"modules": modules, "status": status, "version": version + 1, "updatedAt": iso_utc_now()}},
        )
        if res.matched_count:
            return True

        logger.warning("Training plan write lost a race planId=%s attempt=%s", plan_id, attempt + 1)
        plan = db[TRAINING_PLANS].find_one({"planId": plan_id})
        if not plan:
            return False

    raise ApiError("CONFLICT", f"Training plan {plan_id} is being updated concurrently, please retry")


def sync_module_completion(db, user_id: str, module_uid: str) -> list[str]:
    """Propagate a module completion into every plan of the trainee that lists it."""
    module_uid = str(module_uid or "").strip()
    if not user_id or not module_uid:
        return []

    updated = []
    plans = list(db[TRAINING_PLANS].find({"traineeId": user_id, "modules.moduleUid": module_uid}))
    for plan in plans:
        if _sync_one(db, plan, module_uid):
            updated.append(plan["planId"])
    if updated:
        logger.info("Synced module completion user=%s module=%s plans=%s", user_id, module_uid, updated)
    return updated


def _validate_modules(raw_modules: Any) -> list[dict[str, Any]]:
    if not isinstance(raw_modules, list) or not raw_modules:
        raise ApiError("BAD_REQUEST", "Plan name, trainee, and at least one module are required")

    modules = []
    for m in raw_modules:
        if not isinstance(m, dict):
            raise ApiError("BAD_REQUEST", "Each module must have a name, start date, and end date")
        name = str(m.get("moduleName") or "").strip()
        start = parse_iso_utc(m.get("startDate"))
        end = parse_iso_utc(m.get("endDate"))
        if not name or not start or not end:
            raise ApiError("BAD_REQUEST", "Each module must have a name, start date, and end date")
        if start >= end:
            raise ApiError("BAD_REQUEST", "End date must be after start date for each module")
        modules.append(
            {
                "moduleUid": str(m.get("moduleUid") or "").strip(),
                "moduleName": name,
                "trainerName": str(m.get("trainerName") or "").strip(),
                "startDate": to_iso_utc(start),
                "endDate": to_iso_utc(end),
                "status": MODULE_PENDING,
            }
        )
    return modules


def create_training_plan(db, data: dict[str, Any], auth: AuthContext) -> dict[str, Any]:
    plan_name = str((data or {}).get("planName") or "").strip()
    trainee_id = str((data or {}).get("traineeId") or "").strip()
    if not plan_name or not trainee_id:
        raise ApiError("BAD_REQUEST", "Plan name, trainee, and at least one module are required")
    modules = _validate_modules((data or {}).get("modules"))

    trainee = db[USERS].find_one({"userId": trainee_id, "role": "trainee"})
    if not trainee:
        raise ApiError("NOT_FOUND", "Trainee not found")

    trainer_id = str((data or {}).get("trainerId") or "").strip()
    trainer_email = ""
    if trainer_id:
        trainer = db[USERS].find_one({"userId": trainer_id, "role": {"$in": ["admin", "superadmin"]}})
        if not trainer:
            raise ApiError("NOT_FOUND", "Trainer not found")
        trainer_email = trainer.get("email") or ""

    now = iso_utc_now()
    plan = {
        "planId": f"plan-{new_uuid()}",
        "planName": plan_name,
        "description": str((data or {}).get("description") or "").strip(),
        "traineeId": trainee_id,
        "traineeEmail": trainee.get("email") or "",
        "trainerId": trainer_id,
        "trainerEmail": trainer_email,
        "modules": modules,
        "status": PLAN_DRAFT,
        "createdBy": auth.userId,
        "createdAt": now,
        "updatedAt": now,
        "version": 1,
    }
    db[TRAINING_PLANS].insert_one(plan)
    logger.info("Training plan created planId=%s trainee=%s by=%s", plan["planId"], trainee_id, auth.userId)
    return strip_mongo_id(plan)


def list_training_plans(db) -> list[dict[str, Any]]:
    plans = list(db[TRAINING_PLANS].find({}, {"_id": 0}).sort("createdAt", -1))
    trainee_ids = sorted({p.get("traineeId") for p in plans if p.get("traineeId")})
    trainees = {
        u["userId"]: u
        for u in db[USERS].find(
            {"userId": {"$in": trainee_ids}}, {"_id": 0, "userId": 1, "firstName": 1, "lastName": 1, "email": 1}
        )
    }
    for p in plans:
        p["trainee"] = trainees.get(p.get("traineeId"))
    return plans


def _count_status(modules: Iterable[dict[str, Any]], status: str) -> int:
    return sum(1 for m in modules if m.get("status") == status)


def _plan_rollup(plan: dict[str, Any]) -> dict[str, Any]:
    modules = list(plan.get("modules") or [])
    completed = _count_status(modules, MODULE_COMPLETED)
    return {
        "planId": plan.get("planId"),
        "planName": plan.get("planName"),
        "description": plan.get("description") or "",
        "status": plan.get("status"),
        "totalModules": len(modules),
        "completedModules": completed,
        "inProgressModules": _count_status(modules, MODULE_IN_PROGRESS),
        "pendingModules": _count_status(modules, MODULE_PENDING),
        "progressPercentage": compute_progress(completed, len(modules)),
        "startDate": (modules[0].get("startDate") if modules else None) or plan.get("createdAt"),
        "endDate": modules[-1].get("endDate") if modules else None,
        "modules": modules,
    }


def trainee_plan_progress(db, trainee_id: str) -> list[dict[str, Any]]:
    plans = db[TRAINING_PLANS].find({"traineeId": trainee_id}, {"_id": 0}).sort("createdAt", -1)
    return [_plan_rollup(p) for p in plans]


def admin_plan_progress(db) -> dict[str, Any]:
    plans = list(db[TRAINING_PLANS].find({}, {"_id": 0}).sort("createdAt", -1))
    trainee_ids = sorted({p.get("traineeId") for p in plans if p.get("traineeId")})
    trainees = db[USERS].find(
        {"userId": {"$in": trainee_ids}, "role": "trainee"},
        {"_id": 0, "userId": 1, "firstName": 1, "lastName": 1, "email": 1},
    )

    rows = []
    for trainee in trainees:
        mine = [p for p in plans if p.get("traineeId") == trainee["userId"]]
        modules = [m for p in mine for m in p.get("modules") or []]
        completed = _count_status(modules, MODULE_COMPLETED)
        rows.append(
            {
                "traineeId": trainee["userId"],
                "traineeName": f"{trainee.get('firstName') or ''} {trainee.get('lastName') or ''}".strip(),
                "traineeEmail": trainee.get("email") or "",
                "totalPlans": len(mine),
                "totalModules": len(modules),
                "completedModules": completed,
                "inProgressModules": _count_status(modules, MODULE_IN_PROGRESS),
                "pendingModules": _count_status(modules, MODULE_PENDING),
                "progressPercentage": compute_progress(completed, len(modules)),
                "plans": [{"planId": p.get("planId"), "planName": p.get("planName"), "status": p.get("status")} for p in mine],
            }
        )

    average = compute_progress(sum(r["progressPercentage"] for r in rows), 100 * len(rows)) if rows else 0
    return {
        "progress": rows,
        "summary": {"totalTrainees": len(rows), "totalPlans": len(plans), "averageProgress": average},
    }
