"""
Per-(user, course) module completion.

``progress`` is derived data: it is recomputed against the caller-supplied
module total on every read and write, since the module list of a course can
change after a trainee started it.
"""
from __future__ import annotations

import logging
from typing import Any

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.db import COURSE_PROGRESS, USERS
from app.utils import ApiError, iso_utc_now, strip_mongo_id

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 5


def compute_progress(completed_count: int, total: int) -> int:
    """Rounded (half-up) percentage in [0, 100]; 0 when there are no modules."""
    completed_count = max(0, int(completed_count or 0))
    total = int(total or 0)
    if total <= 0:
        return 0
    pct = (200 * completed_count + total) // (2 * total)
    return max(0, min(100, pct))


def zero_state(user_id: str, course_uid: str) -> dict[str, Any]:
    return {
        "userId": user_id,
        "courseUid": course_uid,
        "completedModules": [],
        "currentModule": None,
        "progress": 0,
        "startedAt": None,
        "lastAccessedAt": None,
    }


def _derived(doc: dict[str, Any], total_modules: int | None, now: str) -> dict[str, Any]:
    completed = list(doc.get("completedModules") or [])
    total = len(completed) if total_modules is None else int(total_modules)
    done = total > 0 and len(completed) >= total
    return {
        "progress": 100 if done else compute_progress(len(completed), total),
        "completedAt": (doc.get("completedAt") or now) if done else None,
    }


def get_progress(db, user_id: str, course_uid: str, total_modules: int | None = None) -> dict[str, Any]:
    doc = db[COURSE_PROGRESS].find_one({"userId": user_id, "courseUid": course_uid}, {"_id": 0})
    if not doc:
        return zero_state(user_id, course_uid)
    if total_modules is not None:
        completed = len(doc.get("completedModules") or [])
        doc["progress"] = compute_progress(completed, total_modules)
        # Modules added after completion reopen the course.
        if total_modules <= 0 or completed < total_modules:
            doc["completedAt"] = None
    return doc


def _add_module(db, user_id: str, course_uid: str, module_uid: str) -> dict[str, Any]:
    now = iso_utc_now()
    update = {
        "$addToSet": {"completedModules": module_uid},
        "$set": {"currentModule": module_uid, "lastAccessedAt": now, "updatedAt": now},
        "$setOnInsert": {
            "courseId": course_uid,
            "progress": 0,
            "startedAt": now,
            "completedAt": None,
            "createdAt": now,
        },
    }
    for attempt in range(MAX_UPDATE_ATTEMPTS):
        try:
            return db[COURSE_PROGRESS].find_one_and_update(
                {"userId": user_id, "courseUid": course_uid},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Two first-completions raced on the insert; the loser retries as an update.
            logger.warning("Progress upsert raced user=%s course=%s attempt=%s", user_id, course_uid, attempt + 1)
    raise ApiError("CONFLICT", "Progress update conflicted, please retry")


def complete_module(
    db, user_id: str, course_uid: str, module_uid: str, total_modules: int | None = None
) -> dict[str, Any]:
    """
    Mark ``module_uid`` completed for (user, course) and return the record.

    Completion is idempotent. The derived fields are written with a
    compare-and-set on the exact ``completedModules`` array that was read, so
    a concurrent completion can't be overwritten with a stale percentage.
    """
    user_id = str(user_id or "").strip()
    course_uid = str(course_uid or "").strip()
    module_uid = str(module_uid or "").strip()
    if not user_id or not course_uid:
        raise ApiError("BAD_REQUEST", "userId and courseUid are required")
    if not module_uid:
        raise ApiError("BAD_REQUEST", "Module UID is required")
    if total_modules is not None and int(total_modules) < 0:
        raise ApiError("BAD_REQUEST", "totalModules must not be negative")

    doc = _add_module(db, user_id, course_uid, module_uid)

    for attempt in range(MAX_UPDATE_ATTEMPTS):
        completed = list(doc.get("completedModules") or [])
        fields = _derived(doc, total_modules, iso_utc_now())
        if all(doc.get(k) == v for k, v in fields.items()):
            return strip_mongo_id(doc)

        res = db[COURSE_PROGRESS].update_one(
            {"_id": doc["_id"], "completedModules": completed},
            {"$set": fields},
        )
        if res.matched_count:
            doc.update(fields)
            return strip_mongo_id(doc)

        logger.warning(
            "Progress write lost a race user=%s course=%s attempt=%s", user_id, course_uid, attempt + 1
        )
        doc = db[COURSE_PROGRESS].find_one({"_id": doc["_id"]})
        if not doc:
            raise ApiError("CONFLICT", "Progress record disappeared during update, please retry")

    raise ApiError("CONFLICT", "Progress update conflicted, please retry")


def admin_progress_summary(db) -> list[dict[str, Any]]:
    """Course progress grouped by trainee, most recently active records first."""
    records = list(db[COURSE_PROGRESS].find({}, {"_id": 0}).sort("lastAccessedAt", -1))
    user_ids = sorted({r.get("userId") for r in records if isinstance(r.get("userId"), str)})
    if not user_ids:
        return []

    trainees = db[USERS].find(
        {"userId": {"$in": user_ids}, "role": "trainee"},
        {"_id": 0, "userId": 1, "firstName": 1, "lastName": 1, "email": 1},
    )

    out = []
    for trainee in trainees:
        mine = [r for r in records if r.get("userId") == trainee["userId"]]
        completed = sum(len(r.get("completedModules") or []) for r in mine)
        total_progress = sum(int(r.get("progress") or 0) for r in mine)
        out.append(
            {
                "traineeId": trainee["userId"],
                "traineeName": f"{trainee.get('firstName') or ''} {trainee.get('lastName') or ''}".strip(),
                "traineeEmail": trainee.get("email") or "",
                "totalCourses": len(mine),
                "completedModules": completed,
                "averageProgress": compute_progress(total_progress, 100 * len(mine)) if mine else 0,
                "courses": [
                    {
                        "courseUid": r.get("courseUid"),
                        "progress": int(r.get("progress") or 0),
                        "completedModules": len(r.get("completedModules") or []),
                        "currentModule": r.get("currentModule"),
                        "lastAccessedAt": r.get("lastAccessedAt"),
                        "startedAt": r.get("startedAt"),
                        "completedAt": r.get("completedAt"),
                    }
                    for r in mine
                ],
            }
        )
    return out
