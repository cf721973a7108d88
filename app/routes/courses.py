from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, current_app, request

from app import get_cms
from app.db import get_db
from app.utils import ApiError, as_int, ok, parse_json_body
from auth import ADMINS, ALL_ROLES, current_auth, is_admin, require_roles
from cache_layer import cms_cached
from services.course_mapper import (
    count_modules,
    hide_correct_answers,
    map_course,
    map_modules,
    map_test,
    resolve_test_reference,
)
from services.course_progress import admin_progress_summary, complete_module, get_progress
from services.knowledge_check import grade_submission, no_test_result
from services.taxonomy import build_term_tree, filter_entries_by_term, load_taxonomy_terms
from services.training_plans import sync_module_completion

logger = logging.getLogger(__name__)

courses_bp = Blueprint("courses", __name__)

# Module references live under either field depending on the content-type version.
MODULE_REFS = ["reference", "course_modules"]


def _fetch_course(course_id: str, include: list[str]) -> dict[str, Any]:
    cms = get_cms()
    return cms_cached(
        "course",
        {"uid": course_id, "include": include},
        lambda: cms.get_entry("course", course_id, include=include),
    )


def _fetch_test(course_id: str) -> dict[str, Any] | None:
    """Mapped knowledge check of a course, or None when it has none."""
    course = _fetch_course(course_id, ["reference_test"])
    ref = resolve_test_reference(course)
    if not ref:
        return None
    cms = get_cms()
    entry = cms_cached(
        "course_test",
        {"uid": ref["uid"]},
        lambda: cms.get_entry("course_test", ref["uid"], include=["instruction"]),
    )
    return map_test(entry)


def _total_modules(course_id: str) -> int:
    return count_modules(_fetch_course(course_id, MODULE_REFS))


@courses_bp.get("/courses")
@require_roles(*ALL_ROLES)
def courses_list():
    cfg = current_app.config["CFG"]
    cms = get_cms()
    search = str(request.args.get("search") or "").strip() or None
    term_uid = str(request.args.get("taxonomy") or "").strip()

    entries, _count = cms_cached(
        "course_list",
        {"search": search, "include": MODULE_REFS},
        lambda: cms.find_entries("course", include=MODULE_REFS, search=search),
    )
    if term_uid:
        terms = load_taxonomy_terms(cms, cfg.TAXONOMY_UID, cfg.TAXONOMY_FALLBACK_DIR)
        nodes = build_term_tree(terms)["flat"]
        entries = filter_entries_by_term(entries, term_uid, nodes)

    courses = [map_course(e) for e in entries]
    return ok({"courses": courses, "count": len(courses)})


@courses_bp.get("/courses/<course_id>")
@require_roles(*ALL_ROLES)
def course_detail(course_id: str):
    return ok({"course": map_course(_fetch_course(course_id, MODULE_REFS))})


@courses_bp.get("/courses/entry/<entry_id>")
@require_roles(*ALL_ROLES)
def course_entry(entry_id: str):
    return ok({"course": map_course(_fetch_course(entry_id, ["reference"]))})


@courses_bp.get("/course-modules")
@require_roles(*ALL_ROLES)
def course_modules():
    cms = get_cms()
    entries, _count = cms_cached("course_module_list", {}, lambda: cms.find_entries("course_module"))
    modules = map_modules(entries)
    return ok({"modules": modules, "count": len(modules)})


@courses_bp.get("/courses/<course_id>/progress")
@require_roles(*ALL_ROLES)
def progress_get(course_id: str):
    auth_ctx = current_auth()
    total = as_int(request.args.get("totalModules"))
    if total is None:
        try:
            total = _total_modules(course_id)
        except ApiError as e:
            # Stored percentage is still a usable answer for a read.
            logger.warning("Module count unavailable course=%s: %s", course_id, e.message)
    return ok({"progress": get_progress(get_db(), auth_ctx.userId, course_id, total)})


@courses_bp.post("/courses/<course_id>/progress")
@require_roles(*ALL_ROLES)
def progress_complete(course_id: str):
    auth_ctx = current_auth()
    data = parse_json_body(request.get_data(as_text=True))
    module_uid = str(data.get("moduleUid") or "").strip()
    if not module_uid:
        raise ApiError("BAD_REQUEST", "Module UID is required")

    total = as_int(data.get("totalModules"))
    if total is None:
        total = _total_modules(course_id)

    db = get_db()
    progress = complete_module(db, auth_ctx.userId, course_id, module_uid, total)
    updated_plans = sync_module_completion(db, auth_ctx.userId, module_uid)
    return ok({"progress": progress, "updatedPlans": updated_plans, "message": "Module marked as complete"})


@courses_bp.get("/courses/progress/admin")
@require_roles(*ADMINS)
def progress_admin():
    return ok({"progress": admin_progress_summary(get_db())})


@courses_bp.get("/courses/<course_id>/test")
@require_roles(*ALL_ROLES)
def test_get(course_id: str):
    test = _fetch_test(course_id)
    if test is None:
        return ok({"test": None, "message": "No knowledge check available for this course"})
    if not is_admin(current_auth()):
        test = hide_correct_answers(test)
    return ok({"test": test})


@courses_bp.post("/courses/<course_id>/test/submit")
@require_roles(*ALL_ROLES)
def test_submit(course_id: str):
    data = parse_json_body(request.get_data(as_text=True))
    answers = data.get("answers")
    if not isinstance(answers, list):
        raise ApiError("BAD_REQUEST", "Answers array is required")

    test = _fetch_test(course_id)
    if test is None:
        return ok(no_test_result())

    result = grade_submission(test, answers)
    logger.info(
        "Knowledge check graded course=%s user=%s score=%s%%",
        course_id,
        current_auth().userId,
        result["score"]["percentage"],
    )
    return ok(result)
