"""
Canonical course / module / test shapes over Contentstack entries.

Field names drifted across content-type versions (``title`` vs
``course_title``, modules under ``reference`` or ``course_modules``...).
Every lookup goes through ``ACCESSORS`` so the fallback order lives in one
place.
"""
from __future__ import annotations

from typing import Any, Iterable

from services.taxonomy import detect_taxonomy_field_name, extract_taxonomy_terms

UNTITLED_COURSE = "Untitled Course"
UNTITLED_MODULE = "Untitled Module"
UNTITLED_SECTION = "Untitled Section"
DEFAULT_TEST_TITLE = "Knowledge Check"
DEFAULT_INSTRUCTION_TITLE = "Instructions"

OPTION_KEYS = ("option_1", "option_2", "option_3", "option_4")

# logical field -> candidate keys (dotted keys walk nested objects), first non-empty wins
ACCESSORS: dict[str, tuple[str, ...]] = {
    "course.title": (
        "title",
        "course_title",
        "name",
        "course_name",
        "course_details.title",
        "course_details.course_title",
    ),
    "course.description": ("description", "course_description", "details"),
    "course.modules": ("reference", "course_modules"),
    "course.test": ("reference_test",),
    "module.title": ("title", "module_title", "name"),
    "module.description": ("description", "module_description"),
    "module.content": ("content", "module_content"),
    "module.trainer": ("trainer",),
    "module.number": ("module_number", "moduleNumber"),
}

DEFAULTS: dict[str, Any] = {
    "course.title": UNTITLED_COURSE,
    "course.description": "",
    "module.title": UNTITLED_MODULE,
    "module.description": "",
    "module.content": "",
    "module.trainer": {},
    "module.number": 0,
}


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _dig(entry: dict[str, Any], dotted: str) -> Any:
    cur: Any = entry
    for part in dotted.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur


def resolve(entry: Any, logical: str, default: Any = None) -> Any:
    """First non-empty value among the candidate keys of ``logical``."""
    if isinstance(entry, dict):
        for key in ACCESSORS[logical]:
            val = _dig(entry, key)
            if not _is_empty(val):
                return val
    if default is None:
        default = DEFAULTS.get(logical)
    # Fresh containers so callers can't share a mutable default.
    if isinstance(default, dict):
        return dict(default)
    if isinstance(default, list):
        return list(default)
    return default


def module_sort_key(module: dict[str, Any]) -> float:
    raw = module.get("module_number")
    if isinstance(raw, bool):
        return 0.0
    try:
        num = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return num if num == num else 0.0  # NaN


def map_module(entry: dict[str, Any]) -> dict[str, Any]:
    out = dict(entry or {})
    out.update(
        {
            "uid": out.get("uid"),
            "title": resolve(entry, "module.title"),
            "description": resolve(entry, "module.description"),
            "content": resolve(entry, "module.content"),
            "trainer": resolve(entry, "module.trainer"),
            "module_number": resolve(entry, "module.number"),
            "course_module_group": out.get("course_module_group") or None,
            "course_video": out.get("course_video") or None,
        }
    )
    return out


def map_modules(entries: Iterable[Any]) -> list[dict[str, Any]]:
    """Map and order modules by ``module_number`` (stable)."""
    mapped = [map_module(e) for e in entries or [] if isinstance(e, dict)]
    return sorted(mapped, key=module_sort_key)


def resolve_modules(entry: Any) -> list[Any]:
    if isinstance(entry, dict):
        for key in ACCESSORS["course.modules"]:
            val = entry.get(key)
            if isinstance(val, list):
                return val
    return []


def count_modules(entry: Any) -> int:
    return len(resolve_modules(entry))


def resolve_test_reference(entry: Any) -> dict[str, Any] | None:
    ref = resolve(entry, "course.test")
    if isinstance(ref, list):
        ref = ref[0] if ref else None
    if isinstance(ref, dict) and ref.get("uid"):
        return ref
    return None


def map_course(entry: dict[str, Any]) -> dict[str, Any]:
    out = dict(entry or {})
    modules = map_modules(resolve_modules(entry))
    out.update(
        {
            "uid": out.get("uid"),
            "title": resolve(entry, "course.title"),
            "description": resolve(entry, "course.description"),
            "course_thumbnail": out.get("course_thumbnail") or None,
            "taxonomy": extract_taxonomy_terms(entry),
            "taxonomy_field": detect_taxonomy_field_name(entry),
            "course_modules": modules,
            "module_count": len(modules),
        }
    )
    return out


def _instruction(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    if not isinstance(raw, dict) or not raw.get("uid"):
        return None
    content = raw.get("instruction_knowledge_check")
    if isinstance(content, str):
        has_content = bool(content.strip())
    else:
        has_content = isinstance(content, dict) and bool(content)
    if not has_content:
        return None
    return {
        "uid": raw["uid"],
        "title": raw.get("title") or DEFAULT_INSTRUCTION_TITLE,
        "instruction_knowledge_check": content,
    }


def _question(raw: dict[str, Any]) -> dict[str, Any]:
    options = raw.get("option_value")
    if not isinstance(options, dict) or not options:
        options = {k: "" for k in OPTION_KEYS}
    return {
        "question_to_be_asked": raw.get("question_to_be_asked") or "",
        "option_value": options,
        "correct_answer": raw.get("please_select_the_answer") or None,
    }


def map_test(entry: dict[str, Any]) -> dict[str, Any]:
    entry = entry or {}
    sections = []
    for sec in entry.get("section") or []:
        if not isinstance(sec, dict):
            continue
        sections.append(
            {
                "section_title": sec.get("section_title") or UNTITLED_SECTION,
                "questions": [_question(q) for q in sec.get("question") or [] if isinstance(q, dict)],
                "coding_questions": [
                    {"coding_question_to_be_asked": q.get("coding_question_to_be_asked") or ""}
                    for q in sec.get("question_coding") or []
                    if isinstance(q, dict)
                ],
            }
        )
    return {
        "uid": entry.get("uid"),
        "title": entry.get("title") or DEFAULT_TEST_TITLE,
        "instruction": _instruction(entry.get("instruction")),
        "sections": sections,
    }


def hide_correct_answers(test: dict[str, Any]) -> dict[str, Any]:
    """Trainee view of a mapped test."""
    out = dict(test)
    out["sections"] = [
        {**sec, "questions": [{k: v for k, v in q.items() if k != "correct_answer"} for q in sec["questions"]]}
        for sec in test.get("sections") or []
    ]
    return out
