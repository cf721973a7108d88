from __future__ import annotations

from typing import Any, Iterable

PASS_THRESHOLD = 80
MANUAL_REVIEW = "N/A - Coding question requires manual review"
NO_TEST_MESSAGE = "No knowledge check found for this course"

QUESTION_NORMAL = "normal"
QUESTION_CODING = "coding"


def _index(value: Any) -> int | None:
    # Booleans and floats are not indexes; digit strings are accepted.
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _pick(items: Any, idx: int | None) -> Any:
    if idx is None or not isinstance(items, list) or idx >= len(items):
        return None
    return items[idx]


def score_percentage(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def result_message(percentage: int, passed: bool) -> str:
    if passed:
        return f"Congratulations! You scored {percentage}% and passed the knowledge check."
    return f"You scored {percentage}%. You need at least {PASS_THRESHOLD}% to pass. Please review and try again."


def _grade_normal(question: dict[str, Any], answer: str, s_idx: int, q_idx: int) -> dict[str, Any]:
    options = question.get("option_value") or {}
    correct = question.get("correct_answer") or ""
    return {
        "sectionIndex": s_idx,
        "questionIndex": q_idx,
        "questionType": QUESTION_NORMAL,
        "isCorrect": bool(correct) and answer == correct,
        "userAnswer": answer,
        "userAnswerText": options.get(answer) or answer,
        "correctAnswer": correct,
        "correctAnswerText": options.get(correct) or correct,
        "question": question.get("question_to_be_asked") or "",
        "requiresManualReview": False,
    }


def _grade_coding(question: dict[str, Any], answer: str, s_idx: int, q_idx: int) -> dict[str, Any]:
    return {
        "sectionIndex": s_idx,
        "questionIndex": q_idx,
        "questionType": QUESTION_CODING,
        "isCorrect": False,
        "userAnswer": answer,
        "userAnswerText": answer,
        "correctAnswer": MANUAL_REVIEW,
        "correctAnswerText": MANUAL_REVIEW,
        "question": question.get("coding_question_to_be_asked") or "",
        "requiresManualReview": True,
    }


def grade_submission(test: dict[str, Any], answers: Iterable[Any]) -> dict[str, Any]:
    """
    Score ``answers`` against a mapped test (see ``course_mapper.map_test``).

    Answers pointing at a section or question that doesn't exist are skipped;
    coding answers count toward the total but are never marked correct.
    """
    sections = (test or {}).get("sections") or []
    results: list[dict[str, Any]] = []

    for raw in answers or []:
        if not isinstance(raw, dict):
            continue
        s_idx = _index(raw.get("sectionIndex"))
        q_idx = _index(raw.get("questionIndex"))
        answer = raw.get("answer")
        answer = "" if answer is None else str(answer)
        qtype = raw.get("questionType")

        section = _pick(sections, s_idx)
        if not isinstance(section, dict):
            continue

        if qtype == QUESTION_NORMAL:
            question = _pick(section.get("questions"), q_idx)
            if isinstance(question, dict):
                results.append(_grade_normal(question, answer, s_idx, q_idx))
        elif qtype == QUESTION_CODING:
            question = _pick(section.get("coding_questions"), q_idx)
            if isinstance(question, dict):
                results.append(_grade_coding(question, answer, s_idx, q_idx))

    total = len(results)
    correct = sum(1 for r in results if r["isCorrect"])
    percentage = score_percentage(correct, total)
    passed = percentage >= PASS_THRESHOLD
    return {
        "available": True,
        "score": {"correct": correct, "total": total, "percentage": percentage, "passed": passed},
        "results": results,
        "message": result_message(percentage, passed),
    }


def no_test_result() -> dict[str, Any]:
    return {"available": False, "test": None, "score": None, "results": [], "message": NO_TEST_MESSAGE}
