from __future__ import annotations

from services.knowledge_check import MANUAL_REVIEW, grade_submission, no_test_result


def _question(correct: str) -> dict:
    return {
        "question_to_be_asked": f"Pick {correct}",
        "option_value": {"option_1": "One", "option_2": "Two", "option_3": "Three", "option_4": "Four"},
        "correct_answer": correct,
    }


def _test(correct_keys=("option_2",), coding=0) -> dict:
    return {
        "uid": "t1",
        "title": "Knowledge Check",
        "instruction": None,
        "sections": [
            {
                "section_title": "S1",
                "questions": [_question(k) for k in correct_keys],
                "coding_questions": [{"coding_question_to_be_asked": f"Code {i}"} for i in range(coding)],
            }
        ],
    }


def test_single_correct_answer_passes():
    out = grade_submission(
        _test(), [{"sectionIndex": 0, "questionIndex": 0, "answer": "option_2", "questionType": "normal"}]
    )
    assert out["available"] is True
    assert out["score"] == {"correct": 1, "total": 1, "percentage": 100, "passed": True}
    result = out["results"][0]
    assert result["userAnswerText"] == "Two"
    assert result["correctAnswerText"] == "Two"
    assert result["question"] == "Pick option_2"
    assert out["message"] == "Congratulations! You scored 100% and passed the knowledge check."


def test_three_of_five_fails():
    keys = ("option_1", "option_2", "option_3", "option_4", "option_1")
    answers = ["option_1", "option_2", "option_3", "option_1", "option_2"]
    out = grade_submission(
        _test(keys),
        [
            {"sectionIndex": 0, "questionIndex": i, "answer": a, "questionType": "normal"}
            for i, a in enumerate(answers)
        ],
    )
    assert out["score"] == {"correct": 3, "total": 5, "percentage": 60, "passed": False}
    assert out["message"] == "You scored 60%. You need at least 80% to pass. Please review and try again."
    wrong = out["results"][3]
    assert wrong["isCorrect"] is False
    assert wrong["userAnswerText"] == "One"
    assert wrong["correctAnswerText"] == "Four"


def test_invalid_references_are_skipped():
    out = grade_submission(
        _test(),
        [
            {"sectionIndex": 3, "questionIndex": 0, "answer": "option_2", "questionType": "normal"},
            {"sectionIndex": 0, "questionIndex": 9, "answer": "option_2", "questionType": "normal"},
            {"sectionIndex": -1, "questionIndex": 0, "answer": "option_2", "questionType": "normal"},
            {"sectionIndex": True, "questionIndex": 0, "answer": "option_2", "questionType": "normal"},
            {"sectionIndex": 0, "questionIndex": 0, "answer": "option_2", "questionType": "essay"},
            {"sectionIndex": 0, "questionIndex": 0, "answer": "x", "questionType": "coding"},
            "garbage",
        ],
    )
    assert out["score"] == {"correct": 0, "total": 0, "percentage": 0, "passed": False}
    assert out["results"] == []


def test_coding_answers_need_manual_review():
    out = grade_submission(
        _test(coding=1),
        [
            {"sectionIndex": 0, "questionIndex": 0, "answer": "option_2", "questionType": "normal"},
            {"sectionIndex": "0", "questionIndex": "0", "answer": "print('hi')", "questionType": "coding"},
        ],
    )
    assert out["score"]["total"] == 2
    assert out["score"]["correct"] == 1
    assert out["score"]["percentage"] == 50
    coding = out["results"][1]
    assert coding["isCorrect"] is False
    assert coding["requiresManualReview"] is True
    assert coding["correctAnswer"] == MANUAL_REVIEW
    assert coding["userAnswerText"] == "print('hi')"
    assert coding["question"] == "Code 0"


def test_answer_key_not_in_options_falls_back_to_key():
    out = grade_submission(
        _test(), [{"sectionIndex": 0, "questionIndex": 0, "answer": "option_9", "questionType": "normal"}]
    )
    assert out["results"][0]["userAnswerText"] == "option_9"


def test_no_test_result():
    out = no_test_result()
    assert out["available"] is False
    assert out["score"] is None
    assert out["message"] == "No knowledge check found for this course"


def test_question_without_answer_key_is_never_correct():
    test = _test()
    test["sections"][0]["questions"][0]["correct_answer"] = None

    blank = grade_submission(test, [{"sectionIndex": 0, "questionIndex": 0, "questionType": "normal"}])
    assert blank["score"]["correct"] == 0
    assert blank["score"]["total"] == 1
    assert blank["results"][0]["isCorrect"] is False

    guessed = grade_submission(
        test, [{"sectionIndex": 0, "questionIndex": 0, "answer": "option_1", "questionType": "normal"}]
    )
    assert guessed["score"]["correct"] == 0
