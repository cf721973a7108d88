from __future__ import annotations

import json

import pytest

from app.db import COURSE_PROGRESS, TRAINING_PLANS


@pytest.fixture()
def catalog(cms):
    cms.add_entry(
        "course",
        {
            "uid": "c1",
            "title": "Python Basics",
            "taxonomies": [{"uid": "backend", "name": "Backend"}],
            "reference": [
                {"uid": "m2", "title": "Functions", "module_number": 2},
                {"uid": "m1", "title": "Variables", "module_number": 1},
            ],
            "reference_test": [{"uid": "t1"}],
        },
    )
    cms.add_entry(
        "course",
        {
            "uid": "c2",
            "course_title": "Design Systems",
            "taxonomies": [{"uid": "ui"}],
            "course_modules": [{"uid": "m9", "module_title": "Tokens"}],
        },
    )
    cms.add_entry(
        "course_test",
        {
            "uid": "t1",
            "title": "Python Check",
            "section": [
                {
                    "section_title": "Basics",
                    "question": [
                        {
                            "question_to_be_asked": "Which keyword defines a function?",
                            "option_value": {"option_1": "func", "option_2": "def", "option_3": "fn", "option_4": "lambda"},
                            "please_select_the_answer": "option_2",
                        }
                    ],
                }
            ],
        },
    )
    cms.add_entry("course_module", {"uid": "m1", "title": "Variables", "module_number": "1"})
    cms.add_entry("course_module", {"uid": "m0", "title": "Setup", "module_number": "0.5"})
    cms.terms["course_module"] = [
        {"uid": "eng", "name": "Engineering"},
        {"uid": "backend", "name": "Backend", "parent_uid": "eng"},
        {"uid": "ui", "name": "UI"},
    ]
    return cms


@pytest.fixture()
def trainee(app_client, make_user, login):
    user = make_user("ada@example.com", "trainee", first_name="Ada", last_name="Lovelace")
    return user, login("ada@example.com")


@pytest.fixture()
def admin(app_client, make_user, login):
    user = make_user("admin@example.com", "admin")
    return user, login("admin@example.com")


def test_course_list_and_search(app_client, catalog, trainee):
    _app, client = app_client
    _user, headers = trainee

    body = client.get("/api/courses", headers=headers).get_json()["data"]
    assert body["count"] == 2
    titles = {c["uid"]: c["title"] for c in body["courses"]}
    assert titles == {"c1": "Python Basics", "c2": "Design Systems"}

    found = client.get("/api/courses?search=python", headers=headers).get_json()["data"]
    assert [c["uid"] for c in found["courses"]] == ["c1"]


def test_course_list_filtered_by_taxonomy_subtree(app_client, catalog, trainee):
    _app, client = app_client
    _user, headers = trainee

    eng = client.get("/api/courses?taxonomy=eng", headers=headers).get_json()["data"]
    assert [c["uid"] for c in eng["courses"]] == ["c1"]

    ui = client.get("/api/courses?taxonomy=ui", headers=headers).get_json()["data"]
    assert [c["uid"] for c in ui["courses"]] == ["c2"]


def test_course_detail_maps_and_orders_modules(app_client, catalog, trainee):
    _app, client = app_client
    _user, headers = trainee

    course = client.get("/api/courses/c1", headers=headers).get_json()["data"]["course"]
    assert [m["uid"] for m in course["course_modules"]] == ["m1", "m2"]
    assert course["module_count"] == 2
    assert course["taxonomy"] == [{"uid": "backend", "name": "Backend"}]
    assert course["taxonomy_field"] == "taxonomies"

    other = client.get("/api/courses/entry/c2", headers=headers).get_json()["data"]["course"]
    assert other["title"] == "Design Systems"
    assert other["course_modules"][0]["title"] == "Tokens"

    missing = client.get("/api/courses/nope", headers=headers)
    assert missing.status_code == 404


def test_course_modules_sorted(app_client, catalog, trainee):
    _app, client = app_client
    _user, headers = trainee

    data = client.get("/api/course-modules", headers=headers).get_json()["data"]
    assert [m["uid"] for m in data["modules"]] == ["m0", "m1"]


def test_taxonomy_endpoint_builds_tree(app_client, catalog, trainee):
    _app, client = app_client
    _user, headers = trainee

    data = client.get("/api/taxonomy", headers=headers).get_json()["data"]
    assert data["count"] == 3
    roots = [n["uid"] for n in data["taxonomyTree"]]
    assert roots == ["eng", "ui"]
    backend = next(n for n in data["taxonomy"] if n["uid"] == "backend")
    assert backend["path"] == "Engineering > Backend"
    assert backend["level"] == 1


def test_taxonomy_falls_back_to_file(app_client, cms, trainee, tmp_path):
    _app, client = app_client
    _user, headers = trainee
    (tmp_path / "skills.json").write_text(
        json.dumps({"taxonomy": {"uid": "skills"}, "terms": [{"uid": "py", "name": "Python"}]}),
        encoding="utf-8",
    )

    data = client.get("/api/taxonomy?uid=skills", headers=headers).get_json()["data"]
    assert [n["uid"] for n in data["taxonomy"]] == ["py"]

    empty = client.get("/api/taxonomy?uid=unknown", headers=headers).get_json()["data"]
    assert empty == {"taxonomy": [], "taxonomyTree": [], "count": 0}


def test_progress_starts_at_zero(app_client, catalog, trainee):
    _app, client = app_client
    user, headers = trainee

    data = client.get("/api/courses/c1/progress", headers=headers).get_json()["data"]
    assert data["progress"]["progress"] == 0
    assert data["progress"]["userId"] == user["userId"]

    # Unknown course: stored state is still served.
    res = client.get("/api/courses/unknown/progress", headers=headers)
    assert res.status_code == 200


def test_completing_a_module_updates_progress_and_plan(app_client, catalog, trainee):
    app, client = app_client
    user, headers = trainee
    db = app.extensions["mongo_db"]
    db[TRAINING_PLANS].insert_one(
        {
            "planId": "plan-1",
            "planName": "Onboarding",
            "traineeId": user["userId"],
            "modules": [
                {"moduleUid": "m1", "moduleName": "Variables", "status": "pending"},
                {"moduleUid": "m2", "moduleName": "Functions", "status": "pending"},
            ],
            "status": "scheduled",
            "version": 1,
        }
    )

    res = client.post("/api/courses/c1/progress", json={"moduleUid": "m1"}, headers=headers)
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["progress"]["progress"] == 50
    assert data["progress"]["completedModules"] == ["m1"]
    assert data["updatedPlans"] == ["plan-1"]

    plan = db[TRAINING_PLANS].find_one({"planId": "plan-1"})
    assert [m["status"] for m in plan["modules"]] == ["completed", "in-progress"]
    assert plan["status"] == "in-progress"

    # Replaying the same completion changes nothing.
    again = client.post("/api/courses/c1/progress", json={"moduleUid": "m1"}, headers=headers).get_json()["data"]
    assert again["updatedPlans"] == []
    assert db[COURSE_PROGRESS].count_documents({}) == 1

    done = client.post("/api/courses/c1/progress", json={"moduleUid": "m2"}, headers=headers).get_json()["data"]
    assert done["progress"]["progress"] == 100
    assert done["progress"]["completedAt"]

    rows = client.get("/api/training-plans/progress", headers=headers).get_json()["data"]
    assert rows["userRole"] == "trainee"
    assert rows["progress"][0]["progressPercentage"] == 100


def test_progress_validation(app_client, catalog, trainee):
    _app, client = app_client
    _user, headers = trainee

    res = client.post("/api/courses/c1/progress", json={}, headers=headers)
    assert res.status_code == 400
    assert res.get_json()["error"]["message"] == "Module UID is required"

    res = client.post("/api/courses/unknown/progress", json={"moduleUid": "m1"}, headers=headers)
    assert res.status_code == 404

    res = client.post("/api/courses/unknown/progress", json={"moduleUid": "m1", "totalModules": 4}, headers=headers)
    assert res.get_json()["data"]["progress"]["progress"] == 25


def test_admin_progress_requires_admin(app_client, catalog, trainee, admin):
    _app, client = app_client
    _user, trainee_headers = trainee
    _admin, admin_headers = admin

    client.post("/api/courses/c1/progress", json={"moduleUid": "m1"}, headers=trainee_headers)

    assert client.get("/api/courses/progress/admin", headers=trainee_headers).status_code == 403
    rows = client.get("/api/courses/progress/admin", headers=admin_headers).get_json()["data"]["progress"]
    assert rows[0]["traineeName"] == "Ada Lovelace"
    assert rows[0]["averageProgress"] == 50


def test_trainee_test_view_hides_answers(app_client, catalog, trainee, admin):
    _app, client = app_client
    _user, trainee_headers = trainee
    _admin, admin_headers = admin

    test = client.get("/api/courses/c1/test", headers=trainee_headers).get_json()["data"]["test"]
    assert test["title"] == "Python Check"
    assert "correct_answer" not in test["sections"][0]["questions"][0]

    admin_view = client.get("/api/courses/c1/test", headers=admin_headers).get_json()["data"]["test"]
    assert admin_view["sections"][0]["questions"][0]["correct_answer"] == "option_2"

    none = client.get("/api/courses/c2/test", headers=trainee_headers).get_json()["data"]
    assert none["test"] is None


def test_submit_knowledge_check(app_client, catalog, trainee):
    _app, client = app_client
    _user, headers = trainee

    res = client.post(
        "/api/courses/c1/test/submit",
        json={"answers": [{"sectionIndex": 0, "questionIndex": 0, "answer": "option_2", "questionType": "normal"}]},
        headers=headers,
    )
    data = res.get_json()["data"]
    assert data["score"] == {"correct": 1, "total": 1, "percentage": 100, "passed": True}
    assert data["results"][0]["correctAnswerText"] == "def"

    bad = client.post("/api/courses/c1/test/submit", json={"answers": "nope"}, headers=headers)
    assert bad.status_code == 400

    no_test = client.post("/api/courses/c2/test/submit", json={"answers": []}, headers=headers)
    assert no_test.status_code == 200
    assert no_test.get_json()["data"]["available"] is False


def test_training_plan_api(app_client, catalog, trainee, admin):
    _app, client = app_client
    user, trainee_headers = trainee
    _admin, admin_headers = admin

    payload = {
        "planName": "Onboarding",
        "traineeId": user["userId"],
        "modules": [{"moduleUid": "m1", "moduleName": "Variables", "startDate": "2024-01-01", "endDate": "2024-01-03"}],
    }
    assert client.post("/api/training-plans", json=payload, headers=trainee_headers).status_code == 403

    res = client.post("/api/training-plans", json=payload, headers=admin_headers)
    assert res.status_code == 201
    plan_id = res.get_json()["data"]["trainingPlan"]["planId"]

    plans = client.get("/api/training-plans", headers=admin_headers).get_json()["data"]["trainingPlans"]
    assert [p["planId"] for p in plans] == [plan_id]
    assert plans[0]["trainee"]["email"] == "ada@example.com"

    overview = client.get("/api/training-plans/progress", headers=admin_headers).get_json()["data"]
    assert overview["userRole"] == "admin"
    assert overview["summary"]["totalPlans"] == 1
