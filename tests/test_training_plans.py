from __future__ import annotations

import copy
from types import SimpleNamespace

import pytest

from app.db import TRAINING_PLANS, USERS
from app.utils import ApiError, AuthContext
from services.training_plans import (
    admin_plan_progress,
    apply_module_completion,
    create_training_plan,
    sync_module_completion,
    trainee_plan_progress,
)

ADMIN = AuthContext(valid=True, userId="a1", email="admin@example.com", role="admin", expiresAt="")


def _plan(plan_id="plan-1", trainee="t1", statuses=("pending", "pending", "pending"), status="draft", version=1):
    return {
        "planId": plan_id,
        "planName": "Onboarding",
        "traineeId": trainee,
        "modules": [
            {"moduleUid": f"m{i + 1}", "moduleName": f"Module {i + 1}", "status": s} for i, s in enumerate(statuses)
        ],
        "status": status,
        "createdAt": "2024-01-01T00:00:00.000Z",
        "version": version,
    }


def _statuses(plan):
    return [m["status"] for m in plan["modules"]]


def test_apply_completion_promotes_next_pending_module():
    plan = _plan()
    before = copy.deepcopy(plan)

    modules, status = apply_module_completion(plan, "m1")

    assert [m["status"] for m in modules] == ["completed", "in-progress", "pending"]
    assert status == "in-progress"
    assert plan == before


def test_apply_completion_all_done_completes_plan():
    plan = _plan(statuses=("completed", "completed", "in-progress"), status="in-progress")
    modules, status = apply_module_completion(plan, "m3")
    assert status == "completed"
    assert all(m["status"] == "completed" for m in modules)


def test_apply_completion_keeps_existing_in_progress_module():
    plan = _plan(statuses=("pending", "in-progress", "pending"), status="scheduled")
    modules, status = apply_module_completion(plan, "m3")
    assert [m["status"] for m in modules] == ["pending", "in-progress", "completed"]
    assert status == "in-progress"


def test_apply_completion_unknown_module_is_noop():
    plan = _plan()
    modules, status = apply_module_completion(plan, "other")
    assert modules == plan["modules"]
    assert status == "draft"


def test_sync_updates_every_matching_plan(mongo_db):
    mongo_db[TRAINING_PLANS].insert_many(
        [_plan("plan-1"), _plan("plan-2"), _plan("plan-3", trainee="someone-else")]
    )

    updated = sync_module_completion(mongo_db, "t1", "m1")

    assert sorted(updated) == ["plan-1", "plan-2"]
    p1 = mongo_db[TRAINING_PLANS].find_one({"planId": "plan-1"})
    assert _statuses(p1) == ["completed", "in-progress", "pending"]
    assert p1["status"] == "in-progress"
    assert p1["version"] == 2
    p3 = mongo_db[TRAINING_PLANS].find_one({"planId": "plan-3"})
    assert _statuses(p3) == ["pending", "pending", "pending"]


def test_sync_replay_does_not_write(mongo_db):
    mongo_db[TRAINING_PLANS].insert_one(_plan())
    sync_module_completion(mongo_db, "t1", "m1")

    assert sync_module_completion(mongo_db, "t1", "m1") == []
    assert mongo_db[TRAINING_PLANS].find_one({"planId": "plan-1"})["version"] == 2


def test_sync_all_modules_completes_plan(mongo_db):
    mongo_db[TRAINING_PLANS].insert_one(_plan())
    for m in ("m1", "m2", "m3"):
        sync_module_completion(mongo_db, "t1", m)
    plan = mongo_db[TRAINING_PLANS].find_one({"planId": "plan-1"})
    assert plan["status"] == "completed"
    assert plan["version"] == 4


def test_sync_with_no_matching_plan_is_noop(mongo_db):
    assert sync_module_completion(mongo_db, "t1", "m1") == []
    assert sync_module_completion(mongo_db, "", "m1") == []


def test_sync_retries_on_stale_version(mongo_db):
    mongo_db[TRAINING_PLANS].insert_one(_plan())
    stale = mongo_db[TRAINING_PLANS].find_one({"planId": "plan-1"})
    # A concurrent writer completes m2 first.
    sync_module_completion(mongo_db, "t1", "m2")

    from services.training_plans import _sync_one

    assert _sync_one(mongo_db, stale, "m1") is True
    plan = mongo_db[TRAINING_PLANS].find_one({"planId": "plan-1"})
    assert _statuses(plan) == ["completed", "completed", "in-progress"]
    assert plan["version"] == 3


class _AlwaysStaleCollection:
    def __init__(self, plan):
        self.plan = plan

    def find(self, _query):
        return [copy.deepcopy(self.plan)]

    def find_one(self, _query):
        return copy.deepcopy(self.plan)

    def update_one(self, _query, _update):
        return SimpleNamespace(matched_count=0)


def test_sync_raises_conflict_when_retries_exhausted():
    db = {TRAINING_PLANS: _AlwaysStaleCollection(_plan())}
    with pytest.raises(ApiError) as e:
        sync_module_completion(db, "t1", "m1")
    assert e.value.code == "CONFLICT"
    assert e.value.http_status == 409


def _seed_trainee(db):
    db[USERS].insert_one(
        {"userId": "t1", "firstName": "Tina", "lastName": "T", "email": "tina@example.com", "role": "trainee"}
    )


def test_create_training_plan(mongo_db):
    _seed_trainee(mongo_db)
    plan = create_training_plan(
        mongo_db,
        {
            "planName": "Onboarding",
            "traineeId": "t1",
            "modules": [
                {"moduleUid": "m1", "moduleName": "Intro", "startDate": "2024-01-01", "endDate": "2024-01-05"},
            ],
        },
        ADMIN,
    )
    assert plan["planId"].startswith("plan-")
    assert plan["status"] == "draft"
    assert plan["traineeEmail"] == "tina@example.com"
    assert plan["createdBy"] == "a1"
    assert plan["modules"][0]["status"] == "pending"
    assert plan["modules"][0]["startDate"] == "2024-01-01T00:00:00.000Z"
    assert "_id" not in plan


@pytest.mark.parametrize(
    "data,code",
    [
        ({"traineeId": "t1", "modules": []}, "BAD_REQUEST"),
        ({"planName": "P", "traineeId": "t1", "modules": []}, "BAD_REQUEST"),
        ({"planName": "P", "traineeId": "t1", "modules": [{"moduleName": "X", "startDate": "2024-01-01"}]}, "BAD_REQUEST"),
        (
            {"planName": "P", "traineeId": "t1", "modules": [{"moduleName": "X", "startDate": "2024-01-05", "endDate": "2024-01-05"}]},
            "BAD_REQUEST",
        ),
        (
            {"planName": "P", "traineeId": "nobody", "modules": [{"moduleName": "X", "startDate": "2024-01-01", "endDate": "2024-01-02"}]},
            "NOT_FOUND",
        ),
    ],
)
def test_create_training_plan_validation(mongo_db, data, code):
    _seed_trainee(mongo_db)
    with pytest.raises(ApiError) as e:
        create_training_plan(mongo_db, data, ADMIN)
    assert e.value.code == code


def test_progress_rollups(mongo_db):
    _seed_trainee(mongo_db)
    mongo_db[TRAINING_PLANS].insert_many(
        [
            _plan("plan-1", statuses=("completed", "in-progress", "pending"), status="in-progress"),
            _plan("plan-2", statuses=("completed",), status="completed"),
        ]
    )

    rows = trainee_plan_progress(mongo_db, "t1")
    by_id = {r["planId"]: r for r in rows}
    assert by_id["plan-1"]["progressPercentage"] == 33
    assert by_id["plan-1"]["inProgressModules"] == 1
    assert by_id["plan-2"]["progressPercentage"] == 100

    summary = admin_plan_progress(mongo_db)
    assert summary["summary"] == {"totalTrainees": 1, "totalPlans": 2, "averageProgress": 50}
    row = summary["progress"][0]
    assert row["totalModules"] == 4
    assert row["completedModules"] == 2
    assert row["pendingModules"] == 1
