"""
MongoDB wiring.

One client per process, created in ``create_app`` and stored in
``app.extensions``. Collections:

- users            (userId, email unique)
- roles            (roleId, roleName unique)
- sessions         (tokenHash unique)
- training_plans   (planId unique; traineeId + modules.moduleUid lookup)
- course_progress  (userId + courseUid unique)
"""
from __future__ import annotations

import logging
from typing import Any

from flask import Flask, current_app
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from app.utils.datetime import iso_utc_now

logger = logging.getLogger(__name__)

USERS = "users"
ROLES = "roles"
SESSIONS = "sessions"
TRAINING_PLANS = "training_plans"
COURSE_PROGRESS = "course_progress"

DEFAULT_ROLES: list[dict[str, str]] = [
    {"roleId": "superadmin", "roleName": "superadmin", "description": "Super Admin - Full system access"},
    {"roleId": "admin", "roleName": "admin", "description": "Admin - Can invite users and create training plans"},
    {"roleId": "trainee", "roleName": "trainee", "description": "Trainee - Can participate in training"},
]


def init_mongo(app: Flask, client: Any = None) -> Database:
    cfg = app.config["CFG"]
    if client is None:
        client = MongoClient(cfg.MONGODB_URI, serverSelectionTimeoutMS=cfg.MONGO_TIMEOUT_MS, tz_aware=True)
    db = client[cfg.MONGO_DB_NAME]

    app.extensions["mongo_client"] = client
    app.extensions["mongo_db"] = db

    try:
        ensure_indexes(db)
    except PyMongoError as e:
        # Start degraded; /ready reports the database as down.
        logger.warning("MongoDB index setup failed: %s", e)
    return db


def get_db() -> Database:
    db = current_app.extensions.get("mongo_db")
    if db is None:
        raise RuntimeError("MongoDB not initialized")
    return db


def ping_db(db: Database) -> bool:
    try:
        db.client.admin.command("ping")
        return True
    except Exception:
        return False


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index([("userId", ASCENDING)], unique=True)
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[USERS].create_index([("role", ASCENDING)])

    db[ROLES].create_index([("roleId", ASCENDING)], unique=True)
    db[ROLES].create_index([("roleName", ASCENDING)], unique=True)

    db[SESSIONS].create_index([("tokenHash", ASCENDING)], unique=True)
    db[SESSIONS].create_index([("userId", ASCENDING)])

    db[TRAINING_PLANS].create_index([("planId", ASCENDING)], unique=True)
    db[TRAINING_PLANS].create_index([("traineeId", ASCENDING), ("modules.moduleUid", ASCENDING)])
    db[TRAINING_PLANS].create_index([("createdAt", DESCENDING)])

    db[COURSE_PROGRESS].create_index([("userId", ASCENDING), ("courseUid", ASCENDING)], unique=True)
    db[COURSE_PROGRESS].create_index([("courseId", ASCENDING)])


def seed_roles(db: Database) -> int:
    """Insert the built-in roles that are missing (idempotent). Returns the number created."""
    created = 0
    now = iso_utc_now()
    for role in DEFAULT_ROLES:
        res = db[ROLES].update_one(
            {"roleId": role["roleId"]},
            {"$setOnInsert": {**role, "createdAt": now, "updatedAt": now}},
            upsert=True,
        )
        if res.upserted_id is not None:
            created += 1
    return created
