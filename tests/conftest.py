from __future__ import annotations

import copy
import json

import mongomock
import pytest

from app.utils import ApiError
from cache_layer import cache_clear
from services.cms_client import CmsError

TEST_PASSWORD = "Sup3r-Secret!"


class FakeCms:
    """In-memory stand-in for ContentstackClient."""

    configured = True

    def __init__(self):
        self.entries: dict[tuple[str, str], dict] = {}
        self.lists: dict[str, list[dict]] = {}
        self.terms: dict[str, list[dict]] = {}
        self.calls: list[tuple] = []

    def add_entry(self, content_type: str, entry: dict) -> dict:
        self.entries[(content_type, entry["uid"])] = entry
        self.lists.setdefault(content_type, []).append(entry)
        return entry

    def get_entry(self, content_type, uid, include=None):
        self.calls.append(("get_entry", content_type, uid, tuple(include or [])))
        entry = self.entries.get((content_type, uid))
        if entry is None:
            raise ApiError("NOT_FOUND", "Entry not found in CMS")
        return copy.deepcopy(entry)

    def find_entries(self, content_type, include=None, *, search=None, where=None):
        self.calls.append(("find_entries", content_type, search))
        items = [copy.deepcopy(e) for e in self.lists.get(content_type, [])]
        if search:
            items = [e for e in items if search.lower() in json.dumps(e).lower()]
        return items, len(items)

    def get_taxonomy_terms(self, taxonomy_uid):
        self.calls.append(("get_taxonomy_terms", taxonomy_uid))
        if taxonomy_uid not in self.terms:
            raise CmsError("Taxonomy API not available")
        return copy.deepcopy(self.terms[taxonomy_uid])


@pytest.fixture()
def cms():
    return FakeCms()


@pytest.fixture()
def mongo_db():
    return mongomock.MongoClient()["training_platform_test"]


@pytest.fixture()
def app_client(monkeypatch, tmp_path, cms):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("MONGO_DB_NAME", "training_platform_test")
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("ENABLE_COMPRESSION", "0")
    monkeypatch.setenv("TAXONOMY_FALLBACK_DIR", str(tmp_path))
    monkeypatch.setenv("RATE_LIMIT_LOGIN", "5")
    monkeypatch.setenv("EMAIL_USER", "")
    monkeypatch.setenv("EMAIL_PASS", "")

    cache_clear()

    from app import create_app

    app = create_app(mongo_client=mongomock.MongoClient(), cms_client=cms)
    app.config["TESTING"] = True
    yield app, app.test_client()
    cache_clear()


@pytest.fixture()
def make_user(app_client):
    """Insert a user directly; returns its public document."""
    from services.users import create_user

    app, _client = app_client

    def _make(email: str, role: str, *, first_name: str = "Test", last_name: str = "User", status: str = "accepted"):
        with app.app_context():
            from app.db import get_db

            return create_user(
                get_db(),
                first_name=first_name,
                last_name=last_name,
                email=email,
                role=role,
                password=TEST_PASSWORD,
                status=status,
            )

    return _make


@pytest.fixture()
def login(app_client):
    """Log in through the API; returns Authorization headers."""
    _app, client = app_client

    def _login(email: str, password: str = TEST_PASSWORD) -> dict[str, str]:
        res = client.post("/api/auth/login", json={"email": email, "password": password})
        body = res.get_json()
        assert body["ok"] is True, body
        return {"Authorization": f"Bearer {body['data']['token']}"}

    return _login
