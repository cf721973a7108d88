from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass
from typing import Any

from flask import jsonify

from app.utils.datetime import iso_utc_now


ROLES = ("superadmin", "admin", "trainee")
ADMIN_ROLES = ("superadmin", "admin")

_DEFAULT_STATUS = {
    "BAD_REQUEST": 400,
    "AUTH_INVALID": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
    "UPSTREAM_ERROR": 502,
}


class ApiError(Exception):
    def __init__(self, code: str, message: str, http_status: int | None = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL").upper()
        self.message = str(message or "")
        self.http_status = int(http_status or _DEFAULT_STATUS.get(self.code, 400))


@dataclass(frozen=True)
class AuthContext:
    valid: bool
    userId: str
    email: str
    role: str
    expiresAt: str


def ok(data: Any = None, http_status: int = 200):
    return jsonify({"ok": True, "data": data}), http_status


def err(code: str, message: str, http_status: int = 400):
    return jsonify({"ok": False, "error": {"code": code, "message": message}}), http_status


def normalize_role(role: Any) -> str:
    r = str(role or "").strip().lower()
    return r if r in ROLES else ""


def new_uuid() -> str:
    return str(uuid.uuid4())


def sha256_hex(value: str) -> str:
    return hashlib.sha256(str(value or "").encode("utf-8")).hexdigest()


def parse_json_body(raw: Any) -> dict[str, Any]:
    if raw is None or raw == "" or raw == b"":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        body = json.loads(raw)
    except Exception:
        raise ApiError("BAD_REQUEST", "Invalid JSON body")
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "JSON body must be an object")
    return body


def as_int(value: Any, default: int | None = None) -> int | None:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except Exception:
        return default


def strip_mongo_id(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    if doc is None:
        return None
    out = dict(doc)
    out.pop("_id", None)
    return out


__all__ = [
    "ADMIN_ROLES",
    "ROLES",
    "ApiError",
    "AuthContext",
    "as_int",
    "err",
    "iso_utc_now",
    "new_uuid",
    "normalize_role",
    "ok",
    "parse_json_body",
    "sha256_hex",
    "strip_mongo_id",
]
