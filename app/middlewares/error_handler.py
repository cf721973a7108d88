from __future__ import annotations

import logging
import re

from flask import Flask, current_app, g, request
from pymongo.errors import PyMongoError
from werkzeug.exceptions import HTTPException

from app.utils import ApiError, err

logger = logging.getLogger("api")


def _request_id() -> str:
    return str(getattr(g, "request_id", "") or "").strip()


def _short(msg: str, limit: int = 300) -> str:
    msg = re.sub(r"\s+", " ", str(msg or "")).strip()
    return msg[:limit] + "..." if len(msg) > limit else msg


def _with_request_id(msg: str) -> str:
    rid = _request_id()
    return f"{msg} (requestId: {rid})" if rid else msg


def init_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):
        if e.http_status >= 500:
            logger.warning("request_id=%s path=%s code=%s %s", _request_id(), request.path, e.code, e.message)
        return err(e.code, e.message, http_status=e.http_status)

    @app.errorhandler(404)
    def _not_found(_e):
        return err("NOT_FOUND", f"Unknown endpoint: {request.path}", http_status=404)

    @app.errorhandler(405)
    def _method_not_allowed(_e):
        return err("BAD_REQUEST", f"Method {request.method} not allowed for {request.path}", http_status=405)

    @app.errorhandler(PyMongoError)
    def _db_error(e: PyMongoError):
        logger.exception("request_id=%s path=%s database error", _request_id(), request.path)
        if current_app.config["CFG"].IS_PRODUCTION:
            msg = "Database error"
        else:
            detail = _short(str(e))
            msg = f"Database error: {detail}" if detail else "Database error"
        return err("INTERNAL", _with_request_id(msg), http_status=500)

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return err("BAD_REQUEST" if (e.code or 500) < 500 else "INTERNAL", e.description or e.name, http_status=e.code or 500)

        logger.exception("request_id=%s path=%s unexpected error", _request_id(), request.path)
        if current_app.config["CFG"].IS_PRODUCTION:
            msg = "Unexpected error"
        else:
            detail = type(e).__name__
            raw = _short(str(e))
            msg = f"Unexpected error: {detail}: {raw}" if raw else f"Unexpected error: {detail}"
        return err("INTERNAL", _with_request_id(msg), http_status=500)
