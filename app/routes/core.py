from __future__ import annotations

import os

from flask import Blueprint, current_app, jsonify

from app.db import ping_db
from app.utils.datetime import iso_utc_now
from cache_layer import cache_stats

core_bp = Blueprint("core", __name__)


def _ping_redis() -> bool:
    """Celery broker reachability (invite e-mails queue there)."""
    redis_url = os.getenv("REDIS_URL", "")
    if not redis_url:
        return True
    try:
        import redis

        redis.from_url(redis_url, socket_connect_timeout=2).ping()
        return True
    except Exception:
        return False


def _dependency_checks() -> dict[str, bool]:
    db = current_app.extensions.get("mongo_db")
    return {
        "db": db is not None and ping_db(db),
        "redis": _ping_redis(),
    }


@core_bp.get("/health")
def health():
    cfg = current_app.config["CFG"]
    return jsonify({"status": "ok", "time": iso_utc_now(), "version": cfg.APP_VERSION, "cache": cache_stats()})


@core_bp.get("/ready")
def ready():
    """
    Load-balancer readiness: MongoDB and the Celery broker must answer.

    The CMS is only reported as configured or not; an outage there degrades
    course pages but progress and plans keep working.
    """
    cfg = current_app.config["CFG"]
    checks = _dependency_checks()
    all_ok = all(checks.values())

    report = {name: "ok" if up else "error" for name, up in checks.items()}
    report["cms"] = "configured" if cfg.CMS_CONFIGURED else "not_configured"
    body = {
        "status": "ok" if all_ok else "degraded",
        "time": iso_utc_now(),
        "version": cfg.APP_VERSION,
        "checks": report,
    }
    return jsonify(body), 200 if all_ok else 503


@core_bp.get("/version")
def version():
    cfg = current_app.config["CFG"]
    return jsonify({"version": cfg.APP_VERSION, "env": cfg.ENV, "time": iso_utc_now()})
