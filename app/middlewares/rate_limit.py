from __future__ import annotations

import threading
import time

from cachetools import TTLCache
from flask import Flask, request

from app.utils import ApiError

WINDOW_SECONDS = 60

# endpoint -> config attribute holding its per-IP limit per window
_LIMITED_ENDPOINTS = {
    "auth.login": "RATE_LIMIT_LOGIN",
}


class FixedWindowLimiter:
    """Per-key request counter over fixed ``window``-second buckets."""

    def __init__(self, window: int = WINDOW_SECONDS, maxsize: int = 50_000):
        self.window = max(1, int(window))
        # Old buckets simply expire out of the cache.
        self._hits: TTLCache = TTLCache(maxsize=maxsize, ttl=self.window * 2)
        self._lock = threading.Lock()

    def check(self, key: str, limit: int) -> None:
        if limit <= 0:
            return
        bucket = f"{key}:{int(time.monotonic() // self.window)}"
        with self._lock:
            count = self._hits.get(bucket, 0) + 1
            self._hits[bucket] = count
        if count > limit:
            raise ApiError("RATE_LIMITED", "Too many requests, please try again later")

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def client_ip() -> str:
    fwd = str(request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return fwd or str(request.remote_addr or "")


def init_rate_limiting(app: Flask) -> None:
    limiter = FixedWindowLimiter()
    app.extensions["rate_limiter"] = limiter

    @app.before_request
    def _rate_limit():
        attr = _LIMITED_ENDPOINTS.get(request.endpoint or "")
        if not attr:
            return None
        limit = int(getattr(app.config["CFG"], attr, 0) or 0)
        limiter.check(f"{client_ip()}:{request.endpoint}", limit)
        return None
