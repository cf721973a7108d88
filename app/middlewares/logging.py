from __future__ import annotations

import logging
import time

from flask import Flask, g, request

logger = logging.getLogger("api")

_QUIET_PATHS = {"/health", "/ready"}


def init_request_logging(app: Flask) -> None:
    @app.after_request
    def _log_request(resp):
        if request.path in _QUIET_PATHS:
            return resp
        start = getattr(g, "start_ts", None)
        latency_ms = int((time.monotonic() - start) * 1000) if start is not None else -1
        auth_ctx = getattr(g, "auth", None)
        logger.info(
            "request_id=%s method=%s path=%s status=%s latency_ms=%s user=%s",
            getattr(g, "request_id", ""),
            request.method,
            request.path,
            resp.status_code,
            latency_ms,
            auth_ctx.userId if auth_ctx else "PUBLIC",
        )
        return resp
