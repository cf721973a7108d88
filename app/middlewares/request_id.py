from __future__ import annotations

import os
import re
import time

from flask import Flask, g, request

_INCOMING_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def init_request_id(app: Flask) -> None:
    """Per-request id (honours a sane incoming X-Request-ID), echoed on the response."""

    @app.before_request
    def _assign_request_id():
        incoming = str(request.headers.get("X-Request-ID") or "").strip()
        g.request_id = incoming if _INCOMING_ID.match(incoming) else os.urandom(8).hex()
        g.start_ts = time.monotonic()

    @app.after_request
    def _echo_request_id(resp):
        rid = str(getattr(g, "request_id", "") or "")
        if rid:
            resp.headers["X-Request-ID"] = rid
        return resp
