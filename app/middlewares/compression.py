from __future__ import annotations

import gzip
import logging

from flask import Flask, request

from app.config import _env_bool, _env_int

logger = logging.getLogger(__name__)


def init_compression(app: Flask) -> None:
    """
    Gzip JSON responses (course lists with module bodies get large).

    Enabled by default; ENABLE_COMPRESSION=0 turns it off. Responses smaller
    than COMPRESSION_MIN_SIZE bytes are sent as is.
    """
    if not _env_bool("ENABLE_COMPRESSION", True):
        return

    min_size = _env_int("COMPRESSION_MIN_SIZE", 500)
    level = max(1, min(9, _env_int("COMPRESSION_LEVEL", 6)))

    @app.after_request
    def _compress(response):
        if "gzip" not in request.headers.get("Accept-Encoding", "").lower():
            return response
        if (
            response.status_code < 200
            or response.status_code >= 300
            or response.direct_passthrough
            or "Content-Encoding" in response.headers
        ):
            return response
        if "application/json" not in response.headers.get("Content-Type", "").lower():
            return response

        data = response.get_data()
        if len(data) < min_size:
            return response

        try:
            compressed = gzip.compress(data, compresslevel=level)
        except (OSError, ValueError) as e:
            logger.warning("gzip failed, sending uncompressed: %s", e)
            return response

        if len(compressed) < len(data):
            response.set_data(compressed)
            response.headers["Content-Encoding"] = "gzip"
            response.headers["Content-Length"] = len(compressed)
            response.headers["Vary"] = "Accept-Encoding"
        return response
