from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, str(level or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=lvl, format=_FORMAT)
    logging.getLogger().setLevel(lvl)

    # Chatty libraries stay at WARNING unless we are debugging.
    if lvl > logging.DEBUG:
        for name in ("urllib3", "pymongo", "celery"):
            logging.getLogger(name).setLevel(logging.WARNING)
