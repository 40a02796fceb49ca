# clinicq/core/logs.py
from __future__ import annotations

import logging

from clinicq.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Attach a stream handler to the `clinicq` logger tree.
    Safe to call more than once (uvicorn reload, tests).
    """
    root = logging.getLogger("clinicq")
    root.setLevel((level or settings.LOG_LEVEL).upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
