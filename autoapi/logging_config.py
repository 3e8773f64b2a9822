from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set the level for the `autoapi` logger tree.

    Uvicorn installs the handlers; `APP_LOG_LEVEL=DEBUG` additionally shows
    every Deny verdict with its reason (never shown to clients).
    """

    normalized = level.upper()
    logging.getLogger("autoapi").setLevel(normalized)
    logging.getLogger("autoapi").propagate = True
