"""
Logging setup. Modules log through `logging.getLogger(__name__)`; this only
configures the root handler once per process.
"""

from __future__ import annotations

import logging

from . import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(settings.log_level())
        return None
    logging.basicConfig(level=settings.log_level(), format=LOG_FORMAT)
