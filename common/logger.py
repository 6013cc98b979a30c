"""
Logger setup shared by all quadcontrol components.
"""

from __future__ import annotations

import logging
import os

ROOT_NAME = "quadcontrol"
_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        root.setLevel(os.environ.get("QUADCONTROL_LOGLEVEL", "INFO").upper())
        root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a child logger of the package root, e.g. get_logger("control")."""
    _configure_root()
    return logging.getLogger(f"{ROOT_NAME}.{name}")
