import logging
import os
import sys
from typing import Optional

ROOT_LOGGER = "docsift"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root
    root.setLevel(os.environ.get("DOCSIFT_LOG_LEVEL", "INFO").upper())

    handler = logging.StreamHandler(sys.stdout)
    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)
    root.propagate = False
    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Loggers live under the "docsift" root so one handler serves them all."""
    root = _configure_root()
    if not name or name == ROOT_LOGGER:
        return root
    return root.getChild(name)
