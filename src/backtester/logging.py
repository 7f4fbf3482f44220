from __future__ import annotations

import logging
import os
import sys

from backtester.config import get_config

_FMT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _resolve_level() -> int:
    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        return getattr(logging, env_level.upper(), logging.INFO)

    level_name = get_config().logging.level
    return getattr(logging, str(level_name).upper(), logging.INFO)


def _ensure_root_config() -> None:
    """
    Configure a single stdout handler on the root logger exactly once.

    Existing handlers (pytest, an embedding application) are left alone unless
    LOG_FORCE=1 is set.
    """
    root = logging.getLogger()
    force = os.getenv("LOG_FORCE", "0") == "1"

    if root.handlers and not force:
        return

    if root.handlers and force:
        for h in list(root.handlers):
            root.removeHandler(h)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(_FMT))
    root.addHandler(handler)
    root.setLevel(_resolve_level())


def get_logger(name: str) -> logging.Logger:
    _ensure_root_config()
    logger = logging.getLogger(f"backtester.{name}" if not name.startswith("backtester") else name)

    # Propagate to the root handler instead of attaching per-logger handlers
    logger.propagate = True
    return logger
