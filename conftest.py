"""Top-level pytest hooks."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest


def pytest_collection_modifyitems(config: Any, items: list[Any]) -> None:  # pragma: no cover
    """Apply directory markers so selection works even if a file forgets decorators."""
    root = Path(str(config.rootpath)).resolve()

    for item in items:
        try:
            rel = Path(str(item.fspath)).resolve().relative_to(root)
        except ValueError:
            continue

        if rel.as_posix().startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
