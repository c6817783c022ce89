"""JSON persistence helpers for statistics, pattern tables and game records.

Both helpers convert I/O and decoding failures into
:class:`~isolation.errors.PersistenceError`; callers decide whether to log
and continue (they always do during play).
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any

from .errors import PersistenceError


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write ``payload`` to ``path`` via a temp file and ``os.replace``."""
    tmp = path.with_suffix(path.suffix + f".tmp_{int(time.time() * 1e6)}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(payload, indent=2, default=str))
        os.replace(tmp, path)
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(f"Failed to write {path.name}: {e}", path=str(path)) from e


def read_json(path: Path) -> Any | None:
    """Return the decoded contents of ``path``, or ``None`` if it does not exist."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise PersistenceError(f"Failed to read {path.name}: {e}", path=str(path)) from e
