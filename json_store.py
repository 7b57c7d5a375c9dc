from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


def read_json(path: Path) -> Any | None:
    """
    Read JSON from disk.

    Returns None for missing files, empty files, or invalid JSON.
    """
    try:
        if not path.exists():
            return None
        raw = path.read_text(encoding="utf-8")
        if not raw.strip():
            return None
        return json.loads(raw)
    except (OSError, ValueError):
        return None


def load_json(path: Path, default: Any = None) -> Any:
    """
    Read JSON from disk, returning `default` only when the file does not exist.

    Unreadable files and invalid JSON raise (OSError / json.JSONDecodeError).
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    return json.loads(raw)


def atomic_write_json(path: Path, payload: Any, *, indent: int | None = 2, sort_keys: bool = False) -> None:
    """
    Atomically write JSON to disk by writing to a temp file then replacing.

    Key order is kept as given unless sort_keys is set.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=indent, sort_keys=sort_keys)
        f.write("\n")
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)
