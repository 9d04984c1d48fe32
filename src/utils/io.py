from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union

PathLike = Union[str, Path]


def ensure_dir(p: PathLike) -> Path:
    """Ensure that a directory exists, returning it as a Path."""
    p = Path(p)
    try:
        p.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OSError(f"Failed to create directory {p}: {e}") from e
    return p


def atomic_write_json(path: PathLike, data: Any) -> None:
    """Write ``data`` as JSON so readers never observe a half-written file.

    The payload goes to a temporary file in the same directory, is fsynced,
    then moved into place with :func:`os.replace`.
    """
    p = Path(path)
    try:
        text = json.dumps(data, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Failed to serialize item to JSON: {e}") from e

    ensure_dir(p.parent)
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", delete=False, dir=str(p.parent), suffix=".tmp"
    ) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    try:
        os.replace(tmp_name, p)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json(path: PathLike) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
