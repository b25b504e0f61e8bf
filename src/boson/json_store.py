"""Whole-document JSON persistence used by the settings and thread stores.

Every mutation rewrites the full document. Writes go to a sibling temporary
file that then replaces the target, so a reader never observes a partial
document.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from .ids import new_id


async def read_document(path: Path, default_factory: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    """Read the JSON document at *path*, or return fresh defaults if absent.

    Raises:
        ValueError: If the file exists but is not a JSON object
        OSError: For any other I/O failure
    """
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            raw = await f.read()
    except FileNotFoundError:
        return default_factory()

    try:
        data: Any = json.loads(raw) if raw.strip() else default_factory()
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}")

    if not isinstance(data, dict):
        raise ValueError(f"Invalid document structure in {path}: expected object")
    return data


async def write_document(path: Path, data: dict[str, Any]) -> None:
    """Atomically replace the document at *path* with *data*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{new_id()}.tmp")
    payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    try:
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(payload)
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
