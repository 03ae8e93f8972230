"""JSON and JSONL file I/O backed by orjson."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def load_json(path: Path) -> Any:
    """Load JSON from a file."""
    return orjson.loads(path.read_bytes())


def save_json(obj: Any, path: Path, *, pretty: bool = True) -> None:
    """Save an object as JSON with sorted keys."""
    path.parent.mkdir(parents=True, exist_ok=True)
    opts = orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS if pretty else orjson.OPT_SORT_KEYS
    path.write_bytes(orjson.dumps(obj, option=opts))


def load_jsonl(path: Path) -> list[dict[str, Any]]:
    """Load a JSON Lines file (one JSON object per line). Blank lines skipped."""
    records: list[dict[str, Any]] = []
    for line in path.read_bytes().split(b"\n"):
        line = line.strip()
        if line:
            records.append(orjson.loads(line))
    return records


def save_jsonl(records: list[dict[str, Any]], path: Path) -> None:
    """Save a list of dicts as a JSON Lines file, keys in insertion order."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if not records:
        path.write_bytes(b"")
        return
    path.write_bytes(b"\n".join(orjson.dumps(r) for r in records) + b"\n")


def append_jsonl(records: list[dict[str, Any]], path: Path) -> None:
    """Append records to a JSON Lines file, creating it if needed."""
    if not records:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "ab") as f:
        for r in records:
            f.write(orjson.dumps(r))
            f.write(b"\n")
