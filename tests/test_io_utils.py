"""Tests for orjson-backed JSON / JSONL helpers."""
from __future__ import annotations

from pathlib import Path

from ncc_units.io_utils import append_jsonl, load_json, load_jsonl, save_json, save_jsonl


def test_save_json_sorted_and_nested_dirs(tmp_path: Path) -> None:
    path = tmp_path / "a" / "b" / "config.json"
    save_json({"volume": "V1", "doc_id": "ncc"}, path)
    assert load_json(path) == {"doc_id": "ncc", "volume": "V1"}
    text = path.read_text(encoding="utf-8")
    assert text.index("doc_id") < text.index("volume")
    assert "\n" in text


def test_save_json_compact(tmp_path: Path) -> None:
    path = tmp_path / "c.json"
    save_json({"b": 1, "a": [1, 2]}, path, pretty=False)
    assert path.read_bytes() == b'{"a":[1,2],"b":1}'


def test_jsonl_keeps_insertion_order(tmp_path: Path) -> None:
    path = tmp_path / "units.jsonl"
    save_jsonl([{"z": 1, "a": "x"}, {"z": 2, "a": "y"}], path)
    assert path.read_bytes() == b'{"z":1,"a":"x"}\n{"z":2,"a":"y"}\n'
    assert load_jsonl(path) == [{"z": 1, "a": "x"}, {"z": 2, "a": "y"}]


def test_jsonl_empty_and_blank_lines(tmp_path: Path) -> None:
    path = tmp_path / "empty.jsonl"
    save_jsonl([], path)
    assert path.read_bytes() == b""
    assert load_jsonl(path) == []

    path.write_bytes(b'{"a":1}\n\n  \n{"a":2}\n')
    assert load_jsonl(path) == [{"a": 1}, {"a": 2}]


def test_append_jsonl(tmp_path: Path) -> None:
    path = tmp_path / "out" / "log.jsonl"
    append_jsonl([{"n": 1}], path)
    append_jsonl([], path)
    append_jsonl([{"n": 2}, {"n": 3}], path)
    assert [r["n"] for r in load_jsonl(path)] == [1, 2, 3]
