"""Tests for the failure-mode report."""

from __future__ import annotations

import json
import random
import subprocess
import sys
from pathlib import Path

from analyze_failure_modes import group_by_status, load_jsonl, sample_ids

ROOT = Path(__file__).resolve().parent.parent


def _write_jsonl(path: Path, records) -> None:
    path.write_text("\n".join(json.dumps(r) for r in records) + "\n\n", encoding="utf-8")


def test_load_jsonl_skips_blank_lines(tmp_path: Path) -> None:
    path = tmp_path / "x.jsonl"
    _write_jsonl(path, [{"id": 1}, {"id": 2}])
    assert load_jsonl(path) == [{"id": 1}, {"id": 2}]


def test_group_by_status() -> None:
    results = [
        {"record_id": "b", "status": "ok"},
        {"record_id": "a", "status": "ok"},
        {"record_id": 3, "status": "parse_error"},
    ]
    assert group_by_status(results) == {"ok": ["a", "b"], "parse_error": ["3"]}


def test_sample_ids() -> None:
    rng = random.Random(0)
    assert sample_ids([], 3, rng) == []
    assert sample_ids(["a", "b"], 3, rng) == ["a", "b"]
    picked = sample_ids(["a", "b", "c", "d"], 2, rng)
    assert len(picked) == 2 and set(picked) <= {"a", "b", "c", "d"}


def test_report(tmp_path: Path) -> None:
    cases = tmp_path / "cases.jsonl"
    results = tmp_path / "results.jsonl"
    _write_jsonl(cases, [
        {"id": "ok_1", "expression": "1+1"},
        {"id": "bad_1", "expression": "(1", "bindings": {}},
        {"id": "lost_1", "expression": "2*2"},
    ])
    _write_jsonl(results, [
        {"record_id": "ok_1", "expression": "1+1", "status": "ok", "value": 2.0, "detail": ""},
        {"record_id": "bad_1", "expression": "(1", "status": "parse_error", "value": None,
         "detail": "missing closing parenthesis (at position 2)"},
    ])
    proc = subprocess.run(
        [sys.executable, str(ROOT / "analyze_failure_modes.py"),
         "--cases", str(cases), "--results", str(results), "--seed", "1"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        cwd=ROOT,
    )
    assert proc.returncode == 0, proc.stderr
    assert "=== Sample: parse_error ===" in proc.stdout
    assert "missing closing parenthesis" in proc.stdout
    assert "lost_1" in proc.stdout
