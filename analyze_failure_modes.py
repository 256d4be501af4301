#!/usr/bin/env python3
"""
Analyze failure modes in a batch evaluation run:

    expression cases  ->  eval_arith_expressions.py --out  ->  results

We assume two JSONL files:

  1) --cases: the input given to eval_arith_expressions.py
     Each line: {"id": ..., "expression": "...", "bindings": {...}, ...}

  2) --results: the --out file written by eval_arith_expressions.py
     Each line: {"record_id": ..., "expression": "...", "status": "...",
                 "value": ..., "detail": "..."}

We report:

  - Counts for each status.
  - Cases that never produced a result record.
  - A small random sample of failures from each category, with the
    expression, bindings and detail.

Usage example:

    python analyze_failure_modes.py \
        --cases manual_arith_cases.jsonl \
        --results arith_results.jsonl \
        --sample 10
"""

import argparse
import json
import random
from pathlib import Path
from typing import Any, Dict, List


def parse_args():
    p = argparse.ArgumentParser()
    p.add_argument("--cases", required=True,
                   help="Input cases JSONL (e.g., manual_arith_cases.jsonl).")
    p.add_argument("--results", required=True,
                   help="Results JSONL written by eval_arith_expressions.py --out.")
    p.add_argument("--sample", type=int, default=10,
                   help="How many examples to print per failure category.")
    p.add_argument("--seed", type=int, default=None,
                   help="Optional random seed for reproducible samples.")
    return p.parse_args()


def load_jsonl(path: Path) -> List[Dict[str, Any]]:
    out = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            out.append(json.loads(line))
    return out


def group_by_status(results: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Map each status to the sorted record ids that ended with it."""
    groups: Dict[str, List[str]] = {}
    for rec in results:
        groups.setdefault(rec["status"], []).append(str(rec["record_id"]))
    return {status: sorted(ids) for status, ids in groups.items()}


def sample_ids(ids: List[str], k: int, rng: random.Random) -> List[str]:
    if not ids:
        return []
    if len(ids) <= k:
        return list(ids)
    return rng.sample(ids, k)


def main():
    args = parse_args()
    rng = random.Random(args.seed)

    cases_path = Path(args.cases)
    results_path = Path(args.results)

    print(f"[INFO] Loading cases from {cases_path}")
    cases = load_jsonl(cases_path)
    print(f"[INFO] Loading results from {results_path}")
    results = load_jsonl(results_path)

    cases_by_id = {str(rec.get("id", i)): rec for i, rec in enumerate(cases)}
    results_by_id = {str(rec["record_id"]): rec for rec in results}

    n_cases = len(cases_by_id)
    n_results = len(results_by_id)
    groups = group_by_status(results)
    n_ok = len(groups.get("ok", []))

    print()
    print("=== Coverage Summary ===")
    print(f"Cases:               {n_cases}")
    if n_cases > 0:
        print(f"With a result:       {n_results} ({n_results / n_cases:.2%} of cases)")
        print(f"Status ok:           {n_ok} ({n_ok / n_cases:.2%} of cases)")

    missing_ids = sorted(set(cases_by_id) - set(results_by_id))

    print()
    print("=== Failure Categories ===")
    for status, ids in sorted(groups.items()):
        if status == "ok":
            continue
        print(f"{status + ':':<20} {len(ids)}")
    print(f"{'no result:':<20} {len(missing_ids)}")

    for status, ids in sorted(groups.items()):
        if status == "ok":
            continue
        print()
        print(f"=== Sample: {status} ===")
        for rec_id in sample_ids(ids, args.sample, rng):
            res = results_by_id[rec_id]
            case = cases_by_id.get(rec_id, {})
            print(f"- id={rec_id}")
            print(f"  expression: {res.get('expression', '<no expression field>')}")
            print(f"  bindings:   {case.get('bindings', {})}")
            print(f"  detail:     {res.get('detail', '')}")
            print()

    if missing_ids:
        print()
        print("=== Sample: cases without a result ===")
        for rec_id in sample_ids(missing_ids, args.sample, rng):
            print(f"- id={rec_id}")
            print(f"  expression: {cases_by_id[rec_id].get('expression', '<no expression field>')}")
            print()

    print("[INFO] Done.")


if __name__ == "__main__":
    main()
