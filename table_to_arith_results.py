#!/usr/bin/env python3
"""
Evaluate one arithmetic expression against every row of parquet/CSV tables.

Column values are bound as variables, so with the expression

    (revenue - cost) / units

each row needs numeric "revenue", "cost" and "units" columns. Each output
line looks like:

    {
      "id": 0,
      "source_file": "sales-00000.parquet",
      "row": 0,
      "status": "ok",
      "result": 12.5,
      "detail": ""
    }

Usage examples:

    # Single parquet file
    python table_to_arith_results.py \
        --in sales-00000.parquet \
        --expression "(revenue - cost) / units" \
        --out margins.jsonl

    # All CSV shards in a directory
    python table_to_arith_results.py \
        --in data/sales \
        --expression "revenue * 0.2" \
        --out tax.jsonl

Optional:
    --max-rows 1000    # for quick testing
"""

from __future__ import annotations

import argparse
import glob
import json
import math
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd

from arith_core import Context, EvalError, Expr, evaluate, free_variables, parse

TABLE_SUFFIXES = (".parquet", ".csv")


def parse_args():
    p = argparse.ArgumentParser()
    p.add_argument(
        "--in",
        dest="in_spec",
        required=True,
        help=(
            "Input table spec: a single .parquet/.csv file, a directory, or a "
            "glob pattern (e.g., 'sales-*.parquet')."
        ),
    )
    p.add_argument(
        "--expression",
        required=True,
        help="Arithmetic expression whose variables name table columns.",
    )
    p.add_argument(
        "--out",
        dest="out_path",
        required=True,
        help="Output JSONL file with one result per row.",
    )
    p.add_argument(
        "--max-rows",
        dest="max_rows",
        type=int,
        default=None,
        help="Optional maximum total rows to evaluate (for testing).",
    )
    return p.parse_args()


def iter_table_files(spec: str) -> Iterable[Path]:
    """
    Resolve the --in spec into a list of table files.

    spec can be:
      - a single .parquet or .csv file path
      - a directory containing such files
      - a glob pattern (e.g. 'sales-*.parquet')
    """
    p = Path(spec)

    # Case 1: exact file
    if p.is_file() and p.suffix in TABLE_SUFFIXES:
        yield p
        return

    # Case 2: directory
    if p.is_dir():
        for q in sorted(p.iterdir()):
            if q.is_file() and q.suffix in TABLE_SUFFIXES:
                yield q
        return

    # Case 3: treat as glob pattern
    matches = sorted(Path(m) for m in glob.glob(spec))
    if not matches:
        raise FileNotFoundError(
            f"No table files found for spec {spec!r} "
            "(not a file, not a directory, and glob had no matches)."
        )
    for q in matches:
        if q.is_file() and q.suffix in TABLE_SUFFIXES:
            yield q


def read_table(path: Path) -> pd.DataFrame:
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def evaluate_frame(expr: Expr, df: pd.DataFrame) -> pd.DataFrame:
    """
    Evaluate expr once per row of df.

    Returns a frame indexed like df with "status", "result" and "detail"
    columns. Rows whose evaluation fails get result NaN and the error class
    name as status; missing columns are reported per row the same way.
    Cells that cannot be read as a float get status "non_numeric".
    """
    names = free_variables(expr)
    columns = {n: df[n].tolist() for n in names if n in df.columns}

    # One Context is reused across rows; every bound name is overwritten per row
    ctx = Context()
    statuses: List[str] = []
    results: List[float] = []
    details: List[str] = []

    for i in range(len(df.index)):
        bad_column = None
        for name, values in columns.items():
            value = values[i]
            try:
                ctx.set_variable(name, math.nan if pd.isna(value) else float(value))
            except (TypeError, ValueError):
                bad_column = name
                break
        if bad_column is not None:
            results.append(math.nan)
            statuses.append("non_numeric")
            details.append(f"Column {bad_column!r} value {values[i]!r} is not numeric")
            continue
        try:
            results.append(evaluate(expr, ctx))
            statuses.append("ok")
            details.append("")
        except EvalError as e:
            results.append(math.nan)
            statuses.append(type(e).__name__)
            details.append(str(e))

    return pd.DataFrame(
        {"status": statuses, "result": results, "detail": details},
        index=df.index,
    )


def main():
    args = parse_args()
    out_path = Path(args.out_path)
    max_rows: Optional[int] = args.max_rows

    expr = parse(args.expression)
    table_files: List[Path] = list(iter_table_files(args.in_spec))
    if not table_files:
        raise RuntimeError(f"No table files resolved from spec {args.in_spec!r}")

    print(f"[INFO] Found {len(table_files)} table file(s).")
    print(f"[INFO] Expression: {expr.render()}")
    print(f"[INFO] Variables: {', '.join(free_variables(expr)) or '(none)'}")
    print(f"[INFO] Writing JSONL to {out_path}")

    total_written = 0
    status_counts = {}

    with out_path.open("w", encoding="utf-8") as fout:
        for tf in table_files:
            if max_rows is not None and total_written >= max_rows:
                break

            print(f"[INFO] Reading {tf} ...")
            df = read_table(tf)

            missing = [n for n in free_variables(expr) if n not in df.columns]
            if missing:
                print(f"[WARN] {tf.name}: columns {missing} not found; "
                      f"available columns: {list(df.columns)}")

            if max_rows is not None:
                df = df.head(max_rows - total_written)

            out = evaluate_frame(expr, df)
            for row_num, (_, row) in enumerate(out.iterrows()):
                result = row["result"]
                rec = {
                    "id": total_written,
                    "source_file": tf.name,
                    "row": row_num,
                    "status": row["status"],
                    "result": None if math.isnan(result) else float(result),
                    "detail": row["detail"],
                }
                fout.write(json.dumps(rec, ensure_ascii=False) + "\n")
                total_written += 1
                status_counts[row["status"]] = status_counts.get(row["status"], 0) + 1

    print(f"[INFO] Done. Wrote {total_written} results to {out_path}")
    for status, count in sorted(status_counts.items()):
        print(f"  {status}: {count}")


if __name__ == "__main__":
    main()
