#!/usr/bin/env python3
"""
Evaluate arithmetic expressions in batch from a JSONL file.

Each record looks like:

    {"id": "prec_1", "expression": "2 + 3 * 4", "bindings": {}, "expected": 14}
    {"id": "div_0", "expression": "x / 0", "bindings": {"x": 1},
     "expected_error": "DivisionByZero"}

For each record we:

  1. Parse the expression with arith_core.parse
  2. Evaluate the tree against a Context built from "bindings"
  3. Compare against "expected" (within 1e-9) or "expected_error" when present;
     "expected_error" may name a LexError or ParseError class as well
  4. Optionally (--compile) build the LLVM module for the tree, link it with
     a generated C driver through clang and check the native result agrees
     with the tree evaluator.

Usage:

    python eval_arith_expressions.py \
        --in manual_arith_cases.jsonl \
        --out arith_results.jsonl \
        --compile
"""

from __future__ import annotations

import argparse
import json
import math
import shutil
import statistics
import subprocess
import tempfile
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from arith_codegen_llvm import build_module_for_expression
from arith_core import (
    Context,
    EvalError,
    Expr,
    LexError,
    ParseError,
    evaluate,
    free_variables,
    parse,
)

TOLERANCE = 1e-9


# ---------------------------------------------------------------------------
# Result records
# ---------------------------------------------------------------------------

@dataclass
class EvalResult:
    record_id: str
    expression: str
    # "ok", "lex_error", "parse_error", "eval_error", "mismatch",
    # "compile_error", "runtime_error"
    status: str
    value: Optional[float] = None
    detail: str = ""

    def to_json(self) -> Dict[str, Any]:
        rec = asdict(self)
        if rec["value"] is not None and not math.isfinite(rec["value"]):
            rec["value"] = repr(rec["value"])
        return rec


def values_match(got: float, expected: float) -> bool:
    if math.isnan(expected):
        return math.isnan(got)
    return math.isclose(got, expected, rel_tol=TOLERANCE, abs_tol=TOLERANCE)


# ---------------------------------------------------------------------------
# C driver generation
# ---------------------------------------------------------------------------

def make_c_driver_source(
    func_name: str,
    params: List[str],
    bindings: Dict[str, float],
    expected: float,
    eps: float = TOLERANCE,
) -> str:
    """
    Generate C code for a driver that calls the compiled function once with
    the record's bindings and checks the result against the tree evaluator.
    """
    if not params:
        proto = f"double {func_name}(void);"
        call = f"{func_name}()"
    else:
        proto_args = ", ".join(["double"] * len(params))
        proto = f"double {func_name}({proto_args});"
        arg_str = ", ".join(f"{float(bindings[name]):.17g}" for name in params)
        call = f"{func_name}({arg_str})"

    src = f"""
    #include <math.h>
    #include <stdio.h>

    {proto}

    int main(void) {{
        double got = {call};
        double expected = {expected:.17g};
        double tol = {eps:.1e} * fmax(1.0, fabs(expected));
        if (isnan(got) || fabs(got - expected) > tol) {{
            printf("FAIL {func_name}: got %.17g expected %.17g\\n", got, expected);
            return 1;
        }}
        printf("PASS {func_name}\\n");
        return 0;
    }}
    """
    return src


def compile_and_check(
    expr: Expr,
    bindings: Dict[str, float],
    expected: float,
    record_id: str,
    expression: str,
    tmpdir: Path,
    clang: str = "clang",
) -> Optional[EvalResult]:
    """
    Compile expr through LLVM + clang and run it once.

    Returns None when the native result agrees, otherwise a failure result.
    """
    params = free_variables(expr)
    func_name = "arith_fn"
    safe_id = "".join(c if c.isalnum() else "_" for c in record_id)

    module = build_module_for_expression(expr, name=func_name, params=params,
                                         module_name=f"arith_{safe_id}")
    ll_path = tmpdir / f"{func_name}_{safe_id}.ll"
    ll_path.write_text(str(module), encoding="utf-8")

    driver_src = make_c_driver_source(func_name, params, bindings, expected)
    driver_path = tmpdir / f"driver_{safe_id}.c"
    driver_path.write_text(driver_src, encoding="utf-8")

    exe_path = tmpdir / f"test_{safe_id}"
    compile_cmd = [
        clang,
        "-O2",
        str(ll_path),
        str(driver_path),
        "-o",
        str(exe_path),
        "-lm",
    ]
    comp = subprocess.run(
        compile_cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    if comp.returncode != 0:
        return EvalResult(record_id, expression, "compile_error", expected, comp.stderr.strip())

    run = subprocess.run(
        [str(exe_path)],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    if run.returncode != 0:
        detail = (run.stdout + "\n" + run.stderr).strip()
        return EvalResult(record_id, expression, "runtime_error", expected, detail)

    return None


# ---------------------------------------------------------------------------
# Evaluation pipeline
# ---------------------------------------------------------------------------

def evaluate_record(
    rec: Dict[str, Any],
    record_id: str,
    tmpdir: Optional[Path] = None,
    clang: Optional[str] = None,
) -> EvalResult:
    """
    Run one JSONL record through parse + evaluate (+ compile when tmpdir and
    clang are given).
    """
    expression = rec.get("expression", "")
    bindings = {name: float(v) for name, v in (rec.get("bindings") or {}).items()}
    expected = rec.get("expected")
    expected_error = rec.get("expected_error")

    # 1) Parse
    try:
        tree = parse(expression)
    except (LexError, ParseError) as e:
        if expected_error and type(e).__name__ == expected_error:
            return EvalResult(record_id, expression, "ok", detail=f"{expected_error}: {e}")
        status = "lex_error" if isinstance(e, LexError) else "parse_error"
        return EvalResult(record_id, expression, status, detail=str(e))

    # 2) Evaluate against the record's bindings
    ctx = Context.with_variables(bindings)
    try:
        value = evaluate(tree, ctx)
    except EvalError as e:
        if expected_error and type(e).__name__ == expected_error:
            return EvalResult(record_id, expression, "ok", detail=f"{expected_error}: {e}")
        return EvalResult(record_id, expression, "eval_error",
                          detail=f"{type(e).__name__}: {e}")

    # 3) Compare against the recorded expectation
    if expected_error:
        return EvalResult(record_id, expression, "mismatch", value,
                          f"expected {expected_error}, got {value!r}")
    if expected is not None and not values_match(value, float(expected)):
        return EvalResult(record_id, expression, "mismatch", value,
                          f"expected {float(expected)!r}, got {value!r}")

    # 4) Native cross-check
    if tmpdir is not None and clang and math.isfinite(value):
        failure = compile_and_check(tree, bindings, value, record_id, expression, tmpdir, clang)
        if failure is not None:
            return failure

    return EvalResult(record_id, expression, "ok", value)


# ---------------------------------------------------------------------------
# CLI driver
# ---------------------------------------------------------------------------

def parse_args():
    p = argparse.ArgumentParser(
        description="Evaluate arithmetic expressions from a JSONL file."
    )
    p.add_argument(
        "--in",
        dest="in_path",
        default="manual_arith_cases.jsonl",
        help="Input JSONL with 'expression' records (default: manual_arith_cases.jsonl).",
    )
    p.add_argument(
        "--out",
        dest="out_path",
        default=None,
        help="Optional output JSONL with one result record per input.",
    )
    p.add_argument(
        "--max",
        dest="max_items",
        type=int,
        default=None,
        help="Maximum number of expressions to evaluate.",
    )
    p.add_argument(
        "--compile",
        action="store_true",
        help="Also compile each expression with LLVM + clang and compare results.",
    )
    p.add_argument(
        "--clang",
        default="clang",
        help="clang executable used with --compile (default: clang).",
    )
    return p.parse_args()


def main():
    args = parse_args()
    in_path = Path(args.in_path)

    clang = None
    if args.compile:
        clang = shutil.which(args.clang)
        if clang is None:
            raise SystemExit(f"[ERROR] --compile requested but {args.clang!r} is not on PATH")

    results: List[EvalResult] = []
    timings: List[float] = []

    with tempfile.TemporaryDirectory() as tmpdir_str:
        tmpdir = Path(tmpdir_str)

        with in_path.open("r", encoding="utf-8") as fin:
            for line in fin:
                if args.max_items is not None and len(results) >= args.max_items:
                    break
                if not line.strip():
                    continue

                rec = json.loads(line)
                if "expression" not in rec:
                    continue
                record_id = str(rec.get("id", len(results)))

                start_t = time.perf_counter()
                res = evaluate_record(rec, record_id, tmpdir if clang else None, clang)
                timings.append(time.perf_counter() - start_t)

                results.append(res)
                print(f"[{res.status.upper()}] {record_id}: {res.expression}")

    if args.out_path:
        out_path = Path(args.out_path)
        with out_path.open("w", encoding="utf-8") as fout:
            for r in results:
                fout.write(json.dumps(r.to_json(), ensure_ascii=False) + "\n")
        print(f"[INFO] Wrote {len(results)} results to {out_path}")

    # Summary
    counts: Dict[str, int] = {}
    for r in results:
        counts[r.status] = counts.get(r.status, 0) + 1

    print("\n=== Summary ===")
    print(f"Total evaluated: {len(results)}")
    for status, count in sorted(counts.items()):
        print(f"  {status}: {count}")

    for r in results:
        if r.status != "ok":
            print(f"\n--- {r.status.upper()} for {r.record_id} ---")
            print(f"Expression: {r.expression}")
            print(f"Detail: {r.detail}")

    print("\n=== Performance summary ===")
    if timings:
        total_time = sum(timings)
        print(f"Expressions timed: {len(timings)}")
        print(f"Total time:        {total_time:.3f} s")
        print(f"Avg per expr:      {total_time / len(timings) * 1000:.3f} ms")
        print(f"Median per expr:   {statistics.median(timings) * 1000:.3f} ms")
        print(f"Min / Max:         {min(timings) * 1000:.3f} ms / {max(timings) * 1000:.3f} ms")
    else:
        print("No expressions were evaluated.")


if __name__ == "__main__":
    main()
