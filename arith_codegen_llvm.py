#!/usr/bin/env python3
"""
LLVM code generator for arithmetic expressions.

Given an expression string like:

    x * x + 1
    (a + b) / (c - d)

we:

  1. Parse it into an Expr tree using arith_core
  2. Build an LLVM module with a function taking one double per variable:

         double f(double a, double b, double c, double d);

  3. Emit LLVM IR to a .ll file.

Division mirrors the tree evaluator: a divisor whose magnitude is below
DIVISION_EPSILON yields NaN instead of an IEEE infinity.
"""

from __future__ import annotations

import argparse
from typing import Dict, List, Optional, Sequence

from llvmlite import ir

from arith_core import (
    DIVISION_EPSILON,
    BinaryOp,
    Expr,
    NumberLiteral,
    OpKind,
    fold_tree,
    free_variables,
    parse,
)

# ---------------------------------------------------------------------------
# Expression codegen
# ---------------------------------------------------------------------------

def _get_intrinsic(module: ir.Module, name: str, arity: int) -> ir.Function:
    double = ir.DoubleType()
    fn = module.globals.get(name)
    if fn is None:
        fn_ty = ir.FunctionType(double, [double] * arity)
        fn = ir.Function(module, fn_ty, name=name)
    return fn


def codegen_expr(
    expr: Expr,
    builder: ir.IRBuilder,
    env: Dict[str, ir.Value],
    module: ir.Module,
) -> ir.Value:
    """
    Generate LLVM IR for an Expr, returning an ir.Value (double).

    env: mapping from variable name -> ir.Value (function arguments)
    module: LLVM module (needed for the fabs / pow intrinsics)

    Instructions are emitted in post-order, left operand first, without
    recursing, so long operator chains compile like short ones.
    """
    double = ir.DoubleType()

    def leaf(node: Expr) -> ir.Value:
        if isinstance(node, NumberLiteral):
            return ir.Constant(double, node.value)
        if node.name not in env:
            raise ValueError(f"Variable {node.name!r} is not a function parameter")
        return env[node.name]

    def op(node: BinaryOp, left: ir.Value, right: ir.Value) -> ir.Value:
        if node.kind is OpKind.ADD:
            return builder.fadd(left, right, name="addtmp")
        if node.kind is OpKind.SUBTRACT:
            return builder.fsub(left, right, name="subtmp")
        if node.kind is OpKind.MULTIPLY:
            return builder.fmul(left, right, name="multmp")
        if node.kind is OpKind.DIVIDE:
            fabs_fn = _get_intrinsic(module, "llvm.fabs.f64", 1)
            magnitude = builder.call(fabs_fn, [right], name="divabs")
            is_zero = builder.fcmp_ordered(
                "<", magnitude, ir.Constant(double, DIVISION_EPSILON), name="divzero"
            )
            quotient = builder.fdiv(left, right, name="divtmp")
            return builder.select(is_zero, ir.Constant(double, float("nan")), quotient, name="divsel")
        if node.kind is OpKind.POWER:
            pow_fn = _get_intrinsic(module, "llvm.pow.f64", 2)
            return builder.call(pow_fn, [left, right], name="powtmp")

        raise NotImplementedError(f"Unsupported operator {node.kind!r}")

    return fold_tree(expr, leaf, op)


# ---------------------------------------------------------------------------
# Function + module construction
# ---------------------------------------------------------------------------

def build_module_for_expression(
    expr: Expr,
    name: str = "f",
    params: Optional[Sequence[str]] = None,
    module_name: str = "arith_module",
) -> ir.Module:
    """
    Construct an LLVM module with a single function evaluating expr.

    Every parameter is a double, and the return type is double. params
    defaults to the expression's free variables in sorted order; a free
    variable missing from an explicit params list is a ValueError.
    """
    param_names: List[str] = list(params) if params is not None else free_variables(expr)
    if len(set(param_names)) != len(param_names):
        raise ValueError(f"Duplicate parameter names: {param_names}")
    missing = [v for v in free_variables(expr) if v not in param_names]
    if missing:
        raise ValueError(f"Free variables not listed as parameters: {missing}")

    double = ir.DoubleType()
    module = ir.Module(name=module_name)

    fn_ty = ir.FunctionType(double, [double for _ in param_names])
    fn = ir.Function(module, fn_ty, name=name)

    env: Dict[str, ir.Value] = {}
    for arg, param_name in zip(fn.args, param_names):
        arg.name = param_name
        env[param_name] = arg

    block = fn.append_basic_block(name="entry")
    builder = ir.IRBuilder(block)

    ret_val = codegen_expr(expr, builder, env, module)
    builder.ret(ret_val)

    return module


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args():
    p = argparse.ArgumentParser(
        description="Generate LLVM IR (.ll) from an arithmetic expression."
    )
    p.add_argument(
        "expression",
        help='Arithmetic expression, e.g. "x * x + 1"',
    )
    p.add_argument(
        "--out",
        "-o",
        required=True,
        help="Output .ll file path.",
    )
    p.add_argument(
        "--name",
        default="f",
        help="Name of the generated function (default: f).",
    )
    p.add_argument(
        "--params",
        default=None,
        help="Comma-separated parameter order (default: sorted free variables).",
    )
    p.add_argument(
        "--module-name",
        default="arith_module",
        help="Optional LLVM module name.",
    )
    return p.parse_args()


def main():
    args = parse_args()

    expr = parse(args.expression)
    params = None
    if args.params:
        params = [p.strip() for p in args.params.split(",") if p.strip()]

    module = build_module_for_expression(
        expr, name=args.name, params=params, module_name=args.module_name
    )

    with open(args.out, "w", encoding="utf-8") as f:
        f.write(str(module))
    print(f"[INFO] Wrote LLVM IR for {args.name} to {args.out}")


if __name__ == "__main__":
    main()
