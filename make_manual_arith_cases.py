#!/usr/bin/env python3
import json
from pathlib import Path

OUT = Path("manual_arith_cases.jsonl")

BINDINGS = {"a": 20.0, "b": 15.0, "c": 10.0, "d": 5.0}

# (id, expression, bindings, expected value or expected error class name)
CASES = [
    # ----- Precedence -----
    ("prec_1", "2+3*4", {}, 14.0),
    ("prec_2", "(2+3)*4", {}, 20.0),
    ("prec_3", "a + b * c - d", BINDINGS, 165.0),
    ("prec_4", "(a + b) / (c - d)", BINDINGS, 7.0),

    # ----- Left associativity -----
    ("assoc_1", "10-3-2", {}, 5.0),
    ("assoc_2", "100/10/2", {}, 5.0),
    ("assoc_3", "2 * 3 / 4 * 5", {}, 7.5),

    # ----- Literals -----
    ("lit_1", "100 + 50", {}, 150.0),
    ("lit_2", "1 - -2", {}, 3.0),
    ("lit_3", "-1.5 * 4", {}, -6.0),
    ("lit_4", "0.1 + 0.2", {}, 0.3),

    # ----- Variables -----
    ("var_1", "x*x+1", {"x": 5.0}, 26.0),
    ("var_2", "x*x+1", {"x": 3.0}, 10.0),
    ("var_3", "principal * (1 + rate) * (1 + rate)",
     {"principal": 1000.0, "rate": 0.05}, 1102.5),
    ("var_4", "speed_2 / time1", {"speed_2": 9.0, "time1": 3.0}, 3.0),

    # ----- Errors -----
    ("err_div_1", "5/0", {}, "DivisionByZero"),
    ("err_div_2", "a / (c - 2 * d)", BINDINGS, "DivisionByZero"),
    ("err_var_1", "y+1", {}, "UndefinedVariable"),
    ("err_paren_1", "(1+2", {}, "ParseError"),
    ("err_lex_1", "1+@", {}, "LexError"),
    ("err_empty_1", "", {}, "ParseError"),

    # ----- Long chains -----
    ("chain_1", " + ".join(["1"] * 1000), {}, 1000.0),
]


def main():
    with OUT.open("w", encoding="utf-8") as f:
        for id_, expression, bindings, expected in CASES:
            rec = {
                "id": id_,
                "expression": expression,
                "bindings": bindings,
            }
            if isinstance(expected, str):
                rec["expected_error"] = expected
            else:
                rec["expected"] = expected
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
    print(f"Wrote {len(CASES)} cases to {OUT}")


if __name__ == "__main__":
    main()
