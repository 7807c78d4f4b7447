"""AMP codec conformance test suite.

Runs every vector from conformance/vectors_v1.json.  A vector names a
schema, the wire bytes (hex), and either the decoded value or the error
code decoding must raise.  Canonical vectors are also re-encoded and
compared byte for byte.

Usage:
    python tests/test_conformance.py [--vectors-dir DIR]
    python -m pytest tests/test_conformance.py -v
    AMP_VECTORS_DIR=../../conformance python tests/test_conformance.py
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import os
import sys
import unittest
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ampcodec import (
    F32,
    F64,
    I8,
    I16,
    I32,
    I64,
    U8,
    U16,
    U32,
    U64,
    AmpError,
    Char,
    decode,
    encode,
)


@dataclass
class Named:
    value: int
    name: str


@dataclass
class Nested:
    inner: int


@dataclass
class Outer:
    value: int
    nested: Nested


SCHEMAS: Dict[str, Any] = {
    "bool": bool,
    "str": str,
    "char": Char,
    "i8": I8,
    "i16": I16,
    "i32": I32,
    "i64": I64,
    "u8": U8,
    "u16": U16,
    "u32": U32,
    "u64": U64,
    "f32": F32,
    "f64": F64,
    "list[int]": List[int],
    "list[list[int]]": List[List[int]],
    "Named": Named,
    "Outer": Outer,
}


# ── Locate conformance data ───────────────────────────────────

_VECTORS_DIR: Optional[str] = os.environ.get("AMP_VECTORS_DIR", None)


def _find_vectors_dir() -> str:
    if _VECTORS_DIR:
        return _VECTORS_DIR
    candidates = [
        os.path.join(os.path.dirname(__file__), "..", "..", "..", "conformance"),
        os.path.join(os.path.dirname(__file__), "..", "..", "conformance"),
        os.path.join(os.path.dirname(__file__), "..", "conformance"),
    ]
    for d in candidates:
        if os.path.isfile(os.path.join(d, "vectors_v1.json")):
            return d
    raise FileNotFoundError(
        "Cannot find conformance vectors. Set AMP_VECTORS_DIR or --vectors-dir."
    )


def _load_vectors() -> List[dict]:
    path = os.path.join(_find_vectors_dir(), "vectors_v1.json")
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)["vectors"]


def _plain(value: Any) -> Any:
    """Dataclasses to dicts, so results compare against JSON values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _run_vector(vec: dict) -> Dict[str, Any]:
    """Execute one vector.  Returns {"value": ...} or {"err": ...}."""
    schema = SCHEMAS[vec["schema"]]
    raw = bytes.fromhex(vec["hex"])
    try:
        decoded = decode(raw, schema)
    except AmpError as e:
        return {"err": e.code}

    out: Dict[str, Any] = {"value": _plain(decoded)}
    if vec.get("canonical", True):
        try:
            out["reencoded"] = encode(decoded, schema) == raw
        except AmpError as e:
            out["reencoded"] = e.code
    return out


def _expected(vec: dict) -> Dict[str, Any]:
    if "err" in vec:
        return {"err": vec["err"]}
    exp: Dict[str, Any] = {"value": vec["value"]}
    if vec.get("canonical", True):
        exp["reencoded"] = True
    return exp


# ── unittest integration ──────────────────────────────────────

class ConformanceTests(unittest.TestCase):
    """Dynamically generated: one test method per vector."""
    pass


def _make_test(vec: dict):
    def test_fn(self: unittest.TestCase) -> None:
        got = _run_vector(vec)
        exp = _expected(vec)
        self.assertEqual(got, exp,
                         "{}: got {} expected {}".format(vec["test_id"], got, exp))
    return test_fn


# Attach test methods at import time.
try:
    for _vec in _load_vectors():
        _tid = _vec["test_id"]
        _fn = _make_test(_vec)
        _fn.__name__ = "test_{}".format(_tid)
        _fn.__qualname__ = "ConformanceTests.test_{}".format(_tid)
        setattr(ConformanceTests, "test_{}".format(_tid), _fn)
except FileNotFoundError:
    pass


# ── Standalone CLI runner ─────────────────────────────────────

def main() -> None:
    global _VECTORS_DIR

    parser = argparse.ArgumentParser(description="AMP codec conformance runner")
    parser.add_argument("--vectors-dir", default=None,
                        help="Directory holding vectors_v1.json")
    args, _remaining = parser.parse_known_args()

    if args.vectors_dir:
        _VECTORS_DIR = args.vectors_dir

    passed = 0
    failures: List[Tuple[str, dict, dict]] = []

    for vec in _load_vectors():
        got = _run_vector(vec)
        exp = _expected(vec)
        if got == exp:
            passed += 1
        else:
            failures.append((vec["test_id"], got, exp))

    total = passed + len(failures)
    print("CONFORMANCE: {}/{} PASS".format(passed, total))
    for tid, got, exp in failures:
        print("  FAIL {}: got={} expected={}".format(tid, got, exp))

    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
