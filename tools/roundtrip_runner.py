#!/usr/bin/env python3
# tools/roundtrip_runner.py
#
# Codec invariants over random values (property tests).
#
# This runner:
# - generates random schema-typed values (scalars, dataclass structs, lists)
# - checks encode stability, decode(encode(x)) == x, the trailing terminator,
#   sequence frame spans, and that truncating a document never decodes
#
# Exit code:
#   0 -> all checks passed
#   1 -> invariant violation

import logging, os, random, string, struct, sys
from dataclasses import dataclass
from typing import Any, List, Tuple

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(ROOT, "implementations", "python"))

from ampcodec import (
    AmpError, TERMINATOR, F32, F64, I8, I16, I32, I64, U8, U16, U32, U64,
    Char, bytes_to_length, decode, encode,
)

SEED = int(os.environ.get("AMP_SEED", "1337"))
TRIALS = int(os.environ.get("AMP_TRIALS", "2000"))
MAX_LIST = int(os.environ.get("AMP_GEN_MAX_LIST", "6"))
MAX_STR = int(os.environ.get("AMP_GEN_MAX_STR", "24"))

LOGGER = logging.getLogger("roundtrip_runner")

random.seed(SEED)


@dataclass
class Leaf:
    flag: bool
    count: I32


@dataclass
class Record:
    name: str
    score: F64
    tags: List[str]
    leaf: Leaf


def f32(v: float) -> float:
    return struct.unpack(">f", struct.pack(">f", v))[0]

def rand_text() -> str:
    # Never empty: zero-length fields are reserved for the terminator.
    out = []
    for _ in range(random.randint(1, MAX_STR)):
        r = random.random()
        if r < 0.75:
            out.append(random.choice(string.printable))
        elif r < 0.95:
            out.append(chr(random.randint(0xA0, 0xD7FF)))
        else:
            out.append(chr(random.randint(0x10000, 0x10FFFF)))
    return "".join(out)

def rand_scalar() -> Tuple[Any, Any]:
    kind = random.choice([I8, I16, I32, I64, U8, U16, U32, U64, F32, F64, Char, bool, str])
    if kind is bool:
        return random.random() < 0.5, bool
    if kind is str:
        return rand_text(), str
    if kind is Char:
        return random.choice(rand_text()), Char
    if kind is F32:
        return f32(random.uniform(-1e6, 1e6)), F32
    if kind is F64:
        return random.choice([random.uniform(-1e9, 1e9), random.random() * 1e-9]), F64
    return random.randint(kind.lo, kind.hi), kind

def rand_record() -> Record:
    return Record(
        name=rand_text(),
        score=random.uniform(-100, 100),
        tags=[rand_text() for _ in range(random.randint(0, MAX_LIST))],
        leaf=Leaf(flag=random.random() < 0.5, count=random.randint(I32.lo, I32.hi)),
    )

def rand_case() -> Tuple[Any, Any]:
    r = random.random()
    if r < 0.4:
        return rand_scalar()
    if r < 0.7:
        return rand_record(), Record
    if r < 0.85:
        n = random.randint(0, MAX_LIST)
        return [random.randint(I64.lo, I64.hi) for _ in range(n)], List[I64]
    return [rand_record() for _ in range(random.randint(0, 3))], List[Record]

def fail(label: str, value: Any, data: bytes) -> int:
    print("INVARIANT FAIL:", label)
    print("VALUE:", repr(value)[:2000])
    print("BYTES:", data[:400].hex())
    return 1

def main() -> int:
    for t in range(TRIALS):
        value, schema = rand_case()

        # (1) Encode stability (encode twice, same bytes)
        data = encode(value, schema)
        if encode(value, schema) != data:
            return fail("encode stability", value, data)

        # (2) Every document ends with the terminator
        if not data.endswith(TERMINATOR):
            return fail("terminator suffix", value, data)

        # (3) Round-trip
        if decode(data, schema) != value:
            return fail("round-trip", value, data)

        # (4) A top-level list frame spans everything up to the terminator
        if isinstance(value, list) and bytes_to_length(data[:2]) != len(data) - 4:
            return fail("sequence frame span", value, data)

        # (5) Truncated documents raise AmpError, never anything else
        cut = random.randint(0, len(data) - 1)
        try:
            decode(data[:cut], schema)
        except AmpError:
            pass
        else:
            return fail("truncated document decoded (cut={})".format(cut), value, data)

        LOGGER.debug("trial %d ok (%d bytes)", t, len(data))

    print("OK: invariants passed for TRIALS={} seed={}".format(TRIALS, SEED))
    return 0

if __name__ == "__main__":
    logging.basicConfig(level=os.environ.get("AMP_LOG_LEVEL", "WARNING"))
    sys.exit(main())
