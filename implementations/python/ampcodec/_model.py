"""Generic traversal layer between application values and the codec.

The encoder and decoder never look at application types.  They expose a
small callback surface instead:

    Serializer    (push)  write_bool / write_int / write_float / write_char /
                          write_str / begin_struct / write_key / end_struct /
                          begin_seq / end_seq
    Deserializer  (pull)  read_bool / read_int / read_float / read_char /
                          read_str / begin_struct / next_key / end_struct /
                          begin_seq / has_element / end_seq

`walk_value` drives a Serializer from a Python value, `build_value`
drives a Deserializer from a schema.  A schema is any of:

    bool, int, float, str           plain Python scalars (int is unbounded,
                                    float is F64)
    I8 .. U64, F32, F64, Char       sized scalar kinds
    an Enum subclass                members travel as their name
    a dataclass                     struct, fields in declaration order
    List[T] / list[T]               sequence
    Dict[str, T] / dict[str, T]     struct with free-form keys

`Annotated[int, I8]` works anywhere a kind does.  Optional values, byte
blobs and tuples are not part of the data model and fail with
ERR_MESSAGE, as do layouts whose end the decoder could not find (see
`check_layout`).
"""

from __future__ import annotations

import dataclasses
import enum
import threading
import typing
from typing import Any, Dict, List, Optional, Sequence

from ._constants import (
    I8_MAX,
    I8_MIN,
    I16_MAX,
    I16_MIN,
    I32_MAX,
    I32_MIN,
    I64_MAX,
    I64_MIN,
    U8_MAX,
    U16_MAX,
    U32_MAX,
    U64_MAX,
)
from ._errors import ERR_BAD_DATA, AmpError


# ── Callback protocols ────────────────────────────────────────

class Serializer(typing.Protocol):
    def write_bool(self, value: bool) -> None: ...
    def write_int(self, value: int) -> None: ...
    def write_float(self, value: float, single: bool = False) -> None: ...
    def write_char(self, value: str) -> None: ...
    def write_str(self, value: str) -> None: ...
    def begin_struct(self, name: str) -> None: ...
    def write_key(self, key: str) -> None: ...
    def end_struct(self) -> None: ...
    def begin_seq(self) -> None: ...
    def end_seq(self) -> None: ...


class Deserializer(typing.Protocol):
    def read_bool(self) -> bool: ...
    def read_int(self) -> int: ...
    def read_float(self, single: bool = False) -> float: ...
    def read_char(self) -> str: ...
    def read_str(self) -> str: ...
    def begin_struct(self, fields: Optional[Sequence[str]]) -> None: ...
    def next_key(self) -> Optional[str]: ...
    def end_struct(self) -> None: ...
    def begin_seq(self) -> None: ...
    def has_element(self) -> bool: ...
    def end_seq(self) -> None: ...


# ── Scalar kinds ──────────────────────────────────────────────

class ScalarKind:
    """A scalar type descriptor.

    Calling a kind validates a Python value against it and returns the
    value, so `I8(-15)` is -15 and `I8(200)` raises.  Kinds are callable
    so they are also accepted as annotations by `typing.get_type_hints`.
    """

    name = "scalar"

    def __call__(self, value: Any) -> Any:
        return self.check(value)

    def __repr__(self) -> str:
        return self.name

    def check(self, value: Any) -> Any:
        raise NotImplementedError

    def serialize(self, ser: Serializer, value: Any) -> None:
        raise NotImplementedError

    def deserialize(self, de: Deserializer) -> Any:
        raise NotImplementedError


class BoolKind(ScalarKind):
    name = "bool"

    def check(self, value: Any) -> bool:
        if not isinstance(value, bool):
            raise _type_mismatch(self, value)
        return value

    def serialize(self, ser: Serializer, value: Any) -> None:
        ser.write_bool(self.check(value))

    def deserialize(self, de: Deserializer) -> bool:
        return de.read_bool()


class IntKind(ScalarKind):
    """Integer kind.  `lo`/`hi` of None means unbounded on that side."""

    def __init__(self, name: str, lo: Optional[int], hi: Optional[int]) -> None:
        self.name = name
        self.lo = lo
        self.hi = hi

    def check(self, value: Any) -> int:
        # bool is an int subclass; True must not pass as 1.
        if isinstance(value, bool) or not isinstance(value, int):
            raise _type_mismatch(self, value)
        if (self.lo is not None and value < self.lo) or \
                (self.hi is not None and value > self.hi):
            raise AmpError(ERR_BAD_DATA,
                           "{} outside {} range".format(value, self.name))
        return value

    def serialize(self, ser: Serializer, value: Any) -> None:
        ser.write_int(self.check(value))

    def deserialize(self, de: Deserializer) -> int:
        return self.check(de.read_int())


class FloatKind(ScalarKind):
    def __init__(self, name: str, single: bool) -> None:
        self.name = name
        self.single = single

    def check(self, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _type_mismatch(self, value)
        return float(value)

    def serialize(self, ser: Serializer, value: Any) -> None:
        ser.write_float(self.check(value), single=self.single)

    def deserialize(self, de: Deserializer) -> float:
        return de.read_float(single=self.single)


class CharKind(ScalarKind):
    name = "char"

    def check(self, value: Any) -> str:
        if not isinstance(value, str):
            raise _type_mismatch(self, value)
        if len(value) != 1:
            raise AmpError(ERR_BAD_DATA,
                           "char must be one code point, got {!r}".format(value))
        return value

    def serialize(self, ser: Serializer, value: Any) -> None:
        ser.write_char(self.check(value))

    def deserialize(self, de: Deserializer) -> str:
        return de.read_char()


class StrKind(ScalarKind):
    name = "str"

    def check(self, value: Any) -> str:
        if not isinstance(value, str):
            raise _type_mismatch(self, value)
        return value

    def serialize(self, ser: Serializer, value: Any) -> None:
        ser.write_str(self.check(value))

    def deserialize(self, de: Deserializer) -> str:
        return de.read_str()


class EnumKind(ScalarKind):
    """Unit-only enum: a member travels as its name."""

    def __init__(self, enum_cls: typing.Type[enum.Enum]) -> None:
        self.enum_cls = enum_cls
        self.name = enum_cls.__name__

    def __repr__(self) -> str:
        return "EnumKind({})".format(self.name)

    def check(self, value: Any) -> enum.Enum:
        if not isinstance(value, self.enum_cls):
            raise _type_mismatch(self, value)
        return value

    def serialize(self, ser: Serializer, value: Any) -> None:
        ser.write_str(self.check(value).name)

    def deserialize(self, de: Deserializer) -> enum.Enum:
        text = de.read_str()
        try:
            return self.enum_cls[text]
        except KeyError:
            raise AmpError(ERR_BAD_DATA,
                           "{!r} is not a member of {}".format(text, self.name))


BOOL = BoolKind()
INT = IntKind("int", None, None)
STR = StrKind()

I8 = IntKind("i8", I8_MIN, I8_MAX)
I16 = IntKind("i16", I16_MIN, I16_MAX)
I32 = IntKind("i32", I32_MIN, I32_MAX)
I64 = IntKind("i64", I64_MIN, I64_MAX)
U8 = IntKind("u8", 0, U8_MAX)
U16 = IntKind("u16", 0, U16_MAX)
U32 = IntKind("u32", 0, U32_MAX)
U64 = IntKind("u64", 0, U64_MAX)
F32 = FloatKind("f32", single=True)
F64 = FloatKind("f64", single=False)
Char = CharKind()


def _type_mismatch(kind: ScalarKind, value: Any) -> AmpError:
    return AmpError.custom(
        "expected {}, got {}".format(kind.name, type(value).__name__))


# ── Composite nodes ───────────────────────────────────────────

class SeqNode:
    def __init__(self, item: Any) -> None:
        self.item = item

    def __repr__(self) -> str:
        return "SeqNode({!r})".format(self.item)

    def serialize(self, ser: Serializer, value: Any) -> None:
        if not isinstance(value, list):
            raise AmpError.custom(
                "expected list, got {}".format(type(value).__name__))
        ser.begin_seq()
        for item in value:
            self.item.serialize(ser, item)
        ser.end_seq()

    def deserialize(self, de: Deserializer) -> List[Any]:
        out: List[Any] = []
        de.begin_seq()
        while de.has_element():
            out.append(self.item.deserialize(de))
        de.end_seq()
        return out


class DictNode:
    """A struct whose keys are data, not declared fields."""

    def __init__(self, value: Any) -> None:
        self.value = value

    def serialize(self, ser: Serializer, value: Any) -> None:
        if not isinstance(value, dict):
            raise AmpError.custom(
                "expected dict, got {}".format(type(value).__name__))
        ser.begin_struct("dict")
        for k, v in value.items():
            if not isinstance(k, str):
                raise AmpError.custom("struct key must be a string")
            ser.write_key(k)
            self.value.serialize(ser, v)
        ser.end_struct()

    def deserialize(self, de: Deserializer) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        de.begin_struct(None)
        while True:
            key = de.next_key()
            if key is None:
                break
            out[key] = self.value.deserialize(de)
        de.end_struct()
        return out


class _Field(typing.NamedTuple):
    name: str
    node: Any
    default: Any
    default_factory: Any


class StructNode:
    """A dataclass mapped to a struct."""

    def __init__(self, cls: type) -> None:
        self.cls = cls
        self.fields: List[_Field] = []

    def __repr__(self) -> str:
        return "StructNode({})".format(self.cls.__name__)

    def serialize(self, ser: Serializer, value: Any) -> None:
        if not isinstance(value, self.cls):
            raise AmpError.custom("expected {}, got {}".format(
                self.cls.__name__, type(value).__name__))
        ser.begin_struct(self.cls.__name__)
        for f in self.fields:
            ser.write_key(f.name)
            f.node.serialize(ser, getattr(value, f.name))
        ser.end_struct()

    def deserialize(self, de: Deserializer) -> Any:
        by_name = {f.name: f for f in self.fields}
        kwargs: Dict[str, Any] = {}
        de.begin_struct([f.name for f in self.fields])
        while True:
            key = de.next_key()
            if key is None:
                break
            kwargs[key] = by_name[key].node.deserialize(de)
        de.end_struct()

        for f in self.fields:
            if f.name in kwargs:
                continue
            if f.default is not dataclasses.MISSING:
                kwargs[f.name] = f.default
            elif f.default_factory is not dataclasses.MISSING:
                kwargs[f.name] = f.default_factory()
            else:
                raise AmpError(ERR_BAD_DATA, "missing field {!r} in {}".format(
                    f.name, self.cls.__name__))
        return self.cls(**kwargs)


# ── Schema resolution ─────────────────────────────────────────

_BUILTIN_KINDS = {bool: BOOL, int: INT, float: F64, str: STR}

# Finished dataclass nodes, keyed by class.  Only complete nodes are
# published here, so lookups outside the lock never see a half-built one.
_struct_cache: Dict[type, StructNode] = {}

# Nodes under construction by the thread holding _cache_lock.  A
# self-referencing dataclass finds its own node here.
_resolving: Dict[type, StructNode] = {}
_cache_lock = threading.RLock()


def resolve_schema(schema: Any) -> Any:
    """Turn a schema (type, kind, or generic alias) into a node tree.

    Raises ERR_MESSAGE for schemas the wire format cannot delimit, see
    `check_layout`.
    """
    node = _resolve(schema)
    check_layout(node)
    return node


def _resolve(schema: Any) -> Any:
    if isinstance(schema, ScalarKind):
        return schema
    if isinstance(schema, (SeqNode, DictNode, StructNode)):
        return schema

    origin = typing.get_origin(schema)
    args = typing.get_args(schema)

    if origin is typing.Annotated:
        for meta in args[1:]:
            if isinstance(meta, ScalarKind):
                return meta
        return _resolve(args[0])

    if origin is list:
        if len(args) != 1:
            raise AmpError.custom("list schema needs one item type")
        return SeqNode(_resolve(args[0]))

    if origin is dict:
        if len(args) != 2 or args[0] is not str:
            raise AmpError.custom("dict schema must be Dict[str, T]")
        return DictNode(_resolve(args[1]))

    if origin is not None:
        # Union/Optional, tuple, Literal...
        raise AmpError.custom("unsupported schema {!r}".format(schema))

    if schema in _BUILTIN_KINDS:
        return _BUILTIN_KINDS[schema]

    if isinstance(schema, type):
        if issubclass(schema, enum.Enum):
            return EnumKind(schema)
        if dataclasses.is_dataclass(schema):
            return _resolve_dataclass(schema)

    raise AmpError.custom("unsupported schema {!r}".format(schema))


def _resolve_dataclass(cls: type) -> StructNode:
    node = _struct_cache.get(cls)
    if node is not None:
        return node
    with _cache_lock:
        node = _struct_cache.get(cls) or _resolving.get(cls)
        if node is not None:
            return node
        outermost = not _resolving
        node = StructNode(cls)
        _resolving[cls] = node
        try:
            hints = typing.get_type_hints(cls, include_extras=True)
            for f in dataclasses.fields(cls):
                if not f.init:
                    continue
                node.fields.append(_Field(
                    f.name, _resolve(hints[f.name]),
                    f.default, f.default_factory))
        except (NameError, TypeError) as exc:
            if outermost:
                _resolving.clear()
            raise AmpError.custom("cannot resolve fields of {}: {}".format(
                cls.__name__, exc)) from exc
        except AmpError:
            if outermost:
                _resolving.clear()
            raise
        if outermost:
            # Nodes reached through a cycle point at each other; publish
            # them together once every one of them is filled in.
            _struct_cache.update(_resolving)
            _resolving.clear()
    return node


# ── Layout rules ──────────────────────────────────────────────
#
# Structs and dicts have no length of their own.  The decoder finds
# their end from the declared field set, the enclosing sequence frame,
# or the terminator.  Two shapes defeat that and would decode to a
# different value than was encoded:
#
#   open-ended   a dict (any key is its own), or a struct whose last
#                field is open-ended.  It swallows every key after it,
#                so it may only sit in the last position of a struct,
#                and never as a dict value or a sequence element.
#   zero-width   a struct with no fields writes no bytes, so as a
#                sequence element it cannot be counted.

def _open_ended(node: Any, seen: Optional[set] = None) -> bool:
    if isinstance(node, DictNode):
        return True
    if isinstance(node, StructNode) and node.fields:
        seen = set() if seen is None else seen
        if node in seen:
            return False
        seen.add(node)
        return _open_ended(node.fields[-1].node, seen)
    return False


def _zero_width(node: Any) -> bool:
    return isinstance(node, StructNode) and not node.fields


def check_layout(node: Any, seen: Optional[set] = None) -> None:
    """Raise ERR_MESSAGE if `node` contains a shape that cannot round-trip."""
    seen = set() if seen is None else seen
    if id(node) in seen:
        return
    seen.add(id(node))

    if isinstance(node, SeqNode):
        if _open_ended(node.item):
            raise AmpError.custom(
                "{!r} cannot be a sequence element: it has no end".format(node.item))
        if _zero_width(node.item):
            raise AmpError.custom(
                "{!r} cannot be a sequence element: it has no fields".format(node.item))
        check_layout(node.item, seen)
    elif isinstance(node, DictNode):
        if _open_ended(node.value):
            raise AmpError.custom(
                "{!r} cannot be a dict value: it has no end".format(node.value))
        check_layout(node.value, seen)
    elif isinstance(node, StructNode):
        for f in node.fields[:-1]:
            if _open_ended(f.node):
                raise AmpError.custom(
                    "field {!r} of {} must come last: it has no end".format(
                        f.name, node.cls.__name__))
        for f in node.fields:
            check_layout(f.node, seen)


# ── Drivers ───────────────────────────────────────────────────

def walk_value(ser: Serializer, value: Any, schema: Any = None) -> None:
    """Push `value` into `ser`.

    With a schema the walk is schema-directed and every scalar is checked
    against its kind.  Without one the value's own Python type decides,
    and the same layout rules apply to what the value turns out to hold.
    """
    if schema is not None:
        resolve_schema(schema).serialize(ser, value)
        return

    # Enum before int (IntEnum), bool before int (bool subclasses int).
    if isinstance(value, enum.Enum):
        ser.write_str(value.name)
    elif isinstance(value, bool):
        ser.write_bool(value)
    elif isinstance(value, int):
        ser.write_int(value)
    elif isinstance(value, float):
        ser.write_float(value)
    elif isinstance(value, str):
        ser.write_str(value)
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        resolve_schema(type(value)).serialize(ser, value)
    elif isinstance(value, dict):
        ser.begin_struct("dict")
        for k, v in value.items():
            if not isinstance(k, str):
                raise AmpError.custom("struct key must be a string")
            if _value_open_ended(v):
                raise AmpError.custom(
                    "value of key {!r} cannot be a dict value: it has no end".format(k))
            ser.write_key(k)
            walk_value(ser, v)
        ser.end_struct()
    elif isinstance(value, list):
        ser.begin_seq()
        for item in value:
            if _value_open_ended(item) or _value_zero_width(item):
                raise AmpError.custom(
                    "{} cannot be a sequence element".format(type(item).__name__))
            walk_value(ser, item)
        ser.end_seq()
    else:
        raise AmpError.custom(
            "unsupported type: {}".format(type(value).__name__))


def _value_open_ended(value: Any) -> bool:
    if isinstance(value, dict):
        return True
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _open_ended(resolve_schema(type(value)))
    return False


def _value_zero_width(value: Any) -> bool:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _zero_width(resolve_schema(type(value)))
    return False


def build_value(de: Deserializer, schema: Any) -> Any:
    """Pull a value shaped like `schema` out of `de`."""
    return resolve_schema(schema).deserialize(de)
