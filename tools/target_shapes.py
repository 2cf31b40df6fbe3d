"""
target_shapes.py - Classification of record field types

Every decode target is classified once into a Shape:

    PRIMITIVE    str, bool, bytes, int and the fixed-width int aliases
    POINTER      Optional[X]
    SEQUENCE     List[X]
    RECORD       dataclass types
    CUSTOM       classes implementing a decode capability
    NAME         Name (element-name capture)
    ATTR         Attr (catch-all attribute items)
    UNSUPPORTED  anything else; fails when first decoded into

Capability flags are recorded on the shape independently of its kind, so a
dataclass that also implements from_text is decoded through from_text.
"""

import dataclasses
import functools
import types
from dataclasses import dataclass
from enum import Enum
from typing import (Annotated, Any, List, Optional, Protocol, Union,
                    get_args, get_origin, get_type_hints, runtime_checkable)

from namespace_context import Attr, Name
from value_coercion import IntKind, PrimitiveKind


@runtime_checkable
class XMLUnmarshaler(Protocol):
    """Type that consumes its own element subtree."""

    @classmethod
    def from_xml(cls, context: Any, start: Any) -> Any: ...


@runtime_checkable
class TextUnmarshaler(Protocol):
    """Type built from trimmed text (element content or attribute value)."""

    @classmethod
    def from_text(cls, text: str) -> Any: ...


@runtime_checkable
class AttrUnmarshaler(Protocol):
    """Type built from a whole attribute."""

    @classmethod
    def from_xml_attr(cls, attr: Attr) -> Any: ...


class ShapeKind(Enum):
    PRIMITIVE = 'primitive'
    POINTER = 'pointer'
    SEQUENCE = 'sequence'
    RECORD = 'record'
    CUSTOM = 'custom'
    NAME = 'name'
    ATTR = 'attr'
    UNSUPPORTED = 'unsupported'


@dataclass(frozen=True)
class Shape:
    kind: ShapeKind
    type: Any = None
    primitive: Optional[PrimitiveKind] = None
    int_kind: IntKind = IntKind.I64
    inner: Optional['Shape'] = None
    unmarshaler: bool = False
    text_unmarshaler: bool = False
    attr_unmarshaler: bool = False

    def describe(self) -> str:
        if self.kind in (ShapeKind.POINTER, ShapeKind.SEQUENCE):
            return f"{self.kind.value}[{self.inner.describe()}]"
        if self.kind is ShapeKind.PRIMITIVE and self.primitive is PrimitiveKind.INT:
            return self.int_kind.value
        if self.kind is ShapeKind.PRIMITIVE:
            return self.primitive.value
        return getattr(self.type, '__name__', repr(self.type))


_PRIMITIVES = {
    str: PrimitiveKind.STRING,
    bool: PrimitiveKind.BOOL,
    bytes: PrimitiveKind.BYTES,
}

_UNION_TYPES = (Union, getattr(types, 'UnionType', Union))


@functools.lru_cache(maxsize=None)
def classify(tp: Any) -> Shape:
    """Classify a resolved type hint."""
    origin = get_origin(tp)

    if origin is Annotated:
        base, *metadata = get_args(tp)
        int_kinds = [m for m in metadata if isinstance(m, IntKind)]
        if base is int and int_kinds:
            return Shape(ShapeKind.PRIMITIVE, int, PrimitiveKind.INT, int_kinds[0])
        return classify(base)

    if origin in _UNION_TYPES:
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1 and len(get_args(tp)) == 2:
            return Shape(ShapeKind.POINTER, tp, inner=classify(args[0]))
        return Shape(ShapeKind.UNSUPPORTED, tp)

    if origin in (list, List):
        args = get_args(tp)
        inner = classify(args[0]) if args else Shape(ShapeKind.UNSUPPORTED, Any)
        return Shape(ShapeKind.SEQUENCE, tp, inner=inner)
    if tp is list:
        return Shape(ShapeKind.SEQUENCE, tp, inner=Shape(ShapeKind.UNSUPPORTED, Any))

    if tp in _PRIMITIVES:
        return Shape(ShapeKind.PRIMITIVE, tp, _PRIMITIVES[tp])
    if tp is int:
        return Shape(ShapeKind.PRIMITIVE, int, PrimitiveKind.INT, IntKind.I64)
    if tp is Name:
        return Shape(ShapeKind.NAME, Name)
    if tp is Attr:
        return Shape(ShapeKind.ATTR, Attr)

    if not isinstance(tp, type):
        return Shape(ShapeKind.UNSUPPORTED, tp)

    flags = dict(
        unmarshaler=issubclass(tp, XMLUnmarshaler),
        text_unmarshaler=issubclass(tp, TextUnmarshaler),
        attr_unmarshaler=issubclass(tp, AttrUnmarshaler),
    )
    if dataclasses.is_dataclass(tp):
        return Shape(ShapeKind.RECORD, tp, **flags)
    if any(flags.values()):
        return Shape(ShapeKind.CUSTOM, tp, **flags)
    return Shape(ShapeKind.UNSUPPORTED, tp)


def zero_value(shape: Shape) -> Any:
    """Zero value for a shape, used for fresh records and sequence items."""
    if shape.kind is ShapeKind.PRIMITIVE:
        return {
            PrimitiveKind.STRING: '',
            PrimitiveKind.BOOL: False,
            PrimitiveKind.BYTES: b'',
            PrimitiveKind.INT: 0,
        }[shape.primitive]
    if shape.kind is ShapeKind.SEQUENCE:
        return []
    if shape.kind is ShapeKind.RECORD:
        return new_record(shape.type)
    if shape.kind is ShapeKind.NAME:
        return Name('')
    return None


def new_record(cls: type) -> Any:
    """Instantiate a record, zero-filling fields that have no default."""
    hints = get_type_hints(cls, include_extras=True)
    kwargs = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            kwargs[f.name] = zero_value(classify(hints[f.name]))
    return cls(**kwargs)
