#!/usr/bin/env python3
"""
xml_decoder.py - Namespace-aware XML decoder for dataclass records

Decodes namespaced XML into dataclass records, matching elements by
namespace URI rather than by the prefixes written in the document. The
prefixes used in field tags are resolved through a caller-supplied
NamespaceContext, so one record type decodes documents from any producer
regardless of the prefixes it picked.

Usage:
    from dataclasses import dataclass
    from xml_decoder import decode_bytes, xml_field

    @dataclass
    class User:
        name: str = xml_field('name', default='')
        bio: str = xml_field('ns1:bio', default='')

    user = decode_bytes(data, User, {'': 'http://example.com/user',
                                     'ns1': 'http://example.com/profile'})

    # Or keep a decoder around and collect errors instead of raising
    decoder = XMLDecoder({'': 'http://example.com/user'})
    result = decoder.decode_document(data, User)
    if result.success:
        print(result.value)

Supports:
- Element and attribute fields, prefixed or in the default namespace
- Path fields (a>b>c) sharing wrapper elements
- Nested records, Optional (pointer) and List (sequence) fields
- ,chardata / ,cdata / ,comment / ,innerxml / ,any / ,any,attr fields
- Element-name capture via Name-typed fields
- Custom decoding through from_xml / from_text / from_xml_attr
"""

import logging
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, List, Mapping, Optional, Set, Union

from decode_errors import (DecodeError, InvalidTargetError, PrematureEndError,
                           SchemaError, UnsupportedTypeError)
from decoder_config import DecoderOptions
from field_resolver import match_attributes, path_members, resolve_element
from namespace_context import Attr, Name, NamespaceContext
from path_group import PathMember, decode_path_group
from tag_descriptor import FieldDescriptor, RecordSchema, record_schema, xml_field
from target_shapes import Shape, ShapeKind, classify, new_record, zero_value
from value_coercion import PrimitiveKind, coerce
from xml_tokens import (CharData, Comment, EndElement, StartElement, TokenStream,
                        XMLTokenizer, serialize_tokens)

logger = logging.getLogger(__name__)

__all__ = [
    'XMLDecoder', 'DecodeContext', 'DecodeResult', 'DecoderOptions', 'decode', 'decode_bytes',
    'xml_field', 'new_record', 'Name', 'Attr', 'NamespaceContext',
]


@dataclass
class DecodeResult:
    """Result of decoding a document."""
    value: Any
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


def _unwrap(shape: Shape) -> Shape:
    while shape.kind is ShapeKind.POINTER:
        shape = shape.inner
    return shape


class DecodeContext:
    """
    View of an in-progress decode handed to from_xml() implementations.

    A custom decoder must consume its element through the matching end
    element, either token by token or via decode_element()/skip().
    """

    def __init__(self, run: '_DecodeRun'):
        self._run = run

    @property
    def tokens(self) -> TokenStream:
        return self._run.stream

    @property
    def namespaces(self) -> NamespaceContext:
        return self._run.namespaces

    @property
    def options(self) -> DecoderOptions:
        return self._run.options

    def next_token(self):
        return self._run.stream.next_token()

    def skip(self) -> None:
        self._run.stream.skip()

    def read_text(self) -> str:
        """Direct character data of the current element, untrimmed."""
        return self._run.read_text()

    def decode_element(self, target_type: Any, start: StartElement, current: Any = None) -> Any:
        """Decode the current element with the built-in rules for target_type."""
        return self._run.decode_value(classify(target_type), current, start)


class _DecodeRun:
    """Per-call state: the token stream and the schemas seen so far."""

    def __init__(self, stream: TokenStream, namespaces: NamespaceContext,
                 options: DecoderOptions):
        self.stream = stream
        self.namespaces = namespaces
        self.options = options
        self.warnings: List[str] = []
        self._seen: Set[type] = set()

    def schema_for(self, record_type: type) -> RecordSchema:
        schema = record_schema(record_type)
        if record_type not in self._seen:
            self._seen.add(record_type)
            if schema.warnings and self.options.strict_schema:
                raise SchemaError('; '.join(schema.warnings))
            self.warnings.extend(schema.warnings)
        return schema

    def next_token(self):
        tok = self.stream.next_token()
        if tok is None:
            raise PrematureEndError("unexpected end of stream inside element")
        return tok

    def root(self, shape: Shape, current: Any) -> Any:
        """Skip to the first start element and decode it."""
        while True:
            tok = self.stream.next_token()
            if tok is None:
                logger.debug("Empty document, target left unchanged")
                return current
            if isinstance(tok, StartElement):
                return self.dispatch(shape, current, tok)

    def dispatch(self, shape: Shape, current: Any, start: StartElement) -> Any:
        try:
            return self.decode_value(shape, current, start)
        except DecodeError as e:
            raise e.add_context(str(start.name))

    def decode_value(self, shape: Shape, current: Any, start: StartElement) -> Any:
        """Decode the element just started into a value of the given shape."""
        # Custom capabilities take priority over built-in dispatch
        if shape.unmarshaler:
            return shape.type.from_xml(DecodeContext(self), start)
        if shape.text_unmarshaler:
            return shape.type.from_text(self.read_text().strip())

        kind = shape.kind
        if kind is ShapeKind.POINTER:
            return self.decode_value(shape.inner, current, start)
        if kind is ShapeKind.SEQUENCE:
            items = current if current is not None else []
            items.append(self.decode_value(shape.inner, None, start))
            return items
        if kind is ShapeKind.RECORD:
            if current is None:
                self.schema_for(shape.type)
                current = new_record(shape.type)
            self.decode_record(current, start)
            return current
        if kind is ShapeKind.PRIMITIVE:
            return coerce(self.read_text(), shape.primitive, shape.int_kind,
                          self.options.strict_integers)
        if kind is ShapeKind.NAME:
            self.stream.skip()
            return start.name
        raise UnsupportedTypeError(f"unsupported type: {shape.describe()}")

    def read_text(self) -> str:
        """Collect direct character data up to the end element; children are skipped."""
        parts = []
        while True:
            tok = self.next_token()
            if isinstance(tok, CharData):
                parts.append(tok.text)
            elif isinstance(tok, StartElement):
                self.stream.skip()
            elif isinstance(tok, EndElement):
                return ''.join(parts)

    def decode_record(self, record: Any, start: StartElement) -> None:
        schema = self.schema_for(type(record))

        if schema.name_field is not None:
            setattr(record, schema.name_field.name, start.name)
        self.decode_attributes(record, schema, start)

        if schema.inner_xml_field is not None:
            self.capture_inner(record, schema.inner_xml_field)
            return

        text_parts: List[str] = []
        comment_parts: List[str] = []

        while True:
            tok = self.next_token()

            if isinstance(tok, StartElement):
                group = path_members(schema, tok.name, self.namespaces)
                if group:
                    self.decode_group(record, group, tok)
                    continue

                fd = resolve_element(schema, tok.name, self.namespaces)
                if fd is None:
                    fd = schema.any_element
                if fd is not None:
                    setattr(record, fd.name,
                            self.dispatch(fd.shape, getattr(record, fd.name), tok))
                    continue

                logger.debug("Skipping unknown element %s in %s",
                             tok.name, type(record).__name__)
                self.stream.skip()

            elif isinstance(tok, CharData):
                if schema.text_field is not None:
                    text_parts.append(tok.text)

            elif isinstance(tok, Comment):
                if schema.comment_field is not None:
                    comment_parts.append(tok.text)

            elif isinstance(tok, EndElement):
                if schema.text_field is not None and text_parts:
                    fd = schema.text_field
                    setattr(record, fd.name, self.text_value(fd.shape, ''.join(text_parts)))
                if schema.comment_field is not None and comment_parts:
                    fd = schema.comment_field
                    setattr(record, fd.name,
                            self.string_value(fd.shape, '\n'.join(comment_parts).strip()))
                return

    def decode_attributes(self, record: Any, schema: RecordSchema, start: StartElement) -> None:
        assigned, unmatched = match_attributes(schema, start.attrs, self.namespaces)
        for fd, attr in assigned:
            try:
                setattr(record, fd.name, self.attr_value(fd.shape, attr))
            except DecodeError as e:
                raise e.add_context(f"@{attr.name}")
        if schema.any_attribute is not None and unmatched:
            setattr(record, schema.any_attribute.name, list(unmatched))

    def attr_value(self, shape: Shape, attr: Attr) -> Any:
        if shape.attr_unmarshaler:
            return shape.type.from_xml_attr(attr)
        if shape.text_unmarshaler:
            return shape.type.from_text(attr.value.strip())
        if shape.kind is ShapeKind.POINTER:
            return self.attr_value(shape.inner, attr)
        if shape.kind is ShapeKind.PRIMITIVE:
            return coerce(attr.value, shape.primitive, shape.int_kind,
                          self.options.strict_integers)
        raise UnsupportedTypeError(f"unsupported attribute type: {shape.describe()}")

    def text_value(self, shape: Shape, text: str) -> Any:
        """Value for a chardata/cdata field."""
        shape = _unwrap(shape)
        if shape.text_unmarshaler:
            return shape.type.from_text(text.strip())
        return coerce(text, shape.primitive, shape.int_kind, self.options.strict_integers)

    @staticmethod
    def string_value(shape: Shape, text: str) -> Union[str, bytes]:
        if _unwrap(shape).primitive is PrimitiveKind.BYTES:
            return text.encode('utf-8')
        return text

    def capture_inner(self, record: Any, fd: FieldDescriptor) -> None:
        """Store the raw inner XML of the current element and end the frame."""
        content = serialize_tokens(self.stream.capture())
        setattr(record, fd.name, self.string_value(fd.shape, content))

    def decode_group(self, record: Any, group: List[FieldDescriptor], start: StartElement) -> None:
        members = [
            PathMember(fd.tag.path[1:], fd, _unwrap(fd.shape).kind is ShapeKind.SEQUENCE)
            for fd in group
        ]

        def assign(fd: FieldDescriptor, tok: StartElement) -> None:
            setattr(record, fd.name, self.dispatch(fd.shape, getattr(record, fd.name), tok))

        try:
            decode_path_group(self.stream, members, self.namespaces, assign)
        except DecodeError as e:
            raise e.add_context(str(start.name))


def _as_stream(tokens: Any, options: DecoderOptions) -> TokenStream:
    if isinstance(tokens, TokenStream):
        return tokens
    if isinstance(tokens, (bytes, bytearray, memoryview, str)) or hasattr(tokens, 'read'):
        return XMLTokenizer(tokens, chunk_size=options.chunk_size)
    return TokenStream(tokens)


class XMLDecoder:
    """
    Decoder bound to a namespace context and options.

    Holds no per-call state, so one instance can serve any number of
    decode calls, including concurrent ones on separate streams.
    """

    def __init__(self, namespaces: Optional[Mapping[str, str]] = None,
                 options: Optional[DecoderOptions] = None):
        if isinstance(namespaces, NamespaceContext):
            self.namespaces = namespaces
        else:
            self.namespaces = NamespaceContext(namespaces)
        self.options = options or DecoderOptions()

    def _run(self, tokens: Any) -> _DecodeRun:
        return _DecodeRun(_as_stream(tokens, self.options), self.namespaces, self.options)

    def decode(self, target: Any, tokens: Any) -> None:
        """
        Decode the first element of a token source into a record instance.

        Args:
            target: Mutable dataclass instance, filled in place
            tokens: TokenStream, iterable of tokens, bytes/str, or a binary reader

        Raises:
            DecodeError (or a subclass) on any fatal condition
        """
        if target is None:
            raise InvalidTargetError("decode target must be a record instance, got None")
        if isinstance(target, type):
            raise InvalidTargetError(
                f"decode target must be a record instance, got class {target.__name__}")
        if not is_dataclass(target):
            raise InvalidTargetError(
                f"decode target must be a dataclass instance, got {type(target).__name__}")
        run = self._run(tokens)
        run.schema_for(type(target))
        value = run.root(classify(type(target)), target)
        if value is None or value is target:
            return
        # from_xml / from_text built a new instance; copy it into the caller's record
        if not isinstance(value, type(target)):
            raise InvalidTargetError(
                f"custom decoder of {type(target).__name__} returned {type(value).__name__}")
        for f in fields(target):
            setattr(target, f.name, getattr(value, f.name))

    def decode_bytes(self, data: Any, target_type: Any) -> Any:
        """Decode bytes (or str, or a reader) into a new value of target_type."""
        run = self._run(XMLTokenizer(data, chunk_size=self.options.chunk_size))
        return self._decode_new(run, target_type)

    def _decode_new(self, run: _DecodeRun, target_type: Any) -> Any:
        shape = classify(target_type)
        if shape.kind is ShapeKind.RECORD:
            run.schema_for(target_type)
        return run.root(shape, zero_value(shape))

    def decode_document(self, data: Any, target_type: Any) -> DecodeResult:
        """Like decode_bytes, but reports failures in the result instead of raising."""
        result = DecodeResult(value=None)
        run = self._run(XMLTokenizer(data, chunk_size=self.options.chunk_size))
        try:
            result.value = self._decode_new(run, target_type)
        except DecodeError as e:
            name = getattr(target_type, '__name__', target_type)
            result.errors.append(f"Error decoding {name}: {e}")
        result.warnings.extend(run.warnings)
        return result


def decode(target: Any, tokens: Any, namespaces: Optional[Mapping[str, str]] = None,
           options: Optional[DecoderOptions] = None) -> None:
    """Convenience function: decode tokens into a record instance."""
    XMLDecoder(namespaces, options).decode(target, tokens)


def decode_bytes(data: Any, target_type: Any, namespaces: Optional[Mapping[str, str]] = None,
                 options: Optional[DecoderOptions] = None) -> Any:
    """Convenience function: decode a document into a new value of target_type."""
    return XMLDecoder(namespaces, options).decode_bytes(data, target_type)
