"""
tag_descriptor.py - Tag annotation parsing and record descriptor tables

Record types are dataclasses whose fields carry an XML tag annotation in
their metadata:

    @dataclass
    class User:
        xml_name: Name = xml_field('user')
        id: str = xml_field('id,attr')
        name: str = xml_field('name')
        bio: str = xml_field('ns1:profile>ns1:bio')
        text: str = xml_field(',chardata')

Annotation grammar:
    annotation   := name-or-path ("," modifier)*
    name-or-path := segment (">" segment)*
    segment      := [prefix ":"] local-name
    modifier     := attr | chardata | cdata | innerxml | comment | any | omitempty

A descriptor table (RecordSchema) is built once per record type and cached.
"""

import dataclasses
import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, get_type_hints

from decode_errors import SchemaError
from namespace_context import QualifiedName
from target_shapes import Shape, ShapeKind, classify
from value_coercion import PrimitiveKind

logger = logging.getLogger(__name__)

XML_TAG_KEY = 'xml'
SKIP_MARKER = '-'
PATH_SEPARATOR = '>'
XMLNS_MARKER = 'xmlns'

KNOWN_MODIFIERS = frozenset({
    'attr', 'chardata', 'cdata', 'innerxml', 'comment', 'any', 'omitempty',
})


class Role(Enum):
    ELEMENT = 'element'
    ATTRIBUTE = 'attribute'
    CHARDATA = 'chardata'
    CDATA = 'cdata'
    INNER_XML = 'innerxml'
    COMMENT = 'comment'
    ANY_ELEMENT = 'any'
    ANY_ATTRIBUTE = 'any,attr'
    XML_NAME = 'xmlname'
    SKIP = 'skip'


SPECIAL_ROLES = (Role.CHARDATA, Role.CDATA, Role.INNER_XML, Role.COMMENT,
                 Role.ANY_ELEMENT, Role.ANY_ATTRIBUTE)


@dataclass(frozen=True)
class TagDescriptor:
    """Parsed form of one field's tag annotation."""
    role: Role
    path: Tuple[QualifiedName, ...] = ()
    modifiers: FrozenSet[str] = frozenset()

    @property
    def is_path(self) -> bool:
        return len(self.path) > 1

    @property
    def qname(self) -> Optional[QualifiedName]:
        return self.path[0] if self.path else None


SKIP = TagDescriptor(Role.SKIP)


def xml_field(tag: str, **kwargs) -> Any:
    """
    dataclasses.field() carrying an XML tag annotation.

    Without default/default_factory the field is required; new_record()
    fills such fields with the zero value of their type.
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[XML_TAG_KEY] = tag
    return field(metadata=metadata, **kwargs)


def parse_tag(annotation: Optional[str], field_name: str = '') -> Tuple[TagDescriptor, List[str]]:
    """
    Parse a tag annotation.

    Returns the descriptor and a list of warnings. Blank annotations, the
    skip marker and xmlns declarations all parse to Skip.
    """
    warnings: List[str] = []
    if annotation is None or not annotation.strip() or annotation.strip() == SKIP_MARKER:
        return SKIP, warnings

    parts = annotation.split(',')
    name = parts[0].strip()
    modifiers = frozenset(m.strip() for m in parts[1:] if m.strip())

    unknown = sorted(modifiers - KNOWN_MODIFIERS)
    if unknown:
        warnings.append(f"Field '{field_name}': unknown tag modifiers {unknown} ignored")

    # xmlns fields only carry declarations for encoding
    if name.startswith(XMLNS_MARKER):
        return SKIP, warnings

    if 'any' in modifiers:
        role = Role.ANY_ATTRIBUTE if 'attr' in modifiers else Role.ANY_ELEMENT
    elif 'attr' in modifiers:
        role = Role.ATTRIBUTE
    elif 'chardata' in modifiers:
        role = Role.CHARDATA
    elif 'cdata' in modifiers:
        role = Role.CDATA
    elif 'innerxml' in modifiers:
        role = Role.INNER_XML
    elif 'comment' in modifiers:
        role = Role.COMMENT
    else:
        role = Role.ELEMENT

    exclusive = modifiers & {'chardata', 'cdata', 'innerxml', 'comment', 'attr'}
    if role is not Role.ANY_ATTRIBUTE and len(exclusive) > 1:
        warnings.append(
            f"Field '{field_name}': conflicting modifiers {sorted(exclusive)}, using {role.value}")

    if role in SPECIAL_ROLES:
        return TagDescriptor(role, modifiers=modifiers), warnings

    if not name:
        name = field_name

    if PATH_SEPARATOR in name and role is Role.ATTRIBUTE:
        warnings.append(f"Field '{field_name}': path syntax is not valid for attributes")
        return SKIP, warnings

    segments = [s.strip() for s in name.split(PATH_SEPARATOR)]
    if not all(segments):
        warnings.append(f"Field '{field_name}': empty path segment in {name!r}")
        return SKIP, warnings

    path = tuple(QualifiedName.parse(s) for s in segments)
    return TagDescriptor(role, path, modifiers), warnings


@dataclass
class FieldDescriptor:
    """One record field: attribute name, parsed tag and target shape."""
    name: str
    tag: TagDescriptor
    shape: Shape
    index: int

    @property
    def role(self) -> Role:
        return self.tag.role


@dataclass
class RecordSchema:
    """Descriptor table for a record type, in declaration order."""
    record_type: type
    fields: List[FieldDescriptor] = field(default_factory=list)
    elements: List[FieldDescriptor] = field(default_factory=list)
    paths: List[FieldDescriptor] = field(default_factory=list)
    attributes: List[FieldDescriptor] = field(default_factory=list)
    text_field: Optional[FieldDescriptor] = None
    comment_field: Optional[FieldDescriptor] = None
    inner_xml_field: Optional[FieldDescriptor] = None
    any_element: Optional[FieldDescriptor] = None
    any_attribute: Optional[FieldDescriptor] = None
    name_field: Optional[FieldDescriptor] = None
    warnings: List[str] = field(default_factory=list)


def _unwrap(shape: Shape) -> Shape:
    while shape.kind is ShapeKind.POINTER:
        shape = shape.inner
    return shape


def _is_text_target(shape: Shape, allowed: Tuple[PrimitiveKind, ...]) -> bool:
    shape = _unwrap(shape)
    return shape.kind is ShapeKind.PRIMITIVE and shape.primitive in allowed


def _check_special(fd: FieldDescriptor, cls: type) -> None:
    role = fd.role
    if role is Role.ANY_ATTRIBUTE:
        shape = _unwrap(fd.shape)
        if shape.kind is not ShapeKind.SEQUENCE or shape.inner.kind is not ShapeKind.ATTR:
            raise SchemaError(
                f"{cls.__name__}.{fd.name}: ',any,attr' field must be List[Attr], "
                f"got {fd.shape.describe()}")
    elif role in (Role.INNER_XML, Role.COMMENT):
        if not _is_text_target(fd.shape, (PrimitiveKind.STRING, PrimitiveKind.BYTES)):
            raise SchemaError(
                f"{cls.__name__}.{fd.name}: ',{role.value}' field must be str or bytes, "
                f"got {fd.shape.describe()}")
    elif role in (Role.CHARDATA, Role.CDATA):
        inner = _unwrap(fd.shape)
        if inner.kind is not ShapeKind.PRIMITIVE and not inner.text_unmarshaler:
            raise SchemaError(
                f"{cls.__name__}.{fd.name}: ',{role.value}' field must be a primitive, "
                f"got {fd.shape.describe()}")


def _claim(schema: RecordSchema, slot: str, fd: FieldDescriptor) -> None:
    """Assign a single-instance special slot; the first declared field wins."""
    current = getattr(schema, slot)
    if current is None:
        setattr(schema, slot, fd)
        return
    message = (f"{schema.record_type.__name__}: field '{fd.name}' ({fd.role.value}) ignored, "
               f"'{current.name}' ({current.role.value}) was declared first")
    schema.warnings.append(message)


@functools.lru_cache(maxsize=None)
def record_schema(cls: type) -> RecordSchema:
    """Build (once) the descriptor table for a record type."""
    if not dataclasses.is_dataclass(cls) or not isinstance(cls, type):
        raise SchemaError(f"{cls!r} is not a dataclass record type")
    params = getattr(cls, '__dataclass_params__', None)
    if params is not None and params.frozen:
        raise SchemaError(f"{cls.__name__} is frozen; records must be mutable")

    try:
        hints = get_type_hints(cls, include_extras=True)
    except NameError as e:
        raise SchemaError(f"{cls.__name__}: cannot resolve field types: {e}") from e

    schema = RecordSchema(record_type=cls)
    for index, f in enumerate(dataclasses.fields(cls)):
        annotation = f.metadata.get(XML_TAG_KEY)
        shape = classify(hints[f.name])
        if _unwrap(shape).kind is ShapeKind.NAME and annotation != SKIP_MARKER:
            tag = TagDescriptor(Role.XML_NAME)
        else:
            tag, tag_warnings = parse_tag(annotation, f.name)
            schema.warnings.extend(f"{cls.__name__}: {w}" for w in tag_warnings)

        fd = FieldDescriptor(name=f.name, tag=tag, shape=shape, index=index)
        schema.fields.append(fd)
        role = tag.role

        if role is Role.SKIP:
            continue
        if role in SPECIAL_ROLES:
            _check_special(fd, cls)

        if role is Role.ELEMENT:
            (schema.paths if tag.is_path else schema.elements).append(fd)
        elif role is Role.ATTRIBUTE:
            schema.attributes.append(fd)
        elif role in (Role.CHARDATA, Role.CDATA):
            _claim(schema, 'text_field', fd)
        elif role is Role.COMMENT:
            _claim(schema, 'comment_field', fd)
        elif role is Role.INNER_XML:
            _claim(schema, 'inner_xml_field', fd)
        elif role is Role.ANY_ELEMENT:
            _claim(schema, 'any_element', fd)
        elif role is Role.ANY_ATTRIBUTE:
            _claim(schema, 'any_attribute', fd)
        elif role is Role.XML_NAME:
            _claim(schema, 'name_field', fd)

    for message in schema.warnings:
        logger.warning(message)
    return schema


def describe_schema(cls: type) -> Dict[str, Any]:
    """Summary of a record's descriptor table, for diagnostics."""
    schema = record_schema(cls)
    return {
        'record': cls.__name__,
        'fields': [
            {
                'name': fd.name,
                'role': fd.role.value,
                'path': [str(q) for q in fd.tag.path],
                'shape': fd.shape.describe(),
            }
            for fd in schema.fields
        ],
        'warnings': list(schema.warnings),
    }
