"""
field_resolver.py - Match encountered elements and attributes to fields

Pure functions over a RecordSchema and a resolved identity. Declaration
order is the tie-break everywhere: the first matching field wins.
"""

from typing import List, Optional, Sequence, Tuple

from namespace_context import Attr, Name, NamespaceContext
from tag_descriptor import FieldDescriptor, RecordSchema


def resolve_element(schema: RecordSchema, name: Name,
                    namespaces: NamespaceContext) -> Optional[FieldDescriptor]:
    """First single-name element field matching the identity, if any."""
    for fd in schema.elements:
        if namespaces.matches_element(fd.tag.qname, name):
            return fd
    return None


def path_members(schema: RecordSchema, name: Name,
                 namespaces: NamespaceContext) -> List[FieldDescriptor]:
    """All path fields whose first segment matches the identity."""
    return [fd for fd in schema.paths
            if namespaces.matches_element(fd.tag.path[0], name)]


def resolve_attribute(schema: RecordSchema, name: Name,
                      namespaces: NamespaceContext) -> Optional[FieldDescriptor]:
    """First attribute field matching the identity, if any."""
    for fd in schema.attributes:
        if namespaces.matches_attribute(fd.tag.qname, name):
            return fd
    return None


def match_attributes(schema: RecordSchema, attrs: Sequence[Attr],
                     namespaces: NamespaceContext
                     ) -> Tuple[List[Tuple[FieldDescriptor, Attr]], List[Attr]]:
    """
    Pair attribute fields with attributes.

    Each field takes the first attribute (in document order) it matches.
    Returns the (field, attr) pairs and the attributes no field claimed,
    which feed the catch-all attribute field.
    """
    assigned: List[Tuple[FieldDescriptor, Attr]] = []
    claimed = set()
    for fd in schema.attributes:
        for idx, attr in enumerate(attrs):
            if namespaces.matches_attribute(fd.tag.qname, attr.name):
                assigned.append((fd, attr))
                claimed.add(idx)
                break
    unmatched = [attr for idx, attr in enumerate(attrs) if idx not in claimed]
    return assigned, unmatched
