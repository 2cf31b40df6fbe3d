"""
namespace_context.py - Namespace context and qualified-name matching

A NamespaceContext maps the prefixes used in record tag annotations to
namespace URIs. Documents are matched by URI, never by the literal prefix
written in the document, so two documents that bind the same URI to
different prefixes decode identically.

Usage:
    from namespace_context import NamespaceContext, QualifiedName, Name

    ns = NamespaceContext({'': 'http://example.com/user',
                           'addr': 'http://example.com/address'})
    qname = QualifiedName.parse('addr:city')
    ns.matches_element(qname, Name('city', 'http://example.com/address'))  # True
"""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

import yaml


DEFAULT_PREFIX = ''


@dataclass(frozen=True)
class Name:
    """Resolved identity of an element or attribute."""
    local: str
    space: str = ''

    def __str__(self) -> str:
        if self.space:
            return f"{{{self.space}}}{self.local}"
        return self.local

    @classmethod
    def from_clark(cls, clark: str) -> 'Name':
        """Parse Clark notation: {uri}local."""
        if clark.startswith('{'):
            end = clark.find('}')
            if end != -1:
                return cls(local=clark[end + 1:], space=clark[1:end])
        return cls(local=clark)


@dataclass(frozen=True)
class Attr:
    """An attribute as delivered by the tokenizer."""
    name: Name
    value: str


@dataclass(frozen=True)
class QualifiedName:
    """
    A name as written in a tag annotation.

    prefix is None for bare names. An explicit empty prefix (":local")
    refers to the context's default namespace entry.
    """
    local: str
    prefix: Optional[str] = None

    @classmethod
    def parse(cls, segment: str) -> 'QualifiedName':
        if ':' in segment:
            prefix, local = segment.split(':', 1)
            return cls(local=local, prefix=prefix)
        return cls(local=segment)

    def __str__(self) -> str:
        if self.prefix is None:
            return self.local
        return f"{self.prefix}:{self.local}"


class NamespaceContext(Mapping):
    """Immutable prefix -> URI mapping supplied for one decode call."""

    def __init__(self, namespaces: Optional[Mapping] = None):
        mapping: Dict[str, str] = {}
        for prefix, uri in (namespaces or {}).items():
            if not isinstance(prefix, str) or not isinstance(uri, str):
                raise ValueError(
                    f"Namespace entries must be strings, got {prefix!r}: {uri!r}")
            mapping[prefix] = uri
        self._namespaces = mapping

    def __getitem__(self, prefix: str) -> str:
        return self._namespaces[prefix]

    def __iter__(self) -> Iterator[str]:
        return iter(self._namespaces)

    def __len__(self) -> int:
        return len(self._namespaces)

    def __repr__(self) -> str:
        return f"NamespaceContext({self._namespaces!r})"

    def __hash__(self) -> int:
        return hash(frozenset(self._namespaces.items()))

    @property
    def default(self) -> Optional[str]:
        """URI of the default namespace, or None when not declared."""
        return self._namespaces.get(DEFAULT_PREFIX)

    def matches_element(self, qname: QualifiedName, name: Name) -> bool:
        """
        Match an annotation name against an element identity.

        Prefixed names match only when the prefix is declared and maps to
        the element's URI. Bare names use the default namespace if one is
        declared, otherwise they match only elements with no namespace.
        """
        if qname.local != name.local:
            return False
        if qname.prefix is not None:
            expected = self._namespaces.get(qname.prefix)
            return expected is not None and expected == name.space
        if DEFAULT_PREFIX in self._namespaces:
            return name.space == self._namespaces[DEFAULT_PREFIX]
        return name.space == ''

    def matches_attribute(self, qname: QualifiedName, name: Name) -> bool:
        """Like matches_element, but bare names ignore the namespace."""
        if qname.local != name.local:
            return False
        if qname.prefix is not None:
            expected = self._namespaces.get(qname.prefix)
            return expected is not None and expected == name.space
        return True

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'NamespaceContext':
        """
        Load a namespace mapping from a YAML file.

        The file is either a plain mapping or has a top-level 'namespaces'
        key. The key 'default' (or a null key) stands for the default
        namespace, since an empty YAML key is awkward to write.
        """
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Namespace file {path} must contain a mapping")
        if 'namespaces' in data:
            data = data['namespaces'] or {}
        return cls(normalize_prefixes(data))


def normalize_prefixes(data: Mapping) -> Dict[str, str]:
    """Map YAML spellings of the default prefix ('default', null) to ''."""
    result = {}
    for prefix, uri in data.items():
        if prefix is None or prefix == 'default':
            prefix = DEFAULT_PREFIX
        result[prefix] = uri
    return result
