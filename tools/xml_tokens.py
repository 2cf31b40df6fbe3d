"""
xml_tokens.py - Token stream over XML input

Turns raw XML into a flat stream of StartElement / EndElement / CharData /
Comment / ProcInst tokens with names already resolved to (local, URI)
pairs. The heavy lifting is done by lxml's parser-target interface, fed
incrementally so large documents are never held in memory as a tree.

Usage:
    from xml_tokens import XMLTokenizer, StartElement

    tokens = XMLTokenizer(b'<a xmlns="urn:x"><b>1</b></a>')
    tok = tokens.next_token()       # StartElement(Name('a', 'urn:x'), ...)
    tokens.skip()                   # consume through </a>

Any iterable of tokens can be wrapped in TokenStream, which is handy for
tests and for custom decoders that synthesize tokens.
"""

import io
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from lxml import etree

from decode_errors import PrematureEndError, StreamError
from namespace_context import Attr, Name

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
CAPTURE_TAG = 'capture'

# Input that may legitimately hold no element: BOM, whitespace, XML
# declaration, processing instructions and comments
_PROLOG_ONLY_RE = re.compile(rb'\A(?:\xef\xbb\xbf)?(?:[ \t\r\n]+|<\?.*?\?>|<!--.*?-->)*\Z', re.S)


@dataclass(frozen=True)
class StartElement:
    name: Name
    attrs: Tuple[Attr, ...] = ()
    nsmap: Dict[str, str] = field(default_factory=dict, compare=False)
    declared: Dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class EndElement:
    name: Name


@dataclass(frozen=True)
class CharData:
    text: str


@dataclass(frozen=True)
class Comment:
    text: str


@dataclass(frozen=True)
class ProcInst:
    target: str
    text: str = ''


Token = Union[StartElement, EndElement, CharData, Comment, ProcInst]


class TokenStream:
    """Pull-style access to a sequence of tokens."""

    def __init__(self, tokens: Iterable[Token] = ()):
        self._iter = iter(tokens)

    def next_token(self) -> Optional[Token]:
        """Next token, or None at a clean end of stream."""
        return next(self._iter, None)

    def skip(self) -> None:
        """Consume tokens through the end of the element just started."""
        depth = 0
        while True:
            tok = self.next_token()
            if tok is None:
                raise PrematureEndError("unexpected end of stream while skipping element")
            if isinstance(tok, StartElement):
                depth += 1
            elif isinstance(tok, EndElement):
                if depth == 0:
                    return
                depth -= 1

    def capture(self) -> List[Token]:
        """Consume and return tokens through the end of the current element."""
        captured: List[Token] = []
        depth = 0
        while True:
            tok = self.next_token()
            if tok is None:
                raise PrematureEndError("unexpected end of stream while capturing element")
            if isinstance(tok, StartElement):
                depth += 1
            elif isinstance(tok, EndElement):
                if depth == 0:
                    return captured
                depth -= 1
            captured.append(tok)


class _TokenCollector:
    """lxml parser target recording parse events as tokens."""

    def __init__(self):
        self.tokens: Deque[Token] = deque()
        self.depth = 0
        self.started = False
        self._scopes: List[Dict[str, str]] = [{}]

    def start(self, tag, attrib, nsmap=None):
        declared = {(prefix or ''): uri for prefix, uri in (nsmap or {}).items()}
        scope = dict(self._scopes[-1])
        scope.update(declared)
        self._scopes.append(scope)
        attrs = tuple(Attr(Name.from_clark(k), v) for k, v in attrib.items())
        self.tokens.append(StartElement(Name.from_clark(tag), attrs, scope, declared))
        self.depth += 1
        self.started = True

    def end(self, tag):
        self._scopes.pop()
        self.depth -= 1
        self.tokens.append(EndElement(Name.from_clark(tag)))

    def data(self, text):
        if self.tokens and isinstance(self.tokens[-1], CharData):
            self.tokens[-1] = CharData(self.tokens[-1].text + text)
        else:
            self.tokens.append(CharData(text))

    def comment(self, text):
        self.tokens.append(Comment(text))

    def pi(self, target, data=None):
        self.tokens.append(ProcInst(target, data or ''))

    def close(self):
        return None


class XMLTokenizer(TokenStream):
    """
    Incremental tokenizer over bytes, str or a binary file-like object.

    Entity resolution and network access are disabled on the parser.
    """

    def __init__(self, source: Any, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__()
        if isinstance(source, str):
            source = source.encode('utf-8')
        if isinstance(source, (bytes, bytearray, memoryview)):
            self._reader = io.BytesIO(bytes(source))
        elif hasattr(source, 'read'):
            self._reader = source
        else:
            raise TypeError(f"Cannot tokenize {type(source).__name__}; expected bytes, str or a reader")
        self._chunk_size = chunk_size
        self._collector = _TokenCollector()
        self._parser = etree.XMLParser(
            target=self._collector,
            resolve_entities=False,
            no_network=True,
            huge_tree=False,
        )
        self._finished = False
        self._prolog = b''

    def next_token(self) -> Optional[Token]:
        while not self._collector.tokens:
            if self._finished:
                return None
            self._read_chunk()
        return self._collector.tokens.popleft()

    def _read_chunk(self) -> None:
        try:
            chunk = self._reader.read(self._chunk_size)
        except OSError as e:
            raise StreamError(f"read failed: {e}") from e
        if not chunk:
            self._finish()
            return
        if isinstance(chunk, str):
            chunk = chunk.encode('utf-8')
        if not self._collector.started:
            self._prolog += chunk
        try:
            self._parser.feed(chunk)
        except etree.LxmlError as e:
            raise StreamError(f"malformed XML: {e}") from e

    def _finish(self) -> None:
        self._finished = True
        try:
            self._parser.close()
        except etree.LxmlError as e:
            if self._collector.depth > 0:
                raise PrematureEndError(f"document ended inside an open element: {e}") from e
            if not self._collector.started and _PROLOG_ONLY_RE.match(self._prolog):
                # Empty or prolog-only input: nothing to decode
                logger.debug("No root element in input (%s)", e)
                return
            raise StreamError(f"malformed XML: {e}") from e


def _lxml_nsmap(nsmap: Mapping[str, str]) -> Optional[Dict[Optional[str], str]]:
    if not nsmap:
        return None
    return {(prefix or None): uri for prefix, uri in nsmap.items()}


def _clark(name: Name) -> str:
    return str(name)


def _needed_declarations(tok: StartElement, emitted: Mapping[str, str]) -> Dict[str, str]:
    """Declarations tok needs beyond those already emitted around it."""
    out = dict(tok.declared)
    in_scope = dict(emitted)
    in_scope.update(out)
    wanted = [(tok.name.space, True)]
    wanted += [(a.name.space, False) for a in tok.attrs]
    for uri, default_ok in wanted:
        if not uri:
            continue
        bound = [p for p, u in in_scope.items() if u == uri and (p or default_ok)]
        if bound:
            continue
        for prefix, u in tok.nsmap.items():
            if u == uri and (prefix or default_ok):
                out[prefix] = uri
                in_scope[prefix] = uri
                break
    return out


def serialize_tokens(tokens: Iterable[Token]) -> str:
    """
    Re-serialize captured inner content as XML text.

    Each element declares only the prefixes its own name and attributes
    use that are not already declared by an enclosing captured element,
    plus whatever it declared itself in the source.
    """
    builder = etree.TreeBuilder()
    builder.start(CAPTURE_TAG, {})
    scopes: List[Dict[str, str]] = [{}]
    for tok in tokens:
        if isinstance(tok, StartElement):
            nsmap = _needed_declarations(tok, scopes[-1])
            scope = dict(scopes[-1])
            scope.update(nsmap)
            scopes.append(scope)
            attrs = {_clark(a.name): a.value for a in tok.attrs}
            builder.start(_clark(tok.name), attrs, _lxml_nsmap(nsmap))
        elif isinstance(tok, EndElement):
            builder.end(_clark(tok.name))
            scopes.pop()
        elif isinstance(tok, CharData):
            builder.data(tok.text)
        elif isinstance(tok, Comment):
            builder.comment(tok.text)
        elif isinstance(tok, ProcInst):
            builder.pi(tok.target, tok.text)
    builder.end(CAPTURE_TAG)
    root = builder.close()

    text = etree.tostring(root, encoding='unicode')
    open_tag, close_tag = f'<{CAPTURE_TAG}>', f'</{CAPTURE_TAG}>'
    if not text.startswith(open_tag):
        return ''
    return text[len(open_tag):-len(close_tag)]
