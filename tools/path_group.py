"""
path_group.py - Decoding of multi-segment path fields

Fields tagged with a path such as 'details>identifier>id' are resolved by
walking the wrapper elements. Fields sharing leading segments are grouped
so each wrapper's children are scanned once for all of them:

    id:   details>identifier>id
    code: details>identifier>code

Both members descend <details> and <identifier> together; <id> and <code>
are then dispatched to their fields. Members whose path never appears are
left untouched.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Tuple

from decode_errors import DecodeError, PrematureEndError
from namespace_context import NamespaceContext, QualifiedName
from xml_tokens import EndElement, StartElement, TokenStream

logger = logging.getLogger(__name__)


@dataclass
class PathMember:
    """A field still looking for its leaf element."""
    path: Tuple[QualifiedName, ...]
    slot: Any
    # Sequence targets keep matching so repeated leaves accumulate
    accumulates: bool = False

    @property
    def terminal(self) -> bool:
        return len(self.path) == 1


Dispatch = Callable[[Any, StartElement], None]


def decode_path_group(stream: TokenStream, members: List[PathMember],
                      namespaces: NamespaceContext, dispatch: Dispatch) -> None:
    """
    Decode the children of an already-entered shared parent element.

    dispatch(slot, start) must consume the leaf element's subtree. Returns
    after the parent's end element.
    """
    resolved = [False] * len(members)

    while True:
        tok = stream.next_token()
        if tok is None:
            raise PrematureEndError("unexpected end of stream inside path element")

        if isinstance(tok, EndElement):
            return
        if not isinstance(tok, StartElement):
            continue

        matching = [i for i, m in enumerate(members)
                    if not resolved[i] and namespaces.matches_element(m.path[0], tok.name)]
        if not matching:
            logger.debug("Skipping element %s: no path continues through it", tok.name)
            stream.skip()
            continue

        first = members[matching[0]]
        if first.terminal:
            dispatch(first.slot, tok)
            if not first.accumulates:
                resolved[matching[0]] = True
            continue

        descending = [i for i in matching if not members[i].terminal]
        sub_group = [PathMember(members[i].path[1:], members[i].slot, members[i].accumulates)
                     for i in descending]
        try:
            decode_path_group(stream, sub_group, namespaces, dispatch)
        except DecodeError as e:
            raise e.add_context(str(tok.name))
        for i in descending:
            if not members[i].accumulates:
                resolved[i] = True
