"""
decode_errors.py - Exception taxonomy for the namespace-aware XML decoder

All errors derive from DecodeError (itself a ValueError, matching the rest
of the tools which raise ValueError for malformed input). Each error keeps
the chain of element identities leading to the failure so callers can tell
which element or attribute did not fit the record type.
"""

from typing import List, Optional


class DecodeError(ValueError):
    """Base class for every fatal decode failure."""

    def __init__(self, message: str, path: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.path: List[str] = list(path or [])

    def add_context(self, segment: str) -> 'DecodeError':
        """Prepend an enclosing element identity while unwinding."""
        self.path.insert(0, segment)
        return self

    def __str__(self) -> str:
        if not self.path:
            return self.message
        return f"{self.message} (at /{'/'.join(self.path)})"


class InvalidTargetError(DecodeError):
    """Target is not a record instance that can be decoded into."""


class SchemaError(DecodeError):
    """Record type cannot be turned into a descriptor table."""


class StreamError(DecodeError):
    """Token source failed (syntax error or I/O failure)."""


class PrematureEndError(StreamError):
    """Token source ended while an element was still open."""


class CoercionError(DecodeError):
    """Text could not be converted to the target primitive."""


class UnsupportedTypeError(DecodeError):
    """Target kind has no decoding rule."""
