"""
decoder_config.py - Decoder options and YAML configuration loading

A configuration file bundles the namespace context with decoder options:

    namespaces:
      default: http://example.com/user      # or "": ...
      ns1: http://example.com/schema/profile
    options:
      strict_integers: true
      strict_schema: false
      chunk_size: 65536

Usage:
    from decoder_config import load_config
    namespaces, options = load_config('decoder.yaml')
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from namespace_context import NamespaceContext, normalize_prefixes
from xml_tokens import DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class DecoderOptions:
    """Behaviour switches for one decoder."""
    # Reject integers that do not fit the field width instead of wrapping
    strict_integers: bool = True
    # Turn schema warnings (duplicate special fields, bad modifiers) into errors
    strict_schema: bool = False
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DecoderOptions':
        data = data or {}
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ValueError(f"Unknown decoder options: {', '.join(unknown)}")
        for key, value in data.items():
            expected = bool if known[key].type in (bool, 'bool') else int
            if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
                raise ValueError(f"Option '{key}' must be {expected.__name__}, got {value!r}")
        options = cls(**data)
        if options.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {options.chunk_size}")
        return options


def load_config(path: Union[str, Path]) -> Tuple[NamespaceContext, DecoderOptions]:
    """Load namespaces and options from a YAML configuration file."""
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    unknown = sorted(set(data) - {'namespaces', 'options'})
    if unknown:
        raise ValueError(f"Unknown config sections in {path}: {', '.join(unknown)}")

    namespaces = data.get('namespaces') or {}
    if not isinstance(namespaces, dict):
        raise ValueError(f"'namespaces' in {path} must be a mapping")

    return (NamespaceContext(normalize_prefixes(namespaces)),
            DecoderOptions.from_dict(data.get('options')))
