"""Parser for the bracketed field type grammar.

Grammar::

    descriptor := "reference[" text "]"
                | "map[" descriptor "]"
                | "array[" descriptor "]"
                | name
"""

from __future__ import annotations

from .model_types import ArrayType, MapType, ReferenceType, ScalarType, TypeDescriptor

_REFERENCE_PREFIX = "reference["
_MAP_PREFIX = "map["
_ARRAY_PREFIX = "array["


class TypeDescriptorError(ValueError):
    """Raised when a field type string is not well formed."""


def parse_type_descriptor(text: str) -> TypeDescriptor:
    """Parse a field type string into a descriptor tree.

    Args:
        text (str): Declared field type, e.g. ``map[array[int]]``.

    Returns:
        TypeDescriptor: Parsed descriptor.

    Raises:
        TypeDescriptorError: If brackets are unbalanced or a leaf is empty.
    """
    return _parse(text, original=text)


def _parse(text: str, *, original: str) -> TypeDescriptor:
    if text.startswith(_REFERENCE_PREFIX):
        return ReferenceType(target=_inner(text, _REFERENCE_PREFIX, original=original))
    if text.startswith(_MAP_PREFIX):
        inner = _inner(text, _MAP_PREFIX, original=original)
        return MapType(value=_parse(inner, original=original))
    if text.startswith(_ARRAY_PREFIX):
        inner = _inner(text, _ARRAY_PREFIX, original=original)
        return ArrayType(item=_parse(inner, original=original))

    if not text or any(char.isspace() or char in "[]" for char in text):
        raise TypeDescriptorError(f"Malformed type descriptor {original!r}: bad leaf {text!r}")
    return ScalarType(name=text)


def _inner(text: str, prefix: str, *, original: str) -> str:
    if not text.endswith("]"):
        raise TypeDescriptorError(f"Malformed type descriptor {original!r}: missing ']'")
    inner = text[len(prefix) : -1]
    if not inner:
        raise TypeDescriptorError(f"Malformed type descriptor {original!r}: empty {prefix}]")
    return inner
