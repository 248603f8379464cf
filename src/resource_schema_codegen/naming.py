"""Naming helpers for generated files and Python identifiers."""

from __future__ import annotations

import keyword
import re

GENERATED_FILE_PREFIX = "zz_generated"
CLIENT_MODULE_NAME = f"{GENERATED_FILE_PREFIX}_client"
DEEPCOPY_MODULE_NAME = f"{GENERATED_FILE_PREFIX}_deepcopy"
MANIFEST_FILE_NAME = f"{GENERATED_FILE_PREFIX}_manifest.json"

_UNDERSCORE_RE = re.compile(r"([a-z])([A-Z])")
_IDENTIFIER_SANITIZE_RE = re.compile(r"[^0-9a-zA-Z_]+")
_MULTIPLE_UNDERSCORES_RE = re.compile(r"_+")
_CAMEL_BOUNDARY_RE = re.compile(r"([a-z0-9])([A-Z])|([A-Z]+)([A-Z][a-z])")


def add_underscore(text: str) -> str:
    """Insert ``_`` at every lowercase-to-uppercase transition."""
    return _UNDERSCORE_RE.sub(r"\1_\2", text)


def capitalize(text: str) -> str:
    """Upper-case the first character only."""
    if not text:
        return text
    return text[0].upper() + text[1:]


def type_module_name(schema_id: str) -> str:
    """Module name of the type artifact for ``schema_id``."""
    return f"{GENERATED_FILE_PREFIX}_{add_underscore(schema_id)}".lower()


def controller_module_name(schema_id: str) -> str:
    """Module name of the controller artifact for ``schema_id``."""
    return f"{GENERATED_FILE_PREFIX}_{add_underscore(schema_id)}_controller".lower()


def sanitize_identifier(raw: str, *, lowercase: bool = True) -> str:
    """Convert arbitrary text into a valid Python identifier."""
    text = raw.lower() if lowercase else raw
    text = _IDENTIFIER_SANITIZE_RE.sub("_", text)
    text = _MULTIPLE_UNDERSCORES_RE.sub("_", text).strip("_")
    if not text:
        text = "value"
    if text[0].isdigit():
        text = f"x_{text}"
    if keyword.iskeyword(text):
        text = f"{text}_"
    return text


def to_snake_case(raw: str) -> str:
    """Convert camelCase/PascalCase/dashed text to snake_case."""
    spaced = _CAMEL_BOUNDARY_RE.sub(
        lambda match: (
            f"{match.group(1)}_{match.group(2)}"
            if match.group(1) is not None
            else f"{match.group(3)}_{match.group(4)}"
        ),
        raw,
    )
    return sanitize_identifier(spaced)


def class_name(raw: str) -> str:
    """Convert a name to PascalCase class name."""
    clean = to_snake_case(raw)
    return "".join(part.capitalize() for part in clean.split("_") if part) or "Model"


def constant_name(raw: str) -> str:
    """Convert a name to UPPER_SNAKE_CASE."""
    return to_snake_case(raw).upper()


def package_segments(package: str) -> tuple[str, ...]:
    """Split a ``a/b/c`` or ``a.b.c`` package identifier into its segments."""
    segments = tuple(segment for segment in re.split(r"[/.\\]+", package) if segment)
    if not segments:
        raise ValueError(f"Invalid package identifier: {package!r}")
    for segment in segments:
        if not segment.isidentifier() or keyword.iskeyword(segment):
            raise ValueError(f"Invalid package identifier: {package!r}")
    return segments


def package_to_module_path(package: str) -> str:
    """Convert ``a/b/c`` or ``a.b.c`` into the dotted import path ``a.b.c``."""
    return ".".join(package_segments(package))
