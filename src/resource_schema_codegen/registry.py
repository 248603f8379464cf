"""In-memory schema registry keyed by version and schema id."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from .model_types import LookupNotFound, LookupResolved, LookupResult, Schema


class SchemaLoadError(RuntimeError):
    """Raised when a schema registry cannot be loaded or assembled."""


class SchemaRegistry:
    """Read-only collection of schemas, iterated in registration order."""

    def __init__(self, schemas: Iterable[Schema] = ()) -> None:
        self._ordered: list[Schema] = []
        self._by_key: dict[tuple[str, str], Schema] = {}
        for schema in schemas:
            key = (schema.version, schema.id)
            if key in self._by_key:
                raise SchemaLoadError(
                    f"Duplicate schema id {schema.id!r} in version {schema.version!r}"
                )
            self._by_key[key] = schema
            self._ordered.append(schema)

    def __len__(self) -> int:
        return len(self._ordered)

    def schemas(self) -> tuple[Schema, ...]:
        """Return every registered schema in registration order."""
        return tuple(self._ordered)

    def schema(self, version: str, name: str) -> Optional[Schema]:
        """Return the schema ``name`` in ``version`` or ``None``."""
        return self._by_key.get((version, name))

    def lookup(self, version: str, name: str) -> LookupResult:
        """Look ``name`` up in ``version`` and report the outcome explicitly."""
        schema = self.schema(version, name)
        if schema is None:
            return LookupNotFound(version=version, name=name)
        return LookupResolved(schema=schema)
