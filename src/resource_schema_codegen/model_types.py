"""Internal datatypes for schemas, type descriptors and generation results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TypeAlias, Union

JSONPrimitive: TypeAlias = Union[str, int, float, bool, None]
JSONValue: TypeAlias = Union[JSONPrimitive, list["JSONValue"], Mapping[str, "JSONValue"]]


@dataclass(frozen=True)
class Field:
    """A named, typed attribute of a schema."""

    name: str
    code_name: str
    type: str
    nullable: bool = False
    required: bool = False
    default: Optional[JSONValue] = None


@dataclass(frozen=True)
class Action:
    """A named operation declared on a schema."""

    name: str
    output: str
    input: Optional[str] = None


@dataclass(frozen=True)
class Schema:
    """Description of one resource kind's shape and capabilities."""

    id: str
    version: str
    code_name: str
    resource_fields: tuple[Field, ...] = ()
    collection_methods: tuple[str, ...] = ()
    resource_methods: tuple[str, ...] = ()
    resource_actions: tuple[Action, ...] = ()
    internal_schema: Optional[Schema] = None

    def supports_collection_method(self, method: str) -> bool:
        """Return whether the collection advertises ``method`` (case-insensitive)."""
        return _has_method(self.collection_methods, method)

    def supports_resource_method(self, method: str) -> bool:
        """Return whether single resources advertise ``method`` (case-insensitive)."""
        return _has_method(self.resource_methods, method)


def _has_method(methods: tuple[str, ...], method: str) -> bool:
    wanted = method.upper()
    return any(candidate.upper() == wanted for candidate in methods)


@dataclass(frozen=True)
class ScalarType:
    """Leaf descriptor: a builtin scalar or the name of another schema."""

    name: str


@dataclass(frozen=True)
class MapType:
    """``map[V]`` descriptor."""

    value: TypeDescriptor


@dataclass(frozen=True)
class ArrayType:
    """``array[V]`` descriptor."""

    item: TypeDescriptor


@dataclass(frozen=True)
class ReferenceType:
    """``reference[X]`` descriptor; the target is kept verbatim."""

    target: str


TypeDescriptor: TypeAlias = Union[ScalarType, MapType, ArrayType, ReferenceType]


@dataclass(frozen=True)
class LookupResolved:
    """Registry lookup hit."""

    schema: Schema


@dataclass(frozen=True)
class LookupNotFound:
    """Registry lookup miss for ``name`` in ``version``."""

    version: str
    name: str


@dataclass(frozen=True)
class LookupUnavailable:
    """No owning schema or registry was available to look the name up."""


LookupResult: TypeAlias = Union[LookupResolved, LookupNotFound, LookupUnavailable]


@dataclass(frozen=True)
class TypeResolution:
    """A resolved annotation plus the lookups that produced it."""

    annotation: str
    referenced_schemas: tuple[Schema, ...] = ()
    fallback_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class SchemaProjection:
    """Template context derived from one schema."""

    field_types: dict[str, str]
    resource_actions: dict[str, Action]
    action_outputs: dict[str, Schema] = field(default_factory=dict)
    action_inputs: dict[str, Schema] = field(default_factory=dict)
    referenced_schemas: tuple[Schema, ...] = ()
    fallback_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class GenerationResult:
    """Generation output metadata."""

    types_dir: str
    controllers_dir: str
    generated_ids: tuple[str, ...]
    controller_ids: tuple[str, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class EmittedArtifact:
    """A written module and the projection it was rendered from."""

    path: Path
    projection: SchemaProjection
