"""Resolve field type descriptors into Python annotation strings."""

from __future__ import annotations

from typing import Optional, Union

from .model_types import (
    ArrayType,
    LookupResolved,
    LookupResult,
    LookupUnavailable,
    MapType,
    ReferenceType,
    Schema,
    TypeDescriptor,
    TypeResolution,
)
from .naming import capitalize, sanitize_identifier
from .registry import SchemaRegistry
from .type_descriptors import parse_type_descriptor

_STRING_ANNOTATION = "str"
_ANY_ANNOTATION = "Any"

# Leaves serialized as strings (or untyped) never become Optional.
_UNWRAPPED_LEAVES: dict[str, str] = {
    "json": _ANY_ANNOTATION,
    "password": _STRING_ANNOTATION,
    "date": _STRING_ANNOTATION,
    "string": _STRING_ANNOTATION,
    "enum": _STRING_ANNOTATION,
}

_NULLABLE_LEAVES: dict[str, str] = {
    "boolean": "bool",
    "float": "float",
    "int": "int",
}


def resolve_type(
    nullable: bool,
    type_descriptor: Union[str, TypeDescriptor],
    owning_schema: Optional[Schema] = None,
    registry: Optional[SchemaRegistry] = None,
) -> str:
    """Return the Python annotation for a declared field type."""
    return resolve_type_details(nullable, type_descriptor, owning_schema, registry).annotation


def resolve_type_details(
    nullable: bool,
    type_descriptor: Union[str, TypeDescriptor],
    owning_schema: Optional[Schema] = None,
    registry: Optional[SchemaRegistry] = None,
) -> TypeResolution:
    """Resolve a declared field type and report which schema lookups it used.

    Args:
        nullable (bool): Whether the field may be absent/null.
        type_descriptor (Union[str, TypeDescriptor]): Raw or parsed type.
        owning_schema (Optional[Schema]): Schema declaring the field; its version
            scopes named-type lookups.
        registry (Optional[SchemaRegistry]): Registry used for named-type lookups.

    Returns:
        TypeResolution: Annotation plus resolved schemas and fallback names.
    """
    descriptor = (
        parse_type_descriptor(type_descriptor)
        if isinstance(type_descriptor, str)
        else type_descriptor
    )
    referenced: list[Schema] = []
    fallbacks: list[str] = []
    annotation = _resolve(
        nullable,
        descriptor,
        owning_schema=owning_schema,
        registry=registry,
        referenced=referenced,
        fallbacks=fallbacks,
    )
    return TypeResolution(
        annotation=annotation,
        referenced_schemas=tuple(referenced),
        fallback_names=tuple(fallbacks),
    )


def _resolve(
    nullable: bool,
    descriptor: TypeDescriptor,
    *,
    owning_schema: Optional[Schema],
    registry: Optional[SchemaRegistry],
    referenced: list[Schema],
    fallbacks: list[str],
) -> str:
    if isinstance(descriptor, ReferenceType):
        return _STRING_ANNOTATION
    if isinstance(descriptor, MapType):
        value = _resolve(
            False,
            descriptor.value,
            owning_schema=owning_schema,
            registry=registry,
            referenced=referenced,
            fallbacks=fallbacks,
        )
        return f"dict[str, {value}]"
    if isinstance(descriptor, ArrayType):
        item = _resolve(
            False,
            descriptor.item,
            owning_schema=owning_schema,
            registry=registry,
            referenced=referenced,
            fallbacks=fallbacks,
        )
        return f"list[{item}]"

    name = descriptor.name
    if name in _UNWRAPPED_LEAVES:
        return _UNWRAPPED_LEAVES[name]

    base = _NULLABLE_LEAVES.get(name)
    if base is None:
        lookup = lookup_named_type(name, owning_schema=owning_schema, registry=registry)
        if isinstance(lookup, LookupResolved):
            base = lookup.schema.code_name
            referenced.append(lookup.schema)
        else:
            base = fallback_type_name(name)
            fallbacks.append(name)

    if nullable:
        return f"Optional[{base}]"
    return base


def lookup_named_type(
    name: str,
    *,
    owning_schema: Optional[Schema],
    registry: Optional[SchemaRegistry],
) -> LookupResult:
    """Look a named field type up in the owning schema's version."""
    if owning_schema is None or registry is None:
        return LookupUnavailable()
    return registry.lookup(owning_schema.version, name)


def fallback_type_name(name: str) -> str:
    """Return the annotation used for a type name no schema resolves.

    The name is capitalized and then made a valid identifier, so ``x-y``
    becomes ``X_y`` and ``2fa`` becomes ``x_2fa``.
    """
    return sanitize_identifier(capitalize(name), lowercase=False)
