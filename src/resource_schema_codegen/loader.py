"""Schema registry document loading and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field as PydanticField, ValidationError

from .model_types import Action, Field, Schema
from .naming import class_name, to_snake_case
from .registry import SchemaLoadError, SchemaRegistry


class _DocumentModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class FieldDocument(_DocumentModel):
    """One ``resourceFields`` entry."""

    type: str
    code_name: Optional[str] = PydanticField(default=None, alias="codeName")
    nullable: bool = False
    required: bool = False
    default: Any = None


class ActionDocument(_DocumentModel):
    """One ``resourceActions`` entry."""

    output: str
    input: Optional[str] = None


class InternalSchemaDocument(_DocumentModel):
    """Inline internal variant of a schema."""

    id: Optional[str] = None
    version: Optional[str] = None
    code_name: Optional[str] = PydanticField(default=None, alias="codeName")
    collection_methods: list[str] = PydanticField(default_factory=list, alias="collectionMethods")
    resource_methods: list[str] = PydanticField(default_factory=list, alias="resourceMethods")
    resource_fields: dict[str, FieldDocument] = PydanticField(
        default_factory=dict, alias="resourceFields"
    )
    resource_actions: dict[str, ActionDocument] = PydanticField(
        default_factory=dict, alias="resourceActions"
    )


class SchemaEntryDocument(InternalSchemaDocument):
    """One entry of the top-level ``schemas`` list."""

    id: str
    internal_schema: Optional[InternalSchemaDocument] = PydanticField(
        default=None, alias="internalSchema"
    )


class SchemaDocument(_DocumentModel):
    """Top-level schema registry document."""

    version: Optional[str] = None
    schemas: list[SchemaEntryDocument]


def load_schema_registry(path: Path) -> SchemaRegistry:
    """Load and validate a schema registry document from YAML.

    Args:
        path (Path): Path to the YAML document.

    Returns:
        SchemaRegistry: Registry holding the schemas in document order.
    """
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as exc:
        raise SchemaLoadError(f"Failed to read schema file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise SchemaLoadError(f"Failed to parse YAML in {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise SchemaLoadError(
            f"Schema document {path} must deserialize to a mapping, got {type(payload)!r}"
        )

    try:
        document = SchemaDocument.model_validate(payload)
    except ValidationError as exc:
        raise SchemaLoadError(f"Schema document validation failed for {path}: {exc}") from exc

    try:
        return build_registry(document)
    except SchemaLoadError as exc:
        raise SchemaLoadError(f"{path}: {exc}") from exc


def build_registry(document: SchemaDocument) -> SchemaRegistry:
    """Convert a validated document into a registry."""
    schemas: list[Schema] = []
    for entry in document.schemas:
        version = entry.version or document.version
        if not version:
            raise SchemaLoadError(f"Schema {entry.id!r} has no version and no default is set")
        internal: Optional[Schema] = None
        if entry.internal_schema is not None:
            internal = _to_schema(
                entry.internal_schema,
                schema_id=entry.internal_schema.id or entry.id,
                version=entry.internal_schema.version or version,
                internal=None,
            )
        schemas.append(_to_schema(entry, schema_id=entry.id, version=version, internal=internal))
    return SchemaRegistry(schemas)


def _to_schema(
    entry: InternalSchemaDocument,
    *,
    schema_id: str,
    version: str,
    internal: Optional[Schema],
) -> Schema:
    fields = tuple(
        Field(
            name=name,
            code_name=field.code_name or to_snake_case(name),
            type=field.type,
            nullable=field.nullable,
            required=field.required,
            default=field.default,
        )
        for name, field in entry.resource_fields.items()
    )
    code_names = [field.code_name for field in fields]
    duplicates = sorted({name for name in code_names if code_names.count(name) > 1})
    if duplicates:
        raise SchemaLoadError(
            f"Schema {schema_id!r} has fields with clashing code names: {', '.join(duplicates)}"
        )
    actions = tuple(
        Action(name=name, output=action.output, input=action.input)
        for name, action in entry.resource_actions.items()
    )
    return Schema(
        id=schema_id,
        version=version,
        code_name=entry.code_name or class_name(schema_id),
        resource_fields=fields,
        collection_methods=tuple(entry.collection_methods),
        resource_methods=tuple(entry.resource_methods),
        resource_actions=actions,
        internal_schema=internal,
    )
