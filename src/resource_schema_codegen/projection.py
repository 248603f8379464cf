"""Project a schema into the context used to render its artifacts."""

from __future__ import annotations

from .model_types import Action, Schema, SchemaProjection
from .registry import SchemaRegistry
from .resolver import resolve_type_details


def project_schema(schema: Schema, registry: SchemaRegistry) -> SchemaProjection:
    """Resolve field annotations and keep only actions with a known output schema.

    Action inputs are looked up the same way; an input that names no schema
    in the same version leaves the action with an untyped payload.

    Args:
        schema (Schema): Schema to project.
        registry (SchemaRegistry): Registry used for named-type and action lookups.

    Returns:
        SchemaProjection: Field annotations keyed by field code name, resolvable
            actions keyed by action name, and the schema lookups involved.
    """
    field_types: dict[str, str] = {}
    referenced: dict[tuple[str, str], Schema] = {}
    fallbacks: list[str] = []
    for field in schema.resource_fields:
        resolution = resolve_type_details(field.nullable, field.type, schema, registry)
        field_types[field.code_name] = resolution.annotation
        for other in resolution.referenced_schemas:
            referenced.setdefault((other.version, other.id), other)
        for name in resolution.fallback_names:
            if name not in fallbacks:
                fallbacks.append(name)

    actions: dict[str, Action] = {}
    action_outputs: dict[str, Schema] = {}
    action_inputs: dict[str, Schema] = {}
    for action in schema.resource_actions:
        output = registry.schema(schema.version, action.output)
        if output is None:
            continue
        actions[action.name] = action
        action_outputs[action.name] = output
        if action.input:
            action_input = registry.schema(schema.version, action.input)
            if action_input is not None:
                action_inputs[action.name] = action_input

    return SchemaProjection(
        field_types=field_types,
        resource_actions=actions,
        action_outputs=action_outputs,
        action_inputs=action_inputs,
        referenced_schemas=tuple(referenced.values()),
        fallback_names=tuple(fallbacks),
    )
