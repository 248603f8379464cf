"""Verification of generated type modules against their schemas."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Optional

from pydantic import BaseModel
from pydantic.errors import PydanticUndefinedAnnotation

from .model_types import GenerationResult, Schema
from .module_loading import import_submodule, load_package_from_path, unload_package
from .naming import type_module_name
from .registry import SchemaRegistry


@dataclass(frozen=True)
class VerificationMismatch:
    """One verification mismatch."""

    schema_id: str
    class_name: str
    detail: str
    expected: tuple[str, ...]
    actual: tuple[str, ...]


@dataclass(frozen=True)
class VerificationReport:
    """Result of the verification phase."""

    verified_count: int
    mismatch_count: int
    mismatches: tuple[VerificationMismatch, ...]


def verify_generated_types(
    *,
    registry: SchemaRegistry,
    result: GenerationResult,
) -> VerificationReport:
    """Import the generated type package and compare each model with its schema.

    A model matches when its field aliases equal the schema's field names in
    declaration order and all of its annotations resolve.
    """
    generated_ids = set(result.generated_ids)
    schemas = [schema for schema in registry.schemas() if schema.id in generated_ids]
    package_name = f"generated_types_{next(_COUNTER)}"
    package = load_package_from_path(package_name=package_name, package_dir=Path(result.types_dir))

    mismatches: list[VerificationMismatch] = []
    try:
        for schema in schemas:
            mismatch = _verify_schema(package=package, schema=schema)
            if mismatch is not None:
                mismatches.append(mismatch)
    finally:
        unload_package(package_name)

    return VerificationReport(
        verified_count=len(schemas),
        mismatch_count=len(mismatches),
        mismatches=tuple(mismatches),
    )


def format_report(report: VerificationReport) -> str:
    """Render report as CLI output text."""
    lines = [
        f"Verified models: {report.verified_count}",
        f"Mismatches: {report.mismatch_count}",
    ]
    for mismatch in report.mismatches:
        lines.extend(
            [
                f"- {mismatch.schema_id}.{mismatch.class_name}: {mismatch.detail}",
                f"  expected: {', '.join(mismatch.expected) or '-'}",
                f"  actual: {', '.join(mismatch.actual) or '-'}",
            ]
        )
    return "\n".join(lines)


def _verify_schema(*, package: ModuleType, schema: Schema) -> Optional[VerificationMismatch]:
    expected = tuple(field.name for field in schema.resource_fields)
    try:
        module = import_submodule(package, type_module_name(schema.id))
    except ImportError as exc:
        return VerificationMismatch(
            schema_id=schema.id,
            class_name=schema.code_name,
            detail=f"module import failed: {exc}",
            expected=expected,
            actual=(),
        )
    model = getattr(module, schema.code_name, None)
    if not isinstance(model, type) or not issubclass(model, BaseModel):
        return VerificationMismatch(
            schema_id=schema.id,
            class_name=schema.code_name,
            detail="generated class is missing or invalid",
            expected=expected,
            actual=(),
        )

    actual = tuple(info.alias or name for name, info in model.model_fields.items())
    try:
        model.model_rebuild(_types_namespace=module.__dict__)
    except PydanticUndefinedAnnotation as exc:
        return VerificationMismatch(
            schema_id=schema.id,
            class_name=schema.code_name,
            detail=f"unresolved annotation: {exc.name}",
            expected=expected,
            actual=actual,
        )
    if actual != expected:
        return VerificationMismatch(
            schema_id=schema.id,
            class_name=schema.code_name,
            detail="field aliases differ from schema fields",
            expected=expected,
            actual=actual,
        )
    return None


_COUNTER = itertools.count(1)
