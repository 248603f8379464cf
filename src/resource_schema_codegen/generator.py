"""High-level generator orchestration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Optional

from .codegen_ast import (
    RenderError,
    render_client_module,
    render_controller_module,
    render_type_module,
)
from .loader import load_schema_registry
from .model_types import EmittedArtifact, GenerationResult, Schema
from .naming import (
    CLIENT_MODULE_NAME,
    controller_module_name,
    package_segments,
    package_to_module_path,
    type_module_name,
)
from .projection import project_schema
from .registry import SchemaLoadError, SchemaRegistry
from .resolver import fallback_type_name
from .settings import GeneratorSettings
from .type_descriptors import TypeDescriptorError
from .verify import VerificationReport, verify_generated_types
from .writer import (
    WriteError,
    format_package,
    generate_derived_copies,
    prepare_output_dirs,
    write_manifest,
    write_module,
)

logger = logging.getLogger(__name__)

BLOCKED_SCHEMA_IDS: frozenset[str] = frozenset({"schema", "resource", "collection"})
LISTABLE_METHOD = "GET"


@dataclass(frozen=True)
class GenerationRun:
    """Generation result with optional verification report."""

    result: GenerationResult
    verification_report: Optional[VerificationReport]


def run_generation(
    *,
    input_path: Path,
    types_package: str,
    controllers_package: str,
    settings: Optional[GeneratorSettings] = None,
    verify: bool = False,
) -> GenerationRun:
    """Load a schema document and generate type and controller packages from it.

    Args:
        input_path (Path): Path to the YAML schema document.
        types_package (str): Package identifier for type modules.
        controllers_package (str): Package identifier for controller modules.
        settings (Optional[GeneratorSettings]): Run settings; read from the
            environment when omitted.
        verify (bool): Whether to import and check the generated type modules.

    Returns:
        GenerationRun: Generation metadata and optional verification report.
    """
    registry = load_schema_registry(input_path)
    result = generate(
        registry,
        types_package,
        controllers_package,
        settings=settings,
    )
    if not verify:
        return GenerationRun(result=result, verification_report=None)

    report = verify_generated_types(registry=registry, result=result)
    return GenerationRun(result=result, verification_report=report)


def generate(
    registry: SchemaRegistry,
    types_package: str,
    controllers_package: str,
    *,
    base_dir: Optional[Path] = None,
    settings: Optional[GeneratorSettings] = None,
) -> GenerationResult:
    """Regenerate the type and controller packages for every schema in ``registry``.

    Stops at the first failing step; files written before the failure stay on
    disk until the next successful run cleans them up.

    Args:
        registry (SchemaRegistry): Schemas to generate, in iteration order.
        types_package (str): Package identifier (``a/b`` or ``a.b``) for type modules.
        controllers_package (str): Package identifier for controller modules.
        base_dir (Optional[Path]): Source tree root; overrides ``settings.base_dir``.
        settings (Optional[GeneratorSettings]): Run settings.

    Returns:
        GenerationResult: Output directories, generated schema ids and warnings.
    """
    settings = settings or GeneratorSettings.from_env()
    root = base_dir if base_dir is not None else settings.base_dir
    types_dir = root.joinpath(*package_segments(types_package))
    controllers_dir = root.joinpath(*package_segments(controllers_package))
    types_module_path = package_to_module_path(types_package)

    prepare_output_dirs([types_dir, controllers_dir])

    type_modules = {
        schema.id: type_module_name(schema.id)
        for schema in registry.schemas()
        if schema.id not in BLOCKED_SCHEMA_IDS
    }
    generated: list[Schema] = []
    controller_ids: list[str] = []
    written_types: list[str] = []
    written_controllers: list[str] = []
    warnings: list[str] = []

    for schema in registry.schemas():
        if schema.id in BLOCKED_SCHEMA_IDS:
            logger.debug("Skipping meta schema %s", schema.id)
            continue

        emitted = emit_type(types_dir, schema, registry, type_modules=type_modules)
        written_types.append(emitted.path.name)
        _extend_warnings(warnings, schema, emitted)

        if schema.supports_collection_method(LISTABLE_METHOD):
            emitted = emit_controller(
                controllers_dir,
                schema,
                registry,
                type_modules=type_modules,
                types_module_path=types_module_path,
            )
            written_controllers.append(emitted.path.name)
            controller_ids.append(schema.id)
            _extend_warnings(warnings, schema.internal_schema or schema, emitted)

        generated.append(schema)

    written_types.append(emit_client(types_dir, generated).name)

    if settings.run_derived_copy:
        written_controllers.append(generate_derived_copies(package_dir=controllers_dir))
    if settings.run_formatter:
        format_package(package_dir=controllers_dir)
        format_package(package_dir=types_dir)

    write_manifest(controllers_dir, written_controllers)
    write_manifest(types_dir, written_types)

    logger.info(
        "Generated %d type modules in %s and %d controllers in %s",
        len(generated),
        types_dir,
        len(controller_ids),
        controllers_dir,
    )
    return GenerationResult(
        types_dir=str(types_dir),
        controllers_dir=str(controllers_dir),
        generated_ids=tuple(schema.id for schema in generated),
        controller_ids=tuple(controller_ids),
        warnings=tuple(warnings),
    )


def emit_type(
    output_dir: Path,
    schema: Schema,
    registry: SchemaRegistry,
    *,
    type_modules: Mapping[str, str],
) -> EmittedArtifact:
    """Render and write the type module of ``schema``."""
    projection = project_schema(schema, registry)
    source = render_type_module(schema=schema, projection=projection, type_modules=type_modules)
    path = write_module(output_dir, type_module_name(schema.id), source)
    return EmittedArtifact(path=path, projection=projection)


def emit_controller(
    output_dir: Path,
    schema: Schema,
    registry: SchemaRegistry,
    *,
    type_modules: Mapping[str, str],
    types_module_path: str,
) -> EmittedArtifact:
    """Render and write the controller module of ``schema``.

    The module is named after ``schema`` but renders its internal variant
    when one is declared.
    """
    module_name = controller_module_name(schema.id)
    if schema.internal_schema is not None:
        schema = schema.internal_schema
    projection = project_schema(schema, registry)
    source = render_controller_module(
        schema=schema,
        projection=projection,
        type_modules=type_modules,
        types_package=types_module_path,
    )
    path = write_module(output_dir, module_name, source)
    return EmittedArtifact(path=path, projection=projection)


def emit_client(output_dir: Path, schemas: list[Schema]) -> Path:
    """Render and write the aggregate client module for ``schemas``."""
    return write_module(output_dir, CLIENT_MODULE_NAME, render_client_module(schemas))


def _extend_warnings(warnings: list[str], schema: Schema, emitted: EmittedArtifact) -> None:
    for name in emitted.projection.fallback_names:
        message = (
            f'Schema "{schema.id}" ({schema.version}): unresolved type "{name}", '
            f'using "{fallback_type_name(name)}"'
        )
        if message not in warnings:
            warnings.append(message)
            logger.debug("%s", message)


__all__ = [
    "BLOCKED_SCHEMA_IDS",
    "GenerationRun",
    "RenderError",
    "SchemaLoadError",
    "TypeDescriptorError",
    "WriteError",
    "emit_client",
    "emit_controller",
    "emit_type",
    "generate",
    "run_generation",
]
