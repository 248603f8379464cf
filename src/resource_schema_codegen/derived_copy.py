"""Derived-copy generator for controller packages.

Scans the generated controller modules of a package, collects every pydantic
model class they define and writes a module with one ``deepcopy_<name>``
function per model plus a ``DEEPCOPY_FUNCS`` registry keyed by model class.

Run as ``python -m resource_schema_codegen.derived_copy --input-dir DIR``.
"""

from __future__ import annotations

import argparse
import ast
from dataclasses import dataclass
from pathlib import Path
import sys

from .naming import DEEPCOPY_MODULE_NAME, GENERATED_FILE_PREFIX, to_snake_case

_CONTROLLER_SUFFIX = "_controller.py"


class DerivedCopyError(RuntimeError):
    """Raised when derived copies cannot be generated."""


@dataclass(frozen=True)
class ModelClass:
    """A model class found in a generated module."""

    module_name: str
    class_name: str


def collect_model_classes(package_dir: Path) -> list[ModelClass]:
    """Return the model classes of every controller module, ordered by module name.

    Args:
        package_dir (Path): Controller package directory.

    Returns:
        list[ModelClass]: Model classes in module order, then source order.
    """
    if not package_dir.is_dir():
        raise DerivedCopyError(f"Input directory not found: {package_dir}")

    models: list[ModelClass] = []
    seen: dict[str, str] = {}
    for path in sorted(package_dir.glob(f"{GENERATED_FILE_PREFIX}_*{_CONTROLLER_SUFFIX}")):
        try:
            tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        except (OSError, SyntaxError) as exc:
            raise DerivedCopyError(f"Failed to parse {path}: {exc}") from exc
        for node in tree.body:
            if not isinstance(node, ast.ClassDef) or not _is_model_class(node):
                continue
            previous = seen.get(node.name)
            if previous is not None:
                raise DerivedCopyError(
                    f"Model class {node.name!r} is defined in both {previous} and {path.stem}"
                )
            seen[node.name] = path.stem
            models.append(ModelClass(module_name=path.stem, class_name=node.name))
    return models


def render_derived_copies(models: list[ModelClass]) -> str:
    """Render the derived-copy module for ``models``."""
    imports: dict[str, list[str]] = {}
    for model in models:
        imports.setdefault(model.module_name, []).append(model.class_name)

    body: list[ast.stmt] = [
        ast.Expr(value=ast.Constant(value="Generated deep-copy helpers.\n\nDo not edit.")),
        ast.ImportFrom(module="__future__", names=[ast.alias(name="annotations")], level=0),
    ]
    if models:
        body.append(
            ast.ImportFrom(module="typing", names=[ast.alias(name="Any")], level=0)
        )
    for module_name in sorted(imports):
        body.append(
            ast.ImportFrom(
                module=module_name,
                names=[ast.alias(name=name) for name in sorted(imports[module_name])],
                level=1,
            )
        )

    registry_keys: list[ast.expr] = []
    registry_values: list[ast.expr] = []
    for model in models:
        function_name = f"deepcopy_{to_snake_case(model.class_name)}"
        body.append(_copy_function(function_name, model.class_name))
        registry_keys.append(ast.Name(id=model.class_name, ctx=ast.Load()))
        registry_values.append(ast.Name(id=function_name, ctx=ast.Load()))

    body.append(
        ast.AnnAssign(
            target=ast.Name(id="DEEPCOPY_FUNCS", ctx=ast.Store()),
            annotation=ast.parse("dict[type, Any]" if models else "dict", mode="eval").body,
            value=ast.Dict(keys=registry_keys, values=registry_values),
            simple=1,
        )
    )
    module = ast.Module(body=body, type_ignores=[])
    ast.fix_missing_locations(module)
    return ast.unparse(module) + "\n"


def generate(*, input_dir: Path, output_file_base_name: str = DEEPCOPY_MODULE_NAME) -> Path:
    """Collect models from ``input_dir`` and write the derived-copy module there."""
    models = collect_model_classes(input_dir)
    output_path = input_dir / f"{output_file_base_name}.py"
    try:
        output_path.write_text(render_derived_copies(models), encoding="utf-8")
    except OSError as exc:
        raise DerivedCopyError(f"Failed to write file {output_path}: {exc}") from exc
    return output_path


def _is_model_class(node: ast.ClassDef) -> bool:
    for base in node.bases:
        if isinstance(base, ast.Name) and base.id == "BaseModel":
            return True
        if isinstance(base, ast.Attribute) and base.attr == "BaseModel":
            return True
    return False


def _copy_function(function_name: str, class_name: str) -> ast.FunctionDef:
    source = (
        f"def {function_name}(obj: {class_name}) -> {class_name}:\n"
        f'    """Return an independent deep copy of ``obj``."""\n'
        "    return obj.model_copy(deep=True)\n"
    )
    node = ast.parse(source).body[0]
    if not isinstance(node, ast.FunctionDef):
        raise DerivedCopyError(f"Failed to build copy function for {class_name}")
    return node


def build_parser() -> argparse.ArgumentParser:
    """Build the derived-copy CLI parser."""
    parser = argparse.ArgumentParser(
        prog="resource-schema-codegen-derived-copy",
        description="Generate deep-copy helpers for generated controller models",
    )
    parser.add_argument("--input-dir", required=True, help="Controller package directory")
    parser.add_argument(
        "--output-file-base-name",
        default=DEEPCOPY_MODULE_NAME,
        help="Module name of the generated file",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the derived-copy CLI and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        generate(
            input_dir=Path(args.input_dir),
            output_file_base_name=args.output_file_base_name,
        )
    except DerivedCopyError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
