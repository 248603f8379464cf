"""Command line interface for resource schema code generation."""

from __future__ import annotations

import argparse
from dataclasses import replace
import logging
from pathlib import Path
import sys

from .generator import (
    RenderError,
    SchemaLoadError,
    TypeDescriptorError,
    WriteError,
    run_generation,
)
from .settings import GeneratorSettings
from .verify import format_report

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    parser = argparse.ArgumentParser(
        prog="resource-schema-codegen",
        description="Generate pydantic resource types, controllers and a client from schemas",
    )
    parser.add_argument("--input", required=True, help="Path to a schema registry YAML file")
    parser.add_argument(
        "--types-package",
        required=True,
        help="Package (a/b or a.b) receiving type modules and the aggregate client",
    )
    parser.add_argument(
        "--controllers-package",
        required=True,
        help="Package (a/b or a.b) receiving controller modules",
    )
    parser.add_argument(
        "--base-dir",
        default=None,
        help="Source tree root that packages resolve against (default: cwd)",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Import generated type modules and compare them with their schemas",
    )
    parser.add_argument(
        "--skip-format",
        action="store_true",
        help="Do not run ruff on the generated packages",
    )
    parser.add_argument(
        "--skip-derived-copy",
        action="store_true",
        help="Do not generate deep-copy helpers for the controller package",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run CLI and return process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    settings = GeneratorSettings.from_env(
        run_formatter=not args.skip_format,
        run_derived_copy=not args.skip_derived_copy,
    )
    if args.base_dir is not None:
        settings = replace(settings, base_dir=Path(args.base_dir))

    try:
        run = run_generation(
            input_path=Path(args.input),
            types_package=args.types_package,
            controllers_package=args.controllers_package,
            settings=settings,
            verify=bool(args.verify),
        )
    except (
        SchemaLoadError,
        TypeDescriptorError,
        RenderError,
        WriteError,
        ValueError,
    ) as exc:
        parser.error(str(exc))
        return 2

    for warning in run.result.warnings:
        print(f"Warning: {warning}")

    if run.verification_report is not None:
        print(format_report(run.verification_report))
        if run.verification_report.mismatch_count > 0:
            return 1

    return 0


def _setup_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger = logging.getLogger("resource_schema_codegen")
    package_logger.setLevel(level)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.propagate = False


if __name__ == "__main__":
    raise SystemExit(main())
