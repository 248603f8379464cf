"""Helpers for dynamically loading generated Python packages."""

from __future__ import annotations

import importlib
import importlib.util
from pathlib import Path
import sys
from types import ModuleType


def load_package_from_path(*, package_name: str, package_dir: Path) -> ModuleType:
    """Load a package directory under ``package_name`` and register it in ``sys.modules``.

    Args:
        package_name (str): Temporary import name for the package.
        package_dir (Path): Directory holding the package ``__init__.py``.

    Returns:
        ModuleType: Imported package object; submodules import relative to it.
    """
    init_path = package_dir / "__init__.py"
    spec = importlib.util.spec_from_file_location(
        package_name,
        init_path,
        submodule_search_locations=[str(package_dir)],
    )
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Unable to import package from: {package_dir}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[package_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(package_name, None)
        raise
    return module


def import_submodule(package: ModuleType, module_name: str) -> ModuleType:
    """Import ``module_name`` from a package loaded with ``load_package_from_path``."""
    return importlib.import_module(f"{package.__name__}.{module_name}")


def unload_package(package_name: str) -> None:
    """Drop a temporarily loaded package and its submodules from ``sys.modules``."""
    stale = [
        name
        for name in sys.modules
        if name == package_name or name.startswith(f"{package_name}.")
    ]
    for name in stale:
        sys.modules.pop(name, None)
