"""Filesystem writers and post-processing steps for generated packages."""

from __future__ import annotations

from collections.abc import Iterable
import json
import logging
from pathlib import Path
import subprocess
import sys
from typing import Optional

from .naming import DEEPCOPY_MODULE_NAME, GENERATED_FILE_PREFIX, MANIFEST_FILE_NAME

logger = logging.getLogger(__name__)

# E402: sibling type imports follow the class definitions.
# F821: fallback type names may point at types defined outside the generated package.
_GENERATED_RUFF_IGNORE_CODES: tuple[str, ...] = (
    "D100",
    "D101",
    "D102",
    "D103",
    "D104",
    "D205",
    "D301",
    "D415",
    "E402",
    "E501",
    "F821",
)

_PACKAGE_INIT_SOURCE = '"""Generated package."""\n'


class WriteError(RuntimeError):
    """Raised when output files cannot be written or post-processed."""


def prepare_output_dirs(
    dirs: Iterable[Path],
    *,
    prefix: str = GENERATED_FILE_PREFIX,
) -> None:
    """Create output directories and remove artifacts of the previous run.

    A directory holding a manifest has exactly the files it names removed;
    otherwise every entry whose name starts with ``prefix`` is removed.

    Args:
        dirs (Iterable[Path]): Output directories, prepared in order.
        prefix (str): Reserved file name prefix of generated files.
    """
    for directory in dirs:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WriteError(f"Failed to create directory {directory}: {exc}") from exc

        owned = _read_manifest(directory)
        if owned is None:
            owned = _scan_prefixed(directory, prefix=prefix)
        else:
            owned = [*owned, MANIFEST_FILE_NAME]

        for name in owned:
            _remove_entry(directory / name)
        logger.debug("Prepared %s (%d stale entries)", directory, len(owned))

        init_path = directory / "__init__.py"
        if not init_path.exists():
            _write_file(init_path, _PACKAGE_INIT_SOURCE)


def write_module(directory: Path, module_name: str, source: str) -> Path:
    """Write one generated module and return its path."""
    path = directory / f"{module_name}.py"
    _write_file(path, source)
    return path


def write_manifest(directory: Path, file_names: Iterable[str]) -> None:
    """Record the generated files of a directory for the next run's cleanup."""
    names = sorted(set(file_names))
    _write_file(directory / MANIFEST_FILE_NAME, json.dumps({"files": names}, indent=2) + "\n")


def format_package(*, package_dir: Path) -> None:
    """Run Ruff auto-fixes and formatter against a generated package.

    Args:
        package_dir (Path): Generated package directory to format.
    """
    _run_ruff(package_dir=package_dir, args=("format", str(package_dir)))
    _run_ruff(
        package_dir=package_dir,
        args=(
            "check",
            "--fix",
            "--ignore",
            ",".join(_GENERATED_RUFF_IGNORE_CODES),
            str(package_dir),
        ),
    )
    _run_ruff(package_dir=package_dir, args=("format", str(package_dir)))


def generate_derived_copies(
    *,
    package_dir: Path,
    output_file_base_name: str = DEEPCOPY_MODULE_NAME,
) -> str:
    """Run the derived-copy generator against a controller package.

    Args:
        package_dir (Path): Controller package directory.
        output_file_base_name (str): Module name of the generated file.

    Returns:
        str: File name written by the generator.
    """
    command = [
        sys.executable,
        "-m",
        "resource_schema_codegen.derived_copy",
        "--input-dir",
        str(package_dir),
        "--output-file-base-name",
        output_file_base_name,
    ]
    _run_command(command, description=f"derived-copy generation for {package_dir}")
    return f"{output_file_base_name}.py"


def _run_ruff(*, package_dir: Path, args: tuple[str, ...]) -> None:
    command = [sys.executable, "-m", "ruff", *args]
    _run_command(command, description=f"ruff {' '.join(args[:-1])} for {package_dir}")


def _run_command(command: list[str], *, description: str) -> None:
    logger.debug("Running %s", " ".join(command))
    try:
        subprocess.run(
            command,
            check=True,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise WriteError(f"Failed to execute {description}: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        error_text = exc.stderr.strip() or exc.stdout.strip() or str(exc)
        raise WriteError(f"{description} failed: {error_text}") from exc


def _read_manifest(directory: Path) -> Optional[list[str]]:
    path = directory / MANIFEST_FILE_NAME
    if not path.is_file():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise WriteError(f"Failed to read manifest {path}: {exc}") from exc
    files = payload.get("files") if isinstance(payload, dict) else None
    if not isinstance(files, list) or not all(isinstance(name, str) for name in files):
        raise WriteError(f"Malformed manifest {path}: expected a 'files' list of names")
    for name in files:
        if Path(name).name != name:
            raise WriteError(f"Malformed manifest {path}: {name!r} is not a plain file name")
    return files


def _scan_prefixed(directory: Path, *, prefix: str) -> list[str]:
    try:
        return sorted(entry.name for entry in directory.iterdir() if entry.name.startswith(prefix))
    except OSError as exc:
        raise WriteError(f"Failed to list directory {directory}: {exc}") from exc


def _remove_entry(path: Path) -> None:
    if not path.exists() and not path.is_symlink():
        return
    try:
        if path.is_dir() and not path.is_symlink():
            path.rmdir()
        else:
            path.unlink()
    except OSError as exc:
        raise WriteError(f"failed to delete {path}: {exc}") from exc


def _write_file(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise WriteError(f"Failed to write file {path}: {exc}") from exc
