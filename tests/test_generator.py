"""Integration tests for generator behavior."""

from __future__ import annotations

import ast
import importlib
import subprocess
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from resource_schema_codegen import generator
from resource_schema_codegen.generator import (
    WriteError,
    generate,
    run_generation,
)
from resource_schema_codegen.loader import load_schema_registry
from resource_schema_codegen.module_loading import unload_package
from resource_schema_codegen.registry import SchemaRegistry
from resource_schema_codegen.settings import GeneratorSettings
from resource_schema_codegen.verify import verify_generated_types

from .fixture_helpers import parametrize_fixtures, schema_fixture

_TYPES_PACKAGE = "acme/client"
_CONTROLLERS_PACKAGE = "acme/controllers"

_UNRESOLVED_SCHEMA = """
version: v1
schemas:
  - id: volume
    collectionMethods: [GET]
    resourceFields:
      name: {type: string}
      owner: {type: account, nullable: true}
      mounts: {type: "array[mountPoint]"}
"""


@pytest.fixture
def fast_settings(tmp_path: Path) -> GeneratorSettings:
    """Settings that skip the subprocess steps."""
    return GeneratorSettings(base_dir=tmp_path, run_formatter=False, run_derived_copy=False)


@pytest.fixture
def acme_on_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Make packages generated under ``tmp_path`` importable."""
    monkeypatch.syspath_prepend(str(tmp_path))
    yield tmp_path
    unload_package("acme")


def _cluster_registry() -> SchemaRegistry:
    return load_schema_registry(schema_fixture("cluster.yaml"))


def _snapshot(directory: Path) -> dict[str, bytes]:
    return {
        path.name: path.read_bytes()
        for path in sorted(directory.iterdir())
        if path.is_file()
    }


def test_generate_skips_meta_schemas(tmp_path: Path, fast_settings: GeneratorSettings) -> None:
    """Meta schemas produce no artifacts and are left out of the client."""
    result = generate(
        _cluster_registry(), _TYPES_PACKAGE, _CONTROLLERS_PACKAGE, settings=fast_settings
    )

    types_dir = tmp_path / "acme" / "client"
    assert result.types_dir == str(types_dir)
    assert result.generated_ids == ("pod", "container", "podStatus", "service")
    assert sorted(path.name for path in types_dir.glob("zz_generated_*.py")) == [
        "zz_generated_client.py",
        "zz_generated_container.py",
        "zz_generated_pod.py",
        "zz_generated_pod_status.py",
        "zz_generated_service.py",
    ]
    client_source = (types_dir / "zz_generated_client.py").read_text(encoding="utf-8")
    assert "SCHEMA_TYPES = ('pod', 'container', 'podStatus', 'service')" in client_source
    assert "Collection" not in client_source


def test_controllers_only_for_listable_schemas(
    tmp_path: Path, fast_settings: GeneratorSettings
) -> None:
    """Only schemas accepting collection GET get a controller."""
    result = generate(
        _cluster_registry(), _TYPES_PACKAGE, _CONTROLLERS_PACKAGE, settings=fast_settings
    )

    controllers_dir = tmp_path / "acme" / "controllers"
    assert result.controller_ids == ("pod",)
    assert sorted(path.name for path in controllers_dir.glob("*.py")) == [
        "__init__.py",
        "zz_generated_pod_controller.py",
    ]


def test_controller_renders_internal_variant(
    tmp_path: Path, fast_settings: GeneratorSettings
) -> None:
    """The controller module keeps the public name but the internal fields."""
    generate(_cluster_registry(), _TYPES_PACKAGE, _CONTROLLERS_PACKAGE, settings=fast_settings)

    source = (tmp_path / "acme" / "controllers" / "zz_generated_pod_controller.py").read_text(
        encoding="utf-8"
    )
    tree = ast.parse(source)
    pod = next(node for node in tree.body if isinstance(node, ast.ClassDef) and node.name == "Pod")
    attributes = [
        node.target.id
        for node in pod.body
        if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name)
    ]
    assert attributes == ["name", "node_name", "containers", "status"]
    assert "from acme.client.zz_generated_container import Container" in source
    assert "from acme.client.zz_generated_pod_status import PodStatus" in source


def test_regeneration_is_idempotent_and_drops_stale_files(
    tmp_path: Path, fast_settings: GeneratorSettings
) -> None:
    """Two runs over the same input produce identical trees; removed schemas vanish."""
    types_dir = tmp_path / "acme" / "client"
    controllers_dir = tmp_path / "acme" / "controllers"
    (tmp_path / "acme").mkdir()
    types_dir.mkdir()
    (types_dir / "custom.py").write_text("VALUE = 1\n", encoding="utf-8")

    registry = _cluster_registry()
    generate(registry, _TYPES_PACKAGE, _CONTROLLERS_PACKAGE, settings=fast_settings)
    first_types = _snapshot(types_dir)
    first_controllers = _snapshot(controllers_dir)

    generate(registry, _TYPES_PACKAGE, _CONTROLLERS_PACKAGE, settings=fast_settings)
    assert _snapshot(types_dir) == first_types
    assert _snapshot(controllers_dir) == first_controllers

    trimmed = SchemaRegistry(schema for schema in registry.schemas() if schema.id != "service")
    generate(trimmed, _TYPES_PACKAGE, _CONTROLLERS_PACKAGE, settings=fast_settings)
    assert not (types_dir / "zz_generated_service.py").exists()
    assert (types_dir / "zz_generated_pod.py").exists()
    assert (types_dir / "custom.py").read_text(encoding="utf-8") == "VALUE = 1\n"


def test_prepare_failure_writes_nothing(tmp_path: Path, fast_settings: GeneratorSettings) -> None:
    """A directory that cannot be prepared stops the run before any emission."""
    (tmp_path / "acme").mkdir()
    (tmp_path / "acme" / "client").write_text("not a directory", encoding="utf-8")

    with pytest.raises(WriteError):
        generate(_cluster_registry(), _TYPES_PACKAGE, _CONTROLLERS_PACKAGE, settings=fast_settings)

    assert not (tmp_path / "acme" / "controllers").exists()
    assert list((tmp_path / "acme").iterdir()) == [tmp_path / "acme" / "client"]


def test_generation_steps_run_in_order(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Derived copies run after emission and before formatting, controllers first."""
    calls: list[tuple[str, Path]] = []
    types_dir = tmp_path / "acme" / "client"
    controllers_dir = tmp_path / "acme" / "controllers"

    def _fake_derived_copies(*, package_dir: Path) -> str:
        assert (types_dir / "zz_generated_client.py").is_file()
        calls.append(("derived_copy", package_dir))
        return "zz_generated_deepcopy.py"

    def _fake_format(*, package_dir: Path) -> None:
        calls.append(("format", package_dir))

    monkeypatch.setattr(generator, "generate_derived_copies", _fake_derived_copies)
    monkeypatch.setattr(generator, "format_package", _fake_format)

    generate(
        _cluster_registry(),
        _TYPES_PACKAGE,
        _CONTROLLERS_PACKAGE,
        settings=GeneratorSettings(base_dir=tmp_path),
    )

    assert calls == [
        ("derived_copy", controllers_dir),
        ("format", controllers_dir),
        ("format", types_dir),
    ]
    manifest = (controllers_dir / "zz_generated_manifest.json").read_text(encoding="utf-8")
    assert "zz_generated_deepcopy.py" in manifest


def test_failing_step_stops_the_run(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _failing_derived_copies(*, package_dir: Path) -> str:
        raise WriteError("derived-copy generation failed: boom")

    def _unexpected_format(*, package_dir: Path) -> None:
        pytest.fail("formatter must not run after a failed step")

    monkeypatch.setattr(generator, "generate_derived_copies", _failing_derived_copies)
    monkeypatch.setattr(generator, "format_package", _unexpected_format)

    with pytest.raises(WriteError, match="boom"):
        generate(
            _cluster_registry(),
            _TYPES_PACKAGE,
            _CONTROLLERS_PACKAGE,
            settings=GeneratorSettings(base_dir=tmp_path),
        )


def test_unresolved_types_are_reported_as_warnings(
    tmp_path: Path, fast_settings: GeneratorSettings
) -> None:
    """Unknown named types fall back to their capitalized name and are reported once."""
    input_path = tmp_path / "volumes.yaml"
    input_path.write_text(_UNRESOLVED_SCHEMA, encoding="utf-8")

    run = run_generation(
        input_path=input_path,
        types_package="storage/types",
        controllers_package="storage/controllers",
        settings=fast_settings,
    )

    assert run.verification_report is None
    assert run.result.warnings == (
        'Schema "volume" (v1): unresolved type "account", using "Account"',
        'Schema "volume" (v1): unresolved type "mountPoint", using "MountPoint"',
    )
    source = (tmp_path / "storage" / "types" / "zz_generated_volume.py").read_text(
        encoding="utf-8"
    )
    assert "owner: Optional[Account] = Field(None)" in source
    assert "mounts: list[MountPoint] = Field(None)" in source


def test_verify_reports_unresolved_annotations(
    tmp_path: Path, fast_settings: GeneratorSettings
) -> None:
    input_path = tmp_path / "volumes.yaml"
    input_path.write_text(_UNRESOLVED_SCHEMA, encoding="utf-8")

    run = run_generation(
        input_path=input_path,
        types_package="storage/types",
        controllers_package="storage/controllers",
        settings=fast_settings,
        verify=True,
    )

    report = run.verification_report
    assert report is not None
    assert report.verified_count == 1
    assert report.mismatch_count == 1
    assert report.mismatches[0].detail.startswith("unresolved annotation")


@parametrize_fixtures()
def test_fixtures_generate_and_verify(fixture_path: Path, tmp_path: Path) -> None:
    """Every fixture generates, formats and verifies without mismatches."""
    run = run_generation(
        input_path=fixture_path,
        types_package=_TYPES_PACKAGE,
        controllers_package=_CONTROLLERS_PACKAGE,
        settings=GeneratorSettings(base_dir=tmp_path),
        verify=True,
    )

    assert run.result.warnings == ()
    assert run.verification_report is not None
    assert run.verification_report.mismatch_count == 0
    assert run.verification_report.verified_count == len(run.result.generated_ids)

    check = subprocess.run(
        [
            sys.executable,
            "-m",
            "ruff",
            "check",
            "--isolated",
            "--ignore",
            "E402",
            str(tmp_path / "acme"),
        ],
        capture_output=True,
        text=True,
        check=False,
    )
    assert check.returncode == 0, check.stdout + check.stderr


def test_generated_packages_import_end_to_end(acme_on_path: Path) -> None:
    """Generated types, controllers and copies work together after formatting."""
    generate(
        _cluster_registry(),
        "acme.client",
        "acme.controllers",
        settings=GeneratorSettings(base_dir=acme_on_path),
    )
    importlib.invalidate_caches()

    client_module = importlib.import_module("acme.client.zz_generated_client")
    pod_types = importlib.import_module("acme.client.zz_generated_pod")
    controllers = importlib.import_module("acme.controllers.zz_generated_pod_controller")
    copies = importlib.import_module("acme.controllers.zz_generated_deepcopy")

    assert client_module.SCHEMA_TYPES == ("pod", "container", "podStatus", "service")
    pod = pod_types.Pod.model_validate({"name": "web", "restartCount": 2, "podIds": []})
    assert pod.restart_count == 2
    assert pod_types.POD_FIELD_RESTART_COUNT == "restartCount"

    internal = controllers.Pod(name="web", nodeName="node-1")
    copied = copies.DEEPCOPY_FUNCS[controllers.Pod](internal)
    assert copied == internal
    assert copied is not internal
    assert set(copies.DEEPCOPY_FUNCS) == {controllers.Pod, controllers.PodList}


def test_invalid_package_identifier_is_rejected(fast_settings: GeneratorSettings) -> None:
    with pytest.raises(ValueError, match="Invalid package identifier"):
        generate(_cluster_registry(), "acme/1client", _CONTROLLERS_PACKAGE, settings=fast_settings)


_MUTUAL_SCHEMA = """
version: v1
schemas:
  - id: node
    collectionMethods: [GET]
    resourceFields:
      name: {type: string}
      owner: {type: cluster, nullable: true}
  - id: cluster
    resourceFields:
      name: {type: string}
      nodes: {type: "array[node]"}
"""


def test_mutually_referencing_schemas_generate_and_verify(tmp_path: Path) -> None:
    """Schemas referencing each other format, lint and import cleanly."""
    input_path = tmp_path / "mutual.yaml"
    input_path.write_text(_MUTUAL_SCHEMA, encoding="utf-8")

    run = run_generation(
        input_path=input_path,
        types_package=_TYPES_PACKAGE,
        controllers_package=_CONTROLLERS_PACKAGE,
        settings=GeneratorSettings(base_dir=tmp_path),
        verify=True,
    )

    assert run.verification_report is not None
    assert run.verification_report.verified_count == 2
    assert run.verification_report.mismatch_count == 0


def test_verify_reports_import_failures(
    tmp_path: Path, fast_settings: GeneratorSettings
) -> None:
    """A generated module that cannot be imported is a mismatch, not a crash."""
    registry = _cluster_registry()
    result = generate(registry, _TYPES_PACKAGE, _CONTROLLERS_PACKAGE, settings=fast_settings)
    broken = tmp_path / "acme" / "client" / "zz_generated_container.py"
    broken.write_text("from .zz_generated_missing import Missing\n", encoding="utf-8")

    report = verify_generated_types(registry=registry, result=result)

    failed = {mismatch.schema_id: mismatch.detail for mismatch in report.mismatches}
    assert set(failed) == {"pod", "container"}
    assert failed["container"].startswith("module import failed")


def test_unresolved_names_that_are_not_identifiers_still_render(
    tmp_path: Path, fast_settings: GeneratorSettings
) -> None:
    input_path = tmp_path / "scanner.yaml"
    input_path.write_text(
        "version: v1\n"
        "schemas:\n"
        "  - id: scanner\n"
        "    resourceFields:\n"
        "      beam: {type: x-ray}\n",
        encoding="utf-8",
    )

    run = run_generation(
        input_path=input_path,
        types_package="lab/types",
        controllers_package="lab/controllers",
        settings=fast_settings,
    )

    assert run.result.warnings == (
        'Schema "scanner" (v1): unresolved type "x-ray", using "X_ray"',
    )
    source = (tmp_path / "lab" / "types" / "zz_generated_scanner.py").read_text(encoding="utf-8")
    assert "beam: X_ray = Field(None)" in source
