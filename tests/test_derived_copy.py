"""Tests for the derived-copy generator."""

from __future__ import annotations

import ast
from pathlib import Path

import pytest

from resource_schema_codegen.derived_copy import (
    DerivedCopyError,
    ModelClass,
    collect_model_classes,
    generate,
    main,
    render_derived_copies,
)

_CONTROLLER_SOURCE = '''
from pydantic import BaseModel
import pydantic


class {name}(BaseModel):
    name: str


class {name}List(pydantic.BaseModel):
    items: list[{name}]


class {name}Controller:
    pass
'''


def _write_controller(package_dir: Path, module_name: str, class_name: str) -> None:
    package_dir.mkdir(parents=True, exist_ok=True)
    (package_dir / f"{module_name}.py").write_text(
        _CONTROLLER_SOURCE.format(name=class_name), encoding="utf-8"
    )


def test_collect_model_classes_reads_controller_modules_only(tmp_path: Path) -> None:
    """Only BaseModel subclasses of generated controller modules are collected."""
    _write_controller(tmp_path, "zz_generated_pod_controller", "Pod")
    _write_controller(tmp_path, "zz_generated_node_controller", "Node")
    _write_controller(tmp_path, "zz_generated_pod", "PodType")
    _write_controller(tmp_path, "handwritten_controller", "Manual")

    models = collect_model_classes(tmp_path)

    assert models == [
        ModelClass(module_name="zz_generated_node_controller", class_name="Node"),
        ModelClass(module_name="zz_generated_node_controller", class_name="NodeList"),
        ModelClass(module_name="zz_generated_pod_controller", class_name="Pod"),
        ModelClass(module_name="zz_generated_pod_controller", class_name="PodList"),
    ]


def test_duplicate_model_class_is_rejected(tmp_path: Path) -> None:
    """A class name defined by two controller modules cannot be registered twice."""
    _write_controller(tmp_path, "zz_generated_pod_controller", "Pod")
    _write_controller(tmp_path, "zz_generated_pods_controller", "Pod")

    with pytest.raises(DerivedCopyError, match="'Pod'"):
        collect_model_classes(tmp_path)


def test_missing_input_dir_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(DerivedCopyError, match="not found"):
        collect_model_classes(tmp_path / "missing")


def test_render_derived_copies_registers_every_model() -> None:
    """Each model gets a copy function and an entry in DEEPCOPY_FUNCS."""
    source = render_derived_copies(
        [
            ModelClass(module_name="zz_generated_pod_controller", class_name="Pod"),
            ModelClass(module_name="zz_generated_pod_controller", class_name="PodList"),
        ]
    )
    tree = ast.parse(source)
    functions = [node.name for node in tree.body if isinstance(node, ast.FunctionDef)]

    assert functions == ["deepcopy_pod", "deepcopy_pod_list"]
    assert "from .zz_generated_pod_controller import Pod, PodList" in source
    assert "DEEPCOPY_FUNCS: dict[type, Any] = {Pod: deepcopy_pod, PodList: deepcopy_pod_list}" in source


def test_render_without_models_still_declares_registry() -> None:
    source = render_derived_copies([])
    assert "DEEPCOPY_FUNCS: dict = {}" in source
    assert "typing" not in source


def test_generate_writes_named_module(tmp_path: Path) -> None:
    _write_controller(tmp_path, "zz_generated_pod_controller", "Pod")

    output = generate(input_dir=tmp_path, output_file_base_name="zz_generated_copies")

    assert output == tmp_path / "zz_generated_copies.py"
    assert "def deepcopy_pod(obj: Pod) -> Pod:" in output.read_text(encoding="utf-8")


def test_main_reports_errors_with_exit_code(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """CLI failures are printed to stderr and return a non-zero exit code."""
    exit_code = main(["--input-dir", str(tmp_path / "missing")])

    assert exit_code == 1
    assert "error: Input directory not found" in capsys.readouterr().err


def test_main_succeeds(tmp_path: Path) -> None:
    _write_controller(tmp_path, "zz_generated_pod_controller", "Pod")

    assert main(["--input-dir", str(tmp_path)]) == 0
    assert (tmp_path / "zz_generated_deepcopy.py").is_file()
