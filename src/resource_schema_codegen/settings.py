"""Generator settings."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Optional

BASE_DIR_ENV_VAR = "RESOURCE_SCHEMA_CODEGEN_BASE_DIR"


@dataclass(frozen=True)
class GeneratorSettings:
    """Settings shared by every generation run.

    ``base_dir`` is the source tree root that package identifiers resolve
    against.
    """

    base_dir: Path = field(default_factory=Path.cwd)
    run_formatter: bool = True
    run_derived_copy: bool = True

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: bool,
    ) -> GeneratorSettings:
        """Build settings, taking ``base_dir`` from the environment when set."""
        env = os.environ if environ is None else environ
        raw_base_dir = env.get(BASE_DIR_ENV_VAR, "").strip()
        base_dir = Path(raw_base_dir) if raw_base_dir else Path.cwd()
        return cls(base_dir=base_dir, **overrides)
