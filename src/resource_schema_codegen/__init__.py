"""Resource schema to pydantic code generator package."""

from __future__ import annotations

from .cli import main
from .generator import GenerationRun, generate, run_generation
from .registry import SchemaRegistry
from .resolver import resolve_type

__all__ = ["GenerationRun", "SchemaRegistry", "generate", "main", "resolve_type", "run_generation"]
