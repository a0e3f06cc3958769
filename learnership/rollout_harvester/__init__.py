"""Rollout plan harvester package."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from . import (
    dates,
    extract,
    manifest,
    matching,
    models,
    normalize,
    parser,
    partition,
    recognizers,
    registry,
    renderer,
    schedule,
    workplace,
)
from .extract import UnsupportedFormatError
from .models import Module, RolloutPlan, UnitStandard, WorkplaceActivity
from .parser import parse_rollout_file, parse_rollout_text

__all__ = [
    "dates",
    "extract",
    "manifest",
    "matching",
    "models",
    "normalize",
    "parser",
    "partition",
    "recognizers",
    "registry",
    "renderer",
    "schedule",
    "workplace",
    "Module",
    "RolloutPlan",
    "UnitStandard",
    "WorkplaceActivity",
    "UnsupportedFormatError",
    "parse_rollout_file",
    "parse_rollout_text",
    "load_registry",
]


def load_registry(base_path: Path) -> dict[str, Any]:
    """Convenience wrapper to load the registry from ``base_path``."""
    from .registry import load_registry

    registry_path = base_path / "learnership" / "_index" / "registry.json"
    return load_registry(registry_path)
