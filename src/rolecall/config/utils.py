# src/rolecall/config/utils.py

"""Configuration utilities and shared functionality.

Pure helpers that can be imported without creating circular dependencies:
path discovery, project-root detection and layer merging.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

# --- Constants ---

ENV_PREFIX = "ROLECALL_"
CONFIG_HOME_VAR = "ROLECALL_CONFIG_HOME"

# Files/directories whose presence marks a project root, checked per directory.
PROJECT_MARKERS: tuple[str, ...] = ("pyproject.toml", ".git", ".env")


# --- Path Utilities ---


def get_home_config_path() -> Path:
    """Return path to the user's home-level config TOML.

    ``ROLECALL_CONFIG_HOME`` overrides the default location. Falls back to a
    cwd-based path when the home directory cannot be resolved.
    """
    if override := os.environ.get(CONFIG_HOME_VAR):
        return Path(override)
    try:
        return Path.home() / ".config" / "rolecall" / "config.toml"
    except Exception:
        return Path.cwd() / "rolecall.toml"


def get_pyproject_path(project_root: Path | str | None = None) -> Path:
    """Return the pyproject.toml path for *project_root* (default: detected root)."""
    root = Path(project_root) if project_root is not None else find_project_root()
    return root / "pyproject.toml"


def find_project_root(start: Path | str | None = None) -> Path:
    """Walk upward from *start* until a directory holding a project marker is found.

    Returns the starting directory when no marker exists anywhere above it.
    """
    origin = Path(start) if start is not None else Path.cwd()
    origin = origin.resolve()
    for candidate in (origin, *origin.parents):
        if any((candidate / marker).exists() for marker in PROJECT_MARKERS):
            return candidate
    return origin


# --- Merging ---


def deep_merge(base: Mapping[str, Any], layer: Mapping[str, Any]) -> dict[str, Any]:
    """Return *base* overlaid with *layer*, merging nested mappings key by key."""
    merged: dict[str, Any] = dict(base)
    for key, value in layer.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def coerce_bool(value: str) -> bool:
    """Convert string to boolean using common conventions."""
    return value.strip().lower() in {"1", "true", "yes", "on"}
