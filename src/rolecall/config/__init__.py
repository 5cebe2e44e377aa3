# src/rolecall/config/__init__.py

"""Configuration management for rolecall.

Configuration is resolved once per request into an immutable ``Settings``
object that the orchestrator treats as pure input.

Key exports:
- resolve_settings: Main API for configuration resolution
- Settings / RoleSettings / CostSpec: Pydantic schema for validation and defaults
- find_project_root: Project root detection used when no root is given
"""

# ruff: noqa: I001

from .core import CostSpec, RoleSettings, Settings, resolve_settings
from .loaders import load_env, load_home, load_pyproject
from .utils import find_project_root, get_home_config_path

__all__ = [  # noqa: RUF022
    "resolve_settings",
    "Settings",
    "RoleSettings",
    "CostSpec",
    "find_project_root",
    "get_home_config_path",
    "load_env",
    "load_home",
    "load_pyproject",
]
