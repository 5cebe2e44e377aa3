# src/rolecall/config/loaders.py

"""Configuration loaders for environment and files.

Pure data loading functions that extract configuration values from various
sources without performing validation. Each loader returns a plain dictionary
that the core resolver merges.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

import tomllib

from . import utils

CONFIG_TOOL_NAME = "rolecall"

# Meta/control variables that steer resolution but aren't config fields
META_ENV_FIELDS = {"config_home"}

_ROLE_NAMES = ("primary", "research", "fallback")
_ROLE_FIELDS = ("provider", "model_id", "max_tokens", "temperature", "base_url")
_GLOBAL_FIELDS: dict[str, type] = {
    "debug": bool,
    "user_id": str,
    "ollama_base_url": str,
    "azure_base_url": str,
    "vertex_project_id": str,
    "vertex_location": str,
    "aws_region": str,
}


# --- Environment Loading ---


def load_env() -> Mapping[str, Any]:
    """Load configuration from ``ROLECALL_*`` environment variables.

    Global fields map directly (``ROLECALL_DEBUG=1``). Role fields use the role
    as a second prefix (``ROLECALL_PRIMARY_PROVIDER=openai``). Provider SDK
    variables such as ``OPENAI_API_KEY`` are credentials, not configuration,
    and are never read here.
    """
    config: dict[str, Any] = {}
    models: dict[str, dict[str, Any]] = {}

    for key, value in os.environ.items():
        if not key.startswith(utils.ENV_PREFIX):
            continue
        field_name = key[len(utils.ENV_PREFIX) :].lower()
        if field_name in META_ENV_FIELDS:
            continue

        target_type = _GLOBAL_FIELDS.get(field_name)
        if target_type is not None:
            config[field_name] = (
                utils.coerce_bool(value) if target_type is bool else value
            )
            continue

        role, _, role_field = field_name.partition("_")
        if role in _ROLE_NAMES and role_field in _ROLE_FIELDS:
            models.setdefault(role, {})[role_field] = value

    if models:
        config["models"] = models
    return config


# --- File loading helpers ---


def _read_toml(path: Path) -> dict[str, Any]:
    """Safely read a TOML file, returning empty dict on any error.

    Args:
        path: Path to the TOML file to read.

    Returns:
        Parsed TOML data as dictionary, or empty dict if file missing/invalid.
    """
    if not path.exists():
        return {}

    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except Exception:
        # Silently handle any parsing errors - return empty dict
        return {}


def load_pyproject(project_root: Path | str | None = None) -> Mapping[str, Any]:
    """Load the ``[tool.rolecall]`` table from the project's pyproject.toml.

    Args:
        project_root: Directory holding pyproject.toml. Detected when None.

    Returns:
        Configuration dictionary from the [tool.rolecall] section.
    """
    data = _read_toml(utils.get_pyproject_path(project_root))
    section = data.get("tool", {}).get(CONFIG_TOOL_NAME, {})
    return dict(section) if isinstance(section, dict) else {}


def load_home() -> Mapping[str, Any]:
    """Load configuration from the user's home directory config file.

    The home file holds rolecall settings at top level (no ``[tool]`` table).
    """
    return _read_toml(utils.get_home_config_path())
