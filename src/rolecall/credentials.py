"""Credential resolution: session store, then environment, then project ``.env``."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values

from rolecall.errors import MissingCredentialError, NotConfiguredError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

#: Backend that authenticates through a locally logged-in CLI.
NO_AUTH_PROVIDER = "claude-code"
NO_AUTH_SENTINEL = "claude-code-no-key-required"

#: Backends with alternate authentication (local network, cloud IAM).
OPTIONAL_CREDENTIAL_PROVIDERS: frozenset[str] = frozenset({"ollama", "bedrock"})

CREDENTIAL_ENV_VARS: Mapping[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
    "perplexity": "PERPLEXITY_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "xai": "XAI_API_KEY",
    "ollama": "OLLAMA_API_KEY",
    "bedrock": "AWS_ACCESS_KEY_ID",
    "vertex": "GOOGLE_API_KEY",
    NO_AUTH_PROVIDER: "CLAUDE_CODE_API_KEY",
}


@dataclass(frozen=True)
class Session:
    """Caller-scoped secret store checked before the process environment.

    Typically populated from an MCP client's environment block.
    """

    env: Mapping[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        """Return a redacted representation listing only variable names."""
        return f"Session(env=<{', '.join(sorted(self.env))}>)"


def _session_env(session: Session | Mapping[str, Any] | None) -> Mapping[str, Any]:
    if session is None:
        return {}
    if isinstance(session, Session):
        return session.env
    env = getattr(session, "env", None)
    if env is not None and hasattr(env, "get"):
        return env
    return session if hasattr(session, "get") else {}


def _is_placeholder(value: str) -> bool:
    upper = value.upper()
    return "KEY_HERE" in upper or (upper.startswith("YOUR_") and upper.endswith("_KEY"))


def resolve_env_variable(
    name: str,
    session: Session | Mapping[str, Any] | None = None,
    project_root: Path | str | None = None,
) -> str | None:
    """Return the first non-empty value of *name* by precedence.

    Order: session store, process environment, ``<project_root>/.env``.
    Placeholder values (``YOUR_..._KEY``, ``..._KEY_HERE``) count as unset.
    """
    candidates: list[Any] = [_session_env(session).get(name), os.environ.get(name)]
    for value in candidates:
        if isinstance(value, str) and value.strip() and not _is_placeholder(value):
            return value.strip()

    if project_root is not None:
        env_file = Path(project_root) / ".env"
        if env_file.is_file():
            value = dotenv_values(env_file).get(name)
            if isinstance(value, str) and value.strip() and not _is_placeholder(value):
                return value.strip()
    return None


def resolve_credential(
    provider: str,
    *,
    session: Session | Mapping[str, Any] | None = None,
    project_root: Path | str | None = None,
    env_var: str | None = None,
) -> str:
    """Resolve the API credential for *provider*.

    *env_var* names the variable to read for backends outside
    ``CREDENTIAL_ENV_VARS``, usually an adapter's ``credential_env_var``.
    The built-in mapping wins for known backends.

    Returns:
        The secret; the no-auth sentinel for ``claude-code``; ``""`` for
        backends that tolerate a missing key.

    Raises:
        NotConfiguredError: If *provider* has no credential mapping and no
            *env_var* was given.
        MissingCredentialError: If a required credential is unset.
    """
    name = provider.strip().lower()
    if name == NO_AUTH_PROVIDER:
        return NO_AUTH_SENTINEL

    env_var = CREDENTIAL_ENV_VARS.get(name) or env_var
    if not env_var:
        raise NotConfiguredError(
            f"Unknown provider {provider!r} for API key resolution",
            hint=(
                f"Known providers: {', '.join(sorted(CREDENTIAL_ENV_VARS))}. "
                "Custom adapters declare credential_env_var."
            ),
            provider=provider,
        )

    value = resolve_env_variable(env_var, session, project_root)
    if value:
        return value
    if name in OPTIONAL_CREDENTIAL_PROVIDERS:
        logger.debug("No %s set for %s; relying on alternate auth", env_var, name)
        return ""

    raise MissingCredentialError(
        f"Required API key {env_var} for provider {name!r} is not set in "
        "session, environment, or .env file",
        hint=f"Set {env_var} or add it to the project's .env file.",
        provider=name,
        env_var=env_var,
    )
