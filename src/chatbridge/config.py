"""Configuration: per-provider API key resolution."""

from __future__ import annotations

import os

from dotenv import load_dotenv

from chatbridge.errors import ConfigurationError

load_dotenv()

# Checked in order; the first non-empty variable wins.
_API_KEY_ENV_VARS: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}


def api_key_env_vars(provider: str) -> tuple[str, ...]:
    """Return the environment variables consulted for *provider*'s API key."""
    return _API_KEY_ENV_VARS.get(provider, (f"{provider.upper()}_API_KEY",))


def resolve_api_key(provider: str, explicit: str | None = None) -> str:
    """Return the API key for *provider*.

    An explicit key wins; otherwise the provider's environment variables are
    consulted in order.

    Raises:
        ConfigurationError: No key was supplied or found in the environment.
    """
    if explicit is not None and explicit.strip():
        return explicit.strip()

    env_vars = api_key_env_vars(provider)
    for env_var in env_vars:
        value = os.environ.get(env_var, "").strip()
        if value:
            return value

    raise ConfigurationError(
        f"API key required for {provider}",
        hint=f"Set {env_vars[0]} environment variable or pass Options(api_key=...).",
    )
