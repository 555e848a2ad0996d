"""Shared provider-side error helpers.

Vendor SDK exceptions are wrapped into APIError with the provider, the failing
phase and any HTTP status code. Retry and backoff stay with the vendor clients.
"""

from __future__ import annotations

import asyncio

import httpx

from chatbridge.config import api_key_env_vars
from chatbridge.errors import APIError, StreamError, _walk_exception_chain


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status", "code"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def _derive_hint(
    exc: BaseException, provider: str, status_code: int | None
) -> str | None:
    """Suggest a fix for auth and connectivity failures."""
    cause_lower = str(exc).lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in cause_lower or "api_key" in cause_lower)
    ):
        env_var = api_key_env_vars(provider)[0]
        return (
            f"Check credentials/permissions (try setting {env_var} or Options.api_key)."
        )
    for e in _walk_exception_chain(exc):
        if isinstance(e, (httpx.TimeoutException, httpx.RequestError)):
            return "Check network connectivity and Options.base_url."
    return None


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    message: str | None = None,
    hint: str | None = None,
) -> APIError:
    """Map vendor SDK exceptions into APIError with provider and phase context."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        if hint is not None and exc.hint is None:
            exc.hint = hint
        return exc

    status_code = extract_status_code(exc)
    derived_hint = hint if hint is not None else _derive_hint(exc, provider, status_code)
    msg = message or f"{provider} {phase} failed"
    err_cls: type[APIError] = StreamError if phase == "stream" else APIError

    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    cause = str(exc)
    return err_cls(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=derived_hint,
        status_code=status_code,
        provider=provider,
        phase=phase,
    )
