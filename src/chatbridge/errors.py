"""Exception hierarchy for chatbridge."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ChatbridgeError(Exception):
    """Base exception for all chatbridge errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ChatbridgeError):
    """Configuration validation or resolution failed."""


class CatalogError(ChatbridgeError):
    """The model catalog could not be loaded."""


# --- Input validation (raised before any vendor call) ---


class InputError(ChatbridgeError):
    """A request, message or content part is malformed."""


class MalformedDataURLError(InputError):
    """A string is not a ``data:<mime>;base64,<payload>`` URL."""


class UnknownExtensionError(InputError):
    """No MIME type is known for a file extension."""


class InvalidSchemaError(InputError):
    """A JSON Schema is not valid."""


class InvalidMessageError(InputError):
    """A message combines content, tool call and tool response illegally."""


class NoValidContentError(InputError):
    """A message translates to no vendor content at all."""


class UnknownRoleError(InputError):
    """A message role is not one of system, human, ai or tool."""


class InvalidToolArgumentsError(InputError):
    """Tool-call arguments are not a JSON object."""


class UnsupportedContentError(InputError):
    """A content part cannot be expressed for the target vendor."""


# --- Resolution (raised by the router) ---


class ResolutionError(ChatbridgeError):
    """A request could not be routed to a provider."""


class UnknownModelError(ResolutionError):
    """The requested model is not in the catalog."""


class UnsupportedProviderError(ResolutionError):
    """The catalog names a provider with no registered adapter."""


# --- Vendor / transport ---


class APIError(ChatbridgeError):
    """A vendor call failed.

    Carries the provider, the phase that failed (``create`` or ``stream``) and
    the HTTP status code when one could be found in the exception chain.
    Retrying is the vendor client's job, so no retry metadata is attached.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.provider = provider
        self.phase = phase


class StreamError(APIError):
    """A vendor stream or the caller's streamer callback failed."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
