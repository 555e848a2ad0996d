"""Provider protocol: the interface every vendor adapter implements."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from chatbridge.chat import Request, Response, Streamer


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: generate, generate_streaming, aclose."""

    @property
    def name(self) -> str:
        """Catalog provider name this adapter serves."""
        ...

    async def generate(self, request: Request) -> Response:
        """Make one blocking vendor call and translate the result."""
        ...

    async def generate_streaming(
        self, request: Request, streamer: Streamer
    ) -> Response:
        """Stream the vendor response, forwarding text deltas to *streamer*."""
        ...

    async def aclose(self) -> None:
        """Close underlying client resources."""
        ...
