"""Per-call options for ``generate``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from chatbridge.errors import ConfigurationError

if TYPE_CHECKING:
    from chatbridge.catalog import ModelCatalog
    from chatbridge.chat import Streamer


@dataclass(frozen=True)
class Options:
    """Optional per-call features for `generate()`."""

    #: Called once per streamed chunk. Ignored when the request has tools.
    streamer: Streamer | None = None
    #: Override the vendor endpoint (proxies, self-hosted gateways).
    base_url: str | None = None
    #: Catalog used for routing and cost; defaults to the bundled one.
    model_catalog: ModelCatalog | None = None
    #: Enable the vendor's native web-search tool.
    use_search: bool = False
    #: Overrides the provider's API key environment variable.
    api_key: str | None = None
    #: Deadline for the whole call, in seconds.
    timeout_s: float | None = None

    def __post_init__(self) -> None:
        """Validate option shapes early for clear errors."""
        if self.streamer is not None and not callable(self.streamer):
            raise ConfigurationError(
                "streamer must be callable",
                hint="Pass streamer=lambda chunk: print(chunk.content, end='').",
            )
        if self.base_url is not None and not (
            isinstance(self.base_url, str) and self.base_url.strip()
        ):
            raise ConfigurationError(
                "base_url must be a non-empty string",
                hint="Pass base_url='https://my-proxy.example.com/v1'.",
            )
        if self.timeout_s is not None and (
            isinstance(self.timeout_s, bool)
            or not isinstance(self.timeout_s, (int, float))
            or self.timeout_s <= 0
        ):
            raise ConfigurationError(
                f"timeout_s must be a positive number, got {self.timeout_s!r}",
                hint="Pass timeout_s=30 or leave it unset.",
            )

    @property
    def catalog(self) -> ModelCatalog:
        """The injected catalog, or the bundled default."""
        if self.model_catalog is not None:
            return self.model_catalog
        from chatbridge.catalog import default_catalog

        return default_catalog()

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Options(streamer={'set' if self.streamer else None}, "
            f"base_url={self.base_url!r}, use_search={self.use_search}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"timeout_s={self.timeout_s})"
        )

    __repr__ = __str__
