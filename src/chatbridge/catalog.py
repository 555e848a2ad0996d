"""Model catalog: provider routing, token limits and per-token prices.

The catalog is loaded once and never mutated, so it is shared across
concurrent calls without locking.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from functools import cache
from importlib import resources
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from chatbridge.errors import CatalogError

if TYPE_CHECKING:
    from chatbridge.chat import Usage

logger = logging.getLogger(__name__)

_DEFAULT_RESOURCE = "data/modelcatalog.json"


class ModelInfo(BaseModel):
    """One catalog entry. Field names match the catalog file keys."""

    model_config = ConfigDict(frozen=True, extra="ignore", protected_namespaces=())

    model: str
    provider: str
    max_tokens: int = 0
    max_input_tokens: int = 0
    max_output_tokens: int = 0
    input_cost_per_token: float = 0.0
    output_cost_per_token: float = 0.0
    cache_creation_input_token_cost: float = 0.0
    cache_read_input_token_cost: float = 0.0
    supports_web_search: bool = False
    supports_vision: bool = False
    supports_pdf_input: bool = False


_ENTRIES = TypeAdapter(list[ModelInfo])


def compute_cost(info: ModelInfo, usage: Usage) -> float:
    """Cost in USD of *usage* at *info*'s input and output rates.

    Reasoning, cache-creation and cached tokens are not priced.
    """
    return (
        info.input_cost_per_token * usage.input_tokens
        + info.output_cost_per_token * usage.output_tokens
    )


class ModelCatalog:
    """Immutable, ordered collection of ``ModelInfo`` entries."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[ModelInfo] = ()) -> None:
        self._entries: tuple[ModelInfo, ...] = tuple(entries)

    @classmethod
    def from_entries(cls, entries: Iterable[ModelInfo | dict]) -> ModelCatalog:
        """Build a catalog from ``ModelInfo`` objects or plain dicts."""
        try:
            return cls(
                e if isinstance(e, ModelInfo) else ModelInfo.model_validate(e)
                for e in entries
            )
        except ValidationError as e:
            raise CatalogError(f"Invalid model catalog entry: {e}") from e

    @classmethod
    def from_json(cls, text: str | bytes) -> ModelCatalog:
        """Parse a catalog from a JSON array of entry objects."""
        try:
            return cls(_ENTRIES.validate_json(text))
        except ValidationError as e:
            raise CatalogError(
                f"Malformed model catalog: {e}",
                hint="The catalog must be a JSON array of model objects.",
            ) from e

    @classmethod
    def from_path(cls, path: str | Path) -> ModelCatalog:
        """Load a catalog file."""
        p = Path(path)
        try:
            text = p.read_bytes()
        except OSError as e:
            raise CatalogError(f"Cannot read model catalog {p}: {e}") from e
        return cls.from_json(text)

    def lookup(self, model: str) -> ModelInfo | None:
        """Return the first entry matching *model*, or None.

        An entry matches when its id equals *model*, or when its id is
        namespaced (``provider/model``) and the part after the first ``/``
        equals *model*.
        """
        for info in self._entries:
            if info.model == model:
                return info
            _, sep, bare = info.model.partition("/")
            if sep and bare == model:
                return info
        return None

    def annotate_cost(self, model: str, usage: Usage) -> bool:
        """Write the cost of *usage* into it; return False if *model* is unknown."""
        info = self.lookup(model)
        if info is None:
            return False
        usage.cost = compute_cost(info, usage)
        return True

    def __iter__(self) -> Iterator[ModelInfo]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, model: object) -> bool:
        return isinstance(model, str) and self.lookup(model) is not None

    def __repr__(self) -> str:
        return f"ModelCatalog(<{len(self._entries)} models>)"


@cache
def default_catalog() -> ModelCatalog:
    """Return the bundled catalog, loaded once per process."""
    text = resources.files("chatbridge").joinpath(_DEFAULT_RESOURCE).read_bytes()
    catalog = ModelCatalog.from_json(text)
    logger.debug("Loaded default model catalog with %d models", len(catalog))
    return catalog
