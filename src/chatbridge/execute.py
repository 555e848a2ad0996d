"""Request execution: schema checks, streaming decision and cost annotation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chatbridge.chat import Usage
from chatbridge.schema import check_schema, schema_json

if TYPE_CHECKING:
    from chatbridge.chat import Request, Response
    from chatbridge.options import Options
    from chatbridge.providers.base import Provider

logger = logging.getLogger(__name__)


def _check_schemas(request: Request) -> None:
    """Reject invalid tool input schemas and response schemas before any call."""
    for tool in request.tools:
        check_schema(schema_json(tool.input_schema))
    if request.response_schema is not None:
        check_schema(schema_json(request.response_schema))


async def execute_request(
    provider: Provider, request: Request, options: Options
) -> Response:
    """Run *request* on *provider* and return the annotated Response.

    Streams only when a streamer is set and the request declares no tools;
    tool calls are never streamed. The returned Response always carries a
    Usage whose ``cost`` reflects the catalog prices for ``request.model``.
    """
    _check_schemas(request)

    if options.streamer is not None and not request.tools:
        logger.debug(
            "Streaming %s request for model=%s", provider.name, request.model
        )
        response = await provider.generate_streaming(request, options.streamer)
    else:
        if options.streamer is not None:
            logger.debug("Request declares tools; ignoring streamer")
        logger.debug("Blocking %s request for model=%s", provider.name, request.model)
        response = await provider.generate(request)

    response.model = request.model
    if response.usage is None:
        response.usage = Usage()
    if not options.catalog.annotate_cost(request.model, response.usage):
        logger.debug("No catalog prices for model=%s; cost left at 0", request.model)
    return response
