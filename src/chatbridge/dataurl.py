"""Inline media as ``data:<mime>;base64,<payload>`` URLs."""

from __future__ import annotations

import base64
import binascii
import mimetypes
from pathlib import Path

from chatbridge.errors import MalformedDataURLError, UnknownExtensionError

_PREFIX = "data:"
_SEPARATOR = ";base64,"


def encode(mime_type: str, data: bytes) -> str:
    """Encode *data* as a data URL with the given MIME type."""
    return f"{_PREFIX}{mime_type}{_SEPARATOR}{base64.b64encode(data).decode('ascii')}"


def encode_from_path(path: str | Path) -> tuple[str, str]:
    """Read a file and encode it as a data URL.

    The MIME type is derived from the file extension.

    Returns:
        ``(data_url, mime_type)``.

    Raises:
        UnknownExtensionError: No MIME type is registered for the extension.
    """
    p = Path(path)
    mime_type = mimetypes.guess_type(p.name)[0]
    if not mime_type:
        raise UnknownExtensionError(
            f"Unknown file extension: {p}",
            hint="Use a file with a standard extension (e.g. .png, .pdf).",
        )
    return encode(mime_type, p.read_bytes()), mime_type


def is_data_url(value: str) -> bool:
    """Cheap structural check: ``data:`` prefix and a ``;base64,`` separator.

    The payload is not validated.
    """
    return value.startswith(_PREFIX) and _SEPARATOR in value


def split(data_url: str) -> tuple[str, str]:
    """Split a data URL into ``(mime_type, base64_payload)`` without decoding."""
    if not is_data_url(data_url):
        raise MalformedDataURLError(f"Not a data URL: {_preview(data_url)}")
    pieces = data_url[len(_PREFIX) :].split(_SEPARATOR)
    if len(pieces) != 2:
        raise MalformedDataURLError(f"Invalid data URL: {_preview(data_url)}")
    return pieces[0], pieces[1]


def decode(data_url: str) -> tuple[bytes, str]:
    """Decode a data URL into ``(data, mime_type)``."""
    mime_type, payload = split(data_url)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedDataURLError(
            f"Base64 decode failed for data URL: {_preview(data_url)}"
        ) from e
    return data, mime_type


def _preview(value: str, limit: int = 48) -> str:
    """Shorten a possibly huge data URL for error messages."""
    return value if len(value) <= limit else f"{value[:limit]}..."
