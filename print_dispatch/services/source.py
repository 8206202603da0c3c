"""Turn an image source (bytes, data: URL or http(s) URL) into raw bytes."""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional, Union

import httpx

from print_dispatch.errors import SourceError

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str]


def _sniff_mime(data: bytes) -> str:
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:2] == b"\xff\xd8":
        return "image/jpeg"
    if data[:4] in (b"II*\x00", b"MM\x00*"):
        return "image/tiff"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


def to_data_url(data: bytes) -> str:
    return f"data:{_sniff_mime(data)};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(url: str) -> bytes:
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:image/") or ";base64" not in header:
        raise SourceError("Invalid base64 data URL")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SourceError("Invalid base64 data URL") from exc


def absolute_url(url: str, base_url: Optional[str]) -> str:
    """Make a site-relative URL (``/uploads/x.jpg``) absolute for a remote peer."""
    if url.startswith("/") and base_url:
        return base_url.rstrip("/") + url
    return url


def describe(source: ImageSource) -> str:
    """Loggable description that never dumps inline image data."""
    if isinstance(source, bytes):
        return f"<{len(source)} bytes>"
    if source.startswith("data:"):
        return "data:image/[base64-data]"
    return source


async def fetch_source(
    source: ImageSource,
    timeout: float = 30.0,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """Return the raw image bytes for *source*.

    Raises SourceError when the URL scheme is unsupported, the download fails
    or the payload is empty.
    """
    if isinstance(source, bytes):
        data = source
    elif source.startswith("data:"):
        data = decode_data_url(source)
    elif source.startswith(("http://", "https://")):
        data = await _download(source, timeout, client)
    else:
        raise SourceError(f"Unsupported image source: {describe(source)}")

    if not data:
        raise SourceError("Empty image data")
    logger.info("Image source %s resolved to %d bytes", describe(source), len(data))
    return data


async def _download(url: str, timeout: float, client: Optional[httpx.AsyncClient]) -> bytes:
    logger.info("Fetching image from URL: %s", url)
    try:
        if client is not None:
            response = await client.get(url, timeout=timeout, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own:
                response = await own.get(url)
    except httpx.HTTPError as exc:
        raise SourceError(f"Failed to fetch image: {exc}") from exc

    if response.status_code >= 400:
        raise SourceError(
            f"Failed to fetch image: {response.status_code} {response.reason_phrase}"
        )
    return response.content
