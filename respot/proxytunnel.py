"""Opening a tunnel through an HTTP proxy with CONNECT."""

from __future__ import annotations

import asyncio
import re
from typing import Any, Tuple

_MAX_HEADERS = 16
_STATUS_RE = re.compile(r"HTTP/1\.[01] ([0-9]{3})(?: (.*))?")


class ProxyError(OSError):
    """Raised when the proxy refuses or garbles the tunnel request."""


async def proxy_connect(
    reader: asyncio.StreamReader,
    writer: Any,
    connect_host: str,
    connect_port: str,
) -> Tuple[asyncio.StreamReader, Any]:
    """Ask the proxy behind ``reader``/``writer`` to tunnel to the given host and port."""
    writer.write(f"CONNECT {connect_host}:{connect_port} HTTP/1.1\r\n\r\n".encode("ascii"))
    await writer.drain()

    try:
        head = await reader.readuntil(b"\r\n\r\n")
    except asyncio.IncompleteReadError:
        raise ProxyError("Early EOF from proxy") from None
    except asyncio.LimitOverrunError:
        raise ProxyError("Response from proxy is too large") from None

    lines = head[:-4].decode("latin-1").split("\r\n")
    match = _STATUS_RE.fullmatch(lines[0])
    if match is None:
        raise ProxyError("Malformed response from proxy")

    headers = lines[1:]
    if len(headers) > _MAX_HEADERS:
        raise ProxyError("Too many headers in response from proxy")
    if any(":" not in line for line in headers):
        raise ProxyError("Malformed response from proxy")

    code = int(match.group(1))
    if code != 200:
        reason = match.group(2)
        if reason is None:
            reason = "no reason"
        raise ProxyError(f"Proxy responded with {code}: {reason}")

    return reader, writer