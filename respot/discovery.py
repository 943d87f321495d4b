"""HTTP endpoint through which Connect clients hand over login credentials."""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl

from aiohttp import web
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .authentication import Credentials
from .config import DeviceType
from .diffie_hellman import DhLocalKeys

log = logging.getLogger(__name__)

LIBRARY_VERSION = "0.1.0"

_STOP = object()


@dataclass
class DiscoveryConfig:
    """What the device announces about itself."""

    device_id: str
    name: str = "Librespot"
    device_type: DeviceType = field(default_factory=DeviceType.default)


def _b64decode(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"invalid base64 in {what}: {exc}") from None


def _param(params: Mapping[str, str], name: str) -> str:
    try:
        return params[name]
    except KeyError:
        raise ValueError(f"missing parameter {name!r}") from None


class RequestHandler:
    """Answers ``getInfo`` and ``addUser`` requests."""

    def __init__(self, config: DiscoveryConfig, keys: Optional[DhLocalKeys] = None) -> None:
        self.config = config
        self.keys = keys if keys is not None else DhLocalKeys.random()
        self.credentials: "asyncio.Queue[object]" = asyncio.Queue()

    def handle_get_info(self) -> Dict[str, Any]:
        """Describe this device."""
        return {
            "status": 101,
            "statusString": "ERROR-OK",
            "spotifyError": 0,
            "version": "2.7.1",
            "deviceID": self.config.device_id,
            "remoteName": self.config.name,
            "activeUser": "",
            "publicKey": base64.b64encode(self.keys.public_key()).decode("ascii"),
            "deviceType": str(self.config.device_type),
            "libraryVersion": LIBRARY_VERSION,
            "accountReq": "PREMIUM",
            "brandDisplayName": "librespot",
            "modelDisplayName": "librespot",
            "resolverVersion": "0",
            "groupStatus": "NONE",
            "voiceSupport": "NO",
        }

    def handle_add_user(self, params: Mapping[str, str]) -> Dict[str, Any]:
        """Decrypt the credentials sent by a client and queue them."""
        username = _param(params, "userName")
        encrypted_blob = _b64decode(_param(params, "blob"), "blob")
        client_key = _b64decode(_param(params, "clientKey"), "clientKey")

        if len(encrypted_blob) < 16 + 20:
            raise ValueError("blob too short")

        shared_key = self.keys.shared_secret(client_key)

        iv = encrypted_blob[:16]
        encrypted = encrypted_blob[16:-20]
        cksum = encrypted_blob[-20:]

        base_key = hashlib.sha1(shared_key).digest()[:16]
        checksum_key = hmac.new(base_key, b"checksum", hashlib.sha1).digest()
        encryption_key = hmac.new(base_key, b"encryption", hashlib.sha1).digest()

        mac = hmac.new(checksum_key, encrypted, hashlib.sha1).digest()
        if not hmac.compare_digest(mac, cksum):
            log.warning("Login error for user %r: MAC mismatch", username)
            return {"status": 102, "spotifyError": 1, "statusString": "ERROR-MAC"}

        decryptor = Cipher(algorithms.AES(encryption_key[:16]), modes.CTR(iv)).decryptor()
        decrypted = decryptor.update(encrypted) + decryptor.finalize()

        credentials = Credentials.with_blob(username, decrypted, self.config.device_id)
        self.credentials.put_nowait(credentials)

        return {"status": 101, "spotifyError": 0, "statusString": "ERROR-OK"}

    def handle(
        self, method: str, query: str, body: Union[bytes, str]
    ) -> Tuple[int, str]:
        """Route a request; return the HTTP status and the response body."""
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")

        params: Dict[str, str] = dict(parse_qsl(query or "", keep_blank_values=True))
        method = method.upper()
        if method != "GET":
            log.debug("%s %s", method, params)
        params.update(parse_qsl(body, keep_blank_values=True))

        action = params.get("action")
        try:
            if method == "GET" and action == "getInfo":
                return 200, json.dumps(self.handle_get_info())
            if method == "POST" and action == "addUser":
                return 200, json.dumps(self.handle_add_user(params))
        except ValueError as exc:
            log.warning("Bad discovery request: %s", exc)
            return 400, ""
        return 404, ""


def create_app(handler: RequestHandler) -> web.Application:
    """Build an aiohttp application that serves ``handler`` on every path."""

    async def view(request: web.Request) -> web.Response:
        body = await request.read()
        status, text = handler.handle(request.method, request.query_string, body)
        if not text:
            return web.Response(status=status)
        return web.Response(status=status, text=text, content_type="application/json")

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", view)
    return app


class Discovery:
    """Serves discovery requests and yields the credentials clients send."""

    def __init__(
        self,
        device_id: str,
        name: str = "Librespot",
        device_type: DeviceType = DeviceType.SPEAKER,
        port: int = 0,
    ) -> None:
        self.handler = RequestHandler(DiscoveryConfig(device_id, name, device_type))
        self.port = port
        self._runner: Optional[web.AppRunner] = None
        self._stopped = False

    async def start(self) -> None:
        """Start listening; ``port`` holds the bound port afterwards."""
        if self._runner is not None:
            raise RuntimeError("discovery server already started")
        runner = web.AppRunner(create_app(self.handler))
        await runner.setup()
        site = web.TCPSite(runner, "0.0.0.0", self.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        self.port = runner.addresses[0][1]
        log.debug("Zeroconf server listening on 0.0.0.0:%d", self.port)

    async def stop(self) -> None:
        """Shut the server down and end iteration."""
        if self._runner is not None:
            log.debug("Shutting down discovery server")
            await self._runner.cleanup()
            self._runner = None
        if not self._stopped:
            self._stopped = True
            self.handler.credentials.put_nowait(_STOP)

    async def __aenter__(self) -> "Discovery":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def __aiter__(self) -> "Discovery":
        return self

    async def __anext__(self) -> Credentials:
        item = await self.handler.credentials.get()
        if item is _STOP:
            self.handler.credentials.put_nowait(_STOP)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]