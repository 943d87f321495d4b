import asyncio
import json
import socket

import aiohttp
import pytest

from respot.apresolve import AP_FALLBACK, apresolve, select_ap, try_apresolve

AP_LIST = ["ap-a.example.com:4070", "ap-b.example.com:443", "ap-c.example.com:80"]


async def _start_proxy(body: bytes, requests: list):
    async def handle(reader, writer):
        head = await reader.readuntil(b"\r\n\r\n")
        requests.append(head)
        writer.write(
            b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
            b"Content-Length: %d\r\nConnection: close\r\n\r\n" % len(body)
            + body
        )
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, f"http://127.0.0.1:{port}"


def _unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_select_first_without_proxy_or_port():
    assert select_ap(AP_LIST) == "ap-a.example.com:4070"


def test_select_by_requested_port():
    assert select_ap(AP_LIST, None, 80) == "ap-c.example.com:80"


def test_select_with_proxy_defaults_to_443():
    assert select_ap(AP_LIST, "http://proxy.example.com:3128", None) == "ap-b.example.com:443"


def test_entries_without_port_are_skipped():
    assert select_ap(["ap.example.com", "ap2.example.com:443"], None, 443) == "ap2.example.com:443"


def test_no_matching_port():
    with pytest.raises(ValueError, match="empty AP List"):
        select_ap(AP_LIST, None, 8080)


def test_empty_list():
    with pytest.raises(ValueError, match="empty AP List"):
        select_ap([])


@pytest.mark.asyncio
async def test_try_apresolve_through_proxy():
    requests = []
    server, proxy = await _start_proxy(json.dumps({"ap_list": AP_LIST}).encode(), requests)
    try:
        ap = await asyncio.wait_for(try_apresolve(proxy, None), 5)
    finally:
        server.close()
        await server.wait_closed()
    assert ap == "ap-b.example.com:443"
    assert len(requests) == 1
    assert b"apresolve.spotify.com" in requests[0]


@pytest.mark.asyncio
async def test_try_apresolve_rejects_bad_body():
    server, proxy = await _start_proxy(b"not json", [])
    try:
        with pytest.raises(ValueError):
            await asyncio.wait_for(try_apresolve(proxy, None), 5)
        assert await asyncio.wait_for(apresolve(proxy, None), 5) == AP_FALLBACK
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_try_apresolve_unreachable_proxy_raises():
    proxy = f"http://127.0.0.1:{_unused_port()}"
    with pytest.raises(aiohttp.ClientError):
        await asyncio.wait_for(try_apresolve(proxy, None), 5)


@pytest.mark.asyncio
async def test_apresolve_falls_back():
    proxy = f"http://127.0.0.1:{_unused_port()}"
    assert await asyncio.wait_for(apresolve(proxy, 443), 5) == "ap.spotify.com:443"