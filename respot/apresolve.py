"""Looking up an access point to connect to."""

from __future__ import annotations

import json
import logging
from typing import Iterable, Optional
from urllib.parse import urlsplit

import aiohttp

log = logging.getLogger(__name__)

APRESOLVE_ENDPOINT = "http://apresolve.spotify.com:80"
AP_FALLBACK = "ap.spotify.com:443"


def _port_of(ap: str) -> Optional[int]:
    try:
        return urlsplit("//" + ap).port
    except ValueError:
        return None


def select_ap(
    ap_list: Iterable[str], proxy: Optional[str] = None, ap_port: Optional[int] = None
) -> str:
    """Pick an access point; with a proxy or port set, only one on the wanted port."""
    port = 443 if ap_port is None else ap_port
    if ap_port is not None or proxy is not None:
        chosen = next((ap for ap in ap_list if _port_of(ap) == port), None)
    else:
        chosen = next(iter(ap_list), None)
    if chosen is None:
        raise ValueError("empty AP List")
    return chosen


async def try_apresolve(proxy: Optional[str] = None, ap_port: Optional[int] = None) -> str:
    """Ask the resolver service for an access point."""
    async with aiohttp.ClientSession() as session:
        async with session.get(APRESOLVE_ENDPOINT, proxy=proxy) as response:
            body = await response.read()

    data = json.loads(body)
    ap_list = data.get("ap_list") if isinstance(data, dict) else None
    if not isinstance(ap_list, list) or not all(isinstance(ap, str) for ap in ap_list):
        raise ValueError("invalid AP resolve response")
    return select_ap(ap_list, proxy, ap_port)


async def apresolve(proxy: Optional[str] = None, ap_port: Optional[int] = None) -> str:
    """Resolve an access point, falling back to a fixed one on any failure."""
    try:
        return await try_apresolve(proxy, ap_port)
    except Exception as exc:
        log.warning("Failed to resolve Access Point: %s", exc)
        log.warning('Using fallback "%s"', AP_FALLBACK)
        return AP_FALLBACK