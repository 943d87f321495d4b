"""Requesting the decryption keys of audio files."""

from __future__ import annotations

import asyncio
import logging
import struct
import threading
from dataclasses import dataclass
from typing import Callable, Dict

from .spotify_id import FileId, SpotifyId
from .util import SeqGenerator

log = logging.getLogger(__name__)

_CMD_REQUEST_KEY = 0xC
_CMD_AES_KEY = 0xD
_CMD_AES_KEY_ERROR = 0xE


class AudioKeyError(Exception):
    """Raised when an audio key could not be obtained."""


@dataclass(frozen=True)
class AudioKey:
    """A 16-byte AES key of an audio file."""

    key: bytes

    def __post_init__(self) -> None:
        if len(self.key) != 16:
            raise ValueError(f"AudioKey must be 16 bytes, got {len(self.key)}")
        object.__setattr__(self, "key", bytes(self.key))


class AudioKeyManager:
    """Sends key requests and matches the replies to them."""

    def __init__(self, send_packet: Callable[[int, bytes], None]) -> None:
        self._send_packet = send_packet
        self._lock = threading.Lock()
        self._sequence = SeqGenerator(0, 32)
        self._pending: Dict[int, "asyncio.Future[AudioKey]"] = {}

    def dispatch(self, cmd: int, data: bytes) -> None:
        """Handle a key reply packet."""
        data = bytes(data)
        if len(data) < 4:
            raise ValueError("audio key packet too short")
        seq = int.from_bytes(data[:4], "big")
        body = data[4:]

        with self._lock:
            future = self._pending.pop(seq, None)
        if future is None or future.done():
            return

        if cmd == _CMD_AES_KEY:
            try:
                future.set_result(AudioKey(body))
            except ValueError:
                future.set_exception(AudioKeyError("malformed audio key"))
        elif cmd == _CMD_AES_KEY_ERROR:
            log.warning("error audio key %s", body[:2].hex(" "))
            future.set_exception(AudioKeyError("audio key request failed"))
        else:
            future.set_exception(AudioKeyError(f"unexpected reply command {cmd:#x}"))

    async def request(self, track: SpotifyId, file: FileId) -> AudioKey:
        """Request the key of ``file`` belonging to ``track``."""
        future: "asyncio.Future[AudioKey]" = asyncio.get_running_loop().create_future()
        with self._lock:
            seq = self._sequence.get()
            self._pending[seq] = future
        self._send_key_request(seq, track, file)
        return await future

    def _send_key_request(self, seq: int, track: SpotifyId, file: FileId) -> None:
        data = file.raw + track.to_raw() + struct.pack(">IH", seq, 0)
        self._send_packet(_CMD_REQUEST_KEY, data)