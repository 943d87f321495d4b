"""Multiplexed data channels carried over the access point connection."""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Tuple, Union

from .util import SeqGenerator

log = logging.getLogger(__name__)

_ONE_SECOND_IN_MS = 1000
_CMD_CHANNEL_ERROR = 0xA

_CLOSED = object()


class ChannelError(Exception):
    """Raised when a channel fails or its connection goes away."""


@dataclass(frozen=True)
class HeaderEvent:
    """A header of a channel, identified by a one-byte id."""

    header_id: int
    data: bytes


@dataclass(frozen=True)
class DataEvent:
    """A chunk of payload data received on a channel."""

    data: bytes


ChannelEvent = Union[HeaderEvent, DataEvent]


class _State(enum.Enum):
    HEADER = enum.auto()
    DATA = enum.auto()
    CLOSED = enum.auto()


class Channel:
    """The receiving end of one channel: an async iterator of header and data events."""

    def __init__(self, queue: "asyncio.Queue[object]") -> None:
        self._queue = queue
        self._state = _State.HEADER
        self._header_buf = b""
        self._pushed_back: Optional[ChannelEvent] = None

    async def _recv_packet(self) -> bytes:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so later reads fail the same way.
            self._queue.put_nowait(_CLOSED)
            raise ChannelError("channel connection closed")
        cmd, packet = item
        if cmd == _CMD_CHANNEL_ERROR:
            code = int.from_bytes(packet[:2], "big")
            log.error("channel error: %d %d", len(packet), code)
            self._state = _State.CLOSED
            raise ChannelError(f"channel error {code}")
        return packet

    def __aiter__(self) -> "Channel":
        return self

    async def __anext__(self) -> ChannelEvent:
        if self._pushed_back is not None:
            event, self._pushed_back = self._pushed_back, None
            return event

        while True:
            if self._state is _State.CLOSED:
                raise RuntimeError("Polling already terminated channel")

            if self._state is _State.HEADER:
                data = self._header_buf or await self._recv_packet()
                if len(data) < 2:
                    raise ChannelError("truncated channel header")
                length = int.from_bytes(data[:2], "big")
                if length == 0:
                    if len(data) != 2:
                        raise ChannelError("unexpected data after header terminator")
                    self._header_buf = b""
                    self._state = _State.DATA
                    continue
                if len(data) < 2 + length:
                    raise ChannelError("truncated channel header")
                header_id = data[2]
                header_data = data[3 : 2 + length]
                self._header_buf = data[2 + length :]
                return HeaderEvent(header_id, header_data)

            data = await self._recv_packet()
            if not data:
                self._state = _State.CLOSED
                raise StopAsyncIteration
            return DataEvent(data)

    async def headers(self) -> AsyncIterator[Tuple[int, bytes]]:
        """Yield ``(header_id, data)`` pairs until the header section ends."""
        while True:
            try:
                event = await self.__anext__()
            except StopAsyncIteration:
                return
            if isinstance(event, HeaderEvent):
                yield event.header_id, event.data
            else:
                self._pushed_back = event
                return

    async def data(self) -> AsyncIterator[bytes]:
        """Yield the payload chunks, skipping any headers."""
        async for event in self:
            if isinstance(event, DataEvent):
                yield event.data


class ChannelManager:
    """Allocates channel ids and routes incoming channel packets."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sequence = SeqGenerator(0, 16)
        self._channels: Dict[int, "asyncio.Queue[object]"] = {}
        self._download_rate_estimate = 0
        self._measurement_start: Optional[float] = None
        self._measurement_bytes = 0
        self._invalid = False

    def allocate(self) -> Tuple[int, Channel]:
        """Reserve a new channel id and return it with its channel."""
        queue: "asyncio.Queue[object]" = asyncio.Queue()
        with self._lock:
            seq = self._sequence.get()
            if not self._invalid:
                self._channels[seq] = queue
        return seq, Channel(queue)

    def dispatch(self, cmd: int, data: bytes) -> None:
        """Deliver a packet whose first two bytes name the channel."""
        data = bytes(data)
        if len(data) < 2:
            raise ValueError("channel packet too short")
        channel_id = int.from_bytes(data[:2], "big")
        payload = data[2:]

        with self._lock:
            now = time.monotonic()
            if self._measurement_start is None:
                self._measurement_start = now
            else:
                elapsed_ms = int((now - self._measurement_start) * 1000)
                if elapsed_ms > _ONE_SECOND_IN_MS:
                    self._download_rate_estimate = (
                        _ONE_SECOND_IN_MS * self._measurement_bytes // elapsed_ms
                    )
                    self._measurement_start = now
                    self._measurement_bytes = 0

            self._measurement_bytes += len(payload)

            queue = self._channels.get(channel_id)
            if queue is not None:
                queue.put_nowait((cmd, payload))

    def get_download_rate_estimate(self) -> int:
        """Return the latest download rate estimate in bytes per second."""
        with self._lock:
            return self._download_rate_estimate

    def shutdown(self) -> None:
        """Fail every open channel and stop registering new ones."""
        with self._lock:
            self._invalid = True
            for queue in self._channels.values():
                queue.put_nowait(_CLOSED)
            self._channels.clear()