import asyncio
from unittest.mock import patch

import pytest

from respot.channel import ChannelError, ChannelManager, DataEvent, HeaderEvent


def _packet(channel_id: int, payload: bytes) -> bytes:
    return channel_id.to_bytes(2, "big") + payload


async def _collect(channel):
    return [event async for event in channel]


def test_allocate_hands_out_consecutive_ids():
    manager = ChannelManager()
    first, _ = manager.allocate()
    second, _ = manager.allocate()
    assert (first, second) == (0, 1)


@pytest.mark.asyncio
async def test_header_and_data_events():
    manager = ChannelManager()
    seq, channel = manager.allocate()
    manager.dispatch(0x9, _packet(seq, b"\x00\x03\x01ab\x00\x00"))
    manager.dispatch(0x9, _packet(seq, b"hello"))
    manager.dispatch(0x9, _packet(seq, b""))
    events = await asyncio.wait_for(_collect(channel), 1)
    assert events == [HeaderEvent(1, b"ab"), DataEvent(b"hello")]


@pytest.mark.asyncio
async def test_headers_across_packets_then_data():
    manager = ChannelManager()
    seq, channel = manager.allocate()
    manager.dispatch(0x9, _packet(seq, b"\x00\x03\x01ab\x00\x04\x02xyz"))
    manager.dispatch(0x9, _packet(seq, b"\x00\x02\x03z\x00\x00"))
    manager.dispatch(0x9, _packet(seq, b"hello"))
    manager.dispatch(0x9, _packet(seq, b"world"))
    manager.dispatch(0x9, _packet(seq, b""))

    headers = [h async for h in channel.headers()]
    data = [d async for d in channel.data()]
    assert headers == [(1, b"ab"), (2, b"xyz"), (3, b"z")]
    assert data == [b"hello", b"world"]


@pytest.mark.asyncio
async def test_data_skips_headers():
    manager = ChannelManager()
    seq, channel = manager.allocate()
    manager.dispatch(0x9, _packet(seq, b"\x00\x03\x01ab\x00\x00"))
    manager.dispatch(0x9, _packet(seq, b"chunk"))
    manager.dispatch(0x9, _packet(seq, b""))
    data = [d async for d in channel.data()]
    assert data == [b"chunk"]


@pytest.mark.asyncio
async def test_error_packet_closes_channel():
    manager = ChannelManager()
    seq, channel = manager.allocate()
    manager.dispatch(0xA, _packet(seq, b"\x00\x01"))
    with pytest.raises(ChannelError):
        await channel.__anext__()
    with pytest.raises(RuntimeError):
        await channel.__anext__()


@pytest.mark.asyncio
async def test_shutdown_fails_waiting_channel():
    manager = ChannelManager()
    _, channel = manager.allocate()
    manager.shutdown()
    with pytest.raises(ChannelError):
        await asyncio.wait_for(channel.__anext__(), 1)


@pytest.mark.asyncio
async def test_channels_after_shutdown_receive_nothing():
    manager = ChannelManager()
    manager.shutdown()
    seq, channel = manager.allocate()
    manager.dispatch(0x9, _packet(seq, b"\x00\x00"))
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(channel.__anext__(), 0.05)


@pytest.mark.asyncio
async def test_packets_for_other_ids_are_not_delivered():
    manager = ChannelManager()
    seq, channel = manager.allocate()
    manager.dispatch(0x9, _packet(seq + 5, b"\x00\x03\x01ab\x00\x00"))
    manager.dispatch(0x9, _packet(seq, b"\x00\x00"))
    manager.dispatch(0x9, _packet(seq, b""))
    events = await asyncio.wait_for(_collect(channel), 1)
    assert events == []


def test_short_packet_is_rejected():
    manager = ChannelManager()
    with pytest.raises(ValueError):
        manager.dispatch(0x9, b"\x00")


def test_download_rate_estimate():
    manager = ChannelManager()
    assert manager.get_download_rate_estimate() == 0
    with patch("respot.channel.time.monotonic", side_effect=[0.0, 0.5, 2.0]):
        manager.dispatch(0x9, _packet(7, bytes(100)))
        manager.dispatch(0x9, _packet(7, bytes(100)))
        assert manager.get_download_rate_estimate() == 0
        manager.dispatch(0x9, _packet(7, bytes(100)))
    assert manager.get_download_rate_estimate() == 100