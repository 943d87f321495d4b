# respot

Building blocks for a Spotify Connect client, written for `asyncio`.

| Module | What it provides |
| --- | --- |
| `respot.spotify_id` | `SpotifyId`, `FileId`, `SpotifyAudioType`, `SpotifyIdError` |
| `respot.config` | `SessionConfig`, `ConnectConfig`, `DeviceType` |
| `respot.authentication` | `Credentials` |
| `respot.cache` | `Cache`, `SizeLimiter`, `RemoveFileError` |
| `respot.diffie_hellman` | `DhLocalKeys`, `powm` |
| `respot.handshake` | `compute_keys` |
| `respot.channel` | `ChannelManager`, `Channel`, `HeaderEvent`, `DataEvent`, `ChannelError` |
| `respot.audio_key` | `AudioKeyManager`, `AudioKey`, `AudioKeyError` |
| `respot.proxytunnel` | `proxy_connect`, `ProxyError` |
| `respot.apresolve` | `apresolve`, `try_apresolve`, `select_ap` |
| `respot.discovery` | `Discovery`, `RequestHandler`, `DiscoveryConfig`, `create_app` |
| `respot.util` | `SeqGenerator` |

Install with `pip install .`; the tests need the `test` extra.

## Spotify IDs

```python
from respot.spotify_id import SpotifyId, SpotifyAudioType

track = SpotifyId.from_uri("spotify:track:5sWHDYs0csV6RS48xBl0tH")
print(track.audio_type is SpotifyAudioType.TRACK)  # True
print(track.to_base16())  # b39fe8081e1f4c54be38e8d6f9f12bb9
print(track.to_uri())     # spotify:track:5sWHDYs0csV6RS48xBl0tH
```

`SpotifyId` also converts from and to base62 strings and 16 raw bytes
(`from_base62`, `from_raw`, `to_base62`, `to_raw`). Invalid input raises
`SpotifyIdError`, a `ValueError`. A `FileId` wraps 20 bytes and prints as
40 hex characters.

## Credentials and the cache

```python
from respot.authentication import Credentials
from respot.cache import Cache

password = "password"
creds = Credentials.with_password("listener", password)

cache = Cache("cache/credentials", "cache/volume", "cache/audio", 50 * 1024 * 1024)
cache.save_credentials(creds)
cache.save_volume(32768)

restored = cache.credentials()
print(restored.username, cache.volume())
```

`Credentials.with_blob` decrypts the credentials blob a Connect client sends
during discovery. `to_json` and `from_json` store the secret base64 encoded.

Audio files are stored by `FileId` with `save_file`, opened with `file` and
deleted with `remove_file`, which raises `RemoveFileError` on failure. When a
size limit is given, the least recently used files are removed once the audio
directory grows beyond it. Read errors are logged and reported as `None`.

## Device types

```python
from respot.config import DeviceType, ConnectConfig

print(DeviceType.parse("speaker"))   # Speaker
print(ConnectConfig().device_type)   # Speaker
```

`DeviceType.parse` ignores case and raises `ValueError` for unknown names.

## Key exchange

```python
from respot.diffie_hellman import DhLocalKeys
from respot.handshake import compute_keys

ours, theirs = DhLocalKeys.random(), DhLocalKeys.random()
shared = ours.shared_secret(theirs.public_key())
challenge, send_key, recv_key = compute_keys(shared, b"handshake transcript")
```

## Channels

`ChannelManager` hands out channel ids and routes packets whose first two
bytes name the channel. A `Channel` yields `HeaderEvent`s, then `DataEvent`s,
and stops at an empty data packet; `headers()` and `data()` iterate over one
kind only.

```python
import asyncio
from respot.channel import ChannelManager

async def main():
    manager = ChannelManager()
    channel_id, channel = manager.allocate()
    prefix = channel_id.to_bytes(2, "big")
    for packet in (b"\x00\x03\x01ab", b"\x00\x00", b"hello", b""):
        manager.dispatch(0x9, prefix + packet)
    async for event in channel:
        print(event)

asyncio.run(main())
```

`AudioKeyManager` is built around a `send_packet(cmd, data)` callable;
`request(track, file)` sends a key request and waits for the matching reply
passed to `dispatch`.

## Networking helpers

- `apresolve(proxy, ap_port)` asks the resolver service for an access point
  and returns `ap.spotify.com:443` if that fails.
- `proxy_connect(reader, writer, host, port)` issues an HTTP `CONNECT` over
  asyncio streams and raises `ProxyError` unless the proxy answers 200.

## Discovery

`Discovery` serves the zeroconf HTTP endpoint (`getInfo` and `addUser`) and
yields `Credentials` each time a client selects this device:

```python
import asyncio
from respot.config import DeviceType
from respot.discovery import Discovery

async def main():
    async with Discovery("0123456789abcdef", "Living Room", DeviceType.SPEAKER, 0) as discovery:
        print("listening on port", discovery.port)
        async for credentials in discovery:
            print("received credentials for", credentials.username)

asyncio.run(main())
```

`create_app` builds the underlying `aiohttp` application for use in a server
of your own.

## What the package does not do

- It does not announce the device over mDNS; `Discovery` only serves HTTP.
- It does not open or authenticate a session with an access point: there is
  no packet encryption layer, no protocol messages and no session object to
  feed `ChannelManager` and `AudioKeyManager`.
- It has no metadata lookups, audio decoding or playback, and no command-line
  program.