"""Spotify track/episode identifiers and audio file identifiers."""

from __future__ import annotations

import enum
from dataclasses import dataclass

BASE62_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE16_DIGITS = "0123456789abcdef"

_BASE62_VALUES = {c: i for i, c in enumerate(BASE62_DIGITS)}
_BASE16_VALUES = {c: i for i, c in enumerate(BASE16_DIGITS)}

_SIZE = 16
_SIZE_BASE62 = 22
_U128_MASK = (1 << 128) - 1


class SpotifyIdError(ValueError):
    """Raised when a Spotify ID cannot be parsed."""


class SpotifyAudioType(enum.Enum):
    TRACK = "track"
    PODCAST = "episode"
    NON_PLAYABLE = "unknown"

    @classmethod
    def parse(cls, value: str) -> "SpotifyAudioType":
        """Map a URI type component to an audio type; unknown types are non-playable."""
        if value == "track":
            return cls.TRACK
        if value == "episode":
            return cls.PODCAST
        return cls.NON_PLAYABLE

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SpotifyId:
    """A 128-bit Spotify ID together with its audio type."""

    id: int
    audio_type: SpotifyAudioType = SpotifyAudioType.TRACK

    @classmethod
    def from_base16(cls, src: str) -> "SpotifyId":
        """Parse a hex encoded ID."""
        dst = 0
        for c in src:
            try:
                digit = _BASE16_VALUES[c]
            except KeyError:
                raise SpotifyIdError(f"invalid base16 character {c!r}") from None
            dst = ((dst << 4) + digit) & _U128_MASK
        return cls(dst)

    @classmethod
    def from_base62(cls, src: str) -> "SpotifyId":
        """Parse a base62 encoded ID."""
        dst = 0
        for c in src:
            try:
                digit = _BASE62_VALUES[c]
            except KeyError:
                raise SpotifyIdError(f"invalid base62 character {c!r}") from None
            dst = dst * 62 + digit
            if dst > _U128_MASK:
                raise SpotifyIdError("base62 ID does not fit in 128 bits")
        return cls(dst)

    @classmethod
    def from_raw(cls, src: bytes) -> "SpotifyId":
        """Create an ID from 16 big-endian bytes."""
        if len(src) != _SIZE:
            raise SpotifyIdError(f"raw ID must be {_SIZE} bytes, got {len(src)}")
        return cls(int.from_bytes(bytes(src), "big"))

    @classmethod
    def from_uri(cls, src: str) -> "SpotifyId":
        """Parse a URI of the form ``spotify:{type}:{id}``."""
        prefix = "spotify:"
        if not src.startswith(prefix):
            raise SpotifyIdError("URI must start with 'spotify:'")
        rest = src[len(prefix):]
        if len(rest) <= _SIZE_BASE62:
            raise SpotifyIdError("URI too short")
        colon_index = len(rest) - _SIZE_BASE62 - 1
        if rest[colon_index] != ":":
            raise SpotifyIdError("missing colon between type and ID")
        parsed = cls.from_base62(rest[colon_index + 1:])
        return cls(parsed.id, SpotifyAudioType.parse(rest[:colon_index]))

    def to_base16(self) -> str:
        """Return the ID as 32 lowercase hex characters."""
        return _to_base16(self.to_raw())

    def to_base62(self) -> str:
        """Return the ID as 22 base62 characters."""
        n = self.id
        digits = []
        for _ in range(_SIZE_BASE62):
            n, rem = divmod(n, 62)
            digits.append(BASE62_DIGITS[rem])
        return "".join(reversed(digits))

    def to_raw(self) -> bytes:
        """Return the ID as 16 big-endian bytes."""
        return (self.id & _U128_MASK).to_bytes(_SIZE, "big")

    def to_uri(self) -> str:
        """Return the ID as a ``spotify:{type}:{id}`` URI."""
        return f"spotify:{self.audio_type.value}:{self.to_base62()}"


@dataclass(frozen=True)
class FileId:
    """A 20-byte identifier of an audio or image file."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != 20:
            raise ValueError(f"FileId must be 20 bytes, got {len(self.raw)}")
        object.__setattr__(self, "raw", bytes(self.raw))

    def to_base16(self) -> str:
        """Return the file ID as 40 lowercase hex characters."""
        return _to_base16(self.raw)

    def __str__(self) -> str:
        return self.to_base16()

    def __repr__(self) -> str:
        return f"FileId({self.to_base16()!r})"


def _to_base16(src: bytes) -> str:
    return "".join(BASE16_DIGITS[b >> 4] + BASE16_DIGITS[b & 0x0F] for b in src)