"""Diffie-Hellman key exchange over the fixed 768-bit group."""

from __future__ import annotations

import secrets

DH_GENERATOR = 2
DH_PRIME = int.from_bytes(
    bytes(
        [
            0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xC9, 0x0F, 0xDA, 0xA2, 0x21, 0x68,
            0xC2, 0x34, 0xC4, 0xC6, 0x62, 0x8B, 0x80, 0xDC, 0x1C, 0xD1, 0x29, 0x02, 0x4E, 0x08,
            0x8A, 0x67, 0xCC, 0x74, 0x02, 0x0B, 0xBE, 0xA6, 0x3B, 0x13, 0x9B, 0x22, 0x51, 0x4A,
            0x08, 0x79, 0x8E, 0x34, 0x04, 0xDD, 0xEF, 0x95, 0x19, 0xB3, 0xCD, 0x3A, 0x43, 0x1B,
            0x30, 0x2B, 0x0A, 0x6D, 0xF2, 0x5F, 0x14, 0x37, 0x4F, 0xE1, 0x35, 0x6D, 0x6D, 0x51,
            0xC2, 0x45, 0xE4, 0x85, 0xB5, 0x76, 0x62, 0x5E, 0x7E, 0xC6, 0xF4, 0x4C, 0x42, 0xE9,
            0xA6, 0x3A, 0x36, 0x20, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF,
        ]
    ),
    "big",
)

_PRIVATE_KEY_BITS = 95 * 8


def powm(base: int, exp: int, modulus: int) -> int:
    """Modular exponentiation; an exponent of zero yields 1."""
    if exp == 0:
        return 1
    return pow(base, exp, modulus)


def _to_bytes_be(n: int) -> bytes:
    return n.to_bytes(max(1, (n.bit_length() + 7) // 8), "big")


class DhLocalKeys:
    """A local private/public key pair."""

    def __init__(self, private_key: int) -> None:
        self._private_key = private_key
        self._public_key = powm(DH_GENERATOR, private_key, DH_PRIME)

    @classmethod
    def random(cls) -> "DhLocalKeys":
        """Generate a key pair from a random 760-bit private key."""
        return cls(secrets.randbits(_PRIVATE_KEY_BITS))

    def public_key(self) -> bytes:
        """Return the public key as minimal big-endian bytes."""
        return _to_bytes_be(self._public_key)

    def shared_secret(self, remote_key: bytes) -> bytes:
        """Compute the shared secret from the remote public key."""
        remote = int.from_bytes(bytes(remote_key), "big")
        return _to_bytes_be(powm(remote, self._private_key, DH_PRIME))