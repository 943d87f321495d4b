"""Login credentials and decoding of encrypted credential blobs."""

from __future__ import annotations

import base64
import binascii
import hashlib
import io
import json
import struct
from dataclasses import dataclass
from typing import BinaryIO, Union

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

AUTHENTICATION_USER_PASS = 0

_BLOCK_SIZE = 16

BytesLike = Union[bytes, bytearray, str]


def _as_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _read_u8(stream: BinaryIO) -> int:
    data = stream.read(1)
    if len(data) != 1:
        raise ValueError("unexpected end of credentials blob")
    return data[0]


def _read_int(stream: BinaryIO) -> int:
    lo = _read_u8(stream)
    if lo & 0x80 == 0:
        return lo
    hi = _read_u8(stream)
    return (lo & 0x7F) | (hi << 7)


def _read_bytes(stream: BinaryIO) -> bytes:
    length = _read_int(stream)
    data = stream.read(length)
    if len(data) != length:
        raise ValueError("unexpected end of credentials blob")
    return data


def _blob_key(username: str, device_id: bytes) -> bytes:
    secret = hashlib.sha1(device_id).digest()
    derived = hashlib.pbkdf2_hmac("sha1", secret, username.encode("utf-8"), 0x100, 20)
    return hashlib.sha1(derived).digest() + struct.pack(">I", 20)


def _decode_base64(data: BytesLike) -> bytes:
    try:
        return base64.b64decode(_as_bytes(data), validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 data: {exc}") from None


@dataclass
class Credentials:
    """The username, authentication type and secret data used to log in."""

    username: str
    auth_type: int
    auth_data: bytes

    @classmethod
    def with_password(cls, username: str, password: str) -> "Credentials":
        """Create credentials from a username and a password."""
        return cls(username, AUTHENTICATION_USER_PASS, password.encode("utf-8"))

    @classmethod
    def with_blob(
        cls, username: str, encrypted_blob: BytesLike, device_id: BytesLike
    ) -> "Credentials":
        """Decrypt a base64 encoded credentials blob received from a Connect client."""
        key = _blob_key(username, _as_bytes(device_id))
        encrypted = _decode_base64(encrypted_blob)
        if len(encrypted) % _BLOCK_SIZE != 0:
            raise ValueError("credentials blob length is not a multiple of the block size")

        decryptor = Cipher(algorithms.AES(key), modes.ECB()).decryptor()
        data = bytearray(decryptor.update(encrypted) + decryptor.finalize())

        for j in range(len(data) - 1, _BLOCK_SIZE - 1, -1):
            data[j] ^= data[j - _BLOCK_SIZE]

        stream = io.BytesIO(bytes(data))
        _read_u8(stream)
        _read_bytes(stream)
        _read_u8(stream)
        auth_type = _read_int(stream)
        _read_u8(stream)
        auth_data = _read_bytes(stream)

        return cls(username, auth_type, auth_data)

    def to_json(self) -> str:
        """Serialise to JSON with the secret data base64 encoded."""
        return json.dumps(
            {
                "username": self.username,
                "auth_type": self.auth_type,
                "auth_data": base64.b64encode(self.auth_data).decode("ascii"),
            }
        )

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "Credentials":
        """Parse credentials serialised by :meth:`to_json`."""
        obj = json.loads(data)
        if not isinstance(obj, dict):
            raise ValueError("credentials must be a JSON object")

        username = obj.get("username")
        if not isinstance(username, str):
            raise ValueError("missing or invalid field 'username'")

        auth_type = obj.get("auth_type")
        if not isinstance(auth_type, int) or isinstance(auth_type, bool):
            raise ValueError("Invalid enum value")

        if "auth_data" in obj:
            encoded = obj["auth_data"]
        elif "encoded_auth_blob" in obj:
            encoded = obj["encoded_auth_blob"]
        else:
            raise ValueError("missing field 'auth_data'")
        if not isinstance(encoded, str):
            raise ValueError("field 'auth_data' must be a string")

        return cls(username, auth_type, _decode_base64(encoded))