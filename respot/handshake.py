"""Key derivation used by the access point handshake."""

from __future__ import annotations

import hashlib
import hmac
from typing import Tuple


def compute_keys(shared_secret: bytes, packets: bytes) -> Tuple[bytes, bytes, bytes]:
    """Derive the challenge response and the send and receive keys.

    ``packets`` is every handshake packet exchanged so far, concatenated.
    Returns ``(challenge, send_key, recv_key)``.
    """
    secret = bytes(shared_secret)
    transcript = bytes(packets)
    data = b"".join(
        hmac.new(secret, transcript + bytes([i]), hashlib.sha1).digest() for i in range(1, 6)
    )
    challenge = hmac.new(data[:0x14], transcript, hashlib.sha1).digest()
    return challenge, data[0x14:0x34], data[0x34:0x54]