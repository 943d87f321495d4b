"""Session and Connect device configuration."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import Optional

VERSION_STRING = "respot-0.1.0"


class DeviceType(enum.IntEnum):
    UNKNOWN = 0
    COMPUTER = 1
    TABLET = 2
    SMARTPHONE = 3
    SPEAKER = 4
    TV = 5
    AVR = 6
    STB = 7
    AUDIO_DONGLE = 8
    GAME_CONSOLE = 9
    CAST_AUDIO = 10
    CAST_VIDEO = 11
    AUTOMOBILE = 12
    SMARTWATCH = 13
    CHROMEBOOK = 14
    UNKNOWN_SPOTIFY = 100
    CAR_THING = 101
    OBSERVER = 102
    HOME_THING = 103

    @classmethod
    def parse(cls, value: str) -> "DeviceType":
        """Parse a device type name, ignoring case."""
        try:
            return _PARSE_NAMES[value.lower()]
        except KeyError:
            raise ValueError(f"unknown device type {value!r}") from None

    @classmethod
    def default(cls) -> "DeviceType":
        return cls.SPEAKER

    def __str__(self) -> str:
        return _DISPLAY_NAMES[self]


_PARSE_NAMES = {
    "computer": DeviceType.COMPUTER,
    "tablet": DeviceType.TABLET,
    "smartphone": DeviceType.SMARTPHONE,
    "speaker": DeviceType.SPEAKER,
    "tv": DeviceType.TV,
    "avr": DeviceType.AVR,
    "stb": DeviceType.STB,
    "audiodongle": DeviceType.AUDIO_DONGLE,
    "gameconsole": DeviceType.GAME_CONSOLE,
    "castaudio": DeviceType.CAST_AUDIO,
    "castvideo": DeviceType.CAST_VIDEO,
    "automobile": DeviceType.AUTOMOBILE,
    "smartwatch": DeviceType.SMARTWATCH,
    "chromebook": DeviceType.CHROMEBOOK,
    "carthing": DeviceType.CAR_THING,
    "homething": DeviceType.HOME_THING,
}

_DISPLAY_NAMES = {
    DeviceType.UNKNOWN: "Unknown",
    DeviceType.COMPUTER: "Computer",
    DeviceType.TABLET: "Tablet",
    DeviceType.SMARTPHONE: "Smartphone",
    DeviceType.SPEAKER: "Speaker",
    DeviceType.TV: "TV",
    DeviceType.AVR: "AVR",
    DeviceType.STB: "STB",
    DeviceType.AUDIO_DONGLE: "AudioDongle",
    DeviceType.GAME_CONSOLE: "GameConsole",
    DeviceType.CAST_AUDIO: "CastAudio",
    DeviceType.CAST_VIDEO: "CastVideo",
    DeviceType.AUTOMOBILE: "Automobile",
    DeviceType.SMARTWATCH: "Smartwatch",
    DeviceType.CHROMEBOOK: "Chromebook",
    DeviceType.UNKNOWN_SPOTIFY: "UnknownSpotify",
    DeviceType.CAR_THING: "CarThing",
    DeviceType.OBSERVER: "Observer",
    DeviceType.HOME_THING: "HomeThing",
}


def _new_device_id() -> str:
    return str(uuid.uuid4())


@dataclass
class SessionConfig:
    """Settings used when connecting a session."""

    user_agent: str = VERSION_STRING
    device_id: str = field(default_factory=_new_device_id)
    proxy: Optional[str] = None
    ap_port: Optional[int] = None


@dataclass
class ConnectConfig:
    """Settings of the device as it appears to Connect clients."""

    name: str = "Librespot"
    device_type: DeviceType = DeviceType.SPEAKER
    initial_volume: Optional[int] = 50
    has_volume_ctrl: bool = True
    autoplay: bool = False