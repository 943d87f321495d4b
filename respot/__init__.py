"""Spotify Connect client building blocks: IDs, credentials, cache, channels, keys and discovery."""

__version__ = "0.1.0"