"""On-disk cache for credentials, volume and audio files."""

from __future__ import annotations

import logging
import os
import re
import shutil
import threading
import time
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Optional, Union

from .authentication import Credentials
from .spotify_id import FileId

log = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_U16_MAX = 0xFFFF
_VOLUME_RE = re.compile(r"\+?[0-9]+")


class RemoveFileError(Exception):
    """Raised when a file could not be removed from the cache."""


class SizeLimiter:
    """Tracks file sizes and access times and evicts the least recently used files."""

    def __init__(self, limit: int) -> None:
        self.size_limit = limit
        self.in_use = 0
        self._times: Dict[Path, float] = {}
        self._sizes: Dict[Path, int] = {}

    def add(self, file: PathLike, size: int, accessed: float) -> None:
        """Add an entry, replacing an existing one for the same path."""
        path = Path(file)
        self.in_use += size
        self._times[path] = accessed
        old_size = self._sizes.get(path)
        self._sizes[path] = size
        if old_size is not None:
            self.in_use -= old_size

    def exceeds_limit(self) -> bool:
        return self.in_use > self.size_limit

    def pop(self) -> Optional[Path]:
        """Remove and return the least recently accessed path if the limit is exceeded."""
        if not self.exceeds_limit():
            return None
        oldest = min(self._times, key=self._times.__getitem__)
        del self._times[oldest]
        self.in_use -= self._sizes.pop(oldest)
        return oldest

    def update(self, file: PathLike, access_time: float) -> bool:
        """Update the access time of an entry; return whether it existed."""
        path = Path(file)
        if path not in self._times:
            return False
        self._times[path] = access_time
        return True

    def remove(self, file: PathLike) -> bool:
        """Remove an entry; return whether it existed."""
        path = Path(file)
        if path not in self._times:
            return False
        del self._times[path]
        self.in_use -= self._sizes.pop(path)
        return True


class _FsSizeLimiter:
    def __init__(self, path: Path, limit: int) -> None:
        self._lock = threading.Lock()
        self._limiter = SizeLimiter(limit)
        self._init_dir(self._limiter, path)
        self._prune_internal(self._limiter.pop)

    @staticmethod
    def _init_dir(limiter: SizeLimiter, path: Path) -> None:
        try:
            entries = list(os.scandir(path))
        except OSError as exc:
            log.warning("Could not read directory %s in cache dir: %s", path, exc)
            return

        for entry in entries:
            entry_path = Path(entry.path)
            try:
                if entry.is_dir(follow_symlinks=False) or entry.is_symlink():
                    _FsSizeLimiter._init_dir(limiter, entry_path)
                elif entry.is_file(follow_symlinks=False):
                    try:
                        st = entry_path.stat()
                    except OSError as exc:
                        log.warning("Could not read file %s in cache dir: %s", entry_path, exc)
                        continue
                    limiter.add(entry_path, st.st_size, st.st_atime)
                else:
                    log.warning("File %s in cache dir has unsupported type", entry_path)
            except OSError as exc:
                log.warning("Could not get type of file %s in cache dir: %s", entry_path, exc)

    @staticmethod
    def _prune_internal(pop: Callable[[], Optional[Path]]) -> None:
        count = 0
        first = True
        while (file := pop()) is not None:
            if first:
                log.debug("Cache dir exceeds limit, removing least recently used files.")
                first = False
            try:
                file.unlink()
            except OSError as exc:
                log.warning("Could not remove file %s from cache dir: %s", file, exc)
            else:
                count += 1
        if count:
            log.info("Removed %d cache files.", count)

    def _locked_pop(self) -> Optional[Path]:
        with self._lock:
            return self._limiter.pop()

    def add(self, file: Path, size: int) -> None:
        with self._lock:
            self._limiter.add(file, size, time.time())

    def touch(self, file: Path) -> bool:
        with self._lock:
            return self._limiter.update(file, time.time())

    def remove(self, file: Path) -> None:
        with self._lock:
            self._limiter.remove(file)

    def prune(self) -> None:
        self._prune_internal(self._locked_pop)


class Cache:
    """A cache for volume, credentials and audio files."""

    def __init__(
        self,
        credentials_path: Optional[PathLike] = None,
        volume_path: Optional[PathLike] = None,
        audio_path: Optional[PathLike] = None,
        size_limit: Optional[int] = None,
    ) -> None:
        self._size_limiter: Optional[_FsSizeLimiter] = None

        self._credentials_location: Optional[Path] = None
        if credentials_path is not None:
            location = Path(credentials_path)
            location.mkdir(parents=True, exist_ok=True)
            self._credentials_location = location / "credentials.json"

        self._volume_location: Optional[Path] = None
        if volume_path is not None:
            location = Path(volume_path)
            location.mkdir(parents=True, exist_ok=True)
            self._volume_location = location / "volume"

        self._audio_location: Optional[Path] = None
        if audio_path is not None:
            location = Path(audio_path)
            location.mkdir(parents=True, exist_ok=True)
            if size_limit is not None:
                self._size_limiter = _FsSizeLimiter(location, size_limit)
            self._audio_location = location

    def credentials(self) -> Optional[Credentials]:
        """Return cached credentials, or None if there are none or they are unreadable."""
        if self._credentials_location is None:
            return None
        try:
            return Credentials.from_json(self._credentials_location.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            log.warning("Error reading credentials from cache: %s", exc)
            return None

    def save_credentials(self, cred: Credentials) -> None:
        if self._credentials_location is None:
            return
        try:
            self._credentials_location.write_text(cred.to_json())
        except OSError as exc:
            log.warning("Cannot save credentials to cache: %s", exc)

    def volume(self) -> Optional[int]:
        """Return the cached volume, or None if there is none or it is unreadable."""
        if self._volume_location is None:
            return None
        try:
            contents = self._volume_location.read_text()
        except FileNotFoundError:
            return None
        except OSError as exc:
            log.warning("Error reading volume from cache: %s", exc)
            return None
        if not _VOLUME_RE.fullmatch(contents) or int(contents) > _U16_MAX:
            log.warning("Error reading volume from cache: invalid value %r", contents)
            return None
        return int(contents)

    def save_volume(self, volume: int) -> None:
        if self._volume_location is None:
            return
        try:
            self._volume_location.write_text(str(volume))
        except OSError as exc:
            log.warning("Cannot save volume to cache: %s", exc)

    def _file_path(self, file: FileId) -> Optional[Path]:
        if self._audio_location is None:
            return None
        name = file.to_base16()
        return self._audio_location / name[:2] / name[2:]

    def file(self, file: FileId) -> Optional[BinaryIO]:
        """Open a cached audio file for reading, or return None if it is not cached."""
        path = self._file_path(file)
        if path is None:
            return None
        try:
            handle = open(path, "rb")
        except FileNotFoundError:
            return None
        except OSError as exc:
            log.warning("Error reading file from cache: %s", exc)
            return None
        if self._size_limiter is not None:
            self._size_limiter.touch(path)
        return handle

    def save_file(self, file: FileId, contents: BinaryIO) -> None:
        """Copy a readable binary stream into the cache."""
        path = self._file_path(file)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as out:
                shutil.copyfileobj(contents, out)
                size = out.tell()
        except OSError as exc:
            log.warning("Cannot save file to cache: %s", exc)
            return
        if self._size_limiter is not None:
            self._size_limiter.add(path, size)
            self._size_limiter.prune()

    def remove_file(self, file: FileId) -> None:
        """Remove a cached audio file; raise RemoveFileError if that fails."""
        path = self._file_path(file)
        if path is None:
            raise RemoveFileError("no audio cache location")
        try:
            path.unlink()
        except OSError as exc:
            log.warning("Unable to remove file from cache: %s", exc)
            raise RemoveFileError(str(exc)) from exc
        if self._size_limiter is not None:
            self._size_limiter.remove(path)