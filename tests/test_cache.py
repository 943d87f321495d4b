import io
import itertools
import os
from pathlib import Path
from unittest import mock

import pytest

from respot.authentication import Credentials
from respot.cache import Cache, RemoveFileError, SizeLimiter
from respot.spotify_id import FileId


def ordered_time(v):
    return float(v)


def _file_id(n):
    return FileId(bytes([n]) * 20)


def test_size_limiter():
    limiter = SizeLimiter(1000)

    limiter.add(Path("a"), 500, ordered_time(2))
    limiter.add(Path("b"), 500, ordered_time(1))

    assert not limiter.exceeds_limit()
    assert limiter.pop() is None

    limiter.add(Path("c"), 1000, ordered_time(3))

    assert limiter.exceeds_limit()
    assert limiter.pop() == Path("b")
    assert limiter.pop() == Path("a")
    assert limiter.pop() is None

    limiter.add(Path("d"), 5, ordered_time(2))
    assert limiter.pop() == Path("d")
    assert limiter.pop() is None

    limiter.add(Path("e"), 500, ordered_time(3))
    assert limiter.update(Path("c"), ordered_time(4))
    assert limiter.pop() == Path("e")

    limiter.add(Path("f"), 500, ordered_time(2))
    assert limiter.remove(Path("c"))
    assert not limiter.exceeds_limit()


def test_size_limiter_missing_entries():
    limiter = SizeLimiter(10)
    assert limiter.update(Path("x"), 1.0) is False
    assert limiter.remove(Path("x")) is False


def test_size_limiter_re_add_replaces_size():
    limiter = SizeLimiter(100)
    limiter.add(Path("a"), 80, 1.0)
    limiter.add(Path("a"), 20, 2.0)
    assert limiter.in_use == 20


def test_credentials_round_trip(tmp_path):
    cache = Cache(credentials_path=tmp_path / "creds")
    assert cache.credentials() is None
    creds = Credentials("user", 1, b"token")
    cache.save_credentials(creds)
    assert (tmp_path / "creds" / "credentials.json").is_file()
    assert cache.credentials() == creds


def test_credentials_corrupt_file(tmp_path):
    cache = Cache(credentials_path=tmp_path)
    (tmp_path / "credentials.json").write_text("{not json")
    assert cache.credentials() is None


def test_credentials_without_location():
    cache = Cache()
    cache.save_credentials(Credentials("user", 1, b"token"))
    assert cache.credentials() is None


def test_volume_round_trip(tmp_path):
    cache = Cache(volume_path=tmp_path)
    assert cache.volume() is None
    cache.save_volume(42)
    assert (tmp_path / "volume").read_text() == "42"
    assert cache.volume() == 42


@pytest.mark.parametrize("contents", ["abc", "70000", "-1", ""])
def test_volume_invalid(tmp_path, contents):
    cache = Cache(volume_path=tmp_path)
    (tmp_path / "volume").write_text(contents)
    assert cache.volume() is None


def test_save_and_read_file(tmp_path):
    cache = Cache(audio_path=tmp_path)
    fid = _file_id(0xAB)
    cache.save_file(fid, io.BytesIO(b"audio data"))
    name = fid.to_base16()
    assert (tmp_path / name[:2] / name[2:]).read_bytes() == b"audio data"
    with cache.file(fid) as handle:
        assert handle.read() == b"audio data"


def test_file_missing(tmp_path):
    cache = Cache(audio_path=tmp_path)
    assert cache.file(_file_id(1)) is None


def test_remove_file(tmp_path):
    cache = Cache(audio_path=tmp_path, size_limit=100)
    fid = _file_id(2)
    cache.save_file(fid, io.BytesIO(b"x" * 10))
    cache.remove_file(fid)
    assert cache.file(fid) is None
    with pytest.raises(RemoveFileError):
        cache.remove_file(fid)


def test_remove_file_without_audio_location():
    with pytest.raises(RemoveFileError):
        Cache().remove_file(_file_id(3))


def test_prune_on_save_evicts_least_recently_used(tmp_path):
    with mock.patch("respot.cache.time.time", side_effect=itertools.count(1000).__next__):
        cache = Cache(audio_path=tmp_path, size_limit=20)
        a, b, c = _file_id(1), _file_id(2), _file_id(3)
        cache.save_file(a, io.BytesIO(b"a" * 8))
        cache.save_file(b, io.BytesIO(b"b" * 8))
        with cache.file(a) as handle:
            assert handle.read() == b"a" * 8
        cache.save_file(c, io.BytesIO(b"c" * 8))

    assert cache.file(b) is None
    with cache.file(a) as handle:
        assert handle.read() == b"a" * 8
    with cache.file(c) as handle:
        assert handle.read() == b"c" * 8


def test_prune_on_startup_removes_oldest(tmp_path):
    sub = tmp_path / "ab"
    sub.mkdir()
    old = sub / "old"
    new = sub / "new"
    old.write_bytes(b"o" * 8)
    new.write_bytes(b"n" * 8)
    os.utime(old, (1000, 1000))
    os.utime(new, (2000, 2000))

    Cache(audio_path=tmp_path, size_limit=10)

    assert not old.exists()
    assert new.read_bytes() == b"n" * 8