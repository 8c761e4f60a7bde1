from __future__ import annotations

import pytest
import requests

from lhex.modules.lhex_downloader import Downloader
from lhex.modules.lhex_errors import NetworkError


class FakeResponse:
    def __init__(self, chunks, status_code=200, fail_after=None):
        self.chunks = chunks
        self.status_code = status_code
        self.headers = {"Content-Length": str(sum(len(c) for c in chunks))}
        self.fail_after = fail_after

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def iter_content(self, chunk_size=1):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise requests.ConnectionError("connection reset")
            yield chunk

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, stream=False, timeout=None):
        self.requests.append((url, stream, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def test_fetch_writes_body(tmp_path):
    session = FakeSession(FakeResponse([b"abc", b"", b"def"]))
    dest = tmp_path / "dl" / "pkg.msixbundle"

    out = Downloader(session=session, timeout=5, progress=False).fetch("http://x/pkg", dest)

    assert out == dest
    assert dest.read_bytes() == b"abcdef"
    assert not (dest.parent / "pkg.msixbundle.part").exists()
    assert session.requests == [("http://x/pkg", True, 5)]


def test_fetch_with_progress_bar(tmp_path):
    session = FakeSession(FakeResponse([b"0123456789"] * 4))
    dest = tmp_path / "dl" / "pkg.bin"
    Downloader(session=session, progress=True).fetch("http://x/pkg", dest)
    assert dest.stat().st_size == 40


def test_http_error_status(tmp_path):
    session = FakeSession(FakeResponse([b"nope"], status_code=404))
    dest = tmp_path / "dl" / "pkg.bin"
    with pytest.raises(NetworkError, match="404") as exc:
        Downloader(session=session, progress=False).fetch("http://x/pkg", dest)
    assert exc.value.stage == "download"
    assert not dest.exists()
    assert list((tmp_path / "dl").iterdir()) == []


def test_transport_error(tmp_path):
    session = FakeSession(error=requests.ConnectionError("dns failure"))
    with pytest.raises(NetworkError, match="dns failure"):
        Downloader(session=session, progress=False).fetch("http://x/pkg", tmp_path / "dl" / "pkg.bin")


def test_interrupted_stream_leaves_no_partial_file(tmp_path):
    session = FakeSession(FakeResponse([b"abc", b"def", b"ghi"], fail_after=2))
    dest = tmp_path / "dl" / "pkg.bin"
    with pytest.raises(NetworkError):
        Downloader(session=session, progress=False).fetch("http://x/pkg", dest)
    assert list((tmp_path / "dl").iterdir()) == []


def test_empty_body_is_an_error(tmp_path):
    session = FakeSession(FakeResponse([]))
    with pytest.raises(NetworkError, match="no body"):
        Downloader(session=session, progress=False).fetch("http://x/pkg", tmp_path / "dl" / "pkg.bin")
    assert list((tmp_path / "dl").iterdir()) == []


def test_download_dir_that_cannot_be_created(tmp_path):
    (tmp_path / "dl").write_text("file in the way")
    session = FakeSession(FakeResponse([b"abc"]))
    with pytest.raises(NetworkError, match="cannot create"):
        Downloader(session=session, progress=False).fetch("http://x/pkg", tmp_path / "dl" / "sub" / "pkg.bin")
    assert session.requests == []
