from pathlib import Path

import httpx
import pytest

from msdeposit.errors import PackageIOError
from msdeposit.services.content import (
    ContentOpenerRegistry,
    HttpContentOpener,
    LocalContentOpener,
    default_openers,
)
from msdeposit.settings import Settings


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_local_opener_resolves_relative_paths_and_file_uris(tmp_path: Path) -> None:
    (tmp_path / "paper.pdf").write_bytes(b"paper bytes")
    opener = LocalContentOpener(tmp_path)

    with opener.open("paper.pdf") as handle:
        assert handle.read() == b"paper bytes"
    with opener.open((tmp_path / "paper.pdf").as_uri()) as handle:
        assert handle.read() == b"paper bytes"


def test_local_opener_wraps_missing_files(tmp_path: Path) -> None:
    opener = LocalContentOpener(tmp_path)
    with pytest.raises(PackageIOError) as excinfo:
        opener.open("missing.pdf")
    assert excinfo.value.resource == "missing.pdf"
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)


def test_http_opener_streams_the_response_body() -> None:
    body = b"x" * 10_000

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/files/paper.pdf"
        return httpx.Response(200, content=body)

    with _client(handler) as client:
        handle = HttpContentOpener(client).open("https://files.example.org/files/paper.pdf")
        with handle:
            first = handle.read(1024)
            rest = handle.read()
        assert handle.closed

    assert first + rest == body


def test_http_opener_raises_on_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    with _client(handler) as client:
        with pytest.raises(PackageIOError, match="HTTP 404"):
            HttpContentOpener(client).open("https://files.example.org/missing.pdf")


def test_http_opener_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(PackageIOError) as excinfo:
            HttpContentOpener(client).open("https://files.example.org/paper.pdf")
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_registry_dispatches_on_scheme(tmp_path: Path) -> None:
    (tmp_path / "local.txt").write_bytes(b"local")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"remote")

    with _client(handler) as client:
        registry = default_openers(Settings(data_dir=tmp_path, content_base_dir=tmp_path), client)
        with registry.open("local.txt") as handle:
            assert handle.read() == b"local"
        with registry.open("http://files.example.org/remote.txt") as handle:
            assert handle.read() == b"remote"


def test_registry_rejects_unknown_schemes(tmp_path: Path) -> None:
    registry = ContentOpenerRegistry({"file": LocalContentOpener(tmp_path)})
    with pytest.raises(PackageIOError, match="ftp"):
        registry.open("ftp://files.example.org/paper.pdf")

    without_http = default_openers(Settings(data_dir=tmp_path))
    with pytest.raises(PackageIOError):
        without_http.open("https://files.example.org/paper.pdf")
