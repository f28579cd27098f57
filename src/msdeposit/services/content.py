"""Openers that hand the assembler a byte stream for each file location."""

from __future__ import annotations

import io
from pathlib import Path
from typing import BinaryIO, Iterator, Protocol
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx
import structlog

from msdeposit.errors import PackageIOError
from msdeposit.settings import Settings

logger = structlog.get_logger(__name__)


class ContentOpener(Protocol):
    """Protocol for components that open file content for reading."""

    def open(self, location: str) -> BinaryIO:
        ...


class LocalContentOpener:
    """Opens plain paths and ``file://`` URIs, relative ones against ``base_dir``."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir

    def open(self, location: str) -> BinaryIO:
        path = self._to_path(location)
        try:
            return path.open("rb")
        except OSError as exc:
            raise PackageIOError(f"Unable to open {location}: {exc}", resource=location) from exc

    def _to_path(self, location: str) -> Path:
        parts = urlsplit(location)
        if parts.scheme == "file":
            return Path(url2pathname(parts.path))
        path = Path(location)
        if not path.is_absolute() and self._base_dir is not None:
            path = self._base_dir / path
        return path


class _ResponseReader(io.RawIOBase):
    """Raw reader over a streamed httpx response; closing it closes the response."""

    def __init__(self, response: httpx.Response, location: str) -> None:
        self._response = response
        self._location = location
        self._chunks: Iterator[bytes] = response.iter_bytes()
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
            except httpx.HTTPError as exc:
                raise PackageIOError(
                    f"Reading {self._location} failed: {exc}", resource=self._location
                ) from exc
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        if not self.closed:
            self._response.close()
        super().close()


class HttpContentOpener:
    """Streams ``http(s)`` content without downloading it first."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    def open(self, location: str) -> BinaryIO:
        request = self._client.build_request("GET", location)
        try:
            response = self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.warning("content.request_failed", location=location, error=str(exc))
            raise PackageIOError(f"Unable to fetch {location}: {exc}", resource=location) from exc
        if response.is_error:
            response.close()
            logger.warning("content.bad_status", location=location, status=response.status_code)
            raise PackageIOError(
                f"Unable to fetch {location}: HTTP {response.status_code}", resource=location
            )
        return io.BufferedReader(_ResponseReader(response, location))


class ContentOpenerRegistry:
    """Dispatches to an opener by URI scheme; bare paths count as ``file``."""

    def __init__(self, openers: dict[str, ContentOpener]) -> None:
        self._openers = {scheme.lower(): opener for scheme, opener in openers.items()}

    def open(self, location: str) -> BinaryIO:
        scheme = urlsplit(location).scheme.lower()
        # single letter schemes are Windows drive letters
        if len(scheme) <= 1:
            scheme = "file"
        opener = self._openers.get(scheme)
        if opener is None:
            raise PackageIOError(f"No content opener for '{scheme}' locations", resource=location)
        logger.debug("content.open", location=location, scheme=scheme)
        return opener.open(location)


def default_openers(settings: Settings, client: httpx.Client | None = None) -> ContentOpenerRegistry:
    openers: dict[str, ContentOpener] = {"file": LocalContentOpener(settings.content_base_dir)}
    if client is not None:
        http = HttpContentOpener(client)
        openers["http"] = http
        openers["https"] = http
    return ContentOpenerRegistry(openers)
