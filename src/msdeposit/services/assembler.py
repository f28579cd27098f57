"""Streams the files of a built submission into a deposit package.

A package is an archive holding every submission file followed by a JSON
manifest describing the submission and each written resource. Packages are
written through a four phase lifecycle (start, build resource, write resource,
finish) so that no more than one file's content is in flight at a time.
"""

from __future__ import annotations

import json
import tarfile
import tempfile
import zipfile
from contextlib import closing, contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, ContextManager, Iterator, Protocol, Sequence

import structlog

from msdeposit.errors import PackageIOError
from msdeposit.models import DepositFile, DepositFileType, Submission
from msdeposit.settings import ArchiveFormat, Settings
from msdeposit.utils import new_digests, safe_entry_name, slugify, unique_entry_name
from .classify import guess_media_type
from .content import ContentOpener

logger = structlog.get_logger(__name__)

SPOOL_MAX_SIZE = 8 * 1024 * 1024


@dataclass(slots=True)
class Resource:
    """Per-file description produced while packaging; size and checksums fill in as bytes are copied."""

    name: str
    path: str
    media_type: str
    role: DepositFileType
    label: str | None = None
    size: int = 0
    checksums: dict[str, str] = field(default_factory=dict)

    def to_manifest(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "mediaType": self.media_type,
            "role": self.role.value,
            "label": self.label,
            "size": self.size,
            "checksums": dict(self.checksums),
        }


class ResourceBuilder:
    """Creates empty :class:`Resource` records for the stream writer."""

    def build(
        self,
        *,
        name: str,
        path: str,
        media_type: str,
        role: DepositFileType,
        label: str | None = None,
    ) -> Resource:
        return Resource(name=name, path=path, media_type=media_type, role=role, label=label)


@dataclass(slots=True)
class ArchiveEntry:
    path: str
    resource: Resource


# Archive outputs -----------------------------------------------------------


class ArchiveOutput(Protocol):
    """Sink that accepts archive entries one at a time."""

    def open_entry(self, path: str) -> ContextManager[BinaryIO]:
        ...

    def close(self) -> None:
        ...


class ZipArchiveOutput:
    """Writes deflated zip entries; works on non-seekable sinks too."""

    def __init__(self, fileobj: BinaryIO, compression: int = zipfile.ZIP_DEFLATED) -> None:
        self._compression = compression
        self._zip = zipfile.ZipFile(fileobj, mode="w", compression=compression)

    @contextmanager
    def open_entry(self, path: str) -> Iterator[BinaryIO]:
        info = zipfile.ZipInfo(path, date_time=datetime.now().timetuple()[:6])
        info.compress_type = self._compression
        info.external_attr = 0o644 << 16
        with self._zip.open(info, mode="w", force_zip64=True) as handle:
            yield handle

    def close(self) -> None:
        self._zip.close()


class TarArchiveOutput:
    """Writes a streamed tar archive.

    Tar headers carry the entry size, so each entry is spooled (in memory up
    to ``spool_size`` bytes, on disk beyond that) before it is appended.
    """

    def __init__(self, fileobj: BinaryIO, *, gzip: bool = False, spool_size: int = SPOOL_MAX_SIZE) -> None:
        self._spool_size = spool_size
        self._tar = tarfile.open(fileobj=fileobj, mode="w|gz" if gzip else "w|")

    @contextmanager
    def open_entry(self, path: str) -> Iterator[BinaryIO]:
        with tempfile.SpooledTemporaryFile(max_size=self._spool_size) as spool:
            yield spool
            info = tarfile.TarInfo(path)
            info.size = spool.tell()
            info.mtime = int(datetime.now().timestamp())
            spool.seek(0)
            self._tar.addfile(info, spool)

    def close(self) -> None:
        self._tar.close()


def open_archive_output(fileobj: BinaryIO, archive_format: ArchiveFormat) -> ArchiveOutput:
    if archive_format == "zip":
        return ZipArchiveOutput(fileobj)
    if archive_format == "tar":
        return TarArchiveOutput(fileobj)
    if archive_format == "tar.gz":
        return TarArchiveOutput(fileobj, gzip=True)
    raise ValueError(f"Unsupported archive format: {archive_format}")


# Stream writer --------------------------------------------------------------


class StreamWriter(Protocol):
    def start(self, files: Sequence[DepositFile]) -> None:
        ...

    def build_resource(self, builder: ResourceBuilder, file: DepositFile) -> Resource:
        ...

    def write_resource(self, archive: ArchiveOutput, entry: ArchiveEntry, content: BinaryIO) -> None:
        ...

    def finish(self, submission: Submission, resources: list[Resource]) -> None:
        ...

    def close(self) -> None:
        ...


class ArchiveStreamWriter:
    """Drives one package through start, build/write per file, finish.

    The writer owns ``archive`` and closes it exactly once, whether the
    package completed or not. Use it as a context manager.
    """

    def __init__(
        self,
        archive: ArchiveOutput,
        *,
        package_root: str = "",
        checksum_algorithms: Sequence[str] = ("sha256", "md5"),
        chunk_size: int = 64 * 1024,
        manifest_name: str = "manifest.json",
    ) -> None:
        self._archive = archive
        self._root = package_root.strip("/")
        self._algorithms = tuple(checksum_algorithms)
        self._chunk_size = chunk_size
        self._manifest_name = manifest_name
        self._taken: set[str] = {manifest_name}
        self._files: tuple[DepositFile, ...] = ()
        self._started = False
        self._finished = False
        self._failed = False
        self._closed = False

    def __enter__(self) -> ArchiveStreamWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._failed = True
        self.close()

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self, files: Sequence[DepositFile]) -> None:
        if self._started:
            raise RuntimeError("start() may only be called once per package")
        self._started = True
        self._files = tuple(files)
        logger.debug("assembler.start", files=len(self._files), algorithms=self._algorithms)

    def build_resource(self, builder: ResourceBuilder, file: DepositFile) -> Resource:
        self._check_open()
        entry_name = unique_entry_name(safe_entry_name(file.name), self._taken)
        self._taken.add(entry_name)
        return builder.build(
            name=file.name,
            path=self._entry_path(entry_name),
            media_type=file.media_type or guess_media_type(file.name),
            role=file.type,
            label=file.label,
        )

    def write_resource(self, archive: ArchiveOutput, entry: ArchiveEntry, content: BinaryIO) -> None:
        """Copy ``content`` into ``entry`` in a single pass, digesting as it goes."""
        for _ in self.iter_write_resource(archive, entry, content):
            pass

    def iter_write_resource(
        self, archive: ArchiveOutput, entry: ArchiveEntry, content: BinaryIO
    ) -> Iterator[int]:
        """Same copy as :meth:`write_resource`, yielding the running size after each chunk."""
        self._check_open()
        resource = entry.resource
        digests = new_digests(self._algorithms)
        resource.size = 0
        try:
            with archive.open_entry(entry.path) as sink:
                while True:
                    chunk = content.read(self._chunk_size)
                    if not chunk:
                        break
                    sink.write(chunk)
                    resource.size += len(chunk)
                    for digest in digests.values():
                        digest.update(chunk)
                    yield resource.size
        except PackageIOError:
            self._failed = True
            raise
        except OSError as exc:
            self._failed = True
            raise PackageIOError(f"Writing {entry.path} failed: {exc}", resource=resource.name) from exc
        resource.checksums = {name: digest.hexdigest() for name, digest in digests.items()}
        logger.debug(
            "assembler.resource_written",
            resource=resource.name,
            path=entry.path,
            size=resource.size,
        )

    def finish(self, submission: Submission, resources: list[Resource]) -> None:
        """Append the manifest; it is always the last entry of the package."""
        self._check_open()
        if self._failed:
            raise RuntimeError("cannot finish a package after a failed write")
        payload = json.dumps(build_manifest(submission, resources), indent=2).encode("utf-8")
        path = self._entry_path(self._manifest_name)
        try:
            with self._archive.open_entry(path) as sink:
                sink.write(payload)
        except OSError as exc:
            self._failed = True
            raise PackageIOError(f"Writing {path} failed: {exc}", resource=self._manifest_name) from exc
        self._finished = True
        logger.info("assembler.finished", submission=submission.id, resources=len(resources))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._archive.close()
        except OSError as exc:
            if self._failed:
                # the write failure is already propagating
                logger.warning("assembler.close_failed", error=str(exc))
                return
            raise PackageIOError(f"Closing the archive failed: {exc}") from exc

    def _check_open(self) -> None:
        if not self._started:
            raise RuntimeError("start() must be called before writing resources")
        if self._finished or self._closed:
            raise RuntimeError("package is already finished")

    def _entry_path(self, name: str) -> str:
        return f"{self._root}/{name}" if self._root else name


def build_manifest(submission: Submission, resources: Sequence[Resource]) -> dict[str, Any]:
    return {
        "submission": {"id": submission.id, "name": submission.name},
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "metadata": submission.metadata.model_dump(mode="json"),
        "resources": [resource.to_manifest() for resource in resources],
    }


# Assembler -------------------------------------------------------------------


@dataclass(slots=True)
class PackageReceipt:
    submission_id: str
    archive_format: str
    resources: list[Resource]
    path: Path | None = None

    @property
    def total_size(self) -> int:
        return sum(resource.size for resource in self.resources)


class _ChunkBuffer:
    """Write-only sink whose contents are drained between files."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


class PackageAssembler:
    """Packages a :class:`Submission` by opening and streaming each of its files in order."""

    def __init__(self, opener: ContentOpener, settings: Settings | None = None) -> None:
        self._opener = opener
        self._settings = settings or Settings()

    def assemble(self, submission: Submission, archive: ArchiveOutput) -> PackageReceipt:
        """Write the whole package to ``archive``; raises :class:`PackageIOError` on I/O failure."""
        resources = [step for step in self._run(submission, archive) if step is not None]
        return PackageReceipt(
            submission_id=submission.id,
            archive_format=self._settings.archive_format,
            resources=resources,
        )

    def iter_package(
        self, submission: Submission, archive_format: ArchiveFormat | None = None
    ) -> Iterator[bytes]:
        """Yield the package bytes as they are produced.

        Zip output is handed on after every copied chunk, so memory stays
        bounded by the chunk size plus the compressor's window. Tar headers
        need the entry size, so a tar entry is emitted whole once its spool
        is complete. Closing the iterator early aborts packaging and
        releases the writer.
        """
        buffer = _ChunkBuffer()
        archive = open_archive_output(buffer, archive_format or self._settings.archive_format)
        steps = self._run(submission, archive)
        try:
            for _ in steps:
                data = buffer.drain()
                if data:
                    yield data
        finally:
            steps.close()
        tail = buffer.drain()
        if tail:
            yield tail

    def write_package(
        self,
        submission: Submission,
        path: Path,
        archive_format: ArchiveFormat | None = None,
    ) -> PackageReceipt:
        """Write the package to ``path``; a partial file is removed on failure."""
        archive_format = archive_format or self._settings.archive_format
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with path.open("wb") as handle:
                receipt = self.assemble(submission, open_archive_output(handle, archive_format))
        except Exception:
            path.unlink(missing_ok=True)
            logger.warning("assembler.partial_removed", path=str(path))
            raise
        receipt.archive_format = archive_format
        receipt.path = path
        logger.info("assembler.package_written", path=str(path), size=path.stat().st_size)
        return receipt

    def _run(self, submission: Submission, archive: ArchiveOutput) -> Iterator[Resource | None]:
        # yields None after each copied chunk and the Resource once its file is written
        files = submission.files
        builder = ResourceBuilder()
        writer = ArchiveStreamWriter(
            archive,
            package_root=slugify(submission.name),
            checksum_algorithms=self._settings.checksum_algorithms,
            chunk_size=self._settings.chunk_size,
            manifest_name=self._settings.manifest_name,
        )
        with writer:
            writer.start(files)
            resources: list[Resource] = []
            for deposit_file in files:
                resource = writer.build_resource(builder, deposit_file)
                entry = ArchiveEntry(resource.path, resource)
                with self._opener.open(deposit_file.location) as content:
                    # an abandoned copy must release its archive entry
                    with closing(writer.iter_write_resource(archive, entry, content)) as copying:
                        for _ in copying:
                            yield None
                resources.append(resource)
                yield resource
            writer.finish(submission, resources)


def read_manifest(path: Path, manifest_name: str = "manifest.json") -> dict[str, Any]:
    """Load the manifest from a written zip or tar package."""
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
            member = _find_manifest(names, manifest_name)
            return json.loads(archive.read(member))
    try:
        archive = tarfile.open(path, mode="r:*")
    except tarfile.TarError as exc:
        raise PackageIOError(f"{path} is not a zip or tar package", resource=manifest_name) from exc
    with archive:
        member = _find_manifest(archive.getnames(), manifest_name)
        handle = archive.extractfile(member)
        if handle is None:
            raise PackageIOError(f"{member} is not a regular file", resource=manifest_name)
        with handle:
            return json.loads(handle.read())


def _find_manifest(names: Sequence[str], manifest_name: str) -> str:
    for name in reversed(names):
        if name == manifest_name or name.endswith("/" + manifest_name):
            return name
    raise PackageIOError(f"Package has no {manifest_name}", resource=manifest_name)
