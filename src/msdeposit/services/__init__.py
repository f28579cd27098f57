"""Service abstractions for building and packaging deposit submissions."""

from .assembler import (
    ArchiveEntry,
    ArchiveOutput,
    ArchiveStreamWriter,
    PackageAssembler,
    PackageReceipt,
    Resource,
    ResourceBuilder,
    StreamWriter,
    TarArchiveOutput,
    ZipArchiveOutput,
    build_manifest,
    open_archive_output,
    read_manifest,
)
from .builder import SubmissionModelBuilder, build_submission
from .classify import classify_file, guess_media_type
from .content import (
    ContentOpener,
    ContentOpenerRegistry,
    HttpContentOpener,
    LocalContentOpener,
    default_openers,
)
from .metadata import (
    EMBARGO_TIME_ZONE,
    CommonMetadata,
    CrossrefMetadata,
    MetadataDocument,
    parse_doi_uri,
    parse_embargo_date,
    parse_metadata_document,
)
from .persons import author_from_name, person_from_user

__all__ = [
    "ArchiveEntry",
    "ArchiveOutput",
    "ArchiveStreamWriter",
    "PackageAssembler",
    "PackageReceipt",
    "Resource",
    "ResourceBuilder",
    "StreamWriter",
    "TarArchiveOutput",
    "ZipArchiveOutput",
    "build_manifest",
    "open_archive_output",
    "read_manifest",
    "SubmissionModelBuilder",
    "build_submission",
    "classify_file",
    "guess_media_type",
    "ContentOpener",
    "ContentOpenerRegistry",
    "HttpContentOpener",
    "LocalContentOpener",
    "default_openers",
    "EMBARGO_TIME_ZONE",
    "CommonMetadata",
    "CrossrefMetadata",
    "MetadataDocument",
    "parse_doi_uri",
    "parse_embargo_date",
    "parse_metadata_document",
    "author_from_name",
    "person_from_user",
]
