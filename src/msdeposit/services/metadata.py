"""Parser for the sectioned metadata document attached to a submission.

The document is a JSON array of ``{"id": ..., "data": {...}}`` sections.
Only the ``common`` and ``crossref`` sections feed the deposit model; any other
section is kept as unrecognized and ignored downstream.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Mapping
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo

import structlog

from msdeposit.errors import InvalidModel
from msdeposit.models import IssnPubType, JournalPublicationType

logger = structlog.get_logger(__name__)

COMMON_SECTION = "common"
CROSSREF_SECTION = "crossref"

# Embargo dates are calendar dates anchored to this zone whatever the
# submitter's locale.
EMBARGO_TIME_ZONE = ZoneInfo("America/New_York")

_EMBARGO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_URI_ILLEGAL = re.compile(r"[\s\"<>\\^`{|}\x00-\x1f\x7f]")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_FIRST_SEGMENT = re.compile(r"[^/?#]*")
_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")


# Optional-value accessors -------------------------------------------------


def optional_string(data: Mapping[str, Any], key: str) -> str | None:
    """Absent or null gives ``None``; numbers are stringified; containers fail."""
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise InvalidModel(
        f"Data file contained a non-text value for '{key}': {value!r}",
        value=value,
        field=key,
    )


def optional_boolean(data: Mapping[str, Any], key: str) -> bool | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise InvalidModel(
        f"Data file contained a non-boolean value for '{key}': {value!r}",
        value=value,
        field=key,
    )


def optional_object(data: Mapping[str, Any], key: str) -> dict[str, Any] | None:
    value = data.get(key)
    return value if isinstance(value, dict) else None


def optional_array(data: Mapping[str, Any], key: str) -> list[Any] | None:
    value = data.get(key)
    return value if isinstance(value, list) else None


# Field coercions -----------------------------------------------------------


def parse_embargo_date(raw: str) -> datetime:
    """Parse a strict ``yyyy-MM-dd`` date to midnight in :data:`EMBARGO_TIME_ZONE`."""
    try:
        if not _EMBARGO_DATE_PATTERN.match(raw):
            raise ValueError(f"'{raw}' does not match yyyy-MM-dd")
        end_date = date.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidModel(
            f"Data file contained an invalid Date: '{raw}'.",
            value=raw,
            field="Embargo-end-date",
        ) from exc
    return datetime.combine(end_date, time.min, tzinfo=EMBARGO_TIME_ZONE)


def parse_doi_uri(raw: str) -> str:
    """Validate a DOI as a URI reference and return it trimmed."""
    doi = raw.strip()
    try:
        if not doi:
            raise ValueError("empty DOI")
        match = _URI_ILLEGAL.search(doi)
        if match:
            raise ValueError(f"illegal character {match.group(0)!r} at index {match.start()}")
        if _BAD_ESCAPE.search(doi):
            raise ValueError("malformed percent escape")
        head = _FIRST_SEGMENT.match(doi).group(0)
        if ":" in head:
            scheme = head.partition(":")[0]
            if not _SCHEME.match(scheme):
                raise ValueError(f"illegal scheme {scheme!r}")
        parts = urlsplit(doi)
        # brackets are only legal around an IP literal host
        for component in (parts.path, parts.query, parts.fragment):
            if "[" in component or "]" in component:
                raise ValueError("brackets outside the host")
        if "#" in parts.fragment:
            raise ValueError("more than one fragment delimiter")
    except ValueError as exc:
        raise InvalidModel(
            f"Data file contained an invalid DOI: '{raw}'",
            value=raw,
            field="doi",
        ) from exc
    return doi


# Typed sections ------------------------------------------------------------


@dataclass(slots=True)
class CommonMetadata:
    """Fields carried by the ``common`` section."""

    title: str | None = None
    abstract: str | None = None
    journal_title: str | None = None
    journal_id: str | None = None
    authors: list[str] = field(default_factory=list)
    issn_pub_types: dict[str, IssnPubType] = field(default_factory=dict)
    embargo_end_date: datetime | None = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> CommonMetadata:
        section = cls(
            title=optional_string(data, "title"),
            abstract=optional_string(data, "abstract"),
            journal_title=optional_string(data, "journal-title"),
            journal_id=optional_string(data, "journal-NLMTA-ID"),
        )
        for entry in optional_array(data, "authors") or []:
            if not isinstance(entry, dict):
                continue
            name = optional_string(entry, "author")
            if name:
                section.authors.append(name)
        section.issn_pub_types = _parse_issn_map(optional_object(data, "issn-map") or {})
        end_date = optional_string(data, "Embargo-end-date")
        if end_date is not None:
            section.embargo_end_date = parse_embargo_date(end_date)
        return section


@dataclass(slots=True)
class CrossrefMetadata:
    doi: str | None = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> CrossrefMetadata:
        raw = optional_string(data, "doi")
        return cls(doi=parse_doi_uri(raw) if raw is not None else None)


def _parse_issn_map(issn_map: Mapping[str, Any]) -> dict[str, IssnPubType]:
    result: dict[str, IssnPubType] = {}
    for issn in issn_map:
        entry = optional_object(issn_map, issn)
        if entry is None:
            continue
        types = optional_array(entry, "pub-type")
        if not types:
            continue
        description = types[0]
        pub_type = JournalPublicationType.parse(description if isinstance(description, str) else None)
        if pub_type is None:
            logger.warning(
                "metadata.issn_pub_type_unparseable",
                issn=issn,
                description=description,
            )
            continue
        result.setdefault(issn, IssnPubType(issn=issn, pub_type=pub_type))
    return result


@dataclass(slots=True)
class MetadataDocument:
    """Ordered, typed sections of a metadata document."""

    sections: list[CommonMetadata | CrossrefMetadata] = field(default_factory=list)
    unrecognized: list[str] = field(default_factory=list)

    def __iter__(self):
        return iter(self.sections)

    @property
    def common(self) -> list[CommonMetadata]:
        return [section for section in self.sections if isinstance(section, CommonMetadata)]

    @property
    def crossref(self) -> list[CrossrefMetadata]:
        return [section for section in self.sections if isinstance(section, CrossrefMetadata)]


_SECTION_PARSERS = {
    COMMON_SECTION: CommonMetadata.from_data,
    CROSSREF_SECTION: CrossrefMetadata.from_data,
}


def parse_metadata_document(raw: str | None) -> MetadataDocument:
    """Parse the raw document string into typed sections.

    Raises :class:`InvalidModel` when the document is not a JSON array of
    section objects or when a structurally required value (embargo date, DOI)
    is malformed.
    """
    document = MetadataDocument()
    if raw is None or not raw.strip():
        return document
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidModel("Metadata document is not valid JSON", value=raw[:200]) from exc
    if not isinstance(payload, list):
        raise InvalidModel(
            "Metadata document must be an array of sections",
            value=type(payload).__name__,
        )
    for position, element in enumerate(payload):
        if not isinstance(element, dict):
            raise InvalidModel(f"Metadata section {position} is not an object", value=element)
        section_id = optional_string(element, "id")
        if section_id is None:
            raise InvalidModel(f"Metadata section {position} has no id", value=element, field="id")
        parser = _SECTION_PARSERS.get(section_id)
        if parser is None:
            document.unrecognized.append(section_id)
            continue
        data = element.get("data")
        if not isinstance(data, dict):
            raise InvalidModel(
                f"Metadata section '{section_id}' has no data object",
                value=data,
                field="data",
            )
        document.sections.append(parser(data))
    return document
