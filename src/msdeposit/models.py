"""Normalized deposit submission models handed to packaging and transport."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class PersonType(str, Enum):
    """Role a person plays in a deposit submission."""

    SUBMITTER = "submitter"
    PI = "pi"
    COPI = "co-pi"
    AUTHOR = "author"


class JournalPublicationType(str, Enum):
    """Publication form of a journal, keyed by the NIHMS wire values."""

    PRINT = "ppub"
    ELECTRONIC = "epub"

    @classmethod
    def parse(cls, description: str | None) -> JournalPublicationType | None:
        """Leniently map a free-text description onto a publication type.

        Returns ``None`` when the description matches neither form.
        """
        if not description:
            return None
        key = description.strip().lower()
        return _PUB_TYPE_ALIASES.get(key)


_PUB_TYPE_ALIASES = {
    "print": JournalPublicationType.PRINT,
    "ppub": JournalPublicationType.PRINT,
    "paper": JournalPublicationType.PRINT,
    "electronic": JournalPublicationType.ELECTRONIC,
    "online": JournalPublicationType.ELECTRONIC,
    "epub": JournalPublicationType.ELECTRONIC,
    "web": JournalPublicationType.ELECTRONIC,
}


class DepositFileType(str, Enum):
    """Normalized type of a file in a deposit package."""

    MANUSCRIPT = "manuscript"
    SUPPLEMENT = "supplement"
    FIGURE = "figure"
    TABLE = "table"

    @classmethod
    def parse(cls, role: str | None) -> DepositFileType | None:
        if not role:
            return None
        key = role.strip().lower()
        if key == "supplemental":
            return cls.SUPPLEMENT
        try:
            return cls(key)
        except ValueError:
            return None


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Person(_Frozen):
    """A participant in the submission tagged with a single role."""

    first_name: str | None = None
    middle_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None
    email: str | None = None
    type: PersonType
    pi: bool = False
    corresponding_pi: bool = False
    author: bool = False

    @property
    def name(self) -> str:
        if self.full_name:
            return self.full_name
        parts = (self.first_name, self.middle_name, self.last_name)
        return " ".join(part for part in parts if part)


class Manuscript(_Frozen):
    title: str | None = None
    abstract: str | None = None
    nihms_id: str | None = None
    pubmed_id: str | None = None
    pubmed_central_id: str | None = None
    manuscript_url: str | None = None
    doi: str | None = None
    publisher_pdf: bool = False
    show_publisher_pdf: bool = False
    relative_embargo_period_months: int = 0


class IssnPubType(_Frozen):
    issn: str
    pub_type: JournalPublicationType


class Journal(_Frozen):
    """Venue metadata; a journal may carry several ISSN/type pairs."""

    journal_id: str | None = None
    journal_type: str = "nlm-ta"
    journal_title: str | None = None
    pub_type: JournalPublicationType | None = None
    issn: str | None = None
    issn_pub_types: Mapping[str, IssnPubType] = Field(default_factory=dict, validate_default=True)

    @field_validator("issn_pub_types", mode="after")
    @classmethod
    def _read_only_issn_pub_types(cls, value: Mapping[str, IssnPubType]) -> Mapping[str, IssnPubType]:
        return MappingProxyType(dict(value))

    @field_serializer("issn_pub_types")
    def _dump_issn_pub_types(self, value: Mapping[str, IssnPubType]) -> dict[str, IssnPubType]:
        return dict(value)


class Article(_Frozen):
    title: str | None = None
    doi: str | None = None
    embargo_lift_date: datetime | None = None


class DepositMetadata(_Frozen):
    manuscript: Manuscript = Field(default_factory=Manuscript)
    journal: Journal = Field(default_factory=Journal)
    article: Article = Field(default_factory=Article)
    persons: tuple[Person, ...] = ()

    def persons_of_type(self, person_type: PersonType) -> list[Person]:
        return [person for person in self.persons if person.type is person_type]


class DepositFile(_Frozen):
    """A piece of submission content referenced by location."""

    name: str
    location: str
    type: DepositFileType
    label: str | None = None
    media_type: str | None = None


class DepositManifest(_Frozen):
    """Read-only view over the files owned by a :class:`Submission`."""

    files: tuple[DepositFile, ...] = ()

    def iter_by_type(self, file_type: DepositFileType) -> Iterator[DepositFile]:
        return (item for item in self.files if item.type is file_type)

    def __len__(self) -> int:
        return len(self.files)


class Submission(_Frozen):
    """Normalized record of one manuscript deposit request."""

    id: str
    name: str
    metadata: DepositMetadata = Field(default_factory=DepositMetadata)
    files: tuple[DepositFile, ...] = ()

    @property
    def manifest(self) -> DepositManifest:
        # model_construct skips validation so the view shares the same tuple
        return DepositManifest.model_construct(files=self.files)
