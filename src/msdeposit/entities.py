"""Typed views over the pre-resolved entity graph describing a submission."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Literal, TypeVar, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from msdeposit.errors import InvalidModel, MissingReference

logger = structlog.get_logger(__name__)


class _Entity(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str


class SubmissionEntity(_Entity):
    """Root of the graph; owns the raw metadata document."""

    type: Literal["Submission"] = "Submission"
    user: str | None = None
    metadata: str | None = None
    repositories: tuple[str, ...] = ()
    grants: tuple[str, ...] = ()
    publication: str | None = None
    source: str | None = None
    submitted: bool = False
    submitted_date: datetime | None = None
    aggregated_deposit_status: str | None = None


class UserEntity(_Entity):
    type: Literal["User"] = "User"
    first_name: str | None = None
    middle_name: str | None = None
    last_name: str | None = None
    display_name: str | None = None
    email: str | None = None
    username: str | None = None
    affiliation: str | None = None
    orcid_id: str | None = None
    institutional_id: str | None = None
    local_key: str | None = None


class GrantEntity(_Entity):
    type: Literal["Grant"] = "Grant"
    award_number: str | None = None
    award_status: str | None = None
    project_name: str | None = None
    local_key: str | None = None
    pi: str | None = None
    co_pis: tuple[str, ...] = ()
    primary_funder: str | None = None
    direct_funder: str | None = None


class FunderEntity(_Entity):
    type: Literal["Funder"] = "Funder"
    name: str | None = None
    url: str | None = None
    local_key: str | None = None
    policy: str | None = None


class RepositoryEntity(_Entity):
    type: Literal["Repository"] = "Repository"
    name: str | None = None
    description: str | None = None
    url: str | None = None
    repository_key: str | None = None


class PublicationEntity(_Entity):
    type: Literal["Publication"] = "Publication"
    title: str | None = None
    abstract: str | None = None
    doi: str | None = None
    pmid: str | None = None
    volume: str | None = None
    issue: str | None = None
    journal: str | None = None


class JournalEntity(_Entity):
    """Journal record; ISSNs use the ``"<Type>:<issn>"`` form."""

    type: Literal["Journal"] = "Journal"
    journal_name: str | None = None
    issns: tuple[str, ...] = ()
    nlmta: str | None = None


class FileEntity(_Entity):
    type: Literal["File"] = "File"
    name: str
    uri: str
    description: str | None = None
    file_role: str | None = None
    mime_type: str | None = None
    submission: str | None = None


Entity = Annotated[
    Union[
        SubmissionEntity,
        UserEntity,
        GrantEntity,
        FunderEntity,
        RepositoryEntity,
        PublicationEntity,
        JournalEntity,
        FileEntity,
    ],
    Field(discriminator="type"),
]

_ENTITY_ADAPTER: TypeAdapter[Entity] = TypeAdapter(Entity)

E = TypeVar("E", bound=_Entity)


class EntitySet(Mapping[str, Any]):
    """Read-only, insertion-ordered mapping of identifier to entity.

    Safe to share between concurrent builds: nothing here mutates entities.
    """

    def __init__(self, entities: Iterable[_Entity]) -> None:
        self._entities: dict[str, _Entity] = {}
        for entity in entities:
            self._entities[entity.id] = entity

    def __getitem__(self, identifier: str) -> _Entity:
        return self._entities[identifier]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def resolve(self, reference: str | None, kind: type[E], *, owner: str | None = None) -> E:
        """Return the entity behind ``reference`` or raise :class:`MissingReference`."""
        label = kind.model_fields["type"].default
        if reference is None:
            raise MissingReference(None, label, owner=owner)
        entity = self._entities.get(reference)
        if not isinstance(entity, kind):
            logger.debug("entities.unresolved", reference=reference, kind=label, owner=owner)
            raise MissingReference(reference, label, owner=owner)
        return entity

    def of_type(self, kind: type[E]) -> list[E]:
        return [entity for entity in self._entities.values() if isinstance(entity, kind)]


def parse_entity(payload: Any) -> _Entity:
    if not isinstance(payload, Mapping):
        raise InvalidModel(f"Entity payload must be an object, not {type(payload).__name__}", value=payload)
    try:
        return _ENTITY_ADAPTER.validate_python(dict(payload))
    except ValidationError as exc:
        raise InvalidModel(
            f"Entity payload could not be parsed: {exc.error_count()} error(s)",
            value=payload.get("id"),
        ) from exc


def parse_entity_set(payload: Any) -> EntitySet:
    """Build an :class:`EntitySet` from a list of entities or an id keyed object."""
    if isinstance(payload, Mapping):
        items = []
        for identifier, body in payload.items():
            if not isinstance(body, Mapping):
                raise InvalidModel(f"Entity '{identifier}' must be an object", value=body, field=identifier)
            body = dict(body)
            body.setdefault("id", identifier)
            items.append(body)
    elif isinstance(payload, list):
        items = payload
    else:
        raise InvalidModel("Entity set must be a list or an object", value=type(payload).__name__)
    return EntitySet(parse_entity(item) for item in items)


def load_entity_set(path: Path) -> EntitySet:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidModel(f"{path} is not valid JSON", value=str(path)) from exc
    entities = parse_entity_set(payload)
    logger.info("entities.loaded", path=str(path), count=len(entities))
    return entities
