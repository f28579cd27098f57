"""Builds the normalized deposit Submission from an entity graph and its metadata document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

import structlog

from msdeposit.entities import (
    EntitySet,
    FileEntity,
    FunderEntity,
    GrantEntity,
    JournalEntity,
    PublicationEntity,
    RepositoryEntity,
    SubmissionEntity,
    UserEntity,
)
from msdeposit.models import (
    Article,
    DepositFile,
    DepositMetadata,
    IssnPubType,
    Journal,
    JournalPublicationType,
    Manuscript,
    Person,
    PersonType,
    Submission,
)
from .classify import classify_file, guess_media_type
from .metadata import CommonMetadata, CrossrefMetadata, MetadataDocument, parse_doi_uri, parse_metadata_document
from .persons import author_from_name, person_from_user

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class _Draft:
    """Mutable accumulators for one build; frozen into models at the end."""

    manuscript: dict[str, Any] = field(default_factory=dict)
    article: dict[str, Any] = field(default_factory=dict)
    journal: dict[str, Any] = field(default_factory=dict)
    issn_pub_types: dict[str, IssnPubType] = field(default_factory=dict)
    persons: list[Person] = field(default_factory=list)

    def set_title(self, title: str) -> None:
        self.manuscript["title"] = title
        self.article["title"] = title

    def freeze(self) -> DepositMetadata:
        journal = dict(self.journal)
        if self.issn_pub_types and "issn" not in journal:
            first = next(iter(self.issn_pub_types.values()))
            journal["issn"] = first.issn
            journal["pub_type"] = first.pub_type
        return DepositMetadata(
            manuscript=Manuscript(**self.manuscript),
            article=Article(**self.article),
            journal=Journal(**journal, issn_pub_types=dict(self.issn_pub_types)),
            persons=tuple(self.persons),
        )


class SubmissionModelBuilder:
    """Walks the entity graph rooted at a submission and produces a :class:`Submission`.

    Graph-sourced values are collected first; metadata document values are
    applied afterwards and so take precedence over them.
    """

    def __init__(self, entities: EntitySet) -> None:
        self._entities = entities

    def build(self, submission_id: str, metadata: str | None = None) -> Submission:
        """Build the model for ``submission_id``.

        ``metadata`` replaces the root entity's own metadata document when given.
        Raises :class:`~msdeposit.errors.InvalidModel` or
        :class:`~msdeposit.errors.MissingReference`; no partial model escapes.
        """
        root = self._entities.resolve(submission_id, SubmissionEntity)
        log = logger.bind(submission=root.id)
        log.debug("builder.start", grants=len(root.grants), repositories=len(root.repositories))

        draft = _Draft()
        user = self._entities.resolve(root.user, UserEntity, owner=root.id)
        draft.persons.append(person_from_user(user, PersonType.SUBMITTER))

        self._visit_repositories(root)
        self._apply_grants(root, draft)
        self._apply_publication(root, draft)

        document = parse_metadata_document(metadata if metadata is not None else root.metadata)
        for section_id in document.unrecognized:
            log.debug("builder.section_ignored", section=section_id)
        self._apply_document(document, draft)

        files = tuple(self._collect_files(root))
        submission = Submission(
            id=root.id,
            # no human readable name exists in the graph
            name=root.id,
            metadata=draft.freeze(),
            files=files,
        )
        log.info("builder.complete", persons=len(draft.persons), files=len(files))
        return submission

    # Graph traversal ------------------------------------------------------

    def _visit_repositories(self, root: SubmissionEntity) -> None:
        # Repository data has no place in the deposit model yet.
        for reference in root.repositories:
            self._entities.resolve(reference, RepositoryEntity, owner=root.id)

    def _apply_grants(self, root: SubmissionEntity, draft: _Draft) -> None:
        for reference in root.grants:
            grant = self._entities.resolve(reference, GrantEntity, owner=root.id)
            for funder in (grant.primary_funder, grant.direct_funder):
                if funder is not None:
                    self._entities.resolve(funder, FunderEntity, owner=grant.id)
            pi = self._entities.resolve(grant.pi, UserEntity, owner=grant.id)
            draft.persons.append(person_from_user(pi, PersonType.PI))
            for copi in grant.co_pis:
                user = self._entities.resolve(copi, UserEntity, owner=grant.id)
                draft.persons.append(person_from_user(user, PersonType.COPI))

    def _apply_publication(self, root: SubmissionEntity, draft: _Draft) -> None:
        if root.publication is None:
            return
        publication = self._entities.resolve(root.publication, PublicationEntity, owner=root.id)
        if publication.title:
            draft.set_title(publication.title)
        if publication.abstract:
            draft.manuscript["abstract"] = publication.abstract
        if publication.pmid:
            draft.manuscript["pubmed_id"] = publication.pmid
        if publication.doi:
            draft.article["doi"] = parse_doi_uri(publication.doi)
        if publication.journal is None:
            return
        journal = self._entities.resolve(publication.journal, JournalEntity, owner=publication.id)
        if journal.journal_name:
            draft.journal["journal_title"] = journal.journal_name
        if journal.nlmta:
            draft.journal["journal_id"] = journal.nlmta
        for value in journal.issns:
            description, _, issn = value.rpartition(":")
            pub_type = JournalPublicationType.parse(description)
            if not issn or pub_type is None:
                logger.warning("builder.journal_issn_unparseable", journal=journal.id, issn=value)
                continue
            draft.issn_pub_types.setdefault(issn, IssnPubType(issn=issn, pub_type=pub_type))

    def _collect_files(self, root: SubmissionEntity) -> Iterator[DepositFile]:
        for entity in self._entities.of_type(FileEntity):
            if entity.submission != root.id:
                continue
            yield DepositFile(
                name=entity.name,
                location=entity.uri,
                type=classify_file(entity),
                label=entity.description,
                media_type=guess_media_type(entity.name, entity.mime_type),
            )

    # Metadata document ----------------------------------------------------

    def _apply_document(self, document: MetadataDocument, draft: _Draft) -> None:
        document_issns: set[str] = set()
        for section in document:
            if isinstance(section, CommonMetadata):
                self._apply_common(section, draft, document_issns)
            elif isinstance(section, CrossrefMetadata) and section.doi is not None:
                draft.article["doi"] = section.doi

    def _apply_common(self, section: CommonMetadata, draft: _Draft, seen_issns: set[str]) -> None:
        if section.title is not None:
            draft.set_title(section.title)
        if section.abstract is not None:
            draft.manuscript["abstract"] = section.abstract
        if section.journal_title is not None:
            draft.journal["journal_title"] = section.journal_title
        if section.journal_id is not None:
            draft.journal["journal_id"] = section.journal_id
        for name in section.authors:
            draft.persons.append(author_from_name(name))
        for issn, pub_type in section.issn_pub_types.items():
            if issn in seen_issns:
                continue
            seen_issns.add(issn)
            draft.issn_pub_types[issn] = pub_type
        if section.embargo_end_date is not None:
            draft.article["embargo_lift_date"] = section.embargo_end_date


def build_submission(entities: EntitySet, submission_id: str, metadata: str | None = None) -> Submission:
    return SubmissionModelBuilder(entities).build(submission_id, metadata)
