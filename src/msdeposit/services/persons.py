"""Construction of normalized person records."""

from __future__ import annotations

from msdeposit.entities import UserEntity
from msdeposit.models import Person, PersonType


def person_from_user(user: UserEntity, role: PersonType) -> Person:
    """Copy the name and contact fields of a user entity into a tagged person."""
    return Person(
        first_name=user.first_name,
        middle_name=user.middle_name,
        last_name=user.last_name,
        email=user.email,
        type=role,
        pi=role is PersonType.PI,
        author=role is PersonType.AUTHOR,
    )


def author_from_name(full_name: str) -> Person:
    """Authors listed in the metadata document carry only a display name."""
    return Person(full_name=full_name, type=PersonType.AUTHOR, author=True)
