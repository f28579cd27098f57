"""Error types raised while building and packaging deposit submissions."""

from __future__ import annotations

from typing import Any


class ModelBuildError(Exception):
    """Base class for failures that abort a submission model build."""


class InvalidModel(ModelBuildError, ValueError):
    """A source value could not be coerced to its target type.

    The offending raw value is kept on ``value`` and the parse failure, when
    there is one, is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, value: Any = None, field: str | None = None) -> None:
        super().__init__(message)
        self.value = value
        self.field = field


class MissingReference(ModelBuildError, LookupError):
    """A graph reference does not resolve to an entity of the expected kind."""

    def __init__(self, reference: str | None, kind: str, *, owner: str | None = None) -> None:
        if reference is None:
            message = f"{owner or 'entity'} has no {kind} reference"
        else:
            message = f"{kind} reference '{reference}' does not resolve"
            if owner:
                message += f" (referenced from {owner})"
        super().__init__(message)
        self.reference = reference
        self.kind = kind
        self.owner = owner


class PackageIOError(OSError):
    """Reading submission content or writing the archive failed."""

    def __init__(self, message: str, *, resource: str | None = None) -> None:
        super().__init__(message)
        self.resource = resource
