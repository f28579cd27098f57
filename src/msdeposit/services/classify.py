"""Mapping of declared file roles onto deposit file types."""

from __future__ import annotations

import mimetypes

from msdeposit.entities import FileEntity
from msdeposit.errors import InvalidModel
from msdeposit.models import DepositFileType

DEFAULT_MEDIA_TYPE = "application/octet-stream"


def classify_file(entity: FileEntity) -> DepositFileType:
    file_type = DepositFileType.parse(entity.file_role)
    if file_type is None:
        raise InvalidModel(
            f"File '{entity.id}' has an unsupported role: '{entity.file_role}'",
            value=entity.file_role,
            field="fileRole",
        )
    return file_type


def guess_media_type(name: str, declared: str | None = None) -> str:
    """Declared mime type wins; otherwise guess from the file name."""
    if declared:
        return declared
    guessed, _ = mimetypes.guess_type(name, strict=False)
    return guessed or DEFAULT_MEDIA_TYPE
