"""Utility helpers for archive entry names and filesystem-safe names."""

from __future__ import annotations

import hashlib
import re
import unicodedata
from collections.abc import Container, Iterable
from typing import Any
from pathlib import PurePosixPath

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
ENTRY_PATTERN = re.compile(r"[^\w.()+-]+")


def slugify(value: str, max_length: int = 80) -> str:
    """Create a filesystem-safe slug."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode()
    value = value.lower()
    value = SLUG_PATTERN.sub("-", value).strip("-")
    if not value:
        value = "item"
    return value[:max_length]


def safe_entry_name(name: str) -> str:
    """Reduce a file name to a single archive path component."""
    base = PurePosixPath(name.replace("\\", "/")).name
    base = ENTRY_PATTERN.sub("_", base).strip("._")
    return base or "file"


def unique_entry_name(name: str, taken: Container[str]) -> str:
    """Suffix ``name`` with a counter until it no longer collides."""
    if name not in taken:
        return name
    stem, dot, suffix = name.partition(".")
    counter = 1
    while True:
        candidate = f"{stem}-{counter}{dot}{suffix}"
        if candidate not in taken:
            return candidate
        counter += 1


def new_digests(algorithms: Iterable[str]) -> dict[str, Any]:
    return {name: hashlib.new(name) for name in algorithms}
