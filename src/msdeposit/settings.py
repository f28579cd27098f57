"""Configuration helpers for msdeposit."""

from __future__ import annotations

import hashlib
import logging
import os
import sys
from pathlib import Path
from typing import Any, Literal

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_PACKAGE_ROOT = Path.home() / "msdeposit-packages"

ArchiveFormat = Literal["zip", "tar", "tar.gz"]


class Settings(BaseModel):
    """Runtime configuration loaded from env vars with sensible defaults."""

    data_dir: Path = Field(default_factory=lambda: DEFAULT_PACKAGE_ROOT)
    log_level: str = "INFO"
    archive_format: ArchiveFormat = "zip"
    checksum_algorithms: list[str] = Field(default_factory=lambda: ["sha256", "md5"])
    chunk_size: int = Field(default=64 * 1024, gt=0)
    manifest_name: str = "manifest.json"
    content_base_dir: Path | None = None
    http_timeout: float = 30.0

    @field_validator("checksum_algorithms")
    @classmethod
    def _known_algorithms(cls, value: list[str]) -> list[str]:
        algorithms = [name.strip().lower() for name in value if name.strip()]
        if not algorithms:
            raise ValueError("at least one checksum algorithm is required")
        unknown = sorted(set(algorithms) - hashlib.algorithms_available)
        if unknown:
            raise ValueError(f"unsupported checksum algorithm(s): {', '.join(unknown)}")
        return algorithms

    def ensure_directories(self) -> None:
        """Create the package output directory if it is missing."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls) -> "Settings":
        load_dotenv()
        data_dir = Path(os.environ.get("MSDEPOSIT_DATA_DIR", DEFAULT_PACKAGE_ROOT))
        base_dir = os.environ.get("MSDEPOSIT_CONTENT_BASE_DIR")
        return cls(
            data_dir=data_dir,
            log_level=os.environ.get("MSDEPOSIT_LOG_LEVEL", "INFO"),
            archive_format=os.environ.get("MSDEPOSIT_ARCHIVE_FORMAT", "zip"),
            checksum_algorithms=os.environ.get("MSDEPOSIT_CHECKSUMS", "sha256,md5").split(","),
            chunk_size=int(os.environ.get("MSDEPOSIT_CHUNK_SIZE", 64 * 1024)),
            manifest_name=os.environ.get("MSDEPOSIT_MANIFEST_NAME", "manifest.json"),
            content_base_dir=Path(base_dir) if base_dir else None,
            http_timeout=float(os.environ.get("MSDEPOSIT_HTTP_TIMEOUT", 30)),
        )


def get_settings() -> Settings:
    """Convenience accessor for lazy modules."""
    settings = Settings.load()
    settings.ensure_directories()
    return settings


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # looked up per logger so a redirected stderr is honoured
    return structlog.PrintLogger(sys.stderr)


def configure_logging(level: str) -> None:
    """Filter structlog output below ``level`` (a stdlib level name) and send it to stderr."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=_stderr_logger,
    )
