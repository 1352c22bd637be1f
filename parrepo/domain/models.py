"""
Pydantic models for the artifact repository.

This module defines the data models used throughout the package:
- Repository metadata persisted in repository_info.yml
- Artifact identity (name, version, platform, runtime version)
- Scan results and query results handed back to callers

All models use Pydantic for validation, serialization, and type safety.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ARTIFACT_EXTENSION = ".par"

# Sentinels for the "usable regardless of this dimension" matrix cells.
ANY_PLATFORM = "any_arch"
ANY_RUNTIME_VERSION = "any_version"

REPOSITORY_INFO_FILE = "repository_info.yml"

FORMAT_VERSION = "0.14"

# Format versions that can be opened by this code. "0.03" predates the
# executable index and is upgraded in place on open.
COMPATIBLE_FORMAT_VERSIONS = frozenset(
    [FORMAT_VERSION, "0.13", "0.12", "0.11", "0.10", "0.03", "0.02"]
)
LEGACY_FORMAT_VERSION = "0.03"


# ---------------------------------------------------------------------------
# Verbosity
# ---------------------------------------------------------------------------


class Verbosity(IntEnum):
    """
    How chatty the engine should be.

    ERROR only reports failures, STATUS adds short status messages, TRACE adds
    method entry messages and FULL adds source locations to every record.
    """

    ERROR = 0
    STATUS = 1
    TRACE = 2
    FULL = 3

    @property
    def logging_level(self) -> int:
        if self is Verbosity.ERROR:
            return logging.WARNING
        if self is Verbosity.STATUS:
            return logging.INFO
        return logging.DEBUG

    @classmethod
    def clamp(cls, value: int) -> "Verbosity":
        return cls(max(cls.ERROR, min(cls.FULL, value)))


# ---------------------------------------------------------------------------
# Repository metadata
# ---------------------------------------------------------------------------


class RepositoryInfo(BaseModel):
    """
    Compatibility stamp for the on-disk layout.

    Persisted at: <ROOT>/repository_info.yml
    """

    model_config = ConfigDict(extra="allow")

    format_version: str = Field(
        default=FORMAT_VERSION,
        description="Layout version the repository was written with.",
    )


# ---------------------------------------------------------------------------
# Artifact identity
# ---------------------------------------------------------------------------


class ArtifactIdentity(BaseModel):
    """
    The four fields that name an artifact.

    Identity is immutable once a file is placed; it can always be re-derived
    from the canonical file name.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    platform: str
    runtime_version: str

    @property
    def file_name(self) -> str:
        return "-".join(
            [self.name, self.version, self.platform, self.runtime_version]
        ) + ARTIFACT_EXTENSION

    @property
    def cell(self) -> tuple[str, str]:
        """The (platform, runtime_version) matrix cell holding this artifact."""
        return (self.platform, self.runtime_version)

    def with_cell(self, platform: str, runtime_version: str) -> "ArtifactIdentity":
        return self.model_copy(
            update={"platform": platform, "runtime_version": runtime_version}
        )


class ProvidedName(BaseModel):
    """A name found inside an artifact along with where it came from."""

    file: Optional[str] = Field(
        default=None,
        description="Path of the declaring file inside the artifact.",
    )
    version: Optional[str] = Field(
        default=None,
        description="Version of the provided name; distinct from the artifact version.",
    )


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------


class IndexMatch(BaseModel):
    """One (name -> file) association found in a provider or executable index."""

    name: str
    file: str
    version: Optional[str] = None


class ArtifactMatch(BaseModel):
    """An artifact file together with every name it provides."""

    file: str
    provides: Dict[str, Optional[str]] = Field(default_factory=dict)


class StoredArtifact(BaseModel):
    """A file found in the directory matrix."""

    identity: ArtifactIdentity
    path: str = Field(description="Path relative to the repository root.")
    is_alias: bool = False
    target: Optional[str] = Field(
        default=None,
        description="File name the alias resolves to, for aliases only.",
    )

