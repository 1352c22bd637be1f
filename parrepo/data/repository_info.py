from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from parrepo.domain.errors import IncompatibleFormat, PathConflict
from parrepo.domain.models import (
    COMPATIBLE_FORMAT_VERSIONS,
    FORMAT_VERSION,
    LEGACY_FORMAT_VERSION,
    REPOSITORY_INFO_FILE,
    RepositoryInfo,
)

logger = logging.getLogger(__name__)


def info_path(root: Path) -> Path:
    return Path(root) / REPOSITORY_INFO_FILE


def load_repository_info(root: Path) -> RepositoryInfo:
    """
    Read repository_info.yml.

    A file that is missing, is not a YAML mapping, or has no format version
    means the directory is not a usable repository.
    """
    path = info_path(root)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise PathConflict(f"Repository exists, but {path} could not be read: {e}") from e

    if not isinstance(raw, dict) or "format_version" not in raw:
        raise PathConflict(
            f"Repository exists, but it does not contain a valid {REPOSITORY_INFO_FILE} file."
        )

    # YAML turns unquoted 0.10 into the float 0.1; the stamp is always a string.
    raw["format_version"] = str(raw["format_version"])
    if raw["format_version"] == "0.1":
        raw["format_version"] = "0.10"

    try:
        return RepositoryInfo(**raw)
    except ValidationError as e:
        raise PathConflict(f"Invalid {REPOSITORY_INFO_FILE}: {e}") from e


def save_repository_info(root: Path, info: RepositoryInfo) -> None:
    path = info_path(root)
    data = info.model_dump(mode="json")
    path.write_text(
        yaml.safe_dump(data, default_flow_style=False, sort_keys=True),
        encoding="utf-8",
    )


def check_compatibility(info: RepositoryInfo) -> bool:
    """
    Verify the format stamp and report whether it needs upgrading.

    Returns True for the legacy format that must be re-stamped in place.
    """
    version = info.format_version
    if version not in COMPATIBLE_FORMAT_VERSIONS:
        logger.error(f"Repository format {version} is not supported")
        raise IncompatibleFormat(
            f"Repository exists, but it was created with an incompatible format version ({version})"
        )
    return version == LEGACY_FORMAT_VERSION


def upgrade_repository_info(root: Path, info: Optional[RepositoryInfo] = None) -> RepositoryInfo:
    """Stamp the repository with the current format version."""
    info = info or load_repository_info(root)
    logger.info(f"Upgrading repository format from {info.format_version} to {FORMAT_VERSION}")
    info.format_version = FORMAT_VERSION
    save_repository_info(root, info)
    return info
