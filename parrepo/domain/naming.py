"""
Derive artifact identities from file names and explicit fields.
"""
from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import Optional, Tuple

from parrepo.domain.errors import IdentityError
from parrepo.domain.models import (
    ANY_RUNTIME_VERSION,
    ARTIFACT_EXTENSION,
    ArtifactIdentity,
)

logger = logging.getLogger(__name__)

VERSION_TOKEN = re.compile(r"^v?(?:\d+(?:_\d+)?|\d*(?:\.\d+(?:_\d+)?)+)$")
_EXTENSION = re.compile(re.escape(ARTIFACT_EXTENSION) + r"$", re.IGNORECASE)

ParsedName = Tuple[Optional[str], Optional[str], Optional[str], Optional[str]]


def base_name(file_name: str) -> str:
    """Strip any directory part, accepting both separators."""
    return PurePath(file_name.replace("\\", "/")).name


def parse_file_name(file_name: Optional[str]) -> ParsedName:
    """
    Split an artifact file name into (name, version, platform, runtime_version).

    Tokens are separated by ``-``. The artifact version is the first version
    token not immediately followed by another version token (platform strings
    never start with a version). The platform runs up to the next version
    token or ``any_version``, which is the runtime version. Pieces that cannot
    be found are returned as ``None``.
    """
    if not file_name:
        return (None, None, None, None)

    stem = _EXTENSION.sub("", base_name(file_name))
    elements = stem.split("-")

    name_parts = []
    version = None
    while elements:
        element = elements.pop(0)
        if VERSION_TOKEN.match(element) and not (
            elements and VERSION_TOKEN.match(elements[0])
        ):
            version = element
            break
        name_parts.append(element)

    name = "-".join(name_parts) if name_parts else None
    if not elements:
        return (name, version, None, None)

    platform_parts = []
    runtime_version = None
    while elements:
        element = elements.pop(0)
        if VERSION_TOKEN.match(element) or element == ANY_RUNTIME_VERSION:
            runtime_version = element
            break
        platform_parts.append(element)

    platform = "-".join(platform_parts) if platform_parts else None
    return (name, version, platform, runtime_version)


def resolve_identity(
    file_name: Optional[str] = None,
    *,
    name: Optional[str] = None,
    version: Optional[str] = None,
    platform: Optional[str] = None,
    runtime_version: Optional[str] = None,
) -> ArtifactIdentity:
    """
    Merge explicit identity fields with those parsed from ``file_name``.

    The file name is only parsed when at least one explicit field is missing.
    Explicit fields always win. Raises ``IdentityError`` naming the first
    field that is still undetermined.
    """
    explicit = (name, version, platform, runtime_version)
    parsed: ParsedName = (None, None, None, None)
    if any(field is None for field in explicit):
        logger.debug("Did not get all identity fields explicitly; parsing file name")
        parsed = parse_file_name(file_name)

    merged = [e if e is not None else p for e, p in zip(explicit, parsed)]
    labels = ("name", "version", "platform", "runtime version")
    for label, value in zip(labels, merged):
        if value is None:
            raise IdentityError(f"Could not determine artifact {label} from {file_name!r}")

    identity = ArtifactIdentity(
        name=merged[0],
        version=merged[1],
        platform=merged[2],
        runtime_version=merged[3],
    )
    logger.debug(f"Resolved identity: {identity.file_name}")
    return identity


def canonical_file_name(identity: ArtifactIdentity) -> str:
    return identity.file_name
