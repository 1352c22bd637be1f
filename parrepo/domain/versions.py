"""
Version ordering for artifacts and the names they provide.

Versions compare part by part: numeric parts numerically, anything else
lexically after all numeric parts, so ``1.10`` ranks above ``1.9``.
"""
from __future__ import annotations

from typing import Optional

from parrepo.domain.naming import parse_file_name


def version_key(v: str) -> tuple:
    v_str = str(v) if v is not None else ""
    parts = []
    for part in v_str.lstrip("v").replace("-", ".").replace("_", ".").split("."):
        try:
            parts.append((0, int(part)))
        except ValueError:
            parts.append((1, part))
    # 1.0 and 1.0.0 are the same version
    while len(parts) > 1 and parts[-1] == (0, 0):
        parts.pop()
    return tuple(parts)


def compare_versions(a: Optional[str], b: Optional[str]) -> int:
    """
    Compare two version strings, returning -1, 0 or 1.

    A missing version sorts below any present one; two missing versions are
    equal.
    """
    if a is None:
        return 0 if b is None else -1
    if b is None:
        return 1
    key_a, key_b = version_key(a), version_key(b)
    return (key_a > key_b) - (key_a < key_b)


def compare_files(file_a: str, file_b: str) -> int:
    """Compare the artifact versions embedded in two file names."""
    _, version_a, _, _ = parse_file_name(file_a)
    _, version_b, _, _ = parse_file_name(file_b)
    return compare_versions(version_a, version_b)


def is_newer(candidate: Optional[str], current: Optional[str]) -> bool:
    """True when ``candidate`` should replace ``current`` as the winning version."""
    return compare_versions(candidate, current) > 0
