"""
Discover the packages an artifact declares by reading its module sources.

Declarations are found with a small line-state machine rather than one big
regular expression: documentation blocks are skipped, comments stripped, and
reading stops at the end-of-code marker.
"""
from __future__ import annotations

import logging
import re
import tempfile
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from parrepo.domain.models import ProvidedName
from parrepo.domain.versions import is_newer
from parrepo.services.scanner.base import ProviderScanner
from parrepo.storage.archive import extract_all

logger = logging.getLogger(__name__)

_DOC_START = re.compile(r"^=(?!cut)\w")
_DOC_END = re.compile(r"^=cut")
_END_OF_CODE = re.compile(r"\b__(?:END|DATA)__\b")
_DECLARATION = re.compile(r"\bpackage\s+([\w:']+)\s*(?:$|[};{])")
_VERSION_ASSIGNMENT = re.compile(r"[$*](?:[\w:']*::)?VERSION\b.*?(?<![!><=])=(?![=>~])\s*(.*)$")
_QUOTED = re.compile(r"""^(?:qv\(\s*|version->(?:new|declare|parse)\(\s*)?['"]([^'"]+)['"]""")
_BARE = re.compile(r"^(v?\d[\d._]*)")

DEFAULT_NAMESPACE = "main"


class LineState(Enum):
    CODE = "code"
    DOC = "doc"


def iter_code_lines(lines: Iterable[str]) -> Iterable[str]:
    """Yield the code lines of a source file with comments removed."""
    state = LineState.CODE
    for raw in lines:
        line = raw.rstrip("\r\n")
        if _DOC_START.match(line):
            state = LineState.DOC
        elif _DOC_END.match(line):
            state = LineState.CODE
            continue
        if state is LineState.DOC:
            continue

        line = line.split("#", 1)[0]
        if not line.strip():
            continue
        if _END_OF_CODE.search(line):
            return
        yield line


def is_acceptable_name(name: str) -> bool:
    return (
        bool(re.match(r"^[A-Za-z]", name))
        and bool(re.search(r"\w$", name))
        and name != DEFAULT_NAMESPACE
    )


def parse_version_value(expression: str) -> Optional[str]:
    expression = expression.strip()
    match = _QUOTED.match(expression) or _BARE.match(expression)
    if not match:
        return None
    return match.group(1)


def scan_lines(lines: Iterable[str]) -> Tuple[List[str], Optional[str]]:
    """
    Parse one source file.

    Returns the declared package names in order of appearance and the
    file's version (the first ``$VERSION`` assignment), if any.
    """
    names: List[str] = []
    version: Optional[str] = None
    for line in iter_code_lines(lines):
        if version is None:
            assignment = _VERSION_ASSIGNMENT.search(line)
            if assignment:
                version = parse_version_value(assignment.group(1))

        declaration = _DECLARATION.search(line)
        if not declaration:
            continue
        name = declaration.group(1).replace("'", "::")
        if is_acceptable_name(name) and name not in names:
            names.append(name)
    return names, version


def merge_provided(
    found: Dict[str, ProvidedName], name: str, candidate: ProvidedName
) -> None:
    """Keep whichever of the current and candidate entries has the higher version."""
    current = found.get(name)
    if current is None or is_newer(candidate.version, current.version):
        found[name] = candidate


class PackageDeclarationScanner(ProviderScanner):
    """Scans every ``.pm`` file in an artifact for package declarations."""

    suffix = ".pm"

    def scan(self, artifact: Path) -> Dict[str, ProvidedName]:
        logger.debug(f"Scanning {artifact} for packages")
        found: Dict[str, ProvidedName] = {}
        with tempfile.TemporaryDirectory(prefix="parrepo_scan_") as tmp:
            root = extract_all(artifact, Path(tmp))
            sources = sorted(
                p for p in root.rglob("*")
                if p.is_file() and p.suffix.lower() == self.suffix
            )
            for source in sources:
                relative = source.relative_to(root).as_posix()
                with source.open("r", encoding="utf-8", errors="replace") as fh:
                    names, version = scan_lines(fh)
                for name in names:
                    merge_provided(found, name, ProvidedName(file=relative, version=version))

        logger.debug(f"Found {len(found)} packages in {artifact}")
        return found
