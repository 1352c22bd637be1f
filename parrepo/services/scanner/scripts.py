from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Dict

from parrepo.domain.models import ProvidedName
from parrepo.services.scanner.base import ExecutableScanner
from parrepo.services.scanner.packages import merge_provided, scan_lines
from parrepo.storage.archive import extract_all

logger = logging.getLogger(__name__)

SCRIPT_DIRECTORIES = ("script", "bin")
MAIN_SCRIPT = "main.pl"


def is_script_path(relative: str) -> bool:
    """True for files under script/ or bin/ that are not hidden or the entry script."""
    parts = relative.split("/")
    if len(parts) < 2 or parts[0].lower() not in SCRIPT_DIRECTORIES:
        return False
    if parts[1].startswith("."):
        return False
    name = parts[-1]
    return not name.startswith(".") and name != MAIN_SCRIPT


class ScriptDirectoryScanner(ExecutableScanner):
    """Indexes executables shipped in an artifact's script/ and bin/ directories."""

    def scan(self, artifact: Path) -> Dict[str, ProvidedName]:
        logger.debug(f"Scanning {artifact} for scripts")
        found: Dict[str, ProvidedName] = {}
        with tempfile.TemporaryDirectory(prefix="parrepo_scan_") as tmp:
            root = extract_all(artifact, Path(tmp))
            for path in sorted(p for p in root.rglob("*") if p.is_file()):
                relative = path.relative_to(root).as_posix()
                if not is_script_path(relative):
                    continue
                with path.open("r", encoding="utf-8", errors="replace") as fh:
                    _, version = scan_lines(fh)
                merge_provided(found, path.name, ProvidedName(file=relative, version=version))

        logger.debug(f"Found {len(found)} scripts in {artifact}")
        return found
