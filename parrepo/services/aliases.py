"""
Symbolic aliases that let one artifact fill several matrix cells.

An alias lives in the cell derived from its own file name and points at the
real artifact through a relative link (``../../<platform>/<runtime>/<file>``).
The alias index records, for every real file, the aliases pointing at it.
"""
from __future__ import annotations

import functools
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, List, Optional

from parrepo.domain.errors import UnsupportedPlatform
from parrepo.domain.naming import base_name, resolve_identity
from parrepo.storage.index_store import PersistentMapping


# Windows refuses symlinks to unprivileged processes with this error code.
ERROR_PRIVILEGE_NOT_HELD = 1314


@functools.lru_cache(maxsize=None)
def symlinks_supported() -> bool:
    """Probe once whether this process can create symbolic links."""
    if not hasattr(os, "symlink"):
        return False
    with tempfile.TemporaryDirectory(prefix="parrepo_symlink_") as tmp:
        try:
            os.symlink("target", os.path.join(tmp, "link"))
        except (NotImplementedError, OSError) as e:
            logging.getLogger(__name__).debug(f"Symlink probe failed: {e}")
            return False
    return True


class AliasManager:
    """
    Creates and removes aliases and keeps the alias index in step.

    ``alias_index`` is called whenever the index is needed so the owning
    repository stays in charge of opening it.
    """

    def __init__(
        self,
        root: Path,
        alias_index: Callable[[], PersistentMapping],
        logger: Optional[logging.Logger] = None,
    ):
        self.root = Path(root)
        self._alias_index = alias_index
        self.log = logger or logging.getLogger(__name__)

    def cell_path(self, file_name: str) -> Path:
        """Where a bare artifact or alias file name lives in the matrix."""
        identity = resolve_identity(file_name)
        return self.root / identity.platform / identity.runtime_version / identity.file_name

    def create_alias(self, real_file: str, alias_file: str, overwrite: bool = False) -> bool:
        """
        Link ``alias_file`` to ``real_file`` and record it in the alias index.

        Returns False without touching anything if the alias exists and
        ``overwrite`` is not set, or if a real file already sits where the
        alias would go. Real files are never replaced by aliases.
        """
        self.log.debug(f"Entering create_alias({real_file!r}, {alias_file!r})")
        # Placement comes from the names only; caller paths are ignored.
        real_file = base_name(real_file)
        alias_file = base_name(alias_file)
        real_path = self.cell_path(real_file)
        alias_path = self.cell_path(alias_file)

        if not symlinks_supported():
            raise UnsupportedPlatform("Symlinks are not supported on this system!")

        aliases = self._alias_index()

        if alias_path.is_symlink():
            self.log.info(f"Alias '{alias_file}' exists. Overwrite is set to {int(bool(overwrite))}")
            if not overwrite:
                return False
            self.remove_alias(alias_file)

        if alias_path.exists():
            self.log.info(f"Alias '{alias_file}' is a real file. Not overwriting")
            return False

        alias_path.parent.mkdir(parents=True, exist_ok=True)
        link_target = Path(os.pardir, os.pardir, real_path.parent.parent.name, real_path.parent.name, real_file)
        try:
            os.symlink(link_target, alias_path)
        except NotImplementedError as e:
            raise UnsupportedPlatform(f"Could not create symlink {alias_path}: {e}") from e
        except OSError as e:
            if getattr(e, "winerror", None) != ERROR_PRIVILEGE_NOT_HELD:
                raise
            raise UnsupportedPlatform(f"Not allowed to create symlink {alias_path}: {e}") from e

        existing: List[str] = aliases.get(real_file, [])
        existing.append(alias_file)
        aliases[real_file] = existing
        self.log.debug(f"Created alias {alias_path.relative_to(self.root)} -> {link_target}")
        return True

    def remove_alias(self, alias_file: str) -> bool:
        """
        Delete an alias and strip it from every list in the alias index.

        Returns False if no alias exists at the derived location, or if the
        link could not be deleted (the index is then left untouched).
        """
        self.log.debug(f"Entering remove_alias({alias_file!r})")
        alias_file = base_name(alias_file)
        alias_path = self.cell_path(alias_file)

        if not alias_path.is_symlink():
            self.log.info(f"Alias '{alias_file}' doesn't exist")
            return False

        aliases = self._alias_index()

        self.log.debug(f"Removing alias '{alias_file}'")
        try:
            alias_path.unlink()
        except OSError as e:
            self.log.error(f"Could not remove alias {alias_path}: {e}")
            return False

        self.log.debug("Removing all references to alias from the alias index")
        for real_file in aliases:
            listed = aliases[real_file]
            if alias_file not in listed:
                continue
            remaining = [a for a in listed if a != alias_file]
            if remaining:
                aliases[real_file] = remaining
            else:
                del aliases[real_file]
        return True

    def aliases_of(self, real_file: str) -> List[str]:
        return list(self._alias_index().get(base_name(real_file), []))
