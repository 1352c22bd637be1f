"""
Read the ``provides`` section of the META.yml embedded in an artifact.
"""
from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Dict, Optional

import yaml

from parrepo.domain.models import ProvidedName
from parrepo.storage.archive import read_member

logger = logging.getLogger(__name__)

META_FILE = "META.yml"
_NULLS = ("", "~", "null", "Null", "NULL")


def _scalar(value) -> Optional[str]:
    if value is None or not isinstance(value, str) or value in _NULLS:
        return None
    return value


class ManifestReader:
    """Reads provided names from an artifact's metadata file."""

    def __init__(self, meta_file: str = META_FILE):
        self.meta_file = meta_file

    def read_provides(self, artifact: Path) -> Optional[Dict[str, ProvidedName]]:
        """
        Return the ``provides`` mapping, or None when there is no usable one.

        Scalars are loaded as strings so versions such as ``1.10`` are kept
        exactly as written.
        """
        try:
            content = read_member(artifact, self.meta_file)
        except zipfile.BadZipFile as e:
            logger.warning(f"Could not read {self.meta_file} from {artifact}: {e}")
            return None
        if content is None:
            logger.debug(f"No {self.meta_file} in {artifact}")
            return None

        try:
            meta = yaml.load(content.decode("utf-8", errors="replace"), Loader=yaml.BaseLoader)
        except yaml.YAMLError as e:
            logger.warning(f"Failed to parse {self.meta_file} from {artifact}: {e}")
            return None

        if not isinstance(meta, dict) or not isinstance(meta.get("provides"), dict):
            logger.debug(f"{self.meta_file} in {artifact} has no 'provides' section")
            return None

        provides: Dict[str, ProvidedName] = {}
        for name, entry in meta["provides"].items():
            if isinstance(entry, dict):
                provides[name] = ProvidedName(
                    file=_scalar(entry.get("file")),
                    version=_scalar(entry.get("version")),
                )
            elif entry is None or (isinstance(entry, str) and entry in _NULLS):
                provides[name] = ProvidedName()
            else:
                logger.warning(f"Malformed 'provides' entry for {name} in {artifact}")
                return None
        return provides
