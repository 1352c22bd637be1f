from __future__ import annotations

import logging
from functools import cmp_to_key
from typing import TYPE_CHECKING, Dict, List, Optional

from parrepo.domain.matching import match_text
from parrepo.domain.models import ArtifactMatch, IndexMatch
from parrepo.domain.naming import parse_file_name
from parrepo.domain.versions import compare_files
from parrepo.storage.index_store import PersistentMapping

if TYPE_CHECKING:
    from parrepo.services.repository import Repository

logger = logging.getLogger(__name__)


class RepositoryQuery:
    def __init__(self, repository: "Repository"):
        self.repository = repository

    def names(self, index: PersistentMapping, pattern: str, match_type: Optional[str] = "Exact") -> List[IndexMatch]:
        """
        Execute a lookup against a provider or executable index.

        Returns one match per (name, file) association, ordered by name and
        then newest artifact first.
        """
        results: List[IndexMatch] = []
        for name in index:
            if not match_text(name, pattern, match_type):
                continue
            files: Dict[str, Optional[str]] = index[name]
            for file_name in self._newest_first(files):
                results.append(IndexMatch(name=name, file=file_name, version=files[file_name]))
        logger.debug(f"Query {pattern!r} ({match_type}) matched {len(results)} entries")
        return results

    def artifacts(self, pattern: str, match_type: Optional[str] = "Exact") -> List[ArtifactMatch]:
        """Group provider entries by artifact file whose artifact name matches."""
        index = self.repository.provider_index()
        by_file: Dict[str, ArtifactMatch] = {}
        for name in index:
            files: Dict[str, Optional[str]] = index[name]
            for file_name, version in files.items():
                artifact_name = parse_file_name(file_name)[0]
                if artifact_name is None or not match_text(artifact_name, pattern, match_type):
                    continue
                match = by_file.setdefault(file_name, ArtifactMatch(file=file_name))
                match.provides[name] = version
        return [by_file[f] for f in sorted(by_file)]

    def latest(self, index: PersistentMapping, name: str) -> Optional[str]:
        """The file providing ``name`` with the highest artifact version."""
        files = index.get(name)
        if not files:
            return None
        return self._newest_first(files)[0]

    @staticmethod
    def _newest_first(files: Dict[str, Optional[str]]) -> List[str]:
        return sorted(sorted(files), key=cmp_to_key(compare_files), reverse=True)
