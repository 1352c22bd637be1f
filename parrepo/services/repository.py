"""
The repository engine: the single entry point for creating, filling and
pruning an artifact repository.

The directory matrix (``<root>/<platform>/<runtime_version>/<file>``) is the
source of truth for which files exist. Three compressed indices speed up
lookups and are kept consistent with the matrix by ``inject`` and ``remove``:

* provider index:   provided name  -> {file name: provided-name version}
* executable index: script name    -> {file name: script version}
* alias index:      real file name -> [alias file names]

None of this is transactional. A crash between an index update and a file
operation can leave an index entry without a file, or a file without index
entries; ``purge`` removes orphaned names from the indices.
"""
from __future__ import annotations

import logging
import os
import shutil
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from parrepo.data.repository_info import (
    check_compatibility,
    info_path,
    load_repository_info,
    save_repository_info,
    upgrade_repository_info,
)
from parrepo.domain.errors import (
    IdentityError,
    NoProvidersFound,
    PathConflict,
    RepositoryCorruption,
    SourceMissing,
)
from parrepo.domain.models import (
    ANY_PLATFORM,
    ANY_RUNTIME_VERSION,
    ARTIFACT_EXTENSION,
    ArtifactIdentity,
    ArtifactMatch,
    IndexMatch,
    ProvidedName,
    RepositoryInfo,
    StoredArtifact,
)
from parrepo.domain.naming import base_name, resolve_identity
from parrepo.services.aliases import AliasManager
from parrepo.services.query import RepositoryQuery
from parrepo.services.scanner.base import ExecutableScanner, ProviderScanner
from parrepo.services.scanner.manifest import ManifestReader
from parrepo.services.scanner.packages import PackageDeclarationScanner
from parrepo.services.scanner.scripts import ScriptDirectoryScanner
from parrepo.storage.index_store import (
    ALIAS_INDEX,
    EXECUTABLE_INDEX,
    INDEX_IDS,
    PROVIDER_INDEX,
    IndexStore,
    PersistentMapping,
)


class Repository:
    """
    Owns one repository root and the three index stores inside it.

    Use ``Repository.open_or_create(path)`` or construct and call
    ``initialize()``. Every public mutating operation closes the indices
    before returning; ``close()`` (or leaving a ``with`` block) closes any
    index still open after queries.
    """

    def __init__(
        self,
        path: Path,
        *,
        provider_scanner: Optional[ProviderScanner] = None,
        executable_scanner: Optional[ExecutableScanner] = None,
        manifest_reader: Optional[ManifestReader] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.root = Path(path)
        self.log = logger or logging.getLogger(__name__)
        self.info: Optional[RepositoryInfo] = None

        self._stores: Dict[str, IndexStore] = {
            index_id: IndexStore(self.root, index_id) for index_id in INDEX_IDS
        }
        self.provider_scanner = provider_scanner or PackageDeclarationScanner()
        self.executable_scanner = executable_scanner or ScriptDirectoryScanner()
        self.manifest_reader = manifest_reader or ManifestReader()
        self.aliases = AliasManager(self.root, self.alias_index, logger=self.log)
        self.query = RepositoryQuery(self)

    @classmethod
    def open_or_create(cls, path: Path, **kwargs) -> "Repository":
        repository = cls(path, **kwargs)
        repository.initialize()
        return repository

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Open the repository at ``root``, creating it if the path is absent.

        Raises ``PathConflict`` if the path exists but is not a repository and
        ``IncompatibleFormat`` if it was written by an unknown format version.
        """
        self.log.debug(f"Opening repository in '{self.root}'")
        if (
            self.root.is_dir()
            and self._stores[PROVIDER_INDEX].exists()
            and self._stores[ALIAS_INDEX].exists()
            and info_path(self.root).is_file()
        ):
            self._open_existing()
        else:
            self._create()

    def _open_existing(self) -> None:
        self.log.debug("Repository exists")
        info = load_repository_info(self.root)
        if check_compatibility(info):
            info = upgrade_repository_info(self.root, info)

        executables = self._stores[EXECUTABLE_INDEX]
        if not executables.exists():
            self.log.info("Repository has no executable index; upgrading it")
            info = upgrade_repository_info(self.root, info)
            executables.create()

        self.info = info
        self.log.debug("Opened repository successfully")

    def _create(self) -> None:
        self.log.debug("Repository doesn't exist yet")
        if self.root.exists():
            raise PathConflict(
                f"The repository path '{self.root}' exists, but is not a repository. "
                "Delete it to create a new repository."
            )
        self.root.mkdir(parents=True)
        self.log.debug("Creating repository indices")
        for store in self._stores.values():
            store.create()
        self.info = RepositoryInfo()
        save_repository_info(self.root, self.info)
        self.log.info(f"Created repository in '{self.root}'")

    def close(self) -> None:
        """Persist and release every open index. Safe to call repeatedly."""
        errors = self._close_stores()
        if errors:
            raise errors[0]

    def _close_stores(self) -> List[Exception]:
        errors: List[Exception] = []
        for store in self._stores.values():
            try:
                store.close()
            except Exception as e:
                self.log.error(f"Failed to close index {store.index_id}: {e}", exc_info=True)
                errors.append(e)
        return errors

    @contextmanager
    def _session(self) -> Iterator[None]:
        """
        Close every index when the block ends.

        Close failures are raised only if the block itself succeeded; otherwise
        they are logged and the original error propagates.
        """
        try:
            yield
        except BaseException:
            self._close_stores()
            raise
        self.close()

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
        else:
            self._close_stores()

    # ------------------------------------------------------------------
    # Index accessors
    # ------------------------------------------------------------------

    def provider_index(self) -> PersistentMapping:
        return self._stores[PROVIDER_INDEX].open().mapping

    def executable_index(self) -> PersistentMapping:
        return self._stores[EXECUTABLE_INDEX].open().mapping

    def alias_index(self) -> PersistentMapping:
        return self._stores[ALIAS_INDEX].open().mapping

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def cell_dir(self, platform: str, runtime_version: str) -> Path:
        return self.root / platform / runtime_version

    def artifact_path(self, identity: ArtifactIdentity) -> Path:
        return self.cell_dir(*identity.cell) / identity.file_name

    # ------------------------------------------------------------------
    # Inject
    # ------------------------------------------------------------------

    def inject(
        self,
        source: Path,
        *,
        name: Optional[str] = None,
        version: Optional[str] = None,
        platform: Optional[str] = None,
        runtime_version: Optional[str] = None,
        overwrite: bool = False,
        no_scripts: bool = False,
        any_platform: bool = False,
        any_runtime_version: bool = False,
    ) -> bool:
        """
        Copy an artifact into the repository and index what it provides.

        Identity fields default to those parsed from the source file name.
        Returns False, changing nothing, if the target file or alias already
        exists and ``overwrite`` is not set. With ``any_platform`` and/or
        ``any_runtime_version`` the artifact is also linked into the matching
        "any" cells and every alias is indexed like the real file.
        """
        self.log.debug(f"Entering inject({source})")
        source = Path(source)
        identity = resolve_identity(
            source.name,
            name=name,
            version=version,
            platform=platform,
            runtime_version=runtime_version,
        )
        if not source.is_file():
            raise SourceMissing(f"Specified file '{source}' does not exist.")

        target_file = identity.file_name
        self.log.info(f"Target file will be '{target_file}'")

        with self._session():
            providers = self._scan_providers(source)
            executables: Dict[str, ProvidedName] = {}
            if not no_scripts:
                self.log.debug("Scanning artifact for scripts")
                executables = self.executable_scanner.scan(source)

            target_path = self.artifact_path(identity)
            if target_path.is_symlink() or target_path.exists():
                kind = "alias" if target_path.is_symlink() else "file"
                if not overwrite:
                    self.log.info(
                        f"Found existing {kind} '{target_file}'. Not overwriting because 'overwrite' isn't set."
                    )
                    return False
                self.log.info(f"Found existing {kind} '{target_file}'. Overwriting because 'overwrite' is set.")
                self._remove(identity)

            self._place(source, target_path)

            self.log.debug("Inserting provided names into the indices")
            self._add_names(self.provider_index(), providers, target_file)
            if not no_scripts:
                self._add_names(self.executable_index(), executables, target_file)

            for alias in self._fan_out_aliases(identity, any_platform, any_runtime_version):
                self.cell_dir(alias.platform, alias.runtime_version).mkdir(parents=True, exist_ok=True)
                if overwrite and self.artifact_path(alias).is_symlink():
                    self.strip_files_from_index(self.provider_index(), [alias.file_name])
                    self.strip_files_from_index(self.executable_index(), [alias.file_name])
                if not self.aliases.create_alias(target_file, alias.file_name, overwrite=overwrite):
                    continue
                # Lookups by alias name resolve without following the link.
                self._add_names(self.provider_index(), providers, alias.file_name)
                if not no_scripts:
                    self._add_names(self.executable_index(), executables, alias.file_name)
            return True

    def _scan_providers(self, source: Path) -> Dict[str, ProvidedName]:
        providers = self.manifest_reader.read_provides(source)
        if providers:
            self.log.debug("Using the 'provides' section of the embedded manifest")
            return providers

        self.log.debug("Need to scan the artifact for packages")
        try:
            providers = self.provider_scanner.scan(source)
        except zipfile.BadZipFile as e:
            raise NoProvidersFound(f"'{source}' is not a valid artifact: {e}") from e
        if not providers:
            raise NoProvidersFound(
                f"Your artifact '{source}' is either invalid or doesn't provide anything."
            )
        return providers

    def _place(self, source: Path, target_path: Path) -> None:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copy2(source, target_path)
        except OSError as e:
            self.log.error(f"Could not copy '{source}' to '{target_path}': {e}")
            raise RepositoryCorruption(f"Could not copy '{source}' to '{target_path}': {e}") from e

    @staticmethod
    def _fan_out_aliases(
        identity: ArtifactIdentity, any_platform: bool, any_runtime_version: bool
    ) -> List[ArtifactIdentity]:
        wants_platform = any_platform and identity.platform != ANY_PLATFORM
        wants_runtime = any_runtime_version and identity.runtime_version != ANY_RUNTIME_VERSION

        aliases = []
        if wants_platform:
            aliases.append(identity.with_cell(ANY_PLATFORM, identity.runtime_version))
        if wants_runtime:
            aliases.append(identity.with_cell(identity.platform, ANY_RUNTIME_VERSION))
        if wants_platform and wants_runtime:
            aliases.append(identity.with_cell(ANY_PLATFORM, ANY_RUNTIME_VERSION))
        return aliases

    @staticmethod
    def _add_names(
        index: PersistentMapping, names: Dict[str, ProvidedName], file_name: str
    ) -> None:
        for name, provided in names.items():
            files = index.get(name, {})
            files[file_name] = provided.version
            index[name] = files

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    def remove(
        self,
        file_name: Optional[str] = None,
        *,
        name: Optional[str] = None,
        version: Optional[str] = None,
        platform: Optional[str] = None,
        runtime_version: Optional[str] = None,
    ) -> bool:
        """
        Remove an artifact or an alias from the repository.

        The target is named by a bare file name, by identity fields, or by a
        mix (explicit fields win). Removing an alias leaves its real file in
        place. Removing a real file also removes every alias pointing at it.
        Returns False if nothing is stored under that name.
        """
        self.log.debug("Entering remove()")
        if file_name is not None:
            file_name = base_name(file_name)
            if not file_name.lower().endswith(ARTIFACT_EXTENSION):
                file_name += ARTIFACT_EXTENSION
        identity = resolve_identity(
            file_name,
            name=name,
            version=version,
            platform=platform,
            runtime_version=runtime_version,
        )
        with self._session():
            return self._remove(identity)

    def _remove(self, identity: ArtifactIdentity) -> bool:
        target_file = identity.file_name
        target_path = self.artifact_path(identity)
        self.log.debug(f"Target file for removal will be '{target_file}'")

        if target_path.is_symlink():
            self.log.info("Target file is an alias. Removing the alias only")
            self.strip_files_from_index(self.provider_index(), [target_file])
            self.strip_files_from_index(self.executable_index(), [target_file])
            return self.aliases.remove_alias(target_file)

        if not target_path.is_file():
            self.log.info("Target file is not in repository")
            return False

        aliases = self.alias_index()
        links = list(aliases.get(target_file, []))
        files = [target_file, *links]

        self.strip_files_from_index(self.provider_index(), files)
        self.strip_files_from_index(self.executable_index(), files)

        for link in links:
            if not self.aliases.remove_alias(link):
                self.log.warning(f"Alias '{link}' of '{target_file}' was not on disk")

        remaining = [a for a in aliases.get(target_file, []) if a not in links]
        if remaining:
            aliases[target_file] = remaining
        elif target_file in aliases:
            del aliases[target_file]

        try:
            target_path.unlink()
        except OSError as e:
            self.log.error(f"Could not remove file '{target_path}' from repository: {e}")
            raise RepositoryCorruption(
                f"Could not remove file '{target_path}' from repository: {e}"
            ) from e
        return True

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def strip_files_from_index(self, index: PersistentMapping, files: Iterable[str]) -> int:
        """
        Delete every association with one of ``files`` from a name index.

        Names left without any file are dropped. Visits every entry of the
        index, so the cost grows with the index, not with ``files``. Returns
        the number of deletions; the index is compacted if there were any.
        """
        purge = set(files)
        deleted = 0
        for name in index:
            in_files: Dict[str, Optional[str]] = index[name]
            kept = {f: v for f, v in in_files.items() if f not in purge}
            deleted += len(in_files) - len(kept)
            if not kept:
                del index[name]
                deleted += 1
            elif len(kept) != len(in_files):
                index[name] = kept

        if deleted:
            IndexStore.compact(index)
        return deleted

    def purge(self, file_names: Iterable[str]) -> int:
        """Strip orphaned file names from the provider and executable indices."""
        files = [base_name(f) for f in file_names]
        with self._session():
            return (
                self.strip_files_from_index(self.provider_index(), files)
                + self.strip_files_from_index(self.executable_index(), files)
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_provider(self, pattern: str, match_type: str = "Exact") -> List[IndexMatch]:
        return self.query.names(self.provider_index(), pattern, match_type)

    def query_executable(self, pattern: str, match_type: str = "Exact") -> List[IndexMatch]:
        return self.query.names(self.executable_index(), pattern, match_type)

    def query_artifact(self, pattern: str, match_type: str = "Exact") -> List[ArtifactMatch]:
        return self.query.artifacts(pattern, match_type)

    def latest_provider(self, name: str) -> Optional[str]:
        return self.query.latest(self.provider_index(), name)

    def list_artifacts(self) -> List[StoredArtifact]:
        """Every artifact and alias in the directory matrix."""
        stored: List[StoredArtifact] = []
        for path in sorted(self.root.glob(f"*/*/*{ARTIFACT_EXTENSION}")):
            try:
                identity = resolve_identity(path.name)
            except IdentityError:
                self.log.warning(f"Skipping unrecognised file '{path.relative_to(self.root)}'")
                continue
            is_alias = path.is_symlink()
            stored.append(
                StoredArtifact(
                    identity=identity,
                    path=path.relative_to(self.root).as_posix(),
                    is_alias=is_alias,
                    target=base_name(os.readlink(path)) if is_alias else None,
                )
            )
        return stored
