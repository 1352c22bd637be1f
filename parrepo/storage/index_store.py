"""
Open, mutate and persist the compressed key-value indices of a repository.

Each index lives in the repository root as ``<index_id>.zip`` holding a
single sqlite database ``<index_id>.db``. Opening an index decompresses the
database to a private working file; closing it flushes the working file,
recompresses it over the archive and deletes the working copy. A store
dropped while open does the same when it is garbage collected or at
interpreter exit.
"""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
import weakref
from collections.abc import MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

from parrepo.domain.errors import IndexMissing
from parrepo.storage.archive import compress_file, decompress_file

logger = logging.getLogger(__name__)

PROVIDER_INDEX = "provider_index"
EXECUTABLE_INDEX = "executable_index"
ALIAS_INDEX = "alias_index"

INDEX_IDS = (PROVIDER_INDEX, EXECUTABLE_INDEX, ALIAS_INDEX)


class PersistentMapping(MutableMapping):
    """
    A string-keyed mapping stored in a sqlite database file.

    Values are JSON documents. Reading a key returns a fresh copy of the
    stored value, so nested containers must be written back with
    ``mapping[key] = value`` for a change to stick.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = sqlite3.connect(str(db_path))
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS entries (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        self.conn.commit()

    def _cursor(self) -> sqlite3.Cursor:
        if self.conn is None:
            raise ValueError(f"Index database {self.db_path} is closed")
        return self.conn.cursor()

    def __getitem__(self, key: str) -> Any:
        cursor = self._cursor()
        cursor.execute("SELECT value FROM entries WHERE key = ?", (key,))
        row = cursor.fetchone()
        if row is None:
            raise KeyError(key)
        return json.loads(row[0])

    def __setitem__(self, key: str, value: Any) -> None:
        self._cursor().execute(
            "INSERT OR REPLACE INTO entries (key, value) VALUES (?, ?)",
            (key, json.dumps(value, sort_keys=True)),
        )

    def __delitem__(self, key: str) -> None:
        cursor = self._cursor()
        cursor.execute("DELETE FROM entries WHERE key = ?", (key,))
        if cursor.rowcount == 0:
            raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        cursor = self._cursor()
        cursor.execute("SELECT 1 FROM entries WHERE key = ? LIMIT 1", (key,))
        return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[str]:
        # Snapshot the keys so callers may delete while iterating.
        cursor = self._cursor()
        cursor.execute("SELECT key FROM entries ORDER BY key")
        return iter([row[0] for row in cursor.fetchall()])

    def __len__(self) -> int:
        cursor = self._cursor()
        cursor.execute("SELECT COUNT(*) FROM entries")
        return cursor.fetchone()[0]

    def flush(self) -> None:
        if self.conn is not None:
            self.conn.commit()

    def compact(self) -> None:
        """Reclaim space left behind by deleted entries."""
        self.flush()
        self._cursor().execute("VACUUM")

    def close(self) -> None:
        if self.conn is not None:
            self.flush()
            self.conn.close()
            self.conn = None


def _persist_working_copy(
    mapping: PersistentMapping, working_path: Path, archive_path: Path, member: str
) -> None:
    try:
        mapping.close()
        compress_file(working_path, archive_path, member)
    finally:
        working_path.unlink(missing_ok=True)


@dataclass
class IndexHandle:
    """
    An open index: the live mapping plus the working file backing it.

    ``finalizer`` persists the working copy exactly once, either when the
    store is closed or, for a store dropped while open, when it is collected.
    """

    mapping: PersistentMapping
    working_path: Path
    finalizer: weakref.finalize


class IndexStore:
    """Lifecycle of one named index inside a repository root."""

    def __init__(self, root: Path, index_id: str):
        self.root = Path(root)
        self.index_id = index_id
        self._handle: Optional[IndexHandle] = None

    @property
    def member_name(self) -> str:
        return f"{self.index_id}.db"

    @property
    def archive_path(self) -> Path:
        return self.root / f"{self.index_id}.zip"

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def exists(self) -> bool:
        return self.archive_path.is_file()

    def _new_working_path(self) -> Path:
        fd, name = tempfile.mkstemp(prefix="temporary_index_", suffix=".db")
        os.close(fd)
        return Path(name)

    def create(self) -> None:
        """Write an empty index archive, replacing any existing one."""
        logger.debug(f"Creating empty index {self.index_id}")
        working_path = self._new_working_path()
        try:
            PersistentMapping(working_path).close()
            compress_file(working_path, self.archive_path, self.member_name)
        finally:
            working_path.unlink(missing_ok=True)

    def open(self) -> IndexHandle:
        """
        Return the handle for this index, decompressing it on first use.

        Raises ``IndexMissing`` if the archive does not exist.
        """
        if self._handle is not None:
            return self._handle

        logger.debug(f"Opening index {self.index_id}")
        if not self.exists():
            raise IndexMissing(f"Index archive not found: {self.archive_path}")

        working_path = self._new_working_path()
        try:
            decompress_file(self.archive_path, self.member_name, working_path)
            mapping = PersistentMapping(working_path)
        except Exception:
            working_path.unlink(missing_ok=True)
            raise

        # Stores dropped without close() still persist their changes.
        finalizer = weakref.finalize(
            self, _persist_working_copy, mapping, working_path, self.archive_path, self.member_name
        )
        self._handle = IndexHandle(mapping=mapping, working_path=working_path, finalizer=finalizer)
        return self._handle

    def close(self) -> bool:
        """
        Flush the working copy, recompress it over the archive and delete it.

        Returns False if the index was not open.
        """
        handle = self._handle
        if handle is None:
            return False

        logger.debug(f"Closing index {self.index_id}")
        self._handle = None
        handle.finalizer()
        return True

    @staticmethod
    def compact(mapping: PersistentMapping) -> None:
        mapping.compact()

    def __enter__(self) -> PersistentMapping:
        return self.open().mapping

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
