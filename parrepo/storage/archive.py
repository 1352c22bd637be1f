"""
Compress and decompress single files to and from zip archives.

Each index is persisted as one zip archive holding exactly one member.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def decompress_file(archive_path: Path, member: str, target_path: Path) -> Path:
    """
    Extract ``member`` from ``archive_path`` and write it to ``target_path``.

    The member is streamed straight to the target instead of being extracted
    into a directory tree and renamed afterwards.
    """
    with zipfile.ZipFile(archive_path, "r") as zip_ref:
        if member not in zip_ref.namelist():
            logger.error(f"{member} not found in {archive_path}")
            raise KeyError(f"{member} not found in {archive_path}")

        with zip_ref.open(member, "r") as src, open(target_path, "wb") as dst:
            shutil.copyfileobj(src, dst)

    logger.debug(f"Extracted {member} from {archive_path} to {target_path}")
    return target_path


def compress_file(source_path: Path, archive_path: Path, member: Optional[str] = None) -> Path:
    """
    Store ``source_path`` as ``member`` in a fresh archive at ``archive_path``.

    The archive is written next to its destination first and then moved into
    place, so a crash never leaves a truncated archive behind.
    """
    member = member or source_path.name
    archive_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{archive_path.name}.", suffix=".tmp", dir=archive_path.parent
    )
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        with zipfile.ZipFile(tmp_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zip_ref:
            zip_ref.write(source_path, arcname=member)
        tmp_path.replace(archive_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.debug(f"Compressed {source_path} into {archive_path} as {member}")
    return archive_path


def read_member(archive_path: Path, member: str) -> Optional[bytes]:
    """Return the raw bytes of ``member``, or None if the archive lacks it."""
    with zipfile.ZipFile(archive_path, "r") as zip_ref:
        try:
            return zip_ref.read(member)
        except KeyError:
            return None


def extract_all(archive_path: Path, target_dir: Path) -> Path:
    """Unpack an artifact into ``target_dir`` for scanning."""
    with zipfile.ZipFile(archive_path, "r") as zip_ref:
        zip_ref.extractall(target_dir)
    return target_dir
