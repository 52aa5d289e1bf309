"""Extraction of npm tarballs (gzip-compressed tar)."""

from __future__ import annotations

import asyncio
import logging
import os
import tarfile
from pathlib import Path

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """The tarball could not be extracted."""


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root)
        return True
    except ValueError:
        return False


def _check_members(tar: tarfile.TarFile, root: Path) -> None:
    for member in tar.getmembers():
        member_path = Path(member.name)
        if member_path.is_absolute() or ".." in member_path.parts:
            raise ExtractionError(f"Unsafe path in archive: {member.name}")
        if not _is_within(root / member_path, root):
            raise ExtractionError(f"Archive member escapes target directory: {member.name}")
        if member.issym() or member.islnk():
            link = Path(member.linkname)
            if link.is_absolute() or ".." in link.parts:
                raise ExtractionError(f"Unsafe link in archive: {member.name} -> {member.linkname}")


def _extract(tarball: str, directory: str) -> None:
    root = Path(directory).resolve()
    with tarfile.open(tarball, "r:gz") as tar:
        _check_members(tar, root)
        tar.extractall(root, filter="data")


async def extract_tgz(tarball: str, directory: str) -> str:
    """Extract ``tarball`` into ``directory`` and return ``directory``.

    npm tarballs hold a single top-level ``package/`` folder.

    Raises:
        ExtractionError: the archive is unreadable or unsafe.
    """
    os.makedirs(directory, exist_ok=True)
    try:
        await asyncio.to_thread(_extract, tarball, directory)
    except ExtractionError:
        raise
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise ExtractionError(f"Cannot extract {tarball}: {exc}") from exc
    logger.debug("Extracted %s into %s", tarball, directory)
    return directory
