"""Filesystem helpers: atomic writes and chunked reads."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from typing import AsyncIterable, AsyncIterator, Optional

from constants import Constants

logger = logging.getLogger(__name__)


def _flush_and_sync(fh) -> None:
    fh.flush()
    os.fsync(fh.fileno())


async def atomic_write(path: str, chunks: AsyncIterable[bytes]) -> int:
    """Stream ``chunks`` into ``path`` atomically and return the byte count.

    Data goes to a temporary sibling file that is fsynced and renamed over
    ``path`` only once every chunk has been written. On any error the
    temporary file is removed and the exception propagates; ``path`` is left
    untouched.
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(path)}.", suffix=".tmp")
    written = 0
    try:
        with os.fdopen(fd, "wb") as fh:
            async for chunk in chunks:
                await asyncio.to_thread(fh.write, chunk)
                written += len(chunk)
            await asyncio.to_thread(_flush_and_sync, fh)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise
    return written


async def iter_file(path: str, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
    """Yield a file's content in chunks without blocking the event loop.

    The file is opened lazily, so a missing file surfaces on first iteration.
    """
    size = chunk_size or Constants.CHUNK_SIZE
    with open(path, "rb") as fh:
        while True:
            chunk = await asyncio.to_thread(fh.read, size)
            if not chunk:
                break
            yield chunk


def remove_tree(path: str) -> None:
    """Best-effort recursive removal; failures are logged, never raised."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove temporary directory %s: %s", path, exc)
