"""Tarball fetcher: materialize a cached npm tarball into a directory."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

import aiohttp

from common.fs_utils import atomic_write
from common.logging_utils import extra_context, Timer
from registry.errors import RegistryError, StreamError

from .client import RegistryClient

logger = logging.getLogger(__name__)


def normalize_pkg_name(name: str) -> str:
    """``@scope/name`` becomes ``scope-name``; unscoped names are unchanged."""
    return name[1:].replace("/", "-") if name.startswith("@") else name


def tarball_file_name(name: str, version: str) -> str:
    return f"{normalize_pkg_name(name)}-{version}.tgz"


async def download_tarball(
    pkg: str,
    version: str,
    directory: str,
    client: Optional[RegistryClient] = None,
) -> str:
    """Write ``pkg@version``'s tarball into ``directory`` and return its absolute path.

    This is what ``npm pack`` does, without touching the working directory.
    The file appears at its final path only once fully written.

    Raises:
        StreamError: reading the cached tarball or writing the output failed.
        RegistryError: any registry failure while resolving the tarball.
    """
    client = client or RegistryClient()
    source = await client.resolve_tarball_source(f"{pkg}@{version}")

    target_dir = os.path.abspath(directory)
    output_file = os.path.join(target_dir, tarball_file_name(source.name, source.version))

    with Timer() as timer:
        try:
            size = await atomic_write(output_file, source.stream)
        except RegistryError:
            raise
        except (OSError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise StreamError(f"Cannot write {output_file}: {exc}", package=pkg) from exc
        finally:
            aclose = getattr(source.stream, "aclose", None)
            if aclose is not None:
                await aclose()

    logger.info(
        "Tarball written to %s",
        output_file,
        extra=extra_context(
            event="tarball_write",
            component="tarball",
            outcome="success",
            target=output_file,
            bytes=size,
            duration_ms=timer.duration_ms(),
        ),
    )
    return output_file
