"""Local npm cache layouts.

npm clients before 5.0 keep tarballs at ``<cache>/<name>/<version>/package.tgz``;
later clients keep a content-addressed store under ``<cache>/_cacache`` where
blobs are located by their integrity digest. The layout is chosen once per
client from the detected npm version, and both strategies expose the same
``resolve_tarball_source`` operation.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Tuple

import aiohttp
import semantic_version

from constants import Constants
from common.fs_utils import atomic_write, iter_file
from common.logging_utils import extra_context, is_debug_enabled
from registry.errors import CacheAddError, ManifestFetchError, RegistryError, RegistryLoadError, StreamError
from registry.npm.handle import parse_spec

logger = logging.getLogger(__name__)

# Strongest first
_ALGORITHMS = ("sha512", "sha384", "sha256", "sha1")

_CACHE_ADD_ERRORS = (RegistryError, aiohttp.ClientError, asyncio.TimeoutError, OSError, KeyError, ValueError)


@dataclass
class TarballSource:
    """A resolved package and a lazily opened stream over its tarball bytes."""

    name: str
    version: str
    stream: AsyncIterator[bytes]


@dataclass
class CacheInfo:
    """Manifest subset needed to locate a tarball in the content-addressed store."""

    manifest: Dict[str, str]
    integrity: str


def parse_integrity(integrity: str) -> Tuple[str, str]:
    """Pick the strongest entry of an SRI string and return ``(algorithm, hex digest)``.

    Raises:
        ValueError: when no supported, well-formed entry is present.
    """
    found: Dict[str, str] = {}
    for entry in str(integrity or "").split():
        algo, sep, rest = entry.partition("-")
        if not sep or algo not in _ALGORITHMS:
            continue
        b64 = rest.split("?", 1)[0]
        try:
            found.setdefault(algo, base64.b64decode(b64, validate=True).hex())
        except (binascii.Error, ValueError):
            continue
    for algo in _ALGORITHMS:
        if algo in found:
            return algo, found[algo]
    raise ValueError(f"Unsupported integrity value: {integrity!r}")


def integrity_from_dist(dist: Mapping[str, Any]) -> str:
    """Return ``dist.integrity``, or an sha1 SRI string built from ``dist.shasum``."""
    integrity = dist.get("integrity")
    if integrity:
        return str(integrity)
    shasum = dist.get("shasum")
    if shasum:
        return "sha1-" + base64.b64encode(bytes.fromhex(str(shasum))).decode("ascii")
    raise ValueError("Manifest has neither dist.integrity nor dist.shasum")


async def verify_digest(
    chunks: AsyncIterator[bytes], algorithm: str, expected_hex: str, *, label: str
) -> AsyncIterator[bytes]:
    """Pass chunks through, raising StreamError at the end if the digest differs."""
    digest = hashlib.new(algorithm)
    async for chunk in chunks:
        digest.update(chunk)
        yield chunk
    if digest.hexdigest() != expected_hex:
        raise StreamError(f"Integrity check failed for {label} ({algorithm})", package=label)


async def stream_file(path: str, *, label: str) -> AsyncIterator[bytes]:
    """Stream a cached file, surfacing I/O failures as StreamError."""
    try:
        async for chunk in iter_file(path):
            yield chunk
    except OSError as exc:
        raise StreamError(f"Cannot read cached tarball for {label}: {exc}", package=label) from exc


def _short_manifest(manifest: Mapping[str, Any]) -> Dict[str, str]:
    return {"name": str(manifest["name"]), "version": str(manifest["version"])}


class CacheStrategy(ABC):
    """A local cache layout bound to a registry handle."""

    def __init__(self, registry):
        self.registry = registry

    @abstractmethod
    async def resolve_tarball_source(self, spec: str) -> TarballSource:
        """Make sure ``spec`` is cached and open a stream over its tarball."""

    async def _download(self, manifest: Mapping[str, Any], path: str, spec: str) -> int:
        """Fetch the manifest's tarball into ``path``, verifying its integrity."""
        dist = manifest.get("dist") or {}
        algorithm, expected = parse_integrity(integrity_from_dist(dist))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        async with self.registry.open_tarball(dist["tarball"]) as chunks:
            size = await atomic_write(path, verify_digest(chunks, algorithm, expected, label=spec))
        logger.info(
            "Cached %s (%d bytes)",
            spec,
            size,
            extra=extra_context(event="cache_add", component="cache", outcome="downloaded", target=path),
        )
        return size


class LegacyCache(CacheStrategy):
    """``<cache>/<name>/<version>/package.tgz`` layout of npm clients before 5.0."""

    def tarball_path(self, name: str, version: str) -> str:
        return os.path.join(self.registry.cache, name, version, Constants.LEGACY_TARBALL_NAME)

    async def add(self, spec: str) -> Dict[str, str]:
        """Cache ``spec`` when missing and return its ``{name, version}``."""
        try:
            manifest = await self.registry.manifest(spec)
            info = _short_manifest(manifest)
            path = self.tarball_path(info["name"], info["version"])
            if os.path.isfile(path):
                if is_debug_enabled(logger):
                    logger.debug("Cache hit for %s at %s", spec, path)
            else:
                await self._download(manifest, path, spec)
        except RegistryLoadError:
            raise
        except _CACHE_ADD_ERRORS as exc:
            raise CacheAddError(f"Cannot add {spec} to the npm cache: {exc}", package=spec) from exc
        return info

    async def resolve_tarball_source(self, spec: str) -> TarballSource:
        info = await self.add(spec)
        path = self.tarball_path(info["name"], info["version"])
        return TarballSource(info["name"], info["version"], stream_file(path, label=spec))


class ContentAddressedCache(CacheStrategy):
    """Digest-addressed ``_cacache`` store used by npm 5 and later."""

    INDEX_KEY_PREFIX = "npm-resolver:tarball:"

    @property
    def root(self) -> str:
        return os.path.join(self.registry.cache, Constants.CACHE_DIR_NAME)

    def content_path(self, integrity: str) -> str:
        algorithm, hexdigest = parse_integrity(integrity)
        return os.path.join(self.root, "content-v2", algorithm, hexdigest[:2], hexdigest[2:4], hexdigest[4:])

    def index_path(self, key: str) -> str:
        hashed = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return os.path.join(self.root, "index-v5", hashed[:2], hashed[2:4], hashed[4:])

    def lookup(self, key: str) -> Optional[str]:
        """Return the integrity most recently indexed under ``key``, if any."""
        path = self.index_path(key)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                lines = fh.read().splitlines()
        except FileNotFoundError:
            return None
        for line in reversed(lines):
            checksum, sep, payload = line.partition("\t")
            if not sep or hashlib.sha1(payload.encode("utf-8")).hexdigest() != checksum:
                continue  # torn or foreign line
            try:
                entry = json.loads(payload)
            except ValueError:
                continue
            if entry.get("key") == key and entry.get("integrity"):
                return entry["integrity"]
        return None

    def write_index(self, key: str, integrity: str) -> None:
        """Append an index entry; the newest line wins on lookup."""
        payload = json.dumps({"key": key, "integrity": integrity, "time": int(time.time() * 1000)})
        path = self.index_path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(f"\n{hashlib.sha1(payload.encode('utf-8')).hexdigest()}\t{payload}")

    def index_key(self, name: str, version: str) -> str:
        return f"{self.INDEX_KEY_PREFIX}{name}@{version}"

    async def add(self, spec: str) -> Optional[CacheInfo]:
        """Cache ``spec`` and return its manifest info.

        Only an exact ``name@version`` can short-circuit on the index: it returns
        None when that version is already indexed and present, and the caller
        then fetches the manifest separately. Tags and ranges are resolved
        against the registry first and indexed under the version they name.
        """
        name, wanted = parse_spec(spec)
        if wanted and semantic_version.validate(wanted):
            known = self.lookup(self.index_key(name, wanted))
            try:
                if known and os.path.isfile(self.content_path(known)):
                    if is_debug_enabled(logger):
                        logger.debug("Content cache hit for %s (%s)", spec, known.split("-", 1)[0])
                    return None
            except ValueError:
                pass

        try:
            manifest = await self.registry.manifest(spec)
            integrity = integrity_from_dist(manifest.get("dist") or {})
            path = self.content_path(integrity)
            if not os.path.isfile(path):
                await self._download(manifest, path, spec)
            self.write_index(self.index_key(manifest["name"], manifest["version"]), integrity)
            return CacheInfo(manifest=_short_manifest(manifest), integrity=integrity)
        except RegistryLoadError:
            raise
        except _CACHE_ADD_ERRORS as exc:
            raise CacheAddError(f"Cannot add {spec} to the npm cache: {exc}", package=spec) from exc

    async def get_manifest(self, spec: str) -> CacheInfo:
        """Fetch the name, version and integrity needed to read ``spec`` by digest."""
        try:
            manifest = await self.registry.manifest(spec)
            return CacheInfo(
                manifest=_short_manifest(manifest),
                integrity=integrity_from_dist(manifest.get("dist") or {}),
            )
        except RegistryLoadError:
            raise
        except (RegistryError, KeyError, ValueError) as exc:
            raise ManifestFetchError(f"Cannot fetch the manifest of {spec}: {exc}", package=spec) from exc

    def read_by_digest(self, integrity: str, *, label: str = "") -> AsyncIterator[bytes]:
        """Open a verified stream over the blob stored under ``integrity``."""
        try:
            algorithm, expected = parse_integrity(integrity)
        except ValueError as exc:
            raise StreamError(str(exc), package=label or None) from exc
        path = self.content_path(integrity)
        return verify_digest(stream_file(path, label=label or integrity), algorithm, expected, label=label or integrity)

    async def resolve_tarball_source(self, spec: str) -> TarballSource:
        info = await self.add(spec)
        if info is None:
            info = await self.get_manifest(spec)
        return TarballSource(
            info.manifest["name"],
            info.manifest["version"],
            self.read_by_digest(info.integrity, label=spec),
        )


def select_cache_strategy(registry) -> CacheStrategy:
    """Choose the cache layout matching the loaded client's version."""
    version = semantic_version.Version.coerce(str(registry.version))
    if version < semantic_version.Version(Constants.CONTENT_CACHE_MIN_CLIENT):
        return LegacyCache(registry)
    return ContentAddressedCache(registry)
