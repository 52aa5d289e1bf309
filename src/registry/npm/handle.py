"""Process-scoped handle on the npm registry.

The handle plays the part of the loaded npm client: it knows the registry URL,
the local cache root and the client version that decides the cache layout. It
is created once per process by ``get_registry()`` and loaded lazily on first
use; the registry client receives it by injection.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote, urlsplit

import aiohttp
import semantic_version

from constants import Constants
from common.http_client import HEADERS_PACKUMENT, build_headers, create_session, get_json, open_stream
from common.logging_utils import extra_context, safe_url
from registry.errors import RegistryLoadError, ViewError

logger = logging.getLogger(__name__)

# Packument-level fields visible from every version, as `npm view` shows them.
_PACKUMENT_FIELDS = ("dist-tags", "time", "name")


def parse_spec(spec: str) -> Tuple[str, Optional[str]]:
    """Split ``name@version`` into its parts; the scope ``@`` is not a separator."""
    idx = spec.rfind("@")
    if idx > 0:
        return spec[:idx], spec[idx + 1:] or None
    return spec, None


def escape_name(name: str) -> str:
    """Escape a package name for the registry path (``@scope/pkg`` -> ``@scope%2Fpkg``)."""
    return quote(name, safe="@")


def select_versions(packument: Dict[str, Any], wanted: Optional[str]) -> List[str]:
    """Return the published versions matched by an exact version, dist-tag or range."""
    versions = packument.get("versions") or {}
    tags = packument.get("dist-tags") or {}
    wanted = (wanted or "latest").strip()

    if wanted in versions:
        return [wanted]
    if wanted in tags:
        tagged = tags[wanted]
        return [tagged] if tagged in versions else []

    try:
        spec = semantic_version.NpmSpec(wanted)
    except ValueError:
        return []

    matched = []
    for version in versions:
        try:
            if spec.match(semantic_version.Version(version)):
                matched.append(version)
        except ValueError:
            continue  # Skip non-semver publications
    return matched


def view_field(packument: Dict[str, Any], version: str, field: Optional[str]) -> Any:
    """Read ``field`` (dotted path allowed) from a version, packument fields included."""
    data = dict(packument["versions"][version])
    data["versions"] = list(packument.get("versions") or {})
    for key in _PACKUMENT_FIELDS:
        if key in packument:
            data.setdefault(key, packument[key])
    if not field:
        return data
    value: Any = data
    for part in field.split("."):
        value = value.get(part) if isinstance(value, dict) else None
    return value


async def detect_client_version() -> str:
    """Ask the local npm client for its version, falling back to the default."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "npm",
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        out, _ = await proc.communicate()
    except OSError as exc:
        logger.debug("npm client not available (%s); assuming %s", exc, Constants.DEFAULT_CLIENT_VERSION)
        return Constants.DEFAULT_CLIENT_VERSION
    text = out.decode("utf-8", "replace").strip()
    if proc.returncode != 0 or not text:
        return Constants.DEFAULT_CLIENT_VERSION
    return text


class NpmRegistry:
    """Lazily loaded registry handle shared by every resolver in the process."""

    def __init__(
        self,
        registry_url: Optional[str] = None,
        cache_dir: Optional[str] = None,
        token: Optional[str] = None,
        client_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._registry_url = registry_url
        self._cache_dir = cache_dir
        self._token = token
        self._client_version = client_version
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock: Optional[asyncio.Lock] = None
        self.registry_url = ""
        self.cache = ""
        self.version: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self.version is not None

    async def load(self) -> "NpmRegistry":
        """Resolve settings and detect the client version; idempotent."""
        if self.loaded:
            return self
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self.loaded:
                return self
            url = self._registry_url or Constants.REGISTRY_URL_NPM
            self.registry_url = url if url.endswith("/") else url + "/"
            self.cache = self._cache_dir or Constants.NPM_CACHE_DIR
            self._token = self._token or Constants.NPM_AUTH_TOKEN
            timeout = self._timeout if self._timeout is not None else Constants.REQUEST_TIMEOUT

            version = self._client_version or Constants.NPM_CLIENT_VERSION
            if not version:
                version = await detect_client_version()
            try:
                semantic_version.Version.coerce(str(version))
            except ValueError as exc:
                raise RegistryLoadError(f"Unsupported npm client version: {version!r}") from exc

            self._session = create_session(timeout)
            self.version = str(version)
            logger.info(
                "npm registry loaded",
                extra=extra_context(
                    event="registry_load",
                    component="registry",
                    target=safe_url(self.registry_url),
                    client_version=self.version,
                    cache_dir=self.cache,
                ),
            )
        return self

    async def close(self) -> None:
        """Close the HTTP session; the handle reloads on next use."""
        if self._session is not None:
            await self._session.close()
        self._session = None
        self.version = None

    def _headers_for(self, url: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        # Never leak the registry token to a third-party tarball host
        same_host = urlsplit(url).netloc == urlsplit(self.registry_url).netloc
        return build_headers(self._token if same_host else None, extra)

    async def packument(self, name: str) -> Dict[str, Any]:
        """Fetch the full registry document for ``name``."""
        await self.load()
        assert self._session is not None
        url = self.registry_url + escape_name(name)
        try:
            data = await get_json(
                self._session,
                url,
                context="npm",
                headers=self._headers_for(url, HEADERS_PACKUMENT),
            )
        except aiohttp.ClientResponseError as exc:
            if exc.status == 404:
                raise ViewError(f"Package not found: {name}", package=name) from exc
            raise ViewError(f"Registry returned {exc.status} for {name}", package=name) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ViewError(f"Registry request for {name} failed: {exc}", package=name) from exc
        if not isinstance(data, dict) or not isinstance(data.get("versions"), dict):
            raise ViewError(f"Malformed registry document for {name}", package=name)
        return data

    async def view(self, args: Sequence[str]) -> Any:
        """Run a metadata query shaped like ``npm view <pkgSpec> [field]``.

        A spec matching a single version yields the field value itself. A range
        matching several versions yields ``{version: {field: value}}``.
        """
        if not args:
            raise ViewError("view needs a package spec")
        spec = args[0]
        field = args[1] if len(args) > 1 else None
        name, wanted = parse_spec(spec)
        packument = await self.packument(name)
        matched = select_versions(packument, wanted)
        if not matched:
            raise ViewError(f"No version of {name} matches {wanted or 'latest'}", package=name)
        if len(matched) == 1:
            return view_field(packument, matched[0], field)
        if not field:
            return {version: view_field(packument, version, None) for version in matched}
        return {version: {field: view_field(packument, version, field)} for version in matched}

    async def manifest(self, spec: str) -> Dict[str, Any]:
        """Resolve ``name@version|tag|range`` to one version manifest (highest match)."""
        name, wanted = parse_spec(spec)
        packument = await self.packument(name)
        matched = select_versions(packument, wanted)
        if not matched:
            raise ViewError(f"No version of {name} matches {wanted or 'latest'}", package=name)
        best = matched[0] if len(matched) == 1 else max(matched, key=semantic_version.Version)
        return packument["versions"][best]

    @asynccontextmanager
    async def open_tarball(self, url: str) -> AsyncIterator[AsyncIterator[bytes]]:
        """Stream a tarball body from the registry (or its CDN)."""
        await self.load()
        assert self._session is not None
        async with open_stream(self._session, url, context="npm", headers=self._headers_for(url)) as chunks:
            yield chunks


_registry: Optional[NpmRegistry] = None


def get_registry() -> NpmRegistry:
    """Return the process-scoped registry handle, creating it on first call."""
    global _registry  # pylint: disable=global-statement
    if _registry is None:
        _registry = NpmRegistry()
    return _registry


async def close_registry() -> None:
    """Close and forget the process-scoped handle."""
    global _registry  # pylint: disable=global-statement
    if _registry is not None:
        await _registry.close()
    _registry = None
