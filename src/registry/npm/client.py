"""NPM registry client: version listing and tarball source resolution."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from common.logging_utils import extra_context, Timer
from registry.errors import RegistryError, RegistryLoadError, ViewError

from .cache import CacheStrategy, TarballSource, select_cache_strategy
from .handle import NpmRegistry, get_registry

logger = logging.getLogger(__name__)


def get_last_key(data: Mapping[str, Any]) -> str:
    """Return the last key of a mapping in plain string order."""
    return sorted(data.keys())[-1]


class RegistryClient:
    """Shapes registry handle calls into the operations the resolver needs."""

    def __init__(self, registry: Optional[NpmRegistry] = None):
        self._registry = registry if registry is not None else get_registry()
        self._cache: Optional[CacheStrategy] = None

    @property
    def registry(self) -> NpmRegistry:
        return self._registry

    async def load(self) -> CacheStrategy:
        """Load the handle once and pick the cache layout for its client version."""
        if self._cache is None:
            try:
                await self._registry.load()
            except RegistryError:
                raise
            except Exception as exc:
                raise RegistryLoadError(f"Cannot load the npm registry: {exc}") from exc
            self._cache = select_cache_strategy(self._registry)
            logger.debug(
                "Cache strategy selected",
                extra=extra_context(
                    event="cache_strategy",
                    component="client",
                    outcome=type(self._cache).__name__,
                    client_version=self._registry.version,
                ),
            )
        return self._cache

    async def list_versions(self, package_name: str) -> List[str]:
        """Return the versions published on the registry for ``package_name``.

        The registry answers either with the flat list or, when several
        versions matched, with ``{version: {"versions": [...]}}``; the entry
        under the last key is unwrapped in that case.
        """
        await self.load()
        with Timer() as timer:
            data = await self._registry.view([package_name, "versions"])
        logger.debug(
            "Versions listed",
            extra=extra_context(
                event="view",
                component="client",
                target=package_name,
                duration_ms=timer.duration_ms(),
            ),
        )
        if isinstance(data, list):
            return data
        if isinstance(data, str):
            return [data]
        if isinstance(data, Mapping) and data:
            entry = data[get_last_key(data)]
            versions = entry.get("versions") if isinstance(entry, Mapping) else None
            if isinstance(versions, list):
                return versions
        raise ViewError(f"Unexpected versions payload for {package_name}", package=package_name)

    async def resolve_tarball_source(self, package_at_version: str) -> TarballSource:
        """Cache ``name@version`` locally and open its tarball stream."""
        cache = await self.load()
        return await cache.resolve_tarball_source(package_at_version)
