"""Resolver plugin exposing npm packages to a host package manager.

Sources look like ``npm+<name>=<target>``. The host asks ``match`` whether a
source belongs here, ``releases`` for the published versions and ``fetch`` for
an extracted copy of one version.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, List, Mapping, Optional, Union

from constants import Constants, apply_config, load_config
from common.fs_utils import remove_tree
from common.logging_utils import extra_context, Timer
from registry.npm.client import RegistryClient
from registry.npm.tarball import download_tarball

from .extract import extract_tgz
from .models import Endpoint, FetchResult, PackageReference, Release, cached_version

logger = logging.getLogger(__name__)


class NpmResolver:
    """Implements ``match``/``releases``/``fetch`` on top of the registry client.

    Holds no per-fetch state: each ``fetch`` owns its own pair of temporary
    directories, so concurrent fetches do not interact.
    """

    def __init__(
        self,
        client: Optional[RegistryClient] = None,
        prefix: str = Constants.SOURCE_PREFIX,
        tmp_root: Optional[str] = None,
    ):
        self._client = client or RegistryClient()
        self._prefix = prefix
        self._tmp_root = tmp_root

    @property
    def client(self) -> RegistryClient:
        return self._client

    def match(self, source: str) -> bool:
        """True iff ``source`` uses the npm prefix."""
        return source.startswith(self._prefix)

    def parse(self, source: str) -> PackageReference:
        return PackageReference.from_source(source, self._prefix)

    async def releases(self, source: str) -> List[Release]:
        """List the published versions of the package named by ``source``."""
        ref = self.parse(source)
        versions = await self._client.list_versions(ref.name)
        return [Release(target=v, version=v) for v in versions]

    def _mkdtemp(self, kind: str) -> str:
        return tempfile.mkdtemp(prefix=f"{Constants.TMP_PREFIX}{kind}-", dir=self._tmp_root)

    async def fetch(
        self,
        endpoint: Union[Endpoint, Mapping[str, Any]],
        cached: Any = None,
    ) -> Optional[FetchResult]:
        """Download and extract the endpoint's package into a temporary directory.

        Returns None when ``cached`` already carries a version: the host should
        reuse its cached copy. On failure the extraction directory is removed
        and the error propagates. The tarball directory is removed either way.
        """
        if cached_version(cached):
            logger.debug("Reusing cached copy of %s", cached_version(cached))
            return None

        endpoint = Endpoint.coerce(endpoint)
        ref = self.parse(endpoint.source)
        target = endpoint.target or ref.target or "latest"

        tmp_tar = self._mkdtemp("tar")
        try:
            tmp_package = self._mkdtemp("package")
            with Timer() as timer:
                try:
                    tarball = await download_tarball(ref.name, target, tmp_tar, client=self._client)
                    directory = await extract_tgz(tarball, tmp_package)
                except Exception as exc:
                    logger.error(
                        "Fetch of %s@%s failed: %s",
                        ref.name,
                        target,
                        exc,
                        extra=extra_context(
                            event="fetch",
                            component="resolver",
                            outcome="failed",
                            target=f"{ref.name}@{target}",
                        ),
                    )
                    remove_tree(tmp_package)
                    raise
            logger.info(
                "Fetched %s@%s",
                ref.name,
                target,
                extra=extra_context(
                    event="fetch",
                    component="resolver",
                    outcome="success",
                    target=f"{ref.name}@{target}",
                    duration_ms=timer.duration_ms(),
                ),
            )
            return FetchResult(temp_path=os.path.join(directory, "package"), remove_ignores=True)
        finally:
            remove_tree(tmp_tar)


def create_resolver(config: Optional[Mapping[str, Any]] = None) -> NpmResolver:
    """Factory called once by the host to instantiate the resolver.

    The config file and environment variables are read first, then ``config``,
    which may carry an ``npm`` section (registry, cache, token, client_version,
    request_timeout), is applied on top before the registry handle loads.
    """
    load_config()
    apply_config(config)
    return NpmResolver(RegistryClient())
