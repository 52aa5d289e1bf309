"""Error taxonomy for registry operations.

Every failure is terminal for the invocation that raised it; nothing here is
retried.
"""

from typing import Optional


class RegistryError(Exception):
    """Base class for registry failures."""

    def __init__(self, message: str, *, package: Optional[str] = None):
        super().__init__(message)
        self.package = package


class RegistryLoadError(RegistryError):
    """The registry handle could not be initialized."""


class ViewError(RegistryError):
    """A metadata query failed (network, not found, auth or no matching version)."""


class CacheAddError(RegistryError):
    """Adding a package to the local cache failed."""


class ManifestFetchError(RegistryError):
    """The secondary manifest lookup for a cached tarball failed."""


class StreamError(RegistryError):
    """Reading or writing tarball bytes failed."""
