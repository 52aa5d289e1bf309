"""Registry access: the npm registry handle, cache layouts and tarball fetching."""

from .errors import (
    CacheAddError,
    ManifestFetchError,
    RegistryError,
    RegistryLoadError,
    StreamError,
    ViewError,
)

__all__ = [
    "RegistryError",
    "RegistryLoadError",
    "ViewError",
    "CacheAddError",
    "ManifestFetchError",
    "StreamError",
]
