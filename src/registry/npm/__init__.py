"""npm registry access for the resolver."""

from .cache import ContentAddressedCache, LegacyCache, TarballSource, select_cache_strategy
from .client import RegistryClient
from .handle import NpmRegistry, close_registry, get_registry
from .tarball import download_tarball, normalize_pkg_name

__all__ = [
    "NpmRegistry",
    "get_registry",
    "close_registry",
    "RegistryClient",
    "TarballSource",
    "LegacyCache",
    "ContentAddressedCache",
    "select_cache_strategy",
    "download_tarball",
    "normalize_pkg_name",
]
