"""Host-facing resolver for ``npm+<name>=<target>`` sources."""

from .adapter import NpmResolver, create_resolver
from .extract import ExtractionError, extract_tgz
from .models import Endpoint, FetchResult, PackageReference, Release

__all__ = [
    "NpmResolver",
    "create_resolver",
    "ExtractionError",
    "extract_tgz",
    "Endpoint",
    "FetchResult",
    "PackageReference",
    "Release",
]
