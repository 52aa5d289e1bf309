"""Data models exchanged with the host package manager."""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from constants import Constants


@dataclass(frozen=True)
class PackageReference:
    """Package name and requested target parsed from a source string."""
    name: str
    target: Optional[str]

    @classmethod
    def from_source(cls, source: str, prefix: str = Constants.SOURCE_PREFIX) -> "PackageReference":
        """Parse ``<prefix><name>=<target>``; the name ends at the first ``=``."""
        body = source[len(prefix):]
        name, sep, target = body.partition("=")
        return cls(name=name, target=target if sep else None)


@dataclass(frozen=True)
class Release:
    """One published version; target and version are always the same string."""
    target: str
    version: str

    def to_dict(self) -> Dict[str, str]:
        return {"target": self.target, "version": self.version}


@dataclass(frozen=True)
class Endpoint:
    """Host-supplied resolution request."""
    source: str
    target: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union["Endpoint", Mapping[str, Any]]) -> "Endpoint":
        if isinstance(value, Endpoint):
            return value
        return cls(source=value["source"], target=value.get("target"))


@dataclass(frozen=True)
class FetchResult:
    """Where the extracted package lives, in the shape the host expects."""
    temp_path: str
    remove_ignores: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"tempPath": self.temp_path, "removeIgnores": self.remove_ignores}


def cached_version(cached: Any) -> Optional[str]:
    """Read ``version`` from a cached entry given as a mapping or an object."""
    if cached is None:
        return None
    if isinstance(cached, Mapping):
        return cached.get("version")
    return getattr(cached, "version", None)
