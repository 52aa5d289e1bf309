"""Shared fixtures: an offline registry handle and tarball builders."""

import base64
import hashlib
import io
import tarfile
from contextlib import asynccontextmanager

import aiohttp
import pytest

from constants import Constants
from registry.errors import ViewError
from registry.npm.handle import NpmRegistry

_CONSTANT_NAMES = [
    "REGISTRY_URL_NPM",
    "NPM_CACHE_DIR",
    "NPM_AUTH_TOKEN",
    "NPM_CLIENT_VERSION",
    "REQUEST_TIMEOUT",
    "CHUNK_SIZE",
]

REGISTRY_URL = "https://registry.test/"


def make_tgz(files):
    """Build an npm-style tarball with every file under ``package/``."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(f"package/{name}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def sri(data, algorithm="sha512"):
    return f"{algorithm}-" + base64.b64encode(hashlib.new(algorithm, data).digest()).decode("ascii")


def make_packument(name, tarballs, latest=None):
    """Return ``(packument, {url: bytes})`` for ``{version: tarball bytes}``."""
    base = name.split("/")[-1]
    versions = {}
    urls = {}
    for version, data in tarballs.items():
        url = f"{REGISTRY_URL}{name}/-/{base}-{version}.tgz"
        urls[url] = data
        versions[version] = {
            "name": name,
            "version": version,
            "dist": {
                "tarball": url,
                "integrity": sri(data),
                "shasum": hashlib.sha1(data).hexdigest(),
            },
        }
    packument = {
        "name": name,
        "dist-tags": {"latest": latest or list(tarballs)[-1]},
        "versions": versions,
    }
    return packument, urls


class FakeRegistry(NpmRegistry):
    """Registry handle serving in-memory packuments and tarballs."""

    def __init__(self, cache_dir, client_version="10.0.0"):
        super().__init__(registry_url=REGISTRY_URL, cache_dir=str(cache_dir), client_version=client_version)
        self.packuments = {}
        self.tarballs = {}
        self.broken = set()
        self.downloads = []
        self.manifest_calls = []

    def publish(self, name, tarballs, latest=None):
        packument, urls = make_packument(name, tarballs, latest)
        self.packuments[name] = packument
        self.tarballs.update(urls)
        return packument

    async def load(self):
        self.registry_url = REGISTRY_URL
        self.cache = self._cache_dir
        self.version = self._client_version
        return self

    async def close(self):
        self.version = None

    async def packument(self, name):
        if name not in self.packuments:
            raise ViewError(f"Package not found: {name}", package=name)
        return self.packuments[name]

    async def manifest(self, spec):
        self.manifest_calls.append(spec)
        return await super().manifest(spec)

    @asynccontextmanager
    async def open_tarball(self, url):
        self.downloads.append(url)
        data = self.tarballs[url]
        broken = url in self.broken

        async def chunks():
            for i in range(0, len(data), 16):
                if broken and i > 0:
                    raise aiohttp.ClientPayloadError("connection reset")
                yield data[i:i + 16]

        yield chunks()


@pytest.fixture(autouse=True)
def restore_constants():
    """Undo any Constants override a test makes."""
    saved = {name: getattr(Constants, name) for name in _CONSTANT_NAMES}
    yield
    for name, value in saved.items():
        setattr(Constants, name, value)


@pytest.fixture
def fake_registry(tmp_path):
    return FakeRegistry(tmp_path / "npm-cache")
