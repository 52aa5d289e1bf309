"""Tests for the registry client: version listing and cache strategy selection."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from registry.errors import RegistryLoadError, ViewError
from registry.npm.cache import ContentAddressedCache, LegacyCache
from registry.npm.client import RegistryClient, get_last_key


class TestGetLastKey:
    """Keys are compared as plain strings."""

    def test_single(self):
        assert get_last_key({"1.7.7": {}}) == "1.7.7"

    def test_lexicographic_not_semver(self):
        assert get_last_key({"10.0.0": {}, "9.0.0": {}, "2.0.0": {}}) == "9.0.0"


class TestListVersions:
    """Flat lists pass through; version-keyed maps are unwrapped."""

    def _client(self, fake_registry, payload):
        fake_registry.view = AsyncMock(return_value=payload)
        return RegistryClient(registry=fake_registry)

    def test_flat_list_unchanged(self, fake_registry):
        client = self._client(fake_registry, ["1.0.0", "1.1.0", "2.0.0"])
        assert asyncio.run(client.list_versions("bower")) == ["1.0.0", "1.1.0", "2.0.0"]
        fake_registry.view.assert_awaited_once_with(["bower", "versions"])

    def test_map_is_unwrapped(self, fake_registry):
        client = self._client(fake_registry, {"2.0.0": {"versions": ["1.0.0", "2.0.0"]}})
        assert asyncio.run(client.list_versions("bower")) == ["1.0.0", "2.0.0"]

    def test_map_uses_last_key(self, fake_registry):
        payload = {
            "1.0.0": {"versions": ["stale"]},
            "1.1.0": {"versions": ["1.0.0", "1.1.0"]},
        }
        client = self._client(fake_registry, payload)
        assert asyncio.run(client.list_versions("bower")) == ["1.0.0", "1.1.0"]

    def test_single_string(self, fake_registry):
        client = self._client(fake_registry, "1.0.0")
        assert asyncio.run(client.list_versions("bower")) == ["1.0.0"]

    def test_unexpected_payload(self, fake_registry):
        client = self._client(fake_registry, {"1.0.0": "nope"})
        with pytest.raises(ViewError):
            asyncio.run(client.list_versions("bower"))

    def test_view_error_propagates(self, fake_registry):
        fake_registry.view = AsyncMock(side_effect=ViewError("boom"))
        with pytest.raises(ViewError, match="boom"):
            asyncio.run(RegistryClient(registry=fake_registry).list_versions("bower"))

    def test_against_published_packument(self, fake_registry):
        fake_registry.publish("left-pad", {"1.0.0": b"a", "1.1.0": b"b"})
        client = RegistryClient(registry=fake_registry)
        assert asyncio.run(client.list_versions("left-pad")) == ["1.0.0", "1.1.0"]


class TestLoad:
    """The cache strategy follows the client version and is chosen once."""

    def test_legacy_client(self, tmp_path):
        from conftest import FakeRegistry

        client = RegistryClient(registry=FakeRegistry(tmp_path, client_version="4.6.1"))
        assert isinstance(asyncio.run(client.load()), LegacyCache)

    @pytest.mark.parametrize("version", ["5.0.0", "5.6.0", "10.8.2", "6"])
    def test_content_addressed_client(self, tmp_path, version):
        from conftest import FakeRegistry

        client = RegistryClient(registry=FakeRegistry(tmp_path, client_version=version))
        assert isinstance(asyncio.run(client.load()), ContentAddressedCache)

    def test_selected_once(self, fake_registry):
        client = RegistryClient(registry=fake_registry)

        async def _run():
            return await client.load(), await client.load()

        first, second = asyncio.run(_run())
        assert first is second

    def test_unexpected_load_failure_is_wrapped(self, fake_registry):
        fake_registry.load = AsyncMock(side_effect=RuntimeError("bad npmrc"))
        with pytest.raises(RegistryLoadError, match="bad npmrc"):
            asyncio.run(RegistryClient(registry=fake_registry).list_versions("bower"))

    def test_load_error_propagates_unchanged(self, fake_registry):
        error = RegistryLoadError("no npm")
        fake_registry.load = AsyncMock(side_effect=error)
        with pytest.raises(RegistryLoadError) as info:
            asyncio.run(RegistryClient(registry=fake_registry).list_versions("bower"))
        assert info.value is error
