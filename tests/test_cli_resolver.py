"""Tests for the command line entry point."""

import json
from unittest.mock import AsyncMock, patch

import pytest

import cli_resolver
from args import parse_args
from constants import Constants, ExitCodes
from registry.errors import RegistryLoadError, StreamError, ViewError
from registry.npm.client import RegistryClient
from resolver.extract import ExtractionError
from resolver.models import FetchResult


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config files and npm variables out of CLI runs."""
    monkeypatch.chdir(tmp_path)
    for name in ("NPMRESOLVER_CONFIG", "NPMRESOLVER_REGISTRY", "NPMRESOLVER_CACHE", "npm_config_registry", "npm_config_cache"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(Constants, "CONFIG_PATHS", [])
    monkeypatch.setenv("NPMRESOLVER_LOG_LEVEL", "WARNING")


class TestArgs:
    """Argument parsing."""

    def test_fetch_target(self):
        args = parse_args(["fetch", "npm+bower=^1.0.0", "--target", "1.8.0"])
        assert args.COMMAND == "fetch"
        assert args.TARGET == "1.8.0"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])


class TestMain:
    """Commands, output and exit codes."""

    def test_match(self, capsys):
        assert cli_resolver.main(["match", "npm+bower=1.8.0"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.strip() == "true"

    def test_no_match(self, capsys):
        assert cli_resolver.main(["match", "bower"]) == ExitCodes.NO_MATCH.value
        assert capsys.readouterr().out.strip() == "false"

    def test_releases(self, capsys):
        with patch.object(RegistryClient, "list_versions", new=AsyncMock(return_value=["1.0.0", "1.1.0"])):
            code = cli_resolver.main(["releases", "npm+bower=1.0.0"])
        assert code == ExitCodes.SUCCESS.value
        assert json.loads(capsys.readouterr().out) == [
            {"target": "1.0.0", "version": "1.0.0"},
            {"target": "1.1.0", "version": "1.1.0"},
        ]

    def test_fetch(self, capsys):
        result = FetchResult("/tmp/npm-resolver-package-x/package")
        with patch("cli_resolver.NpmResolver.fetch", new=AsyncMock(return_value=result)) as fetch:
            code = cli_resolver.main(["fetch", "npm+bower=1.8.0"])
        assert code == ExitCodes.SUCCESS.value
        assert json.loads(capsys.readouterr().out) == result.to_dict()
        endpoint = fetch.await_args.args[0]
        assert endpoint.source == "npm+bower=1.8.0"

    def test_registry_failure_exit_code(self):
        with patch.object(RegistryClient, "list_versions", new=AsyncMock(side_effect=ViewError("offline"))):
            assert cli_resolver.main(["releases", "npm+bower"]) == ExitCodes.CONNECTION_ERROR.value

    def test_registry_flag_overrides(self):
        with patch.object(RegistryClient, "list_versions", new=AsyncMock(return_value=[])):
            cli_resolver.main(["--registry", "https://flag.test", "--cache", "/tmp/c", "releases", "npm+x"])
        assert Constants.REGISTRY_URL_NPM == "https://flag.test/"
        assert Constants.NPM_CACHE_DIR == "/tmp/c"


class TestExitCodes:
    """Error to exit code mapping."""

    @pytest.mark.parametrize("error, code", [
        (ExtractionError("x"), ExitCodes.EXTRACTION_ERROR),
        (StreamError("x"), ExitCodes.FILE_ERROR),
        (RegistryLoadError("x"), ExitCodes.CONNECTION_ERROR),
        (ViewError("x"), ExitCodes.CONNECTION_ERROR),
        (OSError("x"), ExitCodes.FILE_ERROR),
    ])
    def test_mapping(self, error, code):
        assert cli_resolver.exit_code_for(error) == code.value
