"""Constants used in the project."""

import json
import logging
import os
from enum import Enum
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    NO_MATCH = 3
    EXTRACTION_ERROR = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    SOURCE_PREFIX = "npm+"
    NPM_CACHE_DIR = os.path.join(os.path.expanduser("~"), ".npm")
    NPM_AUTH_TOKEN: Optional[str] = None
    # Pinned npm client version; None means detect with `npm --version`
    NPM_CLIENT_VERSION: Optional[str] = None
    DEFAULT_CLIENT_VERSION = "10.0.0"
    CONTENT_CACHE_MIN_CLIENT = "5.0.0"
    CACHE_DIR_NAME = "_cacache"
    LEGACY_TARBALL_NAME = "package.tgz"
    REQUEST_TIMEOUT: Optional[float] = None  # None: wait on the registry indefinitely
    CHUNK_SIZE = 64 * 1024
    USER_AGENT = "npm-source-resolver/1.0"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    TMP_PREFIX = "npm-resolver-"
    CONFIG_ENV = "NPMRESOLVER_CONFIG"
    CONFIG_PATHS = [
        "npmresolver.yml",
        "npmresolver.yaml",
        os.path.join("~", ".config", "npmresolver", "config.yml"),
    ]


# YAML/JSON key -> Constants attribute
_CONFIG_KEYS = {
    "registry": "REGISTRY_URL_NPM",
    "cache": "NPM_CACHE_DIR",
    "token": "NPM_AUTH_TOKEN",
    "client_version": "NPM_CLIENT_VERSION",
    "request_timeout": "REQUEST_TIMEOUT",
    "chunk_size": "CHUNK_SIZE",
}

# Environment variable -> Constants attribute, later entries win
_ENV_KEYS = [
    ("npm_config_registry", "REGISTRY_URL_NPM"),
    ("npm_config_cache", "NPM_CACHE_DIR"),
    ("NPMRESOLVER_REGISTRY", "REGISTRY_URL_NPM"),
    ("NPMRESOLVER_CACHE", "NPM_CACHE_DIR"),
    ("NPMRESOLVER_TOKEN", "NPM_AUTH_TOKEN"),
    ("NPMRESOLVER_CLIENT_VERSION", "NPM_CLIENT_VERSION"),
    ("NPMRESOLVER_REQUEST_TIMEOUT", "REQUEST_TIMEOUT"),
]


def _read_config_file(path: str) -> Dict[str, Any]:
    """Read a YAML (or JSON, by extension) config file into a dict."""
    with open(path, "r", encoding="utf-8") as fh:
        if path.lower().endswith(".json"):
            data = json.load(fh)
        else:
            import yaml  # pylint: disable=import-outside-toplevel

            data = yaml.safe_load(fh)
    return data if isinstance(data, dict) else {}


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the first config file found.

    Search order: explicit ``path``, ``$NPMRESOLVER_CONFIG``, then
    ``Constants.CONFIG_PATHS``. Returns an empty dict when none exists.
    """
    candidates = [path, os.environ.get(Constants.CONFIG_ENV)]
    candidates.extend(Constants.CONFIG_PATHS)
    for candidate in candidates:
        if not candidate:
            continue
        full = os.path.expanduser(candidate)
        if not os.path.isfile(full):
            if candidate == path:
                logger.warning("Config file not found: %s", full)
            continue
        logger.debug("Loading config from %s", full)
        return _read_config_file(full)
    return {}


def _coerce(attr: str, value: Any) -> Any:
    if value is None:
        return None
    if attr == "REQUEST_TIMEOUT":
        number = float(value)
        return number if number > 0 else None
    if attr == "CHUNK_SIZE":
        return int(value)
    if attr == "REGISTRY_URL_NPM":
        text = str(value)
        return text if text.endswith("/") else text + "/"
    if attr == "NPM_CACHE_DIR":
        return os.path.expanduser(str(value))
    return str(value)


def apply_config(config: Optional[Mapping[str, Any]]) -> None:
    """Apply overrides from a config mapping onto ``Constants``.

    Accepts either the whole file (``{"npm": {...}}``) or the ``npm`` section.
    Unknown keys are ignored.
    """
    if not config:
        return
    section = config.get("npm", config)
    if not isinstance(section, Mapping):
        return
    for key, attr in _CONFIG_KEYS.items():
        if key in section:
            setattr(Constants, attr, _coerce(attr, section[key]))


def apply_env_overrides(environ: Optional[Mapping[str, str]] = None) -> None:
    """Apply environment variable overrides onto ``Constants``."""
    env = os.environ if environ is None else environ
    for name, attr in _ENV_KEYS:
        value = env.get(name)
        if value:
            setattr(Constants, attr, _coerce(attr, value))


def load_config(path: Optional[str] = None) -> None:
    """Config file first, environment second; CLI flags are applied by the caller."""
    apply_config(_load_yaml_config(path))
    apply_env_overrides()
