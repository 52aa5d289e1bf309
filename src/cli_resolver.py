"""CLI entry point for the npm source resolver."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional, Sequence

from args import parse_args
from constants import Constants, ExitCodes, load_config
from common.logging_utils import LOG_LEVEL_ENV, configure_logging, redact
from registry.errors import RegistryError, StreamError
from registry.npm.client import RegistryClient
from registry.npm.handle import close_registry
from registry.npm.tarball import download_tarball
from resolver.adapter import NpmResolver
from resolver.extract import ExtractionError
from resolver.models import Endpoint

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments."""
    if getattr(args, "LOG_LEVEL", None):
        os.environ[LOG_LEVEL_ENV] = str(args.LOG_LEVEL).upper()
    configure_logging()

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _apply_cli_overrides(args: Any) -> None:
    """CLI flags win over config file and environment."""
    if getattr(args, "REGISTRY", None):
        url = args.REGISTRY
        Constants.REGISTRY_URL_NPM = url if url.endswith("/") else url + "/"
    if getattr(args, "CACHE", None):
        Constants.NPM_CACHE_DIR = os.path.expanduser(args.CACHE)


async def _run(args: Any) -> int:
    resolver = NpmResolver(RegistryClient())
    try:
        if args.COMMAND == "releases":
            releases = await resolver.releases(args.SOURCE)
            print(json.dumps([r.to_dict() for r in releases], indent=2))
        elif args.COMMAND == "fetch":
            result = await resolver.fetch(Endpoint(source=args.SOURCE, target=args.TARGET))
            print(json.dumps(result.to_dict() if result else None, indent=2))
        elif args.COMMAND == "download":
            print(await download_tarball(args.NAME, args.VERSION, args.OUTPUT, client=resolver.client))
    finally:
        await close_registry()
    return ExitCodes.SUCCESS.value


def exit_code_for(exc: BaseException) -> int:
    """Map an error to the process exit code."""
    if isinstance(exc, ExtractionError):
        return ExitCodes.EXTRACTION_ERROR.value
    if isinstance(exc, StreamError):
        return ExitCodes.FILE_ERROR.value
    if isinstance(exc, RegistryError):
        return ExitCodes.CONNECTION_ERROR.value
    return ExitCodes.FILE_ERROR.value


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)
    load_config(getattr(args, "CONFIG", None))
    _apply_cli_overrides(args)

    if args.COMMAND == "match":
        matched = NpmResolver(RegistryClient()).match(args.SOURCE)
        print("true" if matched else "false")
        return ExitCodes.SUCCESS.value if matched else ExitCodes.NO_MATCH.value

    try:
        return asyncio.run(_run(args))
    except (RegistryError, ExtractionError, OSError) as exc:
        logger.error("%s", redact(str(exc)))
        return exit_code_for(exc)


if __name__ == "__main__":
    sys.exit(main())
