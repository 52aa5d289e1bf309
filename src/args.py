"""Argument parsing functionality for the npm source resolver."""

import argparse
from constants import Constants


def build_parser():
    """Build the argument parser (exposed for tests)."""
    parser = argparse.ArgumentParser(
        prog="npm-resolver",
        description=(
            f"Resolve and fetch npm packages addressed as {Constants.SOURCE_PREFIX}<name>=<target>"
        ),
        add_help=True,
    )

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='WARNING')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--registry",
                        dest="REGISTRY",
                        help=f"npm registry URL (default: {Constants.REGISTRY_URL_NPM})",
                        action="store",
                        type=str)
    parser.add_argument("--cache",
                        dest="CACHE",
                        help="npm cache directory",
                        action="store",
                        type=str)

    commands = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    commands.required = True

    match = commands.add_parser("match", help="Tell whether a source is handled by this resolver")
    match.add_argument("SOURCE", help=f"Source string, e.g. {Constants.SOURCE_PREFIX}bower=1.8.0")

    releases = commands.add_parser("releases", help="List the published versions of a source")
    releases.add_argument("SOURCE")

    fetch = commands.add_parser("fetch", help="Download and extract a source into a temporary directory")
    fetch.add_argument("SOURCE")
    fetch.add_argument("-t", "--target",
                       dest="TARGET",
                       help="Version to fetch (defaults to the source's own target)",
                       action="store",
                       type=str)

    download = commands.add_parser("download", help="Write a package tarball into a directory")
    download.add_argument("NAME")
    download.add_argument("VERSION")
    download.add_argument("-o", "--output",
                          dest="OUTPUT",
                          help="Target directory (default: current directory)",
                          action="store",
                          type=str,
                          default=".")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
