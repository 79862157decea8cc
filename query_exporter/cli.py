"""Command line entry point."""

import argparse
import sys
from typing import NoReturn

from query_exporter.config import DEFAULT_CONFIG_PATH


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="query-exporter",
        description="Export scheduled SQL count queries as Prometheus gauges",
    )
    parser.add_argument(
        "-config",
        "--config",
        dest="config",
        default=DEFAULT_CONFIG_PATH,
        help=f"path to the YAML configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    args = create_parser().parse_args(argv)

    from query_exporter.core.runner import run

    sys.exit(run(args.config))
