#!/usr/bin/env python3
"""Manage local CockroachDB clusters for development and testing.

Commands:

* start: start a new cluster (`-n` nodes, `-v` version, `-i` import sample data)
* stop: kill running nodes
* status (stat, show): list running nodes
* clean: delete data and logs of all clusters
* web: open web console of the first node
* sql: open SQL shell connected to the first node
* log: show log of the first node
"""

import argparse
import logging
import sys

from roachdev.cluster_management import commands
from roachdev.utils import configuration
from roachdev.utils import exceptions

LOGGER = logging.getLogger(__name__)


def get_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Get command line arguments."""
    parser = argparse.ArgumentParser(
        description=(__doc__ or "").split("\n", maxsplit=1)[0],
        epilog=f"Data and logs are kept in '{configuration.STAGING_ROOT}'.",
    )
    parser.add_argument(
        "command",
        choices=commands.COMMAND_TOKENS,
        help="Command to run.",
    )
    parser.add_argument(
        "-n",
        "--nodes",
        type=int,
        default=1,
        help="Number of nodes to start (default: 1, single node mode)",
    )
    parser.add_argument(
        "-v",
        "--version",
        default="",
        help="CockroachDB version, e.g. '22.1' for the `cockroach-22.1` binary "
        "(default: the `cockroach` binary)",
    )
    parser.add_argument(
        "-i",
        "--import-data",
        action="store_true",
        help="Import sample data after the cluster is started (default: false)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        format="%(levelname)s:%(message)s",
        level=logging.DEBUG if configuration.DEBUG else logging.INFO,
    )
    args = get_args(argv)

    try:
        command = commands.parse_command(args.command)
        return commands.run(
            command,
            num_nodes=args.nodes,
            version_str=args.version,
            import_data=args.import_data,
        )
    except exceptions.RoachDevError as excp:
        LOGGER.error(str(excp))  # noqa: TRY400
        return 1


if __name__ == "__main__":
    sys.exit(main())
