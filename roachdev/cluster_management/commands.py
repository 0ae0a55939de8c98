"""Lifecycle commands: start, stop, status, clean, web, sql, log."""

import enum
import logging
import os
import pathlib as pl
import typing as tp
import webbrowser

from roachdev.cluster_management import cluster_launcher
from roachdev.cluster_management import netstat_tools
from roachdev.cluster_management import process_discovery
from roachdev.cluster_management import staging
from roachdev.utils import configuration
from roachdev.utils import exceptions
from roachdev.utils import helpers
from roachdev.utils import locking
from roachdev.utils import versions

LOGGER = logging.getLogger(__name__)


class Command(enum.StrEnum):
    START = "start"
    STOP = "stop"
    STATUS = "status"
    CLEAN = "clean"
    WEB = "web"
    SQL = "sql"
    LOG = "log"


ALIASES: dict[str, Command] = {"stat": Command.STATUS, "show": Command.STATUS}

COMMAND_TOKENS = (*(c.value for c in Command), *ALIASES)


def parse_command(token: str) -> Command:
    """Return the command for the given token, aliases included."""
    if token in ALIASES:
        return ALIASES[token]
    try:
        return Command(token)
    except ValueError:
        msg = f"Unknown command '{token}', expected one of: {', '.join(COMMAND_TOKENS)}"
        raise exceptions.ValidationError(msg) from None


def _discover(
    version_str: str, *, staging_root: pl.Path
) -> list[process_discovery.NodeProcess] | None:
    """Find node processes of the version, report and return None when there are none."""
    binary_name = versions.get_binary_name(version_str) if version_str else ""
    try:
        return process_discovery.find_node_processes(binary_name, staging_root=staging_root)
    except exceptions.DiscoveryError as excp:
        LOGGER.info(str(excp))
        return None


def _discover_first(
    version_str: str, *, staging_root: pl.Path
) -> process_discovery.NodeProcess | None:
    nodes = _discover(version_str, staging_root=staging_root)
    if not nodes:
        return None
    return process_discovery.select_first_node(nodes)


def cmd_start(
    *,
    num_nodes: int = 1,
    version_str: str = "",
    import_data: bool = False,
    staging_root: pl.Path = configuration.STAGING_ROOT,
    invocation_id: int | None = None,
) -> int:
    """Start a new cluster."""
    # Validate everything before touching the filesystem
    if num_nodes < 1:
        msg = f"Invalid number of nodes '{num_nodes}': must be >= 1"
        raise exceptions.ValidationError(msg)
    binary = versions.resolve_binary(version_str)
    invocation_id = os.getpid() if invocation_id is None else invocation_id

    staging_root.mkdir(parents=True, exist_ok=True)
    with locking.staging_lock(staging_root):
        port_block = netstat_tools.allocate_port_block(num_nodes)
        dirs = staging.create_workspace(invocation_id, staging_root=staging_root)
        staging.check_usage(staging_root)
        cluster = cluster_launcher.get_cluster_spec(
            binary=binary, dirs=dirs, num_nodes=num_nodes, port_block=port_block
        )
        cluster_launcher.launch_cluster(cluster, import_data=import_data)

    try:
        nodes = process_discovery.find_node_processes(
            binary.name, invocation_id=invocation_id, staging_root=staging_root
        )
        summary = process_discovery.format_summary(nodes)
    except exceptions.DiscoveryError:
        summary = "no node processes found, check the logs"

    print(cluster_launcher.format_banner(cluster, summary=summary))
    return 0


def cmd_stop(
    *, version_str: str = "", staging_root: pl.Path = configuration.STAGING_ROOT
) -> int:
    """Force kill all matching node processes."""
    nodes = _discover(version_str, staging_root=staging_root)
    if nodes:
        process_discovery.kill_processes(nodes)
    return 0


def cmd_status(
    *, version_str: str = "", staging_root: pl.Path = configuration.STAGING_ROOT
) -> int:
    nodes = _discover(version_str, staging_root=staging_root)
    if nodes:
        print(process_discovery.format_status(nodes))
    staging.check_usage(staging_root)
    return 0


def cmd_clean(*, staging_root: pl.Path = configuration.STAGING_ROOT) -> int:
    staging.clean_workspace(staging_root)
    return 0


def cmd_web(*, version_str: str = "", staging_root: pl.Path = configuration.STAGING_ROOT) -> int:
    """Open web console of the first node."""
    node = _discover_first(version_str, staging_root=staging_root)
    if node:
        url = cluster_launcher.get_console_url(http_addr=node.http_addr)
        LOGGER.info(f"Opening {url}")
        webbrowser.open(url)
    return 0


def cmd_sql(*, version_str: str = "", staging_root: pl.Path = configuration.STAGING_ROOT) -> int:
    """Open SQL shell connected to the first node."""
    node = _discover_first(version_str, staging_root=staging_root)
    if not node:
        return 0
    return helpers.run_interactive(
        cluster_launcher.get_sql_cmd(binary_name=node.binary, host_addr=node.listen_addr)
    )


def cmd_log(*, version_str: str = "", staging_root: pl.Path = configuration.STAGING_ROOT) -> int:
    """Open log of the first node in pager."""
    node = _discover_first(version_str, staging_root=staging_root)
    if not node:
        return 0
    log_file = process_discovery.get_log_file(node, staging_root=staging_root)
    if not log_file.exists():
        LOGGER.info(f"Log file '{log_file}' doesn't exist.")
        return 0
    return helpers.run_interactive([configuration.PAGER, str(log_file)])


def run(
    command: Command,
    *,
    num_nodes: int = 1,
    version_str: str = "",
    import_data: bool = False,
    staging_root: pl.Path = configuration.STAGING_ROOT,
) -> int:
    """Run a single command."""
    if command == Command.START:
        return cmd_start(
            num_nodes=num_nodes,
            version_str=version_str,
            import_data=import_data,
            staging_root=staging_root,
        )
    if command == Command.CLEAN:
        return cmd_clean(staging_root=staging_root)

    handlers: dict[Command, tp.Callable[..., int]] = {
        Command.STOP: cmd_stop,
        Command.STATUS: cmd_status,
        Command.WEB: cmd_web,
        Command.SQL: cmd_sql,
        Command.LOG: cmd_log,
    }
    return handlers[command](version_str=version_str, staging_root=staging_root)
