"""Find node processes started by the orchestrator in the OS process table.

Nothing about running clusters is persisted. A process belongs to a cluster if its command line
contains a node start subcommand and its store is a node dir under the staging root. Everything
else (version, invocation id, node number, ports) is read back from the command line arguments
the launcher passed to it.
"""

import dataclasses
import logging
import pathlib as pl
import re
import typing as tp

import psutil

from roachdev.cluster_management import staging
from roachdev.utils import configuration
from roachdev.utils import exceptions
from roachdev.utils import helpers

LOGGER = logging.getLogger(__name__)

START_SUBCOMMANDS = frozenset({"start", "start-single-node"})

RE_NODE_DIR = re.compile(rf"^{staging.NODE_DIR_TEMPLATE}(\d+)$")


@dataclasses.dataclass(frozen=True, order=True)
class NodeProcess:
    # Field order defines sorting, nodes are ordered by listen address first
    listen_addr: str
    http_addr: str
    pid: int
    binary: str
    invocation_id: int
    node_num: int
    store_dir: pl.Path
    cmdline: tuple[str, ...] = dataclasses.field(compare=False, repr=False)


def get_flag_value(cmdline: tp.Sequence[str], flag: str) -> str:
    """Return value of `--flag=value` or `--flag value` argument, empty string if not present."""
    prefix = f"{flag}="
    for idx, arg in enumerate(cmdline):
        if arg.startswith(prefix):
            return arg[len(prefix) :]
        if arg == flag and idx + 1 < len(cmdline):
            return cmdline[idx + 1]
    return ""


def is_cluster_member(
    cmdline: tp.Sequence[str], *, staging_root: pl.Path = configuration.STAGING_ROOT
) -> bool:
    """Check if the command line belongs to a node started under the staging root."""
    if not START_SUBCOMMANDS.intersection(cmdline[1:]):
        return False
    return str(staging_root) in " ".join(cmdline)


def parse_node_process(
    pid: int,
    cmdline: tp.Sequence[str],
    *,
    staging_root: pl.Path = configuration.STAGING_ROOT,
) -> NodeProcess | None:
    """Return node process record, or None if the process doesn't belong to any cluster."""
    if not cmdline or not is_cluster_member(cmdline=cmdline, staging_root=staging_root):
        return None

    store = get_flag_value(cmdline=cmdline, flag="--store")
    # Store can be given as `path=...,attrs=...`
    store_path = pl.Path(store.split(",")[0].removeprefix("path="))
    node_match = RE_NODE_DIR.match(store_path.name)
    invocation_str = store_path.parent.parent.name
    if not (node_match and invocation_str.isdigit()):
        LOGGER.debug(f"Unexpected store '{store}' of PID {pid}, ignoring the process.")
        return None

    # `<staging_root>/<ID>/data/node<k>`, a root that only shares a prefix doesn't match
    if store_path.parent.name != staging.DATA_DIR or not helpers.same_path(
        store_path.parent.parent.parent, staging_root
    ):
        LOGGER.debug(f"Store '{store}' of PID {pid} is outside of '{staging_root}', ignoring.")
        return None

    return NodeProcess(
        listen_addr=get_flag_value(cmdline=cmdline, flag="--listen-addr"),
        http_addr=get_flag_value(cmdline=cmdline, flag="--http-addr"),
        pid=pid,
        binary=pl.Path(cmdline[0]).name,
        invocation_id=int(invocation_str),
        node_num=int(node_match.group(1)),
        store_dir=store_path,
        cmdline=tuple(cmdline),
    )


def iter_process_cmdlines() -> tp.Iterator[tuple[int, list[str]]]:
    """Yield `(pid, cmdline)` of all processes that can be inspected."""
    for proc in psutil.process_iter(["pid", "cmdline"]):
        cmdline = proc.info.get("cmdline")
        if cmdline:
            yield proc.info["pid"], cmdline


def get_node_processes(
    *, staging_root: pl.Path = configuration.STAGING_ROOT
) -> list[NodeProcess]:
    """Return all node processes started under the staging root, any version."""
    nodes = []
    for pid, cmdline in iter_process_cmdlines():
        node = parse_node_process(pid=pid, cmdline=cmdline, staging_root=staging_root)
        if node:
            nodes.append(node)
    return sorted(nodes)


def find_node_processes(
    binary: str = "",
    *,
    invocation_id: int | None = None,
    staging_root: pl.Path = configuration.STAGING_ROOT,
) -> list[NodeProcess]:
    """Return node processes, optionally only of the given binary (version) and invocation.

    Raises:
        NotFoundError: No node process is running.
        AmbiguousVersionError: Nodes are running, but none of them uses the requested binary.
    """
    nodes = get_node_processes(staging_root=staging_root)
    if invocation_id is not None:
        nodes = [n for n in nodes if n.invocation_id == invocation_id]

    if not nodes:
        msg = "No running cluster nodes found."
        raise exceptions.NotFoundError(msg)

    if not binary:
        return nodes

    matching = [n for n in nodes if n.binary == binary]
    if not matching:
        running_str = ", ".join(sorted({n.binary for n in nodes}))
        msg = (
            f"No running nodes of `{binary}` found, but nodes of other versions are running "
            f"({running_str}). Run `status` without version to see all of them."
        )
        raise exceptions.AmbiguousVersionError(msg)

    return matching


def select_first_node(
    nodes: tp.Sequence[NodeProcess], *, default_binary: str = configuration.COCKROACH_BIN
) -> NodeProcess:
    """Select the canonical "first" node.

    Nodes of the default binary are preferred, and the node with the lowest listen address
    (compared as a string) is selected. Ports are assigned in increasing node order, so this
    is usually the node that was started first, though the start time itself is not checked.
    """
    if not nodes:
        msg = "No running cluster nodes found."
        raise exceptions.NotFoundError(msg)

    default_nodes = [n for n in nodes if n.binary == default_binary]
    return min(default_nodes or nodes, key=lambda n: n.listen_addr)


def get_log_file(
    node: NodeProcess, *, staging_root: pl.Path = configuration.STAGING_ROOT
) -> pl.Path:
    """Return the log file of the node, derived from its store dir."""
    dirs = staging.get_invocation_dirs(invocation_id=node.invocation_id, staging_root=staging_root)
    return dirs.node_log_file(node_num=node.node_num)


def kill_processes(nodes: tp.Iterable[NodeProcess]) -> list[int]:
    """Force kill the node processes, return PIDs the kill signal was sent to."""
    killed = []
    for node in nodes:
        try:
            psutil.Process(node.pid).kill()
        except psutil.NoSuchProcess:  # noqa: PERF203
            LOGGER.warning(f"Node process PID {node.pid} is already gone.")
            continue
        except psutil.AccessDenied as excp:
            LOGGER.error(f"Failed to kill node process PID {node.pid}: {excp}")  # noqa: TRY400
            continue
        LOGGER.info(
            f"Killed node {node.node_num} of invocation {node.invocation_id}: PID {node.pid}"
        )
        killed.append(node.pid)
    return killed


def format_summary(nodes: tp.Sequence[NodeProcess]) -> str:
    """Return one line summary of the node processes."""
    binaries_str = ", ".join(sorted({n.binary for n in nodes}))
    invocations_str = ", ".join(str(i) for i in sorted({n.invocation_id for n in nodes}))
    pids_str = ", ".join(str(n.pid) for n in nodes)
    return (
        f"{len(nodes)} node(s) running [{binaries_str}], invocation(s) {invocations_str}, "
        f"PIDs {pids_str}"
    )


def format_status(nodes: tp.Sequence[NodeProcess]) -> str:
    """Return table with one line per node process."""
    header = f"{'PID':>8}  {'INVOCATION':>10}  {'NODE':>4}  {'BINARY':<18}  {'SQL':<22}  HTTP"
    lines = [
        f"{n.pid:>8}  {n.invocation_id:>10}  {n.node_num:>4}  {n.binary:<18}  "
        f"{n.listen_addr:<22}  {n.http_addr}"
        for n in nodes
    ]
    return "\n".join([header, *lines])
