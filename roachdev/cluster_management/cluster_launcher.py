"""Start cluster nodes.

A single node is started with `start-single-node`, which also initializes it. Multiple nodes are
started with `start` and a join list of all the nodes, and the cluster is initialized through
the first node once all of them were launched. Readiness of the nodes is not checked, the
launcher just waits a fixed amount of time.
"""

import dataclasses
import logging
import pathlib as pl
import time

from roachdev.cluster_management import netstat_tools
from roachdev.cluster_management import staging
from roachdev.utils import configuration
from roachdev.utils import exceptions
from roachdev.utils import framework_log
from roachdev.utils import helpers
from roachdev.utils import versions

LOGGER = logging.getLogger(__name__)

WORKLOAD_LOG = "workload.log"


@dataclasses.dataclass(frozen=True, order=True)
class NodeSpec:
    num: int
    sql_port: int
    http_port: int
    store_dir: pl.Path
    log_file: pl.Path
    host: str = configuration.LISTEN_HOST

    @property
    def listen_addr(self) -> str:
        return f"{self.host}:{self.sql_port}"

    @property
    def http_addr(self) -> str:
        return f"{self.host}:{self.http_port}"


@dataclasses.dataclass(frozen=True)
class ClusterSpec:
    binary: versions.ResolvedBinary
    dirs: staging.InvocationDirs
    nodes: tuple[NodeSpec, ...]

    @property
    def is_single_node(self) -> bool:
        return len(self.nodes) == 1

    @property
    def first_node(self) -> NodeSpec:
        return self.nodes[0]

    @property
    def join_list(self) -> list[str]:
        if self.is_single_node:
            return []
        return [n.listen_addr for n in self.nodes]


def get_cluster_spec(
    *,
    binary: versions.ResolvedBinary,
    dirs: staging.InvocationDirs,
    num_nodes: int,
    port_block: netstat_tools.PortBlock,
    host: str = configuration.LISTEN_HOST,
) -> ClusterSpec:
    """Return ports and paths of all nodes of the cluster."""
    nodes = tuple(
        NodeSpec(
            num=num,
            sql_port=port_block.sql_port(node_num=num),
            http_port=port_block.http_port(node_num=num),
            store_dir=dirs.node_store_dir(node_num=num),
            log_file=dirs.node_log_file(node_num=num),
            host=host,
        )
        for num in range(1, num_nodes + 1)
    )
    return ClusterSpec(binary=binary, dirs=dirs, nodes=nodes)


def get_node_cmd(cluster: ClusterSpec, node: NodeSpec) -> list[str]:
    """Return command for starting the node.

    The binary name and the store path are what later identifies the node process, see
    `process_discovery`.
    """
    subcommand = "start-single-node" if cluster.is_single_node else "start"
    cmd = [
        cluster.binary.name,
        subcommand,
        "--insecure",
        f"--listen-addr={node.listen_addr}",
        f"--http-addr={node.http_addr}",
        f"--store={node.store_dir}",
    ]
    if cluster.join_list:
        cmd.append(f"--join={','.join(cluster.join_list)}")
    return cmd


def get_sql_cmd(binary_name: str, host_addr: str) -> list[str]:
    """Return command for opening SQL shell connected to the given node."""
    return [binary_name, "sql", "--insecure", f"--host={host_addr}"]


def get_console_url(http_addr: str) -> str:
    return f"http://{http_addr}"


def get_pgurl(listen_addr: str) -> str:
    return f"postgresql://root@{listen_addr}?sslmode=disable"


def start_nodes(cluster: ClusterSpec) -> list[int]:
    """Launch all nodes in background, return their PIDs."""
    inv_logger = framework_log.invocation_logger(log_dir=cluster.dirs.log_dir)

    pids = []
    for node in cluster.nodes:
        cmd = get_node_cmd(cluster=cluster, node=node)
        pid = helpers.run_detached(cmd, log_file=node.log_file)
        LOGGER.info(f"Started node {node.num} ({node.listen_addr}): PID {pid}")
        inv_logger.info(f"Node {node.num} PID {pid}: {' '.join(cmd)}")
        pids.append(pid)
    return pids


def init_cluster(cluster: ClusterSpec) -> None:
    """Initialize multi-node cluster through its first node."""
    cmd = [cluster.binary.name, "init", "--insecure", f"--host={cluster.first_node.listen_addr}"]
    framework_log.invocation_logger(log_dir=cluster.dirs.log_dir).info(" ".join(cmd))
    LOGGER.info("Initializing the cluster.")
    try:
        helpers.run_command(cmd)
    except (RuntimeError, OSError) as excp:
        msg = (
            "Failed to initialize the cluster, its nodes are left running "
            f"(use `stop` and `clean` to remove them, logs are in '{cluster.dirs.log_dir}'): "
            f"{excp}"
        )
        raise exceptions.LaunchError(msg) from excp


def import_sample_data(
    cluster: ClusterSpec, *, workload: str = configuration.SAMPLE_WORKLOAD
) -> bool:
    """Load sample data into the cluster.

    Output of the workload goes to the invocation log dir. Failure is not fatal.
    """
    cmd = [
        cluster.binary.name,
        "workload",
        "init",
        workload,
        get_pgurl(listen_addr=cluster.first_node.listen_addr),
    ]
    framework_log.invocation_logger(log_dir=cluster.dirs.log_dir).info(" ".join(cmd))
    LOGGER.info(f"Importing `{workload}` sample data.")

    try:
        out = helpers.run_command(cmd)
    except (RuntimeError, OSError) as excp:
        (cluster.dirs.log_dir / WORKLOAD_LOG).write_text(f"{excp}\n", encoding="utf-8")
        LOGGER.warning(f"Failed to import sample data, see '{cluster.dirs.log_dir}'.")
        return False

    (cluster.dirs.log_dir / WORKLOAD_LOG).write_bytes(out)
    return True


def launch_cluster(
    cluster: ClusterSpec,
    *,
    import_data: bool = False,
    launch_delay: float = configuration.LAUNCH_DELAY,
    init_delay: float = configuration.INIT_DELAY,
) -> list[int]:
    """Start all nodes, initialize the cluster and optionally import sample data.

    Nothing is rolled back when a node fails to start.
    """
    pids = start_nodes(cluster=cluster)

    # Wait for nodes to start
    if launch_delay > 0:
        time.sleep(launch_delay)

    if not cluster.is_single_node:
        init_cluster(cluster=cluster)
        if init_delay > 0:
            time.sleep(init_delay)

    if import_data:
        import_sample_data(cluster=cluster)

    return pids


def format_banner(cluster: ClusterSpec, *, summary: str) -> str:
    """Return the "cluster ready" message."""
    first = cluster.first_node
    sql_cmd = " ".join(get_sql_cmd(binary_name=cluster.binary.name, host_addr=first.listen_addr))
    mode = "single node" if cluster.is_single_node else f"{len(cluster.nodes)} nodes"
    lines = [
        f"Cluster ready ({mode}, {cluster.binary.name}, invocation {cluster.dirs.invocation_id})",
        f"  {summary}",
        f"  SQL shell:   {sql_cmd}",
        f"  Web console: {get_console_url(http_addr=first.http_addr)}",
        f"  Binary:      {cluster.binary.path}",
        f"  Logs:        {cluster.dirs.log_dir}",
    ]
    return "\n".join(lines)
