import pathlib as pl
import typing as tp

from roachdev.cluster_management import staging


def hypothesis_settings(max_examples: int = 100) -> tp.Any:
    import hypothesis

    return hypothesis.settings(
        max_examples=max_examples,
        deadline=None,
        suppress_health_check=(
            hypothesis.HealthCheck.too_slow,
            hypothesis.HealthCheck.function_scoped_fixture,
        ),
    )


def node_cmdline(
    *,
    binary: str,
    staging_root: pl.Path,
    invocation_id: int,
    node_num: int,
    offset: int = 0,
    num_nodes: int = 3,
) -> list[str]:
    """Return command line of a node process the same way the launcher builds it."""
    dirs = staging.get_invocation_dirs(invocation_id=invocation_id, staging_root=staging_root)
    sql_port = 26256 + node_num + offset
    http_port = 8079 + node_num + offset
    cmdline = [
        binary,
        "start-single-node" if num_nodes == 1 else "start",
        "--insecure",
        f"--listen-addr=localhost:{sql_port}",
        f"--http-addr=localhost:{http_port}",
        f"--store={dirs.node_store_dir(node_num=node_num)}",
    ]
    if num_nodes > 1:
        join = ",".join(f"localhost:{26256 + n + offset}" for n in range(1, num_nodes + 1))
        cmdline.append(f"--join={join}")
    return cmdline
