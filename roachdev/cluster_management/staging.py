"""Staging workspace of orchestrator invocations.

Layout of the staging root:

* `<staging-root>/<invocation-id>/data/node<k>`: store of node `k`
* `<staging-root>/<invocation-id>/log/cockroach_node<k>.log`: output of node `k`

The invocation id is the PID of the orchestrator process that started the cluster.
"""

import dataclasses
import logging
import os
import pathlib as pl
import shutil
import typing as tp

import psutil

from roachdev.utils import configuration
from roachdev.utils import exceptions
from roachdev.utils import helpers

LOGGER = logging.getLogger(__name__)

DATA_DIR = "data"
LOG_DIR = "log"
NODE_DIR_TEMPLATE = "node"
NODE_LOG_TEMPLATE = "cockroach_node{num}.log"
WORKSPACE_MODE = 0o770


@dataclasses.dataclass(frozen=True, order=True)
class InvocationDirs:
    invocation_id: int
    staging_root: pl.Path

    @property
    def root(self) -> pl.Path:
        return self.staging_root / str(self.invocation_id)

    @property
    def data_dir(self) -> pl.Path:
        return self.root / DATA_DIR

    @property
    def log_dir(self) -> pl.Path:
        return self.root / LOG_DIR

    def node_store_dir(self, node_num: int) -> pl.Path:
        return self.data_dir / f"{NODE_DIR_TEMPLATE}{node_num}"

    def node_log_file(self, node_num: int) -> pl.Path:
        return self.log_dir / NODE_LOG_TEMPLATE.format(num=node_num)


def get_invocation_dirs(
    invocation_id: int, *, staging_root: pl.Path = configuration.STAGING_ROOT
) -> InvocationDirs:
    return InvocationDirs(invocation_id=invocation_id, staging_root=staging_root)


def create_workspace(
    invocation_id: int, *, staging_root: pl.Path = configuration.STAGING_ROOT
) -> InvocationDirs:
    """Create the staging root and the `data` and `log` dirs of the invocation."""
    dirs = get_invocation_dirs(invocation_id=invocation_id, staging_root=staging_root)
    staging_root.mkdir(parents=True, exist_ok=True)
    for subdir in (dirs.root, dirs.data_dir, dirs.log_dir):
        subdir.mkdir(mode=WORKSPACE_MODE, exist_ok=True)
        # `mkdir` mode is subject to umask
        subdir.chmod(WORKSPACE_MODE)
    LOGGER.debug(f"Created workspace '{dirs.root}'.")
    return dirs


def get_path_size(path: pl.Path) -> int:
    """Return apparent size of a file or of a whole directory tree, symlinks not followed."""
    try:
        total = path.lstat().st_size
    except FileNotFoundError:
        return 0

    if path.is_symlink() or not path.is_dir():
        return total

    for dirpath, dirnames, filenames in os.walk(path):
        for name in (*dirnames, *filenames):
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except FileNotFoundError:  # noqa: PERF203
                # Files of running nodes come and go
                continue
    return total


def get_usage(staging_root: pl.Path = configuration.STAGING_ROOT) -> int:
    """Return apparent size of all entries in the staging root."""
    if not staging_root.is_dir():
        return 0
    return sum(get_path_size(p) for p in staging_root.iterdir())


def format_size(num_bytes: float) -> str:
    """Format size in human readable units.

    >>> format_size(1536)
    '1.5 KiB'
    """
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(num_bytes) < 1024:
            return f"{num_bytes:.0f} {unit}" if unit == "B" else f"{num_bytes:.1f} {unit}"
        num_bytes /= 1024
    return f"{num_bytes:.1f} TiB"


def check_usage(
    staging_root: pl.Path = configuration.STAGING_ROOT,
    *,
    threshold: int = configuration.USAGE_WARN_BYTES,
) -> int:
    """Warn when the staging root grew over the threshold, return the usage."""
    usage = get_usage(staging_root=staging_root)
    if usage > threshold:
        LOGGER.warning(
            f"Staging directory '{staging_root}' uses {format_size(usage)}, which is more than "
            f"{format_size(threshold)}. Consider running `clean`."
        )
    return usage


def get_open_files(staging_root: pl.Path = configuration.STAGING_ROOT) -> list[tuple[int, str]]:
    """Return `(pid, path)` of files under the staging root that are open by any process.

    Working directories of processes are not considered.
    """
    open_files = []
    for proc in psutil.process_iter():
        try:
            proc_files = proc.open_files()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):  # noqa: PERF203
            continue
        open_files.extend(
            (proc.pid, f.path)
            for f in proc_files
            if helpers.is_relative_to(path=f.path, root=staging_root)
        )
    return open_files


def check_not_busy(staging_root: pl.Path = configuration.STAGING_ROOT) -> None:
    """Fail if any file under the staging root is in use."""
    open_files = get_open_files(staging_root=staging_root)
    if not open_files:
        return

    pids = sorted({pid for pid, __ in open_files})
    files_str = "\n".join(f"  PID {pid}: {path}" for pid, path in open_files[:10])
    msg = (
        f"Files under '{staging_root}' are in use by PIDs {pids}. "
        f"Run `stop` first.\n{files_str}"
    )
    raise exceptions.ResourceBusyError(msg)


def remove_contents(staging_root: pl.Path) -> None:
    """Delete everything in the staging root, keep the root itself."""
    for entry in staging_root.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def clean_workspace(
    staging_root: pl.Path = configuration.STAGING_ROOT,
    *,
    confirm_func: tp.Callable[[str], bool] = helpers.ask_yes_no,
) -> bool:
    """Delete contents of the staging root after confirmation.

    Returns:
        bool: True if the contents were deleted.
    """
    if not staging_root.is_dir():
        LOGGER.info(f"Staging directory '{staging_root}' doesn't exist, nothing to clean.")
        return False

    check_not_busy(staging_root=staging_root)

    usage = get_usage(staging_root=staging_root)
    if not confirm_func(f"Delete {format_size(usage)} of data in '{staging_root}'?"):
        LOGGER.info("Nothing was deleted.")
        return False

    remove_contents(staging_root=staging_root)
    LOGGER.info(f"Deleted contents of '{staging_root}'.")
    return True
