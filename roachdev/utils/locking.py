import contextlib
import logging
import pathlib as pl
import typing as tp

from filelock import FileLock

from roachdev.utils import configuration

LOCK_FILE = ".roachdev.lock"

# Suppress messages from filelock
logging.getLogger("filelock").setLevel(logging.WARNING)


def staging_lock(staging_root: pl.Path, *, enabled: bool = configuration.USE_LOCK) -> tp.Any:
    """Return advisory lock for the given staging root.

    The lock only serializes orchestrator invocations against each other, node processes
    don't know about it.
    """
    if not enabled:
        return contextlib.nullcontext()
    return FileLock(str(staging_root / LOCK_FILE))
