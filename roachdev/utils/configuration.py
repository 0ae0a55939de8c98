"""Orchestrator and local cluster configuration."""

import os
import pathlib as pl
import tempfile


def get_int_env(name: str, default: int) -> int:
    """Return integer value of the env variable, `default` when unset or empty."""
    value = os.environ.get(name) or ""
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        msg = f"Invalid {name} '{value}': expected an integer"
        raise RuntimeError(msg) from None


def get_float_env(name: str, default: float) -> float:
    """Return number value of the env variable, `default` when unset or empty."""
    value = os.environ.get(name) or ""
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        msg = f"Invalid {name} '{value}': expected a number"
        raise RuntimeError(msg) from None


# All invocation workspaces live under this directory. Node processes are recognized by this path
# being present in their command line, so it must not change while clusters are running.
STAGING_ROOT = (
    pl.Path(os.environ.get("ROACHDEV_STAGING_ROOT") or pl.Path(tempfile.gettempdir()) / "roachdev")
    .expanduser()
    .resolve()
)

COCKROACH_BIN = os.environ.get("COCKROACH_BIN") or "cockroach"
if os.sep in COCKROACH_BIN:
    msg = f"Invalid COCKROACH_BIN '{COCKROACH_BIN}': must be a binary name, not a path"
    raise RuntimeError(msg)

# Node `k` listens on `SQL_PORT_BASE + k + offset`, so the first node of the first cluster gets
# the usual 26257 / 8080 ports.
SQL_PORT_BASE = get_int_env("ROACHDEV_SQL_PORT_BASE", 26256)
HTTP_PORT_BASE = get_int_env("ROACHDEV_HTTP_PORT_BASE", 8079)
PORT_BLOCK_STEP = 100
MAX_PORT = 65535

LISTEN_HOST = os.environ.get("ROACHDEV_LISTEN_HOST") or "localhost"

# Seconds to wait after launching nodes and after initializing the cluster
LAUNCH_DELAY = get_float_env("ROACHDEV_LAUNCH_DELAY", 3)
INIT_DELAY = get_float_env("ROACHDEV_INIT_DELAY", 2)
if LAUNCH_DELAY < 0 or INIT_DELAY < 0:
    msg = f"Invalid delays: launch {LAUNCH_DELAY}, init {INIT_DELAY}"
    raise RuntimeError(msg)

USAGE_WARN_BYTES = int(get_float_env("ROACHDEV_USAGE_WARN_GB", 50) * 1024**3)

SAMPLE_WORKLOAD = "movr"

# Advisory lock held by `start` while checking ports and launching nodes
USE_LOCK = not bool(os.environ.get("ROACHDEV_NO_LOCK"))

DEBUG = bool(os.environ.get("ROACHDEV_DEBUG"))

PAGER = os.environ.get("PAGER") or "less"
