import logging
import os
import pathlib as pl
import subprocess
import typing as tp

import roachdev.utils.types as ttypes

LOGGER = logging.getLogger(__name__)


def _cmd_str(command: ttypes.CmdLine) -> str:
    return " ".join(str(c) for c in command)


def run_command(command: str | ttypes.CmdLine) -> bytes:
    """Run command and return its stdout."""
    cmd: list[str]
    if isinstance(command, str):
        cmd = command.split()
        cmd_str = command
    else:
        cmd = list(command)
        cmd_str = _cmd_str(command)

    LOGGER.debug("Running `%s`", cmd_str)

    with subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE) as p:
        stdout, stderr = p.communicate()
        retcode = p.returncode

    if retcode != 0:
        err_dec = stderr.decode()
        err_dec = err_dec or stdout.decode()
        msg = f"An error occurred while running `{cmd_str}`: {err_dec}"
        raise RuntimeError(msg)

    return stdout


def run_detached(command: ttypes.CmdLine, *, log_file: ttypes.FileType) -> int:
    """Start command in a new session with output appended to `log_file` and return its PID.

    The process is not waited for and keeps running after the orchestrator exits.
    """
    LOGGER.debug("Starting detached `%s`", _cmd_str(command))
    with open(log_file, "ab") as log_fp:
        proc = subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=log_fp,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
    return proc.pid


def run_interactive(command: ttypes.CmdLine) -> int:
    """Run command attached to the current terminal and return its exit code."""
    LOGGER.debug("Running interactive `%s`", _cmd_str(command))
    return subprocess.run(list(command), check=False).returncode


def ask_yes_no(question: str, *, input_func: tp.Callable[[str], str] | None = None) -> bool:
    """Ask until the answer is `y(es)` or `n(o)`."""
    read_answer = input_func or input
    while True:
        answer = read_answer(f"{question} [y/n] ").strip().lower()
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False


def is_relative_to(path: ttypes.FileType, root: ttypes.FileType) -> bool:
    """Check that `path` is `root` or is located under `root`."""
    return pl.Path(os.path.normpath(path)).is_relative_to(pl.Path(os.path.normpath(root)))


def same_path(path: ttypes.FileType, other: ttypes.FileType) -> bool:
    """Check that both paths point to the same location, ignoring `..` and trailing slashes."""
    return pl.Path(os.path.normpath(path)) == pl.Path(os.path.normpath(other))
