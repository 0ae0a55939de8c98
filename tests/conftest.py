import os
import pathlib as pl
import typing as tp

import pytest

from roachdev.cluster_management import process_discovery
from roachdev.utils import configuration
from roachdev.utils import versions

DEFAULT_BUILD_TAG = "v23.1.4"
VERSIONED_BINS = {"22.1": "v22.1.8"}


def _write_fake_bin(path: pl.Path, build_tag: str) -> None:
    path.write_text(f"#!/bin/sh\necho {build_tag}\n", encoding="utf-8")
    path.chmod(0o755)


@pytest.fixture
def fake_bins(tmp_path: pl.Path, monkeypatch: pytest.MonkeyPatch) -> tp.Iterator[pl.Path]:
    """Put fake `cockroach` binaries on PATH.

    The default binary reports version 23.1, `cockroach-22.1` is also installed.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    _write_fake_bin(bin_dir / configuration.COCKROACH_BIN, DEFAULT_BUILD_TAG)
    for ver, tag in VERSIONED_BINS.items():
        _write_fake_bin(bin_dir / f"{configuration.COCKROACH_BIN}-{ver}", tag)

    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    versions.get_binary_version.cache_clear()
    yield bin_dir
    versions.get_binary_version.cache_clear()


@pytest.fixture
def no_bins(tmp_path: pl.Path, monkeypatch: pytest.MonkeyPatch) -> tp.Iterator[None]:
    """Make sure no `cockroach` binary can be found."""
    empty_dir = tmp_path / "empty_bin"
    empty_dir.mkdir()
    monkeypatch.setenv("PATH", str(empty_dir))
    versions.get_binary_version.cache_clear()
    yield
    versions.get_binary_version.cache_clear()


@pytest.fixture
def staging_root(tmp_path: pl.Path) -> pl.Path:
    """Staging root that doesn't exist yet."""
    # Paths of open files are reported resolved
    return tmp_path.resolve() / "staging"


@pytest.fixture
def fake_processes(monkeypatch: pytest.MonkeyPatch) -> list[tuple[int, list[str]]]:
    """Replace the OS process table with a list of `(pid, cmdline)` the test can fill."""
    processes: list[tuple[int, list[str]]] = []
    monkeypatch.setattr(process_discovery, "iter_process_cmdlines", lambda: iter(processes))
    return processes
