import logging
import os
import pathlib as pl

import pytest

from roachdev.cluster_management import staging
from roachdev.utils import exceptions
from roachdev.utils import helpers


def _snapshot(root: pl.Path) -> dict[str, bytes | None]:
    """Return relative paths and file contents of the tree."""
    return {
        str(p.relative_to(root)): (p.read_bytes() if p.is_file() else None)
        for p in sorted(root.rglob("*"))
    }


def _populate(staging_root: pl.Path) -> staging.InvocationDirs:
    dirs = staging.create_workspace(1234, staging_root=staging_root)
    store = dirs.node_store_dir(node_num=1)
    store.mkdir()
    (store / "000001.sst").write_bytes(b"x" * 1000)
    dirs.node_log_file(node_num=1).write_bytes(b"y" * 500)
    return dirs


class TestWorkspace:
    def test_layout(self, staging_root: pl.Path):
        dirs = staging.create_workspace(1234, staging_root=staging_root)

        assert dirs.root == staging_root / "1234"
        assert dirs.data_dir.is_dir()
        assert dirs.log_dir.is_dir()
        assert dirs.node_store_dir(node_num=2) == staging_root / "1234" / "data" / "node2"
        assert dirs.node_log_file(node_num=2) == (
            staging_root / "1234" / "log" / "cockroach_node2.log"
        )

    def test_mode(self, staging_root: pl.Path):
        dirs = staging.create_workspace(1234, staging_root=staging_root)
        for subdir in (dirs.data_dir, dirs.log_dir):
            assert subdir.stat().st_mode & 0o777 == staging.WORKSPACE_MODE

    def test_idempotent(self, staging_root: pl.Path):
        dirs = _populate(staging_root)
        before = _snapshot(staging_root)
        assert staging.create_workspace(1234, staging_root=staging_root) == dirs
        assert _snapshot(staging_root) == before


class TestUsage:
    def test_file_size(self, tmp_path: pl.Path):
        fpath = tmp_path / "f"
        fpath.write_bytes(b"a" * 123)
        assert staging.get_path_size(fpath) == 123
        assert staging.get_path_size(tmp_path / "missing") == 0

    def test_usage(self, staging_root: pl.Path):
        assert staging.get_usage(staging_root) == 0
        _populate(staging_root)
        assert staging.get_usage(staging_root) >= 1500

    def test_warning(self, staging_root: pl.Path, caplog: pytest.LogCaptureFixture):
        _populate(staging_root)
        with caplog.at_level(logging.WARNING):
            staging.check_usage(staging_root, threshold=100)
        assert "Consider running `clean`" in caplog.text

    def test_no_warning(self, staging_root: pl.Path, caplog: pytest.LogCaptureFixture):
        _populate(staging_root)
        with caplog.at_level(logging.WARNING):
            usage = staging.check_usage(staging_root, threshold=10**9)
        assert usage >= 1500
        assert not caplog.text

    @pytest.mark.parametrize(
        ("num_bytes", "expected"),
        [(0, "0 B"), (1023, "1023 B"), (1536, "1.5 KiB"), (50 * 1024**3, "50.0 GiB")],
    )
    def test_format_size(self, num_bytes: int, expected: str):
        assert staging.format_size(num_bytes) == expected


class TestClean:
    def test_confirmed(self, staging_root: pl.Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(staging, "get_open_files", lambda staging_root: [])
        _populate(staging_root)
        (staging_root / "stray_file").write_text("z")

        assert staging.clean_workspace(staging_root, confirm_func=lambda q: True)
        assert staging_root.is_dir()
        assert not list(staging_root.iterdir())

    def test_declined(self, staging_root: pl.Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(staging, "get_open_files", lambda staging_root: [])
        _populate(staging_root)
        before = _snapshot(staging_root)

        assert not staging.clean_workspace(staging_root, confirm_func=lambda q: False)
        assert _snapshot(staging_root) == before

    def test_prompt_shows_usage(self, staging_root: pl.Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(staging, "get_open_files", lambda staging_root: [])
        _populate(staging_root)
        questions = []

        def _confirm(question: str) -> bool:
            questions.append(question)
            return False

        staging.clean_workspace(staging_root, confirm_func=_confirm)
        assert len(questions) == 1
        assert "KiB" in questions[0]
        assert str(staging_root) in questions[0]

    def test_busy(self, staging_root: pl.Path):
        """A file held open by this very process makes the staging root busy."""
        dirs = _populate(staging_root)
        before = _snapshot(staging_root)
        confirmed = []

        with open(dirs.node_log_file(node_num=1), "rb"):
            with pytest.raises(exceptions.ResourceBusyError) as excinfo:
                staging.clean_workspace(
                    staging_root, confirm_func=lambda q: confirmed.append(q) or True
                )

        assert str(os.getpid()) in str(excinfo.value)
        assert not confirmed
        assert _snapshot(staging_root) == before

    def test_missing_root(self, staging_root: pl.Path):
        assert not staging.clean_workspace(staging_root, confirm_func=lambda q: True)
        assert not staging_root.exists()


def test_open_files(staging_root: pl.Path):
    dirs = _populate(staging_root)
    log_file = dirs.node_log_file(node_num=1)

    with open(log_file, "rb"):
        open_files = staging.get_open_files(staging_root)

    assert (os.getpid(), str(log_file)) in open_files


def test_open_files_outside_root(staging_root: pl.Path, tmp_path: pl.Path):
    _populate(staging_root)
    outside = tmp_path / "outside.txt"
    outside.write_text("o")

    with open(outside, "rb"):
        assert not staging.get_open_files(staging_root)


def test_ask_yes_no():
    answers = iter(["maybe", "", "YES"])
    assert helpers.ask_yes_no("Delete?", input_func=lambda prompt: next(answers))
    assert not helpers.ask_yes_no("Delete?", input_func=lambda prompt: "n")
