"""Tests for daemon/lifecycle.py PID file helpers."""

from __future__ import annotations

import os
from pathlib import Path

from codedrift.daemon.lifecycle import (
    PID_FILE,
    PORT_FILE,
    is_server_running,
    read_server_info,
    remove_pid_file,
    write_pid_file,
)


class TestPidFiles:
    def test_write_and_read(self, tmp_path: Path) -> None:
        state = tmp_path / ".codedrift"

        write_pid_file(state, 7711)

        assert read_server_info(state) == (os.getpid(), 7711)
        assert is_server_running(state)

    def test_missing_files(self, tmp_path: Path) -> None:
        assert read_server_info(tmp_path) is None
        assert not is_server_running(tmp_path)

    def test_corrupt_files(self, tmp_path: Path) -> None:
        (tmp_path / PID_FILE).write_text("not-a-pid")
        (tmp_path / PORT_FILE).write_text("7700")

        assert read_server_info(tmp_path) is None

    def test_remove_is_idempotent(self, tmp_path: Path) -> None:
        write_pid_file(tmp_path, 7700)

        remove_pid_file(tmp_path)
        remove_pid_file(tmp_path)

        assert not (tmp_path / PID_FILE).exists()
        assert not (tmp_path / PORT_FILE).exists()

    def test_stale_pid_is_cleaned_up(self, tmp_path: Path) -> None:
        # PIDs above the kernel's pid_max never exist
        (tmp_path / PID_FILE).write_text("99999999")
        (tmp_path / PORT_FILE).write_text("7700")

        assert not is_server_running(tmp_path)
        assert not (tmp_path / PID_FILE).exists()
