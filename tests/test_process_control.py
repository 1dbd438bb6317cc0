"""Tests for the psutil-backed process collaborator.

Uses real child processes where the behavior depends on the OS, and a
patched subprocess.run to check how kill-by-name exit statuses are read.
"""

import os
import shutil
import subprocess
import sys
import time
from collections.abc import Iterator
from pathlib import Path

import psutil
import pytest

from parentctl.monitor.process_control import ProcessControl, command_line_of

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def child() -> Iterator[subprocess.Popen]:
    """A sleeping Python child process, always cleaned up."""
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    try:
        yield proc
    finally:
        if proc.poll() is None:
            proc.kill()
        proc.wait(timeout=10)


def wait_until(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.05)
    return condition()


class FakeRun:
    """Stands in for subprocess.run and records each command."""

    def __init__(self, returncode: int = 0, error: Exception = None) -> None:
        self.returncode = returncode
        self.error = error
        self.commands: list[list[str]] = []

    def __call__(self, cmd, **kwargs) -> subprocess.CompletedProcess:
        self.commands.append(cmd)
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(cmd, self.returncode)


# ---------------------------------------------------------------------------
# Enumeration
# ---------------------------------------------------------------------------


class TestCommandLineOf:
    """Tests for building a command line from psutil info."""

    def test_joins_cmdline(self) -> None:
        info = {"cmdline": [r"C:\Games\game.exe", "--windowed"], "exe": "ignored", "name": "game.exe"}
        assert command_line_of(info) == r"C:\Games\game.exe --windowed"

    def test_falls_back_to_exe(self) -> None:
        assert command_line_of({"cmdline": [], "exe": "/usr/bin/steam", "name": "steam"}) == "/usr/bin/steam"

    def test_falls_back_to_name(self) -> None:
        assert command_line_of({"cmdline": None, "exe": None, "name": "kworker"}) == "kworker"

    def test_nothing_known(self) -> None:
        assert command_line_of({"cmdline": None, "exe": None, "name": None}) == ""


class TestSnapshot:
    """Tests for listing live processes."""

    def test_includes_child_with_command_line(self, child: subprocess.Popen) -> None:
        by_pid = {proc.pid: proc for proc in ProcessControl().snapshot()}

        assert child.pid in by_pid
        assert "time.sleep(60)" in by_pid[child.pid].command_line

    def test_includes_current_process(self) -> None:
        pids = [proc.pid for proc in ProcessControl().snapshot()]
        assert os.getpid() in pids


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------


class TestTerminate:
    """Tests for graceful termination and liveness checks."""

    def test_terminates_child(self, child: subprocess.Popen) -> None:
        control = ProcessControl()
        assert control.is_alive(child.pid)

        assert control.terminate(child.pid)

        # Not reaped yet, so the child lingers as a zombie
        assert wait_until(lambda: not control.is_alive(child.pid))

    def test_already_gone_counts_as_delivered(self) -> None:
        proc = subprocess.Popen([sys.executable, "-c", "pass"])
        proc.wait(timeout=10)

        control = ProcessControl()
        assert control.terminate(proc.pid)
        assert not control.is_alive(proc.pid)

    def test_access_denied(self, monkeypatch: pytest.MonkeyPatch) -> None:
        class Protected:
            def __init__(self, pid: int) -> None:
                self.pid = pid

            def terminate(self) -> None:
                raise psutil.AccessDenied(self.pid)

            def is_running(self) -> bool:
                raise psutil.AccessDenied(self.pid)

        monkeypatch.setattr(psutil, "Process", Protected)
        control = ProcessControl()

        assert not control.terminate(4)
        # Cannot inspect, so assume it still runs
        assert control.is_alive(4)


class TestKillByName:
    """Tests for the forced kill-by-name step."""

    def test_exit_status_zero_is_success(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(subprocess, "run", FakeRun(returncode=0))
        assert ProcessControl().kill_by_name("game.exe")

    def test_nonzero_exit_status_is_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(subprocess, "run", FakeRun(returncode=1))
        assert not ProcessControl().kill_by_name("game.exe")

    @pytest.mark.parametrize(
        "error",
        [FileNotFoundError("pkill"), subprocess.TimeoutExpired("pkill", 10)],
    )
    def test_utility_errors_are_failure(self, monkeypatch: pytest.MonkeyPatch, error: Exception) -> None:
        monkeypatch.setattr(subprocess, "run", FakeRun(error=error))
        assert not ProcessControl().kill_by_name("game.exe")

    def test_windows_uses_taskkill(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeRun()
        monkeypatch.setattr(subprocess, "run", fake)
        monkeypatch.setattr(sys, "platform", "win32")

        ProcessControl().kill_by_name("game.exe")

        assert fake.commands == [["taskkill", "/F", "/IM", "game.exe"]]

    def test_linux_matches_truncated_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeRun()
        monkeypatch.setattr(subprocess, "run", fake)
        monkeypatch.setattr(sys, "platform", "linux")

        ProcessControl().kill_by_name("parental-control-longname")

        assert fake.commands == [["pkill", "-KILL", "-x", "parental-contro"]]

    def test_other_unix_uses_full_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeRun()
        monkeypatch.setattr(subprocess, "run", fake)
        monkeypatch.setattr(sys, "platform", "darwin")

        ProcessControl().kill_by_name("parental-control-longname")

        assert fake.commands == [["pkill", "-KILL", "-x", "parental-control-longname"]]

    @pytest.mark.skipif(
        not sys.platform.startswith("linux") or shutil.which("pkill") is None or shutil.which("sleep") is None,
        reason="needs Linux with pkill and sleep",
    )
    def test_kills_long_named_process(self, tmp_path: Path) -> None:
        exe = tmp_path / "parentctl-longname-sleeper"
        shutil.copy(shutil.which("sleep"), exe)
        proc = subprocess.Popen([str(exe), "60"])
        try:
            started = wait_until(lambda: _process_name(proc.pid) == exe.name[:15])
            if not started:
                pytest.skip("sleep binary cannot run under another name")

            assert ProcessControl().kill_by_name(exe.name)
            assert proc.wait(timeout=10) == -9
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait(timeout=10)


def _process_name(pid: int) -> str:
    try:
        return psutil.Process(pid).name()
    except psutil.Error:
        return ""
