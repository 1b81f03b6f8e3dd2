"""Tests for OpenVPN process helpers."""

from __future__ import annotations

import os
import signal

from proton_ovpn.utils import processes
from proton_ovpn.utils.processes import (
    _is_openvpn,
    kill_from_pid_file,
    pid_file_alive,
    read_pid_file,
    terminate_openvpn,
)


class DummyPrivilegeManager:
    def __init__(self):
        self.signals = []

    def signal_pid(self, pid, sig):
        self.signals.append((pid, sig))
        return True


class FakeProcess:
    def __init__(self, pid):
        self.pid = pid


def test_command_line_match():
    assert _is_openvpn(["openvpn", "--config", "x.ovpn"])
    assert not _is_openvpn(["/usr/bin/python3", "openvpn_helper.py"])
    assert not _is_openvpn([])


def test_read_pid_file(tmp_path):
    pid_file = tmp_path / "openvpn.pid"
    assert read_pid_file(pid_file) is None
    pid_file.write_text("", encoding="utf-8")
    assert read_pid_file(pid_file) is None
    pid_file.write_text("garbage", encoding="utf-8")
    assert read_pid_file(pid_file) is None
    pid_file.write_text("1234\n", encoding="utf-8")
    assert read_pid_file(pid_file) == 1234


def test_pid_file_alive(tmp_path):
    pid_file = tmp_path / "openvpn.pid"
    pid_file.write_text(str(os.getpid()), encoding="utf-8")

    assert pid_file_alive(pid_file)
    assert not pid_file_alive(tmp_path / "missing.pid")


def test_kill_from_pid_file(tmp_path):
    pid_file = tmp_path / "openvpn.pid"
    pid_file.write_text(str(os.getpid()), encoding="utf-8")
    privilege = DummyPrivilegeManager()

    assert kill_from_pid_file(pid_file, privilege) is True
    assert privilege.signals == [(os.getpid(), signal.SIGTERM)]
    assert kill_from_pid_file(tmp_path / "missing.pid", privilege) is False


def test_terminate_escalates_to_sigkill(monkeypatch):
    monkeypatch.setattr(processes, "find_openvpn_processes", lambda: [FakeProcess(10), FakeProcess(11)])
    monkeypatch.setattr(processes.psutil, "pid_exists", lambda pid: pid == 11)
    privilege = DummyPrivilegeManager()
    slept = []

    count = terminate_openvpn(privilege, grace=2.0, sleep=slept.append)

    assert count == 2
    assert slept == [2.0]
    assert privilege.signals == [(10, signal.SIGTERM), (11, signal.SIGTERM), (11, signal.SIGKILL)]


def test_terminate_nothing_running(monkeypatch):
    monkeypatch.setattr(processes, "find_openvpn_processes", lambda: [])
    privilege = DummyPrivilegeManager()

    assert terminate_openvpn(privilege, sleep=lambda _s: None) == 0
    assert privilege.signals == []
