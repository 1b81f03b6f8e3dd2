"""Tests for path resolution."""

from __future__ import annotations

import pwd
from pathlib import Path

from proton_ovpn.core.paths import RuntimePaths, UserPaths, resolve_user_home


def test_sudo_user_home_wins():
    entry = pwd.getpwuid(0)

    assert resolve_user_home({"SUDO_USER": entry.pw_name, "USER": "nobody-here"}) == Path(entry.pw_dir)


def test_unknown_users_fall_back_to_home():
    assert resolve_user_home({"SUDO_USER": "no-such-user-xyz", "USER": "no-such-user-xyz"}) == Path.home()


def test_user_paths_layout(tmp_path):
    paths = UserPaths(home=tmp_path)

    assert paths.config_file == tmp_path / ".openvpn" / "config.env"
    assert paths.credentials_file == tmp_path / ".openvpn" / "credentials.txt"
    assert paths.downloads_dir == tmp_path / "Downloads"
    assert paths.indicator_config == tmp_path / ".indicator-sysmonitor.json"


def test_runtime_paths_are_per_uid(tmp_path):
    first = RuntimePaths.for_uid(1000, tmp_path)
    second = RuntimePaths.for_uid(1001, tmp_path)

    assert first.log_file == tmp_path / "openvpn_connect_1000.log"
    assert first.pid_file == tmp_path / "openvpn_1000.pid"
    assert first.interface == "proton1000"
    assert {first.log_file, first.pid_file, first.lock_file}.isdisjoint(
        {second.log_file, second.pid_file, second.lock_file}
    )
