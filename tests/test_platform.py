"""Tests for distribution detection."""

from __future__ import annotations

import pytest

from proton_ovpn.utils import platform as platform_module
from proton_ovpn.utils.platform import check_dependencies, detect_platform


def _fake_distro(monkeypatch, distro_id, like=""):
    monkeypatch.setattr(platform_module.distro, "id", lambda: distro_id)
    monkeypatch.setattr(platform_module.distro, "name", lambda pretty=False: distro_id.title())
    monkeypatch.setattr(platform_module.distro, "version", lambda: "1")
    monkeypatch.setattr(platform_module.distro, "like", lambda: like)


@pytest.mark.parametrize(
    "distro_id, like, installer, dns_package",
    [
        ("ubuntu", "debian", "apt-get", "dnsutils"),
        ("fedora", "", "dnf", "bind-utils"),
        ("rocky", "rhel centos fedora", "dnf", "bind-utils"),
        ("endeavouros", "arch", "pacman", "bind"),
    ],
)
def test_package_manager_family(monkeypatch, distro_id, like, installer, dns_package):
    _fake_distro(monkeypatch, distro_id, like)

    info = detect_platform()

    assert info.install_command[0] == installer
    assert info.packages["dig"] == dns_package


def test_check_dependencies(monkeypatch):
    monkeypatch.setattr(platform_module.shutil, "which", lambda name: "/usr/sbin/openvpn" if name == "openvpn" else None)

    found = check_dependencies()

    assert found["openvpn"] is True
    assert found["sssctl"] is False
