"""Platform detection and dependency helpers."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import Dict, List

import distro


@dataclass
class PlatformInfo:
    id: str
    name: str
    version: str
    install_command: List[str]
    refresh_command: List[str] | None
    packages: Dict[str, str]


# binary -> package that provides it, per package manager family
_APT_PACKAGES = {
    "openvpn": "openvpn",
    "dig": "dnsutils",
    "host": "dnsutils",
    "nslookup": "dnsutils",
    "ping": "iputils-ping",
    "indicator-sysmonitor": "indicator-sysmonitor",
}
_DNF_PACKAGES = {
    "openvpn": "openvpn",
    "dig": "bind-utils",
    "host": "bind-utils",
    "nslookup": "bind-utils",
    "ping": "iputils",
}
_PACMAN_PACKAGES = {
    "openvpn": "openvpn",
    "dig": "bind",
    "host": "bind",
    "nslookup": "bind",
    "ping": "iputils",
}


def detect_platform() -> PlatformInfo:
    distro_id = distro.id() or "linux"
    distro_name = distro.name(pretty=True) or "Linux"
    version = distro.version() or ""
    like = set((distro.like() or "").split())
    if distro_id in {"fedora", "centos", "rhel"} or like & {"fedora", "rhel"}:
        return PlatformInfo(
            id=distro_id,
            name=distro_name,
            version=version,
            install_command=["dnf", "install", "-y"],
            refresh_command=None,
            packages=_DNF_PACKAGES,
        )
    if distro_id in {"arch", "manjaro"} or "arch" in like:
        return PlatformInfo(
            id=distro_id,
            name=distro_name,
            version=version,
            install_command=["pacman", "-S", "--noconfirm"],
            refresh_command=["pacman", "-Sy"],
            packages=_PACMAN_PACKAGES,
        )
    return PlatformInfo(
        id=distro_id,
        name=distro_name,
        version=version,
        install_command=["apt-get", "install", "-y"],
        refresh_command=["apt-get", "update", "-y"],
        packages=_APT_PACKAGES,
    )


def check_dependencies() -> Dict[str, bool]:
    dependencies = ["openvpn", "sudo", "dig", "host", "nslookup", "sssctl", "ping", "systemctl"]
    return {dep: shutil.which(dep) is not None for dep in dependencies}
