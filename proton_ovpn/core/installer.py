"""Installation of dependencies, credentials, watchdog units and desktop shortcuts."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Callable, List, Optional

from ..utils.logging import get_logger
from ..utils.platform import PlatformInfo, detect_platform
from .config_store import NO_VPN_DOMAINS, ConfigStore, chown_to_user, parse_domain_list
from .errors import InstallError
from .paths import UserPaths
from .privilege import PrivilegeManager

logger = get_logger("installer")

SYSTEMD_DIR = Path("/etc/systemd/system")
WATCHDOG_UNIT = "openvpn_connectivity_check"
DEFAULT_CHECK_INTERVAL = 60
CREDENTIALS_URL = "https://account.protonvpn.com/account-password#openvpn"

SERVICE_TEMPLATE = Template(
    """[Unit]
Description=OpenVPN connectivity check for $domain
After=network-online.target
Wants=network-online.target

[Service]
Type=oneshot
Environment=CONNECTIVITY_CHECK_DOMAIN=$domain
ExecStart=$command check
"""
)

TIMER_TEMPLATE = Template(
    """[Unit]
Description=Run the OpenVPN connectivity check every $interval seconds

[Timer]
OnBootSec=$interval
OnUnitActiveSec=$interval
Unit=$unit.service

[Install]
WantedBy=timers.target
"""
)

DESKTOP_TEMPLATE = Template(
    """[Desktop Entry]
Version=1.0
Type=Application
Name=$name
Comment=$comment
Exec=$command $action
Icon=$icon
Terminal=false
Categories=Network;
"""
)

# (file name, display name, action, icon)
SHORTCUTS = (
    ("openvpn_connect.desktop", "Connect VPN", "connect", "network-vpn"),
    ("openvpn_disconnect.desktop", "Disconnect VPN", "disconnect", "network-vpn-disconnected"),
)

Prompt = Callable[[str, bool], str]


def cli_command() -> str:
    """The command desktop files and units should run."""
    installed = shutil.which("proton-ovpn")
    if installed:
        return installed
    return f"{sys.executable} -m proton_ovpn"


def render_service(domain: str, command: str) -> str:
    return SERVICE_TEMPLATE.substitute(domain=domain, command=command)


def render_timer(interval: int = DEFAULT_CHECK_INTERVAL) -> str:
    return TIMER_TEMPLATE.substitute(interval=interval, unit=WATCHDOG_UNIT)


def render_shortcut(name: str, action: str, icon: str, command: str) -> str:
    return DESKTOP_TEMPLATE.substitute(
        name=name,
        comment=f"{name} (ProtonVPN over OpenVPN)",
        command=command,
        action=action,
        icon=icon,
    )


def indicator_config(command: str) -> dict:
    return {
        "custom_text": "{openvpn}",
        "interval": 2.0,
        "on_startup": False,
        "sensors": {
            "openvpn": [
                "Check VPN connection status",
                f"{command} status --short",
            ]
        },
    }


@dataclass
class InstallReport:
    created: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    watchdog_enabled: bool = False


class Installer:
    """Re-runnable setup; a failure removes what this run created."""

    def __init__(
        self,
        user_paths: UserPaths,
        privilege: PrivilegeManager,
        prompt: Optional[Prompt] = None,
        platform: Optional[PlatformInfo] = None,
        force: bool = False,
        owner: Optional[str] = None,
        systemd_dir: Path = SYSTEMD_DIR,
        command: Optional[str] = None,
    ) -> None:
        self.user_paths = user_paths
        self.privilege = privilege
        self.prompt = prompt
        self.platform = platform or detect_platform()
        self.force = force
        self.owner = owner if owner is not None else os.environ.get("SUDO_USER")
        self.systemd_dir = Path(systemd_dir)
        self.command = command or cli_command()
        self.report = InstallReport()
        self._created_units = False

    def run(
        self,
        check_domain: Optional[str] = None,
        no_vpn_domains: Optional[str] = None,
        check_interval: int = DEFAULT_CHECK_INTERVAL,
    ) -> InstallReport:
        if self.force:
            logger.info("Force flag is enabled. Existing files will be overwritten.")
        try:
            self.ensure_packages()
            self.ensure_credentials()
            self.save_config(no_vpn_domains)
            if check_domain:
                self.install_watchdog(check_domain, check_interval)
            self.install_shortcuts()
            self.setup_indicator()
        except Exception:
            logger.error("Something went wrong; performing cleanup")
            self.rollback()
            raise
        logger.info("OpenVPN setup completed successfully")
        return self.report

    def ensure_packages(self) -> None:
        """openvpn is required; DNS tools and the tray indicator are best-effort."""
        if shutil.which("openvpn") is None:
            logger.info("Installing openvpn...")
            self._install_package("openvpn")
            if shutil.which("openvpn") is None:
                raise InstallError("openvpn could not be installed; install it manually and re-run.")
        if not any(shutil.which(tool) for tool in ("dig", "host", "nslookup")):
            logger.info("Installing DNS lookup tools...")
            if not self._install_package(self.platform.packages["dig"]):
                self._warn("DNS tools could not be installed; bypass domains will not be resolved.")

    def _install_package(self, package: str) -> bool:
        if self.platform.refresh_command:
            self.privilege.run_privileged(self.platform.refresh_command)
        code, _stdout, stderr = self.privilege.run_privileged([*self.platform.install_command, package])
        if code != 0:
            logger.warning("Installing %s failed: %s", package, stderr.strip())
            return False
        return True

    def ensure_credentials(self) -> None:
        path = self.user_paths.credentials_file
        if path.exists() and path.stat().st_size > 0:
            return
        if self.prompt is None:
            raise InstallError(f"No OpenVPN credentials found at {path}.")
        logger.info("No OpenVPN credentials found at %s (get them from %s)", path, CREDENTIALS_URL)
        username = self.prompt("Enter your OpenVPN username", False).strip()
        password = self.prompt("Enter your OpenVPN password", True)
        if not username or not password:
            raise InstallError("OpenVPN username and password are both required.")
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"{username}\n{password}\n")
        os.chmod(path, 0o600)
        if self.owner:
            chown_to_user(path.parent, self.owner)
            chown_to_user(path, self.owner)
        logger.info("Credentials saved to %s", path)

    def save_config(self, no_vpn_domains: Optional[str]) -> None:
        store = ConfigStore(self.user_paths.config_file, owner=self.owner)
        domains = parse_domain_list(no_vpn_domains)
        if domains:
            store.set(NO_VPN_DOMAINS, ",".join(domains))
        else:
            store.touch()

    def install_watchdog(self, domain: str, interval: int = DEFAULT_CHECK_INTERVAL) -> None:
        logger.info("Installing connectivity check for domain: %s", domain)
        units = (
            (self.systemd_dir / f"{WATCHDOG_UNIT}.service", render_service(domain, self.command)),
            (self.systemd_dir / f"{WATCHDOG_UNIT}.timer", render_timer(interval)),
        )
        for target, content in units:
            self._install_system_file(target, content)
        self._created_units = True
        self.privilege.run_privileged(["systemctl", "daemon-reload"])
        code, _stdout, stderr = self.privilege.run_privileged(
            ["systemctl", "enable", "--now", f"{WATCHDOG_UNIT}.timer"]
        )
        if code != 0:
            self._warn(
                f"Failed to start connectivity check timer: {stderr.strip()}. "
                f"Check 'systemctl status {WATCHDOG_UNIT}.timer'."
            )
            return
        self.report.watchdog_enabled = True

    def _install_system_file(self, target: Path, content: str) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=f"{target.stem}.", suffix=target.suffix)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            code, _stdout, stderr = self.privilege.run_privileged(
                ["install", "-m", "644", tmp_name, str(target)]
            )
        finally:
            Path(tmp_name).unlink(missing_ok=True)
        if code != 0:
            raise InstallError(f"Could not install {target}: {stderr.strip()}")
        self.report.created.append(target)

    def install_shortcuts(self) -> None:
        desktop = self.user_paths.desktop_dir
        desktop.mkdir(parents=True, exist_ok=True)
        for file_name, name, action, icon in SHORTCUTS:
            target = desktop / file_name
            if target.exists() and not self.force:
                logger.info("%s already exists; use --force to overwrite", target)
                self.report.skipped.append(target)
                continue
            target.write_text(render_shortcut(name, action, icon, self.command), encoding="utf-8")
            os.chmod(target, 0o755)
            self.report.created.append(target)
            if self.owner:
                chown_to_user(target, self.owner)
            self._trust_shortcut(target)

    def _trust_shortcut(self, target: Path) -> None:
        if shutil.which("gio") is None:
            return
        subprocess.run(
            ["gio", "set", str(target), "metadata::trusted", "true"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )

    def setup_indicator(self) -> None:
        path = self.user_paths.indicator_config
        if path.exists() and not self.force:
            logger.info("%s already exists, skipping SysMonitor Indicator setup.", path)
            self.report.skipped.append(path)
            return
        package = self.platform.packages.get("indicator-sysmonitor")
        if package and shutil.which("indicator-sysmonitor") is None:
            self.privilege.run_privileged(["add-apt-repository", "-y", "ppa:fossfreedom/indicator-sysmonitor"])
            if not self._install_package(package):
                self._warn("SysMonitor Indicator could not be installed; skipping tray status.")
        path.write_text(json.dumps(indicator_config(self.command), indent=2) + "\n", encoding="utf-8")
        self.report.created.append(path)
        if self.owner:
            chown_to_user(path, self.owner)
        if shutil.which("indicator-sysmonitor"):
            subprocess.Popen(
                ["indicator-sysmonitor"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )

    def rollback(self) -> None:
        if self._created_units:
            self.privilege.run_privileged(["systemctl", "disable", "--now", f"{WATCHDOG_UNIT}.timer"])
        for path in reversed(self.report.created):
            logger.info("Removing %s", path)
            if path.is_relative_to(self.systemd_dir):
                self.privilege.run_privileged(["rm", "-f", str(path)])
            else:
                path.unlink(missing_ok=True)
        self.report.created.clear()

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.report.warnings.append(message)
