"""Connectivity watchdog that stops OpenVPN when a critical domain is lost."""

from __future__ import annotations

import shutil
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..utils.logging import get_logger
from ..utils.processes import terminate_openvpn
from .identity import IdentityService
from .privilege import PrivilegeManager
from .resolvers import Resolver

WATCHDOG_LOG = Path("/var/log/openvpn_connectivity_check.log")

logger = get_logger("watchdog", WATCHDOG_LOG)


def ping_once(address: str, timeout: int = 2) -> Optional[bool]:
    """Send one echo request. Returns None when ``ping`` is not installed."""
    if shutil.which("ping") is None:
        return None
    try:
        result = subprocess.run(
            ["ping", "-c", "1", "-W", str(timeout), address],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except FileNotFoundError:
        return None
    return result.returncode == 0


@dataclass
class WatchdogReport:
    connectivity_ok: bool = True
    identity_ok: bool = True
    terminated: int = 0

    @property
    def triggered(self) -> bool:
        return not (self.connectivity_ok and self.identity_ok)


class ConnectivityWatchdog:
    """Two independent checks; either failing terminates the OpenVPN client."""

    def __init__(
        self,
        resolver: Optional[Resolver],
        identity: Optional[IdentityService],
        privilege: PrivilegeManager,
        pinger: Callable[[str], Optional[bool]] = ping_once,
        terminate: Callable[[PrivilegeManager], int] = terminate_openvpn,
    ) -> None:
        self._resolver = resolver
        self._identity = identity
        self._privilege = privilege
        self._pinger = pinger
        self._terminate = terminate

    def check_connectivity(self, domain: str) -> bool:
        if self._resolver is None:
            logger.warning("Neither nslookup nor host found. Cannot check DNS for %s. Assuming reachable.", domain)
            return True
        address = self._resolver.lookup_any(domain)
        if not address:
            logger.error("Could not resolve IP address for %s.", domain)
            return False
        logger.info("Connectivity Check: Successfully resolved %s to %s.", domain, address)
        reachable = self._pinger(address)
        if reachable is None:
            logger.warning("Connectivity Check: ping command not found. Skipping ping test for %s.", domain)
        elif reachable:
            logger.info("Connectivity Check: Successfully pinged %s for %s.", address, domain)
        else:
            # resolution alone decides; an unanswered echo is only reported
            logger.warning(
                "Connectivity Check: Failed to ping %s for domain %s. Treating as reachable based on DNS.",
                address,
                domain,
            )
        return True

    def check_identity(self, domain: str) -> bool:
        if self._identity is None or not self._identity.available():
            logger.warning("SSSD Check: sssctl not found. Cannot check SSSD status for %s. Assuming online.", domain)
            return True
        if self._identity.is_offline(domain):
            logger.info("SSSD Check: SSSD domain %s status is Offline.", domain)
            return False
        logger.info("SSSD Check: SSSD domain %s status is Online or not applicable.", domain)
        return True

    def run_once(self, check_domain: Optional[str], identity_domain: Optional[str] = None) -> WatchdogReport:
        if not check_domain and not identity_domain:
            raise ValueError("Neither CONNECTIVITY_CHECK_DOMAIN nor SSSD_DOMAIN is set.")
        report = WatchdogReport()
        if check_domain:
            report.connectivity_ok = self.check_connectivity(check_domain)
            outcome = "PASSED" if report.connectivity_ok else "FAILED"
            logger.info("Result: Connectivity check %s for %s.", outcome, check_domain)
        if identity_domain:
            report.identity_ok = self.check_identity(identity_domain)
            outcome = "PASSED" if report.identity_ok else "FAILED (Offline)"
            logger.info("Result: SSSD status check %s for %s.", outcome, identity_domain)
        if not report.triggered:
            logger.info("Result: All checks passed. No action needed.")
            return report
        logger.info("Action: One or more checks failed. Checking for OpenVPN process...")
        report.terminated = self._terminate(self._privilege)
        if report.terminated:
            logger.info("Action: Sent kill signals to %d OpenVPN process(es).", report.terminated)
        else:
            logger.info("Action: OpenVPN process not found. No kill action needed.")
        return report

    def run_forever(
        self,
        check_domain: Optional[str],
        identity_domain: Optional[str],
        interval: float,
        stop_event: threading.Event,
    ) -> int:
        """Repeat :meth:`run_once` every ``interval`` seconds until ``stop_event`` is set."""
        passes = 0
        while not stop_event.is_set():
            self.run_once(check_domain, identity_domain)
            passes += 1
            if stop_event.wait(interval):
                break
        return passes
