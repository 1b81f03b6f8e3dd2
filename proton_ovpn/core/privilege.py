"""Privilege escalation helper that decides between running directly, sudo and pkexec."""

from __future__ import annotations

import os
import shutil
import signal
import subprocess
from typing import List, Optional, Tuple

from ..utils.logging import get_logger
from .errors import PrivilegeError

LOGGER = get_logger("privilege")

CommandResult = Tuple[int, str, str]


class PrivilegeManager:
    """Encapsulates the logic required to run commands with elevated rights.

    OpenVPN, ``sssctl domain-list`` and signals aimed at the root-owned client
    all need root. When the caller already is root commands run unchanged.
    """

    def __init__(self, prefer_pkexec: bool = False) -> None:
        self._prefer_pkexec = prefer_pkexec
        self._pkexec_path = shutil.which("pkexec")
        self._sudo_path = shutil.which("sudo")

    def is_root(self) -> bool:
        return os.geteuid() == 0

    def build_command(self, base_command: List[str]) -> List[str]:
        """Return ``base_command`` prefixed with the escalation helper."""
        if self.is_root():
            return list(base_command)
        if self._prefer_pkexec and self._pkexec_path:
            return [self._pkexec_path, *base_command]
        if self._sudo_path:
            return [self._sudo_path, *base_command]
        if self._pkexec_path:
            return [self._pkexec_path, *base_command]
        raise PrivilegeError("Neither sudo nor pkexec is available on this system.")

    def run_privileged(self, command: List[str], input_text: Optional[str] = None) -> CommandResult:
        """Execute a command with the configured privilege escalation helper."""
        argv = self.build_command(command)
        try:
            result = subprocess.run(
                argv,
                input=input_text,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            return 127, "", str(exc)
        return result.returncode, result.stdout, result.stderr

    def signal_pid(self, pid: int, sig: signal.Signals) -> bool:
        """Deliver ``sig`` to ``pid``, escalating through ``/bin/kill`` if needed."""
        try:
            os.kill(pid, sig)
            return True
        except ProcessLookupError:
            return True
        except PermissionError:
            LOGGER.debug("Permission denied sending %s to pid %s; escalating", sig.name, pid)
        try:
            code, stdout, stderr = self.run_privileged(["/bin/kill", f"-{sig.value}", str(pid)])
        except PrivilegeError as exc:
            LOGGER.warning("Unable to escalate kill for pid %s: %s", pid, exc)
            return False
        if code != 0:
            message = stderr.strip() or stdout.strip()
            if message:
                LOGGER.warning("Failed to deliver %s to pid %s: %s", sig.name, pid, message)
            return False
        return True
