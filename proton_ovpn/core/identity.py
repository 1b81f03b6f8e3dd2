"""Identity-service (SSSD) queries through ``sssctl``."""

from __future__ import annotations

import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

from ..utils.logging import get_logger
from .errors import PrivilegeError
from .privilege import PrivilegeManager

logger = get_logger("identity")

DC_HEADER_RE = re.compile(r"Discovered .* Domain Controller servers:")
OFFLINE_MARKER = "Online status: Offline"


def parse_controllers(status: str) -> List[str]:
    """Extract the server entries listed under each "Discovered ... Domain
    Controller servers:" header, up to the next blank line."""

    entries: List[str] = []
    collecting = False
    for line in status.splitlines():
        if DC_HEADER_RE.search(line):
            collecting = True
            continue
        if not collecting:
            continue
        if not line.strip():
            collecting = False
            continue
        for word in line.split():
            # sssctl prefixes list items with "- "
            word = word.strip()
            if word and word != "-":
                entries.append(word)
    return entries


class IdentityService(ABC):
    @abstractmethod
    def available(self) -> bool:
        ...

    @abstractmethod
    def list_domains(self) -> List[str]:
        ...

    @abstractmethod
    def domain_status(self, domain: str) -> Optional[str]:
        ...

    def controllers(self, domain: str) -> List[str]:
        status = self.domain_status(domain)
        if not status:
            return []
        return parse_controllers(status)

    def is_offline(self, domain: str) -> bool:
        """Only an explicit Offline report counts; anything else is acceptable."""
        status = self.domain_status(domain)
        return bool(status) and OFFLINE_MARKER in status


class SssctlIdentityService(IdentityService):
    def __init__(self, privilege: PrivilegeManager, binary: str = "sssctl") -> None:
        self._privilege = privilege
        self._binary = binary

    def available(self) -> bool:
        return shutil.which(self._binary) is not None

    def list_domains(self) -> List[str]:
        if not self.available():
            logger.debug("%s not installed", self._binary)
            return []
        try:
            code, stdout, stderr = self._privilege.run_privileged([self._binary, "domain-list"])
        except PrivilegeError as exc:
            logger.warning("Cannot list SSSD domains: %s", exc)
            return []
        if code != 0:
            logger.debug("sssctl domain-list exited %s: %s", code, stderr.strip())
            return []
        return [line.strip() for line in stdout.splitlines() if line.strip()]

    def domain_status(self, domain: str) -> Optional[str]:
        if not self.available():
            return None
        try:
            result = subprocess.run(
                [self._binary, "domain-status", domain],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            return None
        if result.returncode != 0 and not result.stdout.strip():
            return None
        return result.stdout
