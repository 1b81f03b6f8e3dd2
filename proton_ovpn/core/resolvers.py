"""DNS lookups delegated to the system resolver tools.

Each tool is wrapped in a :class:`Resolver` so callers can swap in another
implementation (tests use in-memory ones) without touching the route logic.
"""

from __future__ import annotations

import ipaddress
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from ..utils.logging import get_logger

logger = get_logger("resolvers")

# argv -> (returncode, stdout)
Runner = Callable[[Sequence[str]], Tuple[int, str]]

LOOKUP_TIMEOUT = 15


def run_command(argv: Sequence[str]) -> Tuple[int, str]:
    try:
        result = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=LOOKUP_TIMEOUT,
            check=False,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
        logger.debug("%s failed: %s", argv[0], exc)
        return 127, ""
    return result.returncode, result.stdout


def is_ipv4(value: str) -> bool:
    try:
        return isinstance(ipaddress.ip_address(value), ipaddress.IPv4Address)
    except ValueError:
        return False


def is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _unique(addresses: Iterable[str]) -> List[str]:
    return sorted(set(addresses), key=lambda ip: tuple(int(part) for part in ip.split(".")))


class Resolver(ABC):
    """A way of turning a host name into IPv4 addresses."""

    name: str = ""
    binary: str = ""

    def __init__(self, runner: Runner = run_command) -> None:
        self._runner = runner

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def lookup(self, hostname: str) -> List[str]:
        """Return every IPv4 A-record of ``hostname``; empty when nothing resolves."""
        code, output = self._runner(self.command(hostname))
        if code != 0 and not output:
            return []
        return _unique(ip for ip in self.parse(output) if is_ipv4(ip))

    def lookup_first(self, hostname: str) -> Optional[str]:
        """Return the first address the tool reports, in its own order."""
        code, output = self._runner(self.command(hostname))
        if code != 0 and not output:
            return None
        for ip in self.parse(output):
            if is_ipv4(ip):
                return ip
        return None

    def lookup_any(self, hostname: str) -> Optional[str]:
        """First address of either family; for "does it resolve at all" checks."""
        code, output = self._runner(self.any_command(hostname))
        if code != 0 and not output:
            return None
        for ip in self.parse(output):
            if is_ip(ip):
                return ip
        return None

    @abstractmethod
    def command(self, hostname: str) -> List[str]:
        ...

    def any_command(self, hostname: str) -> List[str]:
        return self.command(hostname)

    @abstractmethod
    def parse(self, output: str) -> List[str]:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class DigResolver(Resolver):
    name = "dig"
    binary = "dig"

    def command(self, hostname: str) -> List[str]:
        return ["dig", "+short", "A", hostname]

    def any_command(self, hostname: str) -> List[str]:
        return ["dig", "+short", "A", hostname, "AAAA", hostname]

    def parse(self, output: str) -> List[str]:
        # +short also prints CNAME targets; only bare addresses count
        return [line.strip() for line in output.splitlines() if is_ip(line.strip())]


class HostResolver(Resolver):
    name = "host"
    binary = "host"

    def command(self, hostname: str) -> List[str]:
        return ["host", "-t", "A", hostname]

    def any_command(self, hostname: str) -> List[str]:
        return ["host", hostname]

    def parse(self, output: str) -> List[str]:
        addresses: List[str] = []
        for line in output.splitlines():
            if " has address " in line or " has IPv6 address " in line:
                addresses.append(line.rsplit(None, 1)[-1])
        return addresses


class NslookupResolver(Resolver):
    name = "nslookup"
    binary = "nslookup"

    def command(self, hostname: str) -> List[str]:
        return ["nslookup", hostname]

    def parse(self, output: str) -> List[str]:
        # The server block reports "Address: 127.0.0.53#53"; answers come after "Name:".
        addresses: List[str] = []
        in_answer = False
        for line in output.splitlines():
            stripped = line.strip()
            if stripped.startswith("Name:"):
                in_answer = True
                continue
            if in_answer and stripped.startswith("Address:"):
                addresses.append(stripped.split(":", 1)[1].strip())
        return addresses


RESOLVERS: Dict[str, Type[Resolver]] = {
    DigResolver.name: DigResolver,
    HostResolver.name: HostResolver,
    NslookupResolver.name: NslookupResolver,
}

DOMAIN_ORDER = ("dig", "host", "nslookup")
HOSTNAME_ORDER = ("host", "nslookup")
WATCHDOG_ORDER = ("nslookup", "host")


def select_resolver(order: Sequence[str] = DOMAIN_ORDER, runner: Runner = run_command) -> Optional[Resolver]:
    """Return the first resolver in ``order`` whose tool is installed."""
    for name in order:
        resolver = RESOLVERS[name](runner)
        if resolver.available():
            logger.debug("Using %s for DNS lookups", name)
            return resolver
    logger.warning("None of %s found; DNS lookups are unavailable", ", ".join(order))
    return None
