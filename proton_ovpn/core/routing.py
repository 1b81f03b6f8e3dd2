"""Bypass route planning for addresses that must stay off the tunnel."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..utils.logging import get_logger
from .identity import IdentityService
from .resolvers import Resolver, is_ipv4

LOGGER = get_logger("routing")

HOST_NETMASK = "255.255.255.255"
BYPASS_GATEWAY = "net_gateway"


@dataclass(frozen=True)
class HostRoute:
    address: str
    source: str

    def to_directive(self) -> str:
        """OpenVPN ``route`` line sending the address via the pre-tunnel gateway."""
        return f"route {self.address} {HOST_NETMASK} {BYPASS_GATEWAY}"


@dataclass
class RoutePlan:
    routes: List[HostRoute] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def directives(self) -> List[str]:
        return [route.to_directive() for route in self.routes]

    def addresses(self) -> List[str]:
        return [route.address for route in self.routes]

    def warn(self, message: str) -> None:
        LOGGER.warning(message)
        self.warnings.append(message)


class BypassRoutePlanner:
    """Compute host routes for bypass domains and SSSD domain controllers.

    Every lookup happens here, before OpenVPN is started: once the tunnel
    has replaced the default route a late route would no longer reliably
    go around it.
    """

    def __init__(
        self,
        resolver: Optional[Resolver],
        host_resolver: Optional[Resolver] = None,
        identity: Optional[IdentityService] = None,
    ) -> None:
        self._resolver = resolver
        self._host_resolver = host_resolver
        self._identity = identity

    def plan(self, domains: Sequence[str], include_identity: bool = True) -> RoutePlan:
        plan = RoutePlan()
        if domains:
            LOGGER.info("Bypass domains: %s. Resolving IPs and adding routes...", ", ".join(domains))
            self._plan_domains(plan, domains)
        if include_identity:
            self._plan_identity_domains(plan)
        else:
            LOGGER.info("Skipping SSSD domain controller discovery")
        return plan

    def _plan_domains(self, plan: RoutePlan, domains: Sequence[str]) -> None:
        if self._resolver is None:
            plan.warn(
                "dig, host, and nslookup not found. Cannot resolve IPs for "
                f"{', '.join(domains)}; no bypass routes added."
            )
            return
        for domain in domains:
            LOGGER.info("Processing domain: %s", domain)
            addresses = self._resolver.lookup(domain)
            if not addresses:
                plan.warn(f"Could not resolve any IPs for domain '{domain}'. Skipping route addition.")
                continue
            for address in addresses:
                LOGGER.info("Adding route for %s (%s) via %s", domain, address, BYPASS_GATEWAY)
                plan.routes.append(HostRoute(address=address, source=domain))

    def _plan_identity_domains(self, plan: RoutePlan) -> None:
        if self._identity is None:
            return
        LOGGER.info("Checking for SSSD configuration...")
        sssd_domains = self._identity.list_domains()
        if not sssd_domains:
            LOGGER.info("No SSSD domains found. Skipping SSSD DC route injection.")
            return
        LOGGER.info("Found %d SSSD domain(s): %s", len(sssd_domains), " ".join(sssd_domains))
        for domain in sssd_domains:
            self._plan_controllers(plan, domain)

    def _plan_controllers(self, plan: RoutePlan, domain: str) -> None:
        LOGGER.info("Processing SSSD domain '%s': discovering domain controllers", domain)
        entries = self._identity.controllers(domain) if self._identity else []
        if not entries:
            plan.warn(
                f"Could not get domain controllers for '{domain}'. "
                "SSSD might be offline or domain not configured."
            )
            return
        seen: List[str] = []
        for entry in entries:
            address = entry if is_ipv4(entry) else self._resolve_hostname(entry)
            if not address:
                plan.warn(f"Could not resolve SSSD DC hostname '{entry}' for domain '{domain}'. Skipping.")
                continue
            if address in seen:
                continue
            seen.append(address)
            LOGGER.info("Adding SSSD route for %s (Domain: %s) via %s", address, domain, BYPASS_GATEWAY)
            plan.routes.append(HostRoute(address=address, source=domain))
        if not seen:
            plan.warn(f"No SSSD Domain Controller IPs found or resolved for '{domain}'.")

    def _resolve_hostname(self, hostname: str) -> Optional[str]:
        if self._host_resolver is None:
            return None
        return self._host_resolver.lookup_first(hostname)
