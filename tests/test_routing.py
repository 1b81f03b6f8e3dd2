"""Unit tests for the bypass route planner."""

from __future__ import annotations

from typing import Dict, List, Optional

import pytest

from proton_ovpn.core.identity import IdentityService
from proton_ovpn.core.resolvers import Resolver
from proton_ovpn.core.routing import BypassRoutePlanner, HostRoute


class FakeResolver(Resolver):
    """In-memory resolver keyed by host name."""

    name = "fake"
    binary = "fake"

    def __init__(self, answers: Dict[str, List[str]]) -> None:
        super().__init__(runner=lambda argv: (0, ""))
        self.answers = answers
        self.queries: List[str] = []

    def available(self) -> bool:
        return True

    def lookup(self, hostname: str) -> List[str]:
        self.queries.append(hostname)
        return sorted(set(self.answers.get(hostname, [])))

    def lookup_first(self, hostname: str) -> Optional[str]:
        self.queries.append(hostname)
        answers = self.answers.get(hostname, [])
        return answers[0] if answers else None

    def command(self, hostname: str) -> List[str]:
        return []

    def parse(self, output: str) -> List[str]:
        return []


class FakeIdentityService(IdentityService):
    def __init__(self, controllers: Dict[str, List[str]]) -> None:
        self._controllers = controllers
        self.listed = 0

    def available(self) -> bool:
        return True

    def list_domains(self) -> List[str]:
        self.listed += 1
        return list(self._controllers)

    def domain_status(self, domain: str) -> Optional[str]:
        return None

    def controllers(self, domain: str) -> List[str]:
        return list(self._controllers.get(domain, []))


@pytest.fixture()
def resolver():
    return FakeResolver(
        {
            "a.example": ["10.0.0.1"],
            "multi.example": ["192.0.2.2", "192.0.2.1", "192.0.2.2"],
            "dc1.corp.example": ["10.1.0.11"],
            "dc2.corp.example": ["10.1.0.12"],
        }
    )


def test_unresolvable_domain_is_skipped_with_warning(resolver):
    """One route for the resolvable domain, one warning for the other."""

    planner = BypassRoutePlanner(resolver)

    plan = planner.plan(["a.example", "b.example"])

    assert plan.directives() == ["route 10.0.0.1 255.255.255.255 net_gateway"]
    assert len(plan.warnings) == 1
    assert "b.example" in plan.warnings[0]


def test_addresses_are_unique_per_domain(resolver):
    planner = BypassRoutePlanner(resolver)

    plan = planner.plan(["multi.example"])

    assert plan.addresses() == ["192.0.2.1", "192.0.2.2"]
    assert plan.warnings == []


def test_duplicates_across_domains_are_tolerated():
    resolver = FakeResolver({"one.example": ["10.0.0.5"], "two.example": ["10.0.0.5"]})
    planner = BypassRoutePlanner(resolver)

    plan = planner.plan(["one.example", "two.example"])

    assert plan.routes == [
        HostRoute(address="10.0.0.5", source="one.example"),
        HostRoute(address="10.0.0.5", source="two.example"),
    ]


def test_missing_resolver_degrades_to_no_routes():
    planner = BypassRoutePlanner(None)

    plan = planner.plan(["a.example", "b.example"])

    assert plan.routes == []
    assert len(plan.warnings) == 1
    assert "no bypass routes added" in plan.warnings[0]


def test_identity_controllers_resolve_hostnames_and_keep_literals(resolver):
    identity = FakeIdentityService(
        {"corp.example": ["dc1.corp.example", "10.1.0.20", "dc1.corp.example", "ghost.corp.example"]}
    )
    planner = BypassRoutePlanner(resolver, host_resolver=resolver, identity=identity)

    plan = planner.plan([])

    assert plan.addresses() == ["10.1.0.11", "10.1.0.20"]
    assert all(route.source == "corp.example" for route in plan.routes)
    assert len(plan.warnings) == 1
    assert "ghost.corp.example" in plan.warnings[0]


def test_identity_domain_without_addresses_warns(resolver):
    identity = FakeIdentityService({"corp.example": ["ghost.corp.example"], "empty.example": []})
    planner = BypassRoutePlanner(resolver, host_resolver=resolver, identity=identity)

    plan = planner.plan([])

    assert plan.routes == []
    assert any("No SSSD Domain Controller IPs" in warning for warning in plan.warnings)
    assert any("empty.example" in warning for warning in plan.warnings)


def test_empty_identity_enumeration_is_silent(resolver):
    identity = FakeIdentityService({})
    planner = BypassRoutePlanner(resolver, host_resolver=resolver, identity=identity)

    plan = planner.plan(["a.example"])

    assert plan.addresses() == ["10.0.0.1"]
    assert plan.warnings == []
    assert identity.listed == 1


def test_identity_phase_can_be_skipped(resolver):
    identity = FakeIdentityService({"corp.example": ["10.1.0.20"]})
    planner = BypassRoutePlanner(resolver, host_resolver=resolver, identity=identity)

    plan = planner.plan(["a.example"], include_identity=False)

    assert plan.addresses() == ["10.0.0.1"]
    assert identity.listed == 0


def test_literal_controllers_survive_missing_hostname_resolver():
    identity = FakeIdentityService({"corp.example": ["10.1.0.20", "dc1.corp.example"]})
    planner = BypassRoutePlanner(None, host_resolver=None, identity=identity)

    plan = planner.plan([])

    assert plan.addresses() == ["10.1.0.20"]
