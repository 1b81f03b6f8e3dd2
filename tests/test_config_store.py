"""Tests for config.env persistence."""

from __future__ import annotations

import stat

import pytest

from proton_ovpn.core.config_store import NO_VPN_DOMAINS, ConfigStore, parse_domain_list


@pytest.fixture()
def store(tmp_path):
    return ConfigStore(tmp_path / ".openvpn" / "config.env")


def test_parse_domain_list_trims_and_dedupes():
    assert parse_domain_list(" a.example, ,b.example,a.example,") == ["a.example", "b.example"]
    assert parse_domain_list("") == []
    assert parse_domain_list(None) == []


def test_touch_keeps_existing_file_verbatim(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text('NO_VPN_DOMAINS="x.example"\n', encoding="utf-8")

    created = store.touch()

    assert created is False
    assert store.path.read_text(encoding="utf-8") == 'NO_VPN_DOMAINS="x.example"\n'


def test_touch_creates_private_empty_file(store):
    assert store.touch() is True
    assert store.path.read_text(encoding="utf-8") == ""
    assert stat.S_IMODE(store.path.stat().st_mode) == 0o600


def test_set_merges_with_other_keys(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(
        '# managed by proton-ovpn\nNO_VPN_DOMAINS="old.example"\nOTHER_SETTING="kept"\n',
        encoding="utf-8",
    )

    store.set(NO_VPN_DOMAINS, "a.example,b.example")

    assert store.path.read_text(encoding="utf-8") == (
        'NO_VPN_DOMAINS="a.example,b.example"\n# managed by proton-ovpn\nOTHER_SETTING="kept"\n'
    )
    assert store.load() == {NO_VPN_DOMAINS: "a.example,b.example", "OTHER_SETTING": "kept"}


def test_set_rejects_invalid_key(store):
    with pytest.raises(ValueError):
        store.set("BAD KEY", "x")


def test_load_missing_file_is_empty(store):
    assert store.load() == {}
    assert store.get(NO_VPN_DOMAINS) is None


def test_bypass_domains_priority(store):
    store.set(NO_VPN_DOMAINS, "file.example")

    assert store.bypass_domains(environ={}) == ["file.example"]
    assert store.bypass_domains(environ={NO_VPN_DOMAINS: "env.example"}) == ["env.example"]
    assert store.bypass_domains("cli.example", environ={NO_VPN_DOMAINS: "env.example"}) == ["cli.example"]
