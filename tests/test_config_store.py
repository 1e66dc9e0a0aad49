from __future__ import annotations

import base64
import json
import stat
from pathlib import Path

import pytest

from tests.utils import client_config_payload, write_client_config
from tunnelui.config_store import (
    ClientConfiguration,
    ClientConfigurationStore,
    ServerConfigurationStore,
    generate_key_pair,
    parse_client_configuration,
    summarize_configuration_error,
)
from tunnelui.errors import InvalidClientConfigurationError


def test_parse_valid_configuration_strips_invisible_characters() -> None:
    text = "\ufeff" + json.dumps(client_config_payload()) + "\u200b"
    config = parse_client_configuration(text)
    assert config.client_id == 7
    assert config.active_settings().port == 9090


@pytest.mark.parametrize(
    ("payload", "fragment"),
    [
        (client_config_payload(client_id=0), "client_id"),
        (client_config_payload(protocol="tcp"), "no settings for selected protocol tcp"),
        (client_config_payload(server_public_key="short"), "server_public_key"),
        (
            client_config_payload(udp_settings={"tun_name": "t", "server": "h", "port": 1}),
            "ipv4_subnet and ipv6_subnet are missing",
        ),
    ],
)
def test_parse_rejects_invalid_configurations(payload, fragment: str) -> None:
    with pytest.raises(InvalidClientConfigurationError) as excinfo:
        parse_client_configuration(json.dumps(payload))
    assert fragment in str(excinfo.value)


def test_parse_rejects_non_object_json() -> None:
    with pytest.raises(InvalidClientConfigurationError):
        parse_client_configuration("[1, 2]")
    with pytest.raises(InvalidClientConfigurationError):
        parse_client_configuration("{broken")


def test_ws_allows_port_zero_only_for_ws() -> None:
    settings = {"tun_name": "wstun0", "server": "example.org", "port": 0, "ipv6_subnet": "fd00::/64"}
    config = ClientConfiguration.model_validate(client_config_payload(protocol="ws", ws_settings=settings))
    assert config.active_settings().port == 0

    with pytest.raises(InvalidClientConfigurationError):
        parse_client_configuration(json.dumps(client_config_payload(udp_settings={**settings, "port": 0})))


def test_summarize_configuration_error() -> None:
    exc = InvalidClientConfigurationError("invalid client configuration (client_id): must be   positive")
    assert summarize_configuration_error(exc) == "must be positive"
    long = summarize_configuration_error(RuntimeError("x" * 500))
    assert len(long) == 120 and long.endswith("...")


def test_client_store_create_observe_select_delete(tmp_path: Path) -> None:
    store = ClientConfigurationStore(tmp_path)
    assert store.observe() == []

    config = parse_client_configuration(json.dumps(client_config_payload()))
    first = store.create(config, "home office")
    second = store.create(config, "home office")

    assert first.name == "home_office.json"
    assert second.name == "home_office-2.json"
    assert store.observe() == sorted([str(first), str(second)])
    assert stat.S_IMODE(first.stat().st_mode) == 0o600

    store.select(str(first))
    assert store.selected() == first
    assert store.configuration() == config

    store.delete(str(first))
    assert store.selected() is None
    assert store.observe() == [str(second)]


def test_client_store_select_missing_and_invalid(tmp_path: Path) -> None:
    store = ClientConfigurationStore(tmp_path)
    with pytest.raises(FileNotFoundError):
        store.select(str(tmp_path / "clients" / "missing.json"))
    with pytest.raises(FileNotFoundError):
        store.configuration()

    broken = write_client_config(tmp_path, "broken", client_config_payload(client_id=-1))
    store.select(broken)
    with pytest.raises(InvalidClientConfigurationError):
        store.configuration()


def test_generate_key_pair_is_x25519() -> None:
    public, private = generate_key_pair()
    assert len(base64.b64decode(public)) == 32
    assert len(base64.b64decode(private)) == 32
    assert public != private


def test_server_store_creates_configuration_once(tmp_path: Path) -> None:
    store = ServerConfigurationStore(tmp_path / "server.json", host_resolver=lambda: "198.51.100.1")
    first = store.configuration()
    assert (tmp_path / "server.json").exists()
    assert store.configuration().public_key == first.public_key
    assert store.list_allowed_peers() == []


def test_server_store_add_client_writes_usable_configuration(tmp_path: Path) -> None:
    store = ServerConfigurationStore(tmp_path / "server.json", host_resolver=lambda: "198.51.100.1")
    path = store.add_client()

    assert path.name == "client_configuration.json.1"
    client = parse_client_configuration(path.read_text(encoding="utf-8"))
    assert client.client_id == 1
    assert client.active_settings().server == "198.51.100.1"
    assert client.server_public_key == store.configuration().public_key

    peers = store.list_allowed_peers()
    assert [(peer.client_id, peer.enabled) for peer in peers] == [(1, True)]
    assert peers[0].public_key == client.client_public_key
    assert store.add_client().name == "client_configuration.json.2"


def test_server_store_add_client_for_websocket_server(tmp_path: Path) -> None:
    server_path = tmp_path / "server.json"
    store = ServerConfigurationStore(server_path, host_resolver=lambda: "198.51.100.1")
    data = json.loads(store.configuration().model_dump_json())
    data["protocol"] = "ws"
    del data["ws_settings"]
    server_path.write_text(json.dumps(data), encoding="utf-8")

    client = parse_client_configuration(store.add_client().read_text(encoding="utf-8"))

    assert client.protocol.value == "ws"
    ws = client.active_settings()
    assert (ws.tun_name, ws.server, ws.port) == ("wstun0", "198.51.100.1", 1010)
    assert client.tcp_settings.server == client.udp_settings.server == "198.51.100.1"


def test_server_store_falls_back_when_host_unresolvable(tmp_path: Path) -> None:
    def unreachable() -> str:
        raise OSError("network unreachable")

    store = ServerConfigurationStore(tmp_path / "server.json", host_resolver=unreachable)
    with pytest.raises(RuntimeError, match="no fallback address"):
        store.add_client()

    config = store.configuration().model_copy(update={"fallback_server_address": "vpn.example.org"})
    store._save(config)
    client = parse_client_configuration(store.add_client().read_text(encoding="utf-8"))
    assert client.active_settings().server == "vpn.example.org"


def test_server_store_toggle_and_remove_peers(tmp_path: Path) -> None:
    store = ServerConfigurationStore(tmp_path / "server.json", host_resolver=lambda: "198.51.100.1")
    store.add_client()
    store.add_client()

    store.set_allowed_peer_enabled(1, False)
    assert [peer.enabled for peer in store.list_allowed_peers()] == [False, True]

    store.remove_allowed_peer(1)
    assert [peer.client_id for peer in store.list_allowed_peers()] == [2]

    with pytest.raises(KeyError):
        store.remove_allowed_peer(1)
    with pytest.raises(KeyError):
        store.set_allowed_peer_enabled(9, True)
