"""File-backed client and server configuration stores.

Client configurations live as ``<root>/clients/<name>.json``; the active one is
recorded in ``<root>/active_client``. The server configuration is a single JSON
document that also tracks the peers allowed to connect.
"""

from __future__ import annotations

import base64
import binascii
import ipaddress
import json
import logging
import os
import re
import socket
import threading
import unicodedata
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat, PublicFormat
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from tunnelui.errors import InvalidClientConfigurationError
from tunnelui.log_utils import log_event

logger = logging.getLogger(__name__)

KEY_SIZE = 32
ERROR_SUMMARY_LIMIT = 120


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    WS = "ws"


def _decode_key(value: object) -> str:
    if not isinstance(value, str):
        raise ValueError("key must be a base64 string")
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("key is not valid base64") from exc
    if len(raw) != KEY_SIZE:
        raise ValueError(f"key must be {KEY_SIZE} bytes, got {len(raw)}")
    return value


class TransportSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tun_name: str
    server: str
    port: int = Field(ge=0, le=65535)
    ipv4_subnet: Optional[ipaddress.IPv4Network] = None
    ipv6_subnet: Optional[ipaddress.IPv6Network] = None
    dns_v4: List[ipaddress.IPv4Address] = Field(default_factory=list)
    dns_v6: List[ipaddress.IPv6Address] = Field(default_factory=list)
    mtu: int = Field(default=1500, ge=576, le=9000)

    @field_validator("tun_name", "server")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @model_validator(mode="after")
    def _needs_subnet(self) -> "TransportSettings":
        if self.ipv4_subnet is None and self.ipv6_subnet is None:
            raise ValueError("both ipv4_subnet and ipv6_subnet are missing")
        return self


class ClientConfiguration(BaseModel):
    """A client's view of one server: addressing per transport plus key material."""

    model_config = ConfigDict(extra="ignore")

    client_id: int = Field(ge=1)
    protocol: Protocol = Protocol.UDP
    tcp_settings: Optional[TransportSettings] = None
    udp_settings: Optional[TransportSettings] = None
    ws_settings: Optional[TransportSettings] = None
    server_public_key: str
    client_public_key: str
    client_private_key: str

    @field_validator("server_public_key", "client_public_key", "client_private_key", mode="before")
    @classmethod
    def _check_key(cls, value: object) -> str:
        return _decode_key(value)

    @model_validator(mode="after")
    def _active_transport(self) -> "ClientConfiguration":
        active = self.active_settings()
        if active is None:
            raise ValueError(f"no settings for selected protocol {self.protocol.value}")
        if active.port == 0 and self.protocol is not Protocol.WS:
            raise ValueError(f"{self.protocol.value} port must be between 1 and 65535")
        return self

    def active_settings(self) -> Optional[TransportSettings]:
        return {
            Protocol.TCP: self.tcp_settings,
            Protocol.UDP: self.udp_settings,
            Protocol.WS: self.ws_settings,
        }[self.protocol]


def sanitize_configuration_text(text: str) -> str:
    """Drop invisible control/format characters that terminals add to pastes."""
    return "".join(
        ch for ch in text if ch in " \t\r\n" or unicodedata.category(ch) not in {"Cc", "Cf"}
    ).strip()


def parse_client_configuration(text: str) -> ClientConfiguration:
    try:
        payload = json.loads(sanitize_configuration_text(text))
    except ValueError as exc:
        raise InvalidClientConfigurationError(f"invalid client configuration (json): {exc}") from exc
    if not isinstance(payload, dict):
        raise InvalidClientConfigurationError("invalid client configuration (json): expected an object")
    try:
        return ClientConfiguration.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "configuration"
        raise InvalidClientConfigurationError(
            f"invalid client configuration ({location}): {first.get('msg', 'invalid value')}"
        ) from exc


def summarize_configuration_error(exc: BaseException) -> str:
    message = str(exc).strip()
    if message.lower().startswith("invalid client configuration (") and "): " in message:
        message = message.split("): ", 1)[1]
    message = " ".join(message.split())
    if len(message) > ERROR_SUMMARY_LIMIT:
        return message[: ERROR_SUMMARY_LIMIT - 3] + "..."
    return message


def _write_private(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(data, encoding="utf-8")
    os.chmod(tmp_path, 0o600)
    os.replace(tmp_path, path)


class ClientConfigurationStore:
    """Observer, selector, creator, deleter and manager for client configurations."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.clients_dir = root / "clients"
        self._active_file = root / "active_client"
        self._lock = threading.Lock()

    def observe(self) -> List[str]:
        if not self.clients_dir.exists():
            return []
        return sorted(str(path) for path in self.clients_dir.glob("*.json") if path.is_file())

    def select(self, name: str) -> None:
        path = Path(name)
        if not path.is_file():
            raise FileNotFoundError(f"client configuration {name} does not exist")
        with self._lock:
            _write_private(self._active_file, str(path) + "\n")
        log_event(logger, "client_config.selected", path=str(path))

    def selected(self) -> Optional[Path]:
        try:
            value = self._active_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return Path(value) if value else None

    def create(self, configuration: ClientConfiguration, name: str) -> Path:
        stem = re.sub(r"[^A-Za-z0-9._-]+", "_", name.strip()).strip("._") or "configuration"
        with self._lock:
            self.clients_dir.mkdir(parents=True, exist_ok=True)
            path = self.clients_dir / f"{stem}.json"
            suffix = 2
            while path.exists():
                path = self.clients_dir / f"{stem}-{suffix}.json"
                suffix += 1
            _write_private(path, configuration.model_dump_json(indent=2, exclude_none=True) + "\n")
        log_event(logger, "client_config.created", path=str(path))
        return path

    def delete(self, name: str) -> None:
        path = Path(name)
        with self._lock:
            path.unlink()
            if self.selected() == path:
                self._active_file.unlink(missing_ok=True)
        log_event(logger, "client_config.deleted", path=str(path))

    def configuration(self) -> ClientConfiguration:
        path = self.selected()
        if path is None:
            raise FileNotFoundError("no client configuration selected")
        return parse_client_configuration(path.read_text(encoding="utf-8"))


class AllowedPeer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client_id: int
    name: str = ""
    public_key: str
    enabled: bool = True

    @property
    def display_name(self) -> str:
        return self.name.strip() or f"client-{self.client_id}"


def _default_tcp() -> TransportSettings:
    return TransportSettings(tun_name="tcptun0", server="0.0.0.0", port=8080, ipv4_subnet="10.0.0.0/24")


def _default_udp() -> TransportSettings:
    return TransportSettings(tun_name="udptun0", server="0.0.0.0", port=9090, ipv4_subnet="10.0.1.0/24")


def _default_ws() -> TransportSettings:
    return TransportSettings(tun_name="wstun0", server="0.0.0.0", port=1010, ipv4_subnet="10.0.2.0/24")


class ServerConfiguration(BaseModel):
    model_config = ConfigDict(extra="ignore")

    protocol: Protocol = Protocol.UDP
    tcp_settings: TransportSettings = Field(default_factory=_default_tcp)
    udp_settings: TransportSettings = Field(default_factory=_default_udp)
    ws_settings: TransportSettings = Field(default_factory=_default_ws)
    fallback_server_address: str = ""
    public_key: str
    private_key: str
    client_counter: int = 0
    allowed_peers: List[AllowedPeer] = Field(default_factory=list)


def generate_key_pair() -> tuple[str, str]:
    """Return a fresh X25519 (public, private) key pair, base64 encoded."""
    private = X25519PrivateKey.generate()
    private_raw = private.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
    public_raw = private.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return base64.b64encode(public_raw).decode("ascii"), base64.b64encode(private_raw).decode("ascii")


def resolve_outbound_ipv4() -> str:
    """Address the kernel would use for outbound traffic (no packet is sent)."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect(("8.8.8.8", 80))
        return sock.getsockname()[0]


class ServerConfigurationStore:
    """Server configuration manager: allowed peers and client provisioning."""

    def __init__(self, path: Path, *, host_resolver: Callable[[], str] = resolve_outbound_ipv4) -> None:
        self.path = path
        self._host_resolver = host_resolver
        self._lock = threading.RLock()

    def configuration(self) -> ServerConfiguration:
        with self._lock:
            if not self.path.exists():
                public_key, private_key = generate_key_pair()
                config = ServerConfiguration(public_key=public_key, private_key=private_key)
                self._save(config)
                log_event(logger, "server_config.created", path=str(self.path))
                return config
            return ServerConfiguration.model_validate_json(self.path.read_text(encoding="utf-8"))

    def list_allowed_peers(self) -> List[AllowedPeer]:
        return list(self.configuration().allowed_peers)

    def set_allowed_peer_enabled(self, client_id: int, enabled: bool) -> None:
        with self._lock:
            config = self.configuration()
            self._require_peer(config, client_id)
            peers = [
                peer.model_copy(update={"enabled": enabled}) if peer.client_id == client_id else peer
                for peer in config.allowed_peers
            ]
            self._save(config.model_copy(update={"allowed_peers": peers}))

    def remove_allowed_peer(self, client_id: int) -> None:
        with self._lock:
            config = self.configuration()
            self._require_peer(config, client_id)
            peers = [peer for peer in config.allowed_peers if peer.client_id != client_id]
            self._save(config.model_copy(update={"allowed_peers": peers}))
        log_event(logger, "server_config.peer_removed", client_id=client_id)

    def add_client(self) -> Path:
        """Register a new peer and write its client configuration next to the server file."""
        with self._lock:
            config = self.configuration()
            host = self._resolve_host(config)
            client_id = config.client_counter + 1
            public_key, private_key = generate_key_pair()
            peer = AllowedPeer(client_id=client_id, name=f"client-{client_id}", public_key=public_key)
            client = ClientConfiguration(
                client_id=client_id,
                protocol=config.protocol,
                tcp_settings=config.tcp_settings.model_copy(update={"server": host}),
                udp_settings=config.udp_settings.model_copy(update={"server": host}),
                ws_settings=config.ws_settings.model_copy(update={"server": host}),
                server_public_key=config.public_key,
                client_public_key=public_key,
                client_private_key=private_key,
            )
            self._save(
                config.model_copy(
                    update={"client_counter": client_id, "allowed_peers": [*config.allowed_peers, peer]}
                )
            )
            target = self.path.parent / f"client_configuration.json.{client_id}"
            _write_private(target, client.model_dump_json(indent=2, exclude_none=True) + "\n")
        log_event(logger, "server_config.client_added", client_id=client_id, path=str(target))
        return target

    def _resolve_host(self, config: ServerConfiguration) -> str:
        try:
            return self._host_resolver()
        except OSError as exc:
            if config.fallback_server_address:
                return config.fallback_server_address
            raise RuntimeError(
                "failed to resolve server IP and no fallback address provided in server configuration"
            ) from exc

    @staticmethod
    def _require_peer(config: ServerConfiguration, client_id: int) -> None:
        if not any(peer.client_id == client_id for peer in config.allowed_peers):
            raise KeyError(f"client #{client_id} is not configured")

    def _save(self, config: ServerConfiguration) -> None:
        _write_private(self.path, config.model_dump_json(indent=2) + "\n")

