from __future__ import annotations

import base64
import json
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from tunnelui.config_store import ClientConfigurationStore, ServerConfigurationStore
from tunnelui.preferences import Preferences, PreferencesStore
from tunnelui.tui.commands import BatchMsg, Cmd, KeyMsg
from tunnelui.tui.configurator import ConfiguratorSessionOptions


def fake_key(fill: int = 1) -> str:
    return base64.b64encode(bytes([fill]) * 32).decode("ascii")


def client_config_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "client_id": 7,
        "protocol": "udp",
        "udp_settings": {
            "tun_name": "udptun0",
            "server": "203.0.113.10",
            "port": 9090,
            "ipv4_subnet": "10.0.1.0/24",
        },
        "server_public_key": fake_key(1),
        "client_public_key": fake_key(2),
        "client_private_key": fake_key(3),
    }
    payload.update(overrides)
    return payload


def write_client_config(root: Path, name: str, payload: Optional[Dict[str, Any]] = None) -> str:
    clients = root / "clients"
    clients.mkdir(parents=True, exist_ok=True)
    path = clients / f"{name}.json"
    path.write_text(json.dumps(payload if payload is not None else client_config_payload()), encoding="utf-8")
    return str(path)


def make_options(root: Path, *, server_supported: bool = True) -> ConfiguratorSessionOptions:
    clients = ClientConfigurationStore(root)
    return ConfiguratorSessionOptions(
        observer=clients,
        selector=clients,
        creator=clients,
        deleter=clients,
        client_config_manager=clients,
        server_config_manager=ServerConfigurationStore(root / "server_configuration.json", host_resolver=lambda: "198.51.100.1"),
        server_supported=server_supported,
    )


def make_store(**changes: Any) -> PreferencesStore:
    """In-memory store (no file) with the given preference overrides."""
    return PreferencesStore(Preferences().with_changes(**changes))


def press(model: Any, *keys: str) -> Tuple[Any, Optional[Cmd]]:
    cmd = None
    for key in keys:
        model, cmd = model.update(KeyMsg(key))
    return model, cmd


async def resolve(cmd: Optional[Cmd]) -> List[Any]:
    """Await ``cmd`` and flatten batches into the list of resulting messages."""
    if cmd is None:
        return []
    result = await cmd()
    if isinstance(result, BatchMsg):
        messages: List[Any] = []
        for member in result.cmds:
            messages.extend(await resolve(member))
        return messages
    return [result]


class StaticFeed:
    """Log feed with a fixed set of lines and a writable version counter."""

    def __init__(self, lines: Optional[List[str]] = None) -> None:
        self.lines = list(lines or [])
        self.version = 0
        self._lock = threading.Lock()

    def append(self, line: str) -> None:
        with self._lock:
            self.lines.append(line)
            self.version += 1

    def tail(self, limit: int) -> List[str]:
        with self._lock:
            return self.lines[-limit:]


_ANSI = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


def strip_ansi(text: str) -> str:
    return _ANSI.sub("", text)
