"""Servers file (JSON).

Persists the registry between runs:
    {"active_server_id": "...", "servers": [ServerRecord, ...]}
A missing file is an empty registry.
"""

from __future__ import annotations

import json
from pathlib import Path

from core.domain.models import ServersFile
from core.registry import ServerRegistry


def load_registry(path: Path) -> ServerRegistry:
    if not path.exists():
        return ServerRegistry()
    data = json.loads(path.read_text(encoding="utf-8"))
    servers_file = ServersFile.model_validate(data)
    return ServerRegistry(servers_file.servers, active_server_id=servers_file.active_server_id)


def save_registry(registry: ServerRegistry, path: Path) -> Path:
    servers_file = ServersFile(
        active_server_id=registry.active_server_id,
        servers=registry.list_all(),
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = servers_file.model_dump(mode="json")
    path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )
    return path
