"""Server registry.

Holds the configured servers, their liveness flag and the designated active
server. Pure in-memory state: loading and saving live in
`adapters.server_store`.

Every mutation happens on the event loop thread (executor completions
included), so no lock is taken. Records are frozen and replaced on update,
which keeps `list_all()` snapshots stable while the registry changes.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator

from core.domain.models import ServerRecord, normalize_server_url

logger = logging.getLogger(__name__)


class ServerRegistry:
    def __init__(
        self,
        servers: Iterable[ServerRecord] = (),
        *,
        active_server_id: str | None = None,
    ) -> None:
        self._servers: dict[str, ServerRecord] = {}
        self._active_id: str | None = None
        for server in servers:
            self.add(server)
        if active_server_id is not None:
            self.set_active(active_server_id)

    def __len__(self) -> int:
        return len(self._servers)

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._servers

    def __iter__(self) -> Iterator[ServerRecord]:
        return iter(self.list_all())

    @property
    def active_server_id(self) -> str | None:
        return self._active_id

    def get(self, server_id: str) -> ServerRecord | None:
        return self._servers.get(server_id)

    def list_all(self) -> list[ServerRecord]:
        """Snapshot of every server, in insertion order."""

        return list(self._servers.values())

    def get_active(self) -> ServerRecord | None:
        if self._active_id is None:
            return None
        return self._servers.get(self._active_id)

    def find_by_url(self, url: str) -> ServerRecord | None:
        normalized = normalize_server_url(url)
        for server in self._servers.values():
            if server.url == normalized:
                return server
        return None

    def has_multiple(self) -> bool:
        return len(self._servers) > 1

    def add(self, server: ServerRecord) -> ServerRecord:
        """Register `server`, replacing any record with the same id.

        The first server added becomes the active one.
        """

        if server.id in self._servers:
            logger.info("Replacing server %s (%s)", server.id, server.name)
        else:
            logger.info("Added server %s (%s)", server.id, server.name)
        self._servers[server.id] = server
        if self._active_id is None:
            self._active_id = server.id
        return server

    def remove(self, server_id: str) -> bool:
        if self._servers.pop(server_id, None) is None:
            return False
        logger.info("Removed server %s", server_id)
        if self._active_id == server_id:
            self._active_id = next(iter(self._servers), None)
            if self._active_id is not None:
                logger.info("Active server is now %s", self._active_id)
        return True

    def set_active(self, server_id: str) -> bool:
        if server_id not in self._servers:
            return False
        self._active_id = server_id
        return True

    def update(self, server_id: str, **fields: Any) -> bool:
        """Shallow-merge `fields` onto the matching record.

        The id itself cannot change. Returns False (and does nothing) when no
        server has `server_id`.
        """

        current = self._servers.get(server_id)
        if current is None:
            return False
        fields.pop("id", None)
        if not fields:
            return True
        merged = {**current.model_dump(), **fields}
        self._servers[server_id] = ServerRecord.model_validate(merged)
        return True
