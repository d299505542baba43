"""Error taxonomy for the connection pool.

Registration errors (`UnknownServer`, `NoServersConfigured`, `NoActiveServer`)
are detected before any network activity. `TransportError` wraps whatever the
per-server call raised and is never allowed to abort a fan-out.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from core.domain.outcomes import Failure


class PoolError(Exception):
    """Base class for every error raised by the pool."""


class UnknownServer(PoolError):
    def __init__(self, server_id: str | None) -> None:
        self.server_id = server_id
        super().__init__(f"Server not found: {server_id}")


class NoServersConfigured(PoolError):
    def __init__(self) -> None:
        super().__init__("No servers configured")


class NoActiveServer(PoolError):
    def __init__(self) -> None:
        super().__init__("No active server")


class TransportError(PoolError):
    """A per-server call failed (HTTP status, network, decoding...)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ServerTimeout(TransportError):
    def __init__(self, server_name: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{server_name} did not answer within {timeout_seconds:g}s")


class AllServersFailed(PoolError):
    """Every server in a fan-out failed; there is nothing to aggregate.

    `error` is the first failure in snapshot order.
    """

    def __init__(self, failures: Sequence[Failure]) -> None:
        if not failures:
            raise ValueError("AllServersFailed requires at least one failure")
        self.failures = list(failures)
        self.error = self.failures[0].error
        super().__init__(f"All {len(self.failures)} server(s) failed: {self.error}")
