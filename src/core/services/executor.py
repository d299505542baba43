"""Request executor: one operation against one server.

The executor never raises for per-server problems. Unknown servers, timeouts
and transport errors all come back as `Failure` outcomes so callers handle a
single failure path. Liveness is recorded here, before the outcome is handed
back, so no caller can skip it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from core.domain.models import ServerRecord
from core.domain.operations import OperationDescriptor
from core.domain.outcomes import Failure, OperationOutcome, Success
from core.errors import PoolError, ServerTimeout, TransportError, UnknownServer
from core.registry import ServerRegistry

logger = logging.getLogger(__name__)


class RequestExecutor:
    def __init__(
        self,
        registry: ServerRegistry,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self._registry = registry
        self._timeout_seconds = timeout_seconds

    @property
    def registry(self) -> ServerRegistry:
        return self._registry

    async def execute(self, server_id: str, operation: OperationDescriptor) -> OperationOutcome:
        server = self._registry.get(server_id)
        if server is None:
            logger.warning("%s: unknown server %s", operation.name, server_id)
            return Failure(server_id=server_id, server_name=None, error=UnknownServer(server_id))
        return await self.execute_on(server, operation)

    async def execute_on(self, server: ServerRecord, operation: OperationDescriptor) -> OperationOutcome:
        """Run `operation` against `server` (a registry record or snapshot of one)."""

        args, kwargs = operation.bind(
            url=server.url,
            access_token=server.access_token,
            user_id=server.user_id,
        )

        outcome: OperationOutcome
        try:
            if self._timeout_seconds is None:
                payload = await self._invoke(operation, args, kwargs)
            else:
                payload = await asyncio.wait_for(
                    self._invoke(operation, args, kwargs),
                    timeout=self._timeout_seconds,
                )
        except asyncio.TimeoutError as exc:
            # _invoke converts the procedure's own errors, so this is wait_for expiring.
            error = ServerTimeout(server.name, self._timeout_seconds or 0)
            error.__cause__ = exc
            outcome = Failure(server_id=server.id, server_name=server.name, error=error)
        except PoolError as exc:
            outcome = Failure(server_id=server.id, server_name=server.name, error=exc)
        else:
            outcome = Success(server_id=server.id, server_name=server.name, payload=payload)

        self._record_liveness(server, outcome)
        return outcome

    @staticmethod
    async def _invoke(operation: OperationDescriptor, args: tuple, kwargs: dict) -> Any:
        """Await the procedure; anything it raises that is not a `PoolError` becomes a `TransportError`."""

        try:
            return await operation.procedure(*args, **kwargs)
        except PoolError:
            raise
        except Exception as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

    def _record_liveness(self, server: ServerRecord, outcome: OperationOutcome) -> None:
        if isinstance(outcome, Success):
            self._registry.update(
                server.id,
                connected=True,
                last_connected=datetime.now(timezone.utc),
            )
            return

        logger.warning("Error from server %s (%s): %s", server.name, server.id, outcome.error)
        self._registry.update(server.id, connected=False)
