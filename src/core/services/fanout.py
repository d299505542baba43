"""Fan-out coordinator.

Issues the same operation against every registered server concurrently, waits
for all of them and aggregates whatever succeeded.

Flow of `execute_all`:
1. Snapshot the registry (later edits never reach this fan-out).
2. Dispatch one executor call per server, all in flight at once.
3. Barrier: wait for every outcome, in whatever order they arrive.
4. No successes -> `AllServersFailed`. Otherwise tag successes with their
   origin server and hand them to the selected aggregation strategy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from core.config import AppSettings
from core.domain.operations import OperationDescriptor
from core.domain.outcomes import Failure, OperationOutcome, Success
from core.domain.policy import ITEMS_KEY, AggregatedResult, AggregationPolicy
from core.errors import AllServersFailed, NoActiveServer, NoServersConfigured, UnknownServer
from core.registry import ServerRegistry
from core.services.aggregation import aggregate
from core.services.executor import RequestExecutor

logger = logging.getLogger(__name__)

SERVER_ID_TAG = "_serverId"
SERVER_NAME_TAG = "_serverName"


def _tag_item(item: Any, server_id: str, server_name: str) -> Any:
    if isinstance(item, dict):
        return {**item, SERVER_ID_TAG: server_id, SERVER_NAME_TAG: server_name}
    return item


def tag_payload(payload: Any, server_id: str, server_name: str) -> Any:
    """Return a copy of `payload` whose items carry their origin server.

    Lists are tagged item by item. Mappings are tagged themselves and, when
    they expose `Items`, so is every item in it. Anything else is returned
    untouched.
    """

    if isinstance(payload, list):
        return [_tag_item(item, server_id, server_name) for item in payload]
    if isinstance(payload, dict):
        tagged = _tag_item(payload, server_id, server_name)
        if isinstance(payload.get(ITEMS_KEY), list):
            tagged[ITEMS_KEY] = [_tag_item(item, server_id, server_name) for item in payload[ITEMS_KEY]]
        return tagged
    return payload


def partition(outcomes: Sequence[OperationOutcome]) -> tuple[list[Success], list[Failure]]:
    successes: list[Success] = []
    failures: list[Failure] = []
    for outcome in outcomes:
        if isinstance(outcome, Success):
            successes.append(outcome)
        else:
            failures.append(outcome)
    return successes, failures


class FanOutCoordinator:
    def __init__(self, registry: ServerRegistry, executor: RequestExecutor | None = None) -> None:
        self._registry = registry
        self._executor = executor or RequestExecutor(registry)

    @property
    def registry(self) -> ServerRegistry:
        return self._registry

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    async def dispatch(self, operation: OperationDescriptor) -> list[OperationOutcome]:
        """Run `operation` on every server; one outcome per server, in snapshot order.

        Raises `NoServersConfigured` before dispatching anything when the
        registry is empty.
        """

        snapshot = self._registry.list_all()
        if not snapshot:
            logger.warning("%s: no servers configured", operation.name)
            raise NoServersConfigured()

        logger.debug("%s: dispatching to %d server(s)", operation.name, len(snapshot))
        # execute_on never raises for per-server errors, so gather waits for all.
        outcomes = await asyncio.gather(
            *(self._executor.execute_on(server, operation) for server in snapshot)
        )
        return list(outcomes)

    async def execute_all(
        self,
        operation: OperationDescriptor,
        policy: AggregationPolicy | None = None,
    ) -> AggregatedResult:
        policy = policy or AggregationPolicy()
        outcomes = await self.dispatch(operation)
        successes, failures = partition(outcomes)

        if not successes:
            logger.warning("%s: all %d server(s) failed", operation.name, len(failures))
            error = AllServersFailed(failures)
            raise error from error.error

        tagged = [
            Success(
                server_id=outcome.server_id,
                server_name=outcome.server_name,
                payload=tag_payload(outcome.payload, outcome.server_id, outcome.server_name),
            )
            for outcome in successes
        ]
        payload = aggregate(tagged, policy)

        logger.info(
            "%s: %d/%d server(s) answered (%s)",
            operation.name,
            len(successes),
            len(outcomes),
            policy.aggregate_type.value,
        )
        errors = [] if policy.ignore_errors else failures
        return AggregatedResult(aggregate_type=policy.aggregate_type, payload=payload, errors=errors)

    async def execute_active(self, operation: OperationDescriptor) -> Any:
        """Run `operation` on the active server only and return its payload."""

        active = self._registry.get_active()
        if active is None:
            raise NoActiveServer()
        outcome = await self._executor.execute_on(active, operation)
        return outcome.unwrap()

    async def execute_for_item(self, item: Any, operation: OperationDescriptor) -> Any:
        """Run `operation` on the server an aggregated item came from."""

        server_id = item.get(SERVER_ID_TAG) if isinstance(item, dict) else None
        if not server_id:
            raise UnknownServer(None)
        outcome = await self._executor.execute(server_id, operation)
        return outcome.unwrap()


def build_coordinator(registry: ServerRegistry, settings: AppSettings | None = None) -> FanOutCoordinator:
    """Coordinator wired with the configured per-server timeout."""

    settings = settings or AppSettings()
    executor = RequestExecutor(registry, timeout_seconds=settings.server_timeout_seconds)
    return FanOutCoordinator(registry, executor)
