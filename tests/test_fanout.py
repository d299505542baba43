"""
Tests for the fan-out coordinator.
"""

import asyncio

import pytest

from core.domain.operations import operation
from core.domain.outcomes import Failure, Success
from core.domain.policy import AggregateType, AggregationPolicy
from core.errors import AllServersFailed, NoActiveServer, NoServersConfigured, TransportError, UnknownServer
from core.registry import ServerRegistry
from core.services.executor import RequestExecutor
from core.services.fanout import FanOutCoordinator, build_coordinator, tag_payload
from core.config import AppSettings

from conftest import FakeProcedure, make_server

A_URL = "http://a.local:8096"
B_URL = "http://b.local:8096"
C_URL = "http://c.local:8096"


class TestExecuteAll:
    """Tests for aggregation across servers with partial failure."""

    @pytest.mark.asyncio
    async def test_partial_failure_ignored_by_default(self, registry):
        procedure = FakeProcedure(
            {
                A_URL: {"Items": [{"Id": "L1"}, {"Id": "L2"}], "TotalRecordCount": 2},
                B_URL: TransportError("timed out"),
            },
            name="listLibraries",
        )
        pool = FanOutCoordinator(registry)

        result = await pool.execute_all(operation(procedure))

        assert [item["Id"] for item in result.items] == ["L1", "L2"]
        assert result.total_record_count == 2
        assert result.errors == []
        assert registry.get("a").connected is True
        assert registry.get("b").connected is False

    @pytest.mark.asyncio
    async def test_partial_failure_reported_when_requested(self, registry):
        error = TransportError("timed out")
        procedure = FakeProcedure(
            {
                A_URL: {"Items": [{"Id": "L1"}, {"Id": "L2"}], "TotalRecordCount": 2},
                B_URL: error,
            }
        )
        pool = FanOutCoordinator(registry)

        result = await pool.execute_all(operation(procedure), AggregationPolicy(ignore_errors=False))

        assert result.total_record_count == 2
        assert len(result.errors) == 1
        assert result.errors[0].server_id == "b"
        assert result.errors[0].server_name == "Bravo"
        assert result.errors[0].error is error

    @pytest.mark.asyncio
    async def test_items_are_tagged_with_origin(self, registry):
        procedure = FakeProcedure({A_URL: [{"Id": "1"}], B_URL: [{"Id": "2"}]})
        pool = FanOutCoordinator(registry)

        result = await pool.execute_all(operation(procedure), AggregationPolicy(AggregateType.CONCATENATE))

        assert result.items == [
            {"Id": "1", "_serverId": "a", "_serverName": "Alpha"},
            {"Id": "2", "_serverId": "b", "_serverName": "Bravo"},
        ]

    @pytest.mark.asyncio
    async def test_tagging_leaves_server_payload_untouched(self, registry):
        page = {"Items": [{"Id": "1"}], "TotalRecordCount": 1}
        procedure = FakeProcedure({A_URL: page, B_URL: {"Items": []}})
        pool = FanOutCoordinator(registry)

        await pool.execute_all(operation(procedure))

        assert page == {"Items": [{"Id": "1"}], "TotalRecordCount": 1}

    @pytest.mark.asyncio
    async def test_first_success_follows_snapshot_order(self, registry):
        procedure = FakeProcedure(
            {A_URL: {"ServerName": "x"}, B_URL: {"ServerName": "y"}},
            delays={A_URL: 0.05},
        )
        pool = FanOutCoordinator(registry)

        result = await pool.execute_all(operation(procedure), AggregationPolicy(AggregateType.FIRST_SUCCESS))

        assert result.payload["ServerName"] == "x"
        assert result.payload["_serverId"] == "a"

    @pytest.mark.asyncio
    async def test_all_failed_raises_first_in_snapshot_order(self, registry):
        first = TransportError("a down")
        second = TransportError("b down")
        # B fails first in time; A still wins the tie-break.
        procedure = FakeProcedure({A_URL: first, B_URL: second}, delays={A_URL: 0.05})
        pool = FanOutCoordinator(registry)

        with pytest.raises(AllServersFailed) as excinfo:
            await pool.execute_all(operation(procedure))

        assert excinfo.value.error is first
        assert excinfo.value.__cause__ is first
        assert [f.server_id for f in excinfo.value.failures] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_no_servers_dispatches_nothing(self):
        procedure = FakeProcedure({})
        pool = FanOutCoordinator(ServerRegistry())

        with pytest.raises(NoServersConfigured):
            await pool.execute_all(operation(procedure))

        assert procedure.calls == []


class TestBarrier:
    """Tests for concurrency and completion semantics."""

    @pytest.mark.asyncio
    async def test_calls_are_in_flight_concurrently(self):
        registry = ServerRegistry([make_server("a"), make_server("b"), make_server("c")])
        started = []
        all_started = asyncio.Event()

        async def procedure(base_url, **kwargs):
            started.append(base_url)
            if len(started) == 3:
                all_started.set()
            # Deadlocks unless every call was dispatched before any completed.
            await all_started.wait()
            return [{"url": base_url}]

        pool = FanOutCoordinator(registry)
        result = await asyncio.wait_for(
            pool.execute_all(operation(procedure), AggregationPolicy(AggregateType.CONCATENATE)),
            timeout=2,
        )

        assert len(result.items) == 3

    @pytest.mark.asyncio
    async def test_one_outcome_per_server_regardless_of_completion_order(self):
        registry = ServerRegistry([make_server("a"), make_server("b"), make_server("c")])
        procedure = FakeProcedure(
            {A_URL: [1], B_URL: TransportError("x"), C_URL: [3]},
            delays={A_URL: 0.06, B_URL: 0.03},
        )
        pool = FanOutCoordinator(registry)

        outcomes = await pool.dispatch(operation(procedure))

        assert [o.server_id for o in outcomes] == ["a", "b", "c"]
        assert [type(o) for o in outcomes] == [Success, Failure, Success]
        assert sorted(procedure.called_urls) == [A_URL, B_URL, C_URL]

    @pytest.mark.asyncio
    async def test_server_removed_mid_flight_still_aggregated(self, registry):
        async def procedure(base_url, **kwargs):
            if base_url == A_URL:
                registry.remove("b")
            await asyncio.sleep(0.01)
            return {"Items": [{"Id": base_url}], "TotalRecordCount": 1}

        pool = FanOutCoordinator(registry)
        result = await pool.execute_all(operation(procedure))

        assert result.total_record_count == 2
        assert "b" not in registry

    @pytest.mark.asyncio
    async def test_coordinator_timeout_does_not_stall_aggregate(self, registry):
        procedure = FakeProcedure(
            {A_URL: [{"Id": "1"}], B_URL: [{"Id": "2"}]},
            delays={B_URL: 5},
        )
        settings = AppSettings(server_timeout_seconds=0.05)
        pool = build_coordinator(registry, settings)

        result = await pool.execute_all(
            operation(procedure),
            AggregationPolicy(AggregateType.CONCATENATE, ignore_errors=False),
        )

        assert [item["Id"] for item in result.items] == ["1"]
        assert result.errors[0].server_id == "b"
        assert registry.get("b").connected is False


class TestSingleServerRouting:
    """Tests for execute_active and execute_for_item."""

    @pytest.mark.asyncio
    async def test_execute_active(self, registry):
        procedure = FakeProcedure({A_URL: {"Id": "x"}})
        pool = FanOutCoordinator(registry)

        assert await pool.execute_active(operation(procedure)) == {"Id": "x"}
        assert procedure.called_urls == [A_URL]

    @pytest.mark.asyncio
    async def test_execute_active_without_servers(self):
        pool = FanOutCoordinator(ServerRegistry())

        with pytest.raises(NoActiveServer):
            await pool.execute_active(operation(FakeProcedure({})))

    @pytest.mark.asyncio
    async def test_execute_active_propagates_server_error(self, registry):
        procedure = FakeProcedure({A_URL: TransportError("API Error: 401", status_code=401)})
        pool = FanOutCoordinator(registry, RequestExecutor(registry))

        with pytest.raises(TransportError) as excinfo:
            await pool.execute_active(operation(procedure))

        assert excinfo.value.status_code == 401
        assert registry.get("a").connected is False

    @pytest.mark.asyncio
    async def test_execute_for_item_routes_to_origin(self, registry):
        procedure = FakeProcedure({B_URL: {"Id": "42", "Overview": "..."}})
        pool = FanOutCoordinator(registry)
        item = tag_payload([{"Id": "42"}], "b", "Bravo")[0]

        details = await pool.execute_for_item(item, operation(procedure))

        assert details["Overview"] == "..."
        assert procedure.called_urls == [B_URL]

    @pytest.mark.asyncio
    async def test_execute_for_item_without_origin(self, registry):
        pool = FanOutCoordinator(registry)

        with pytest.raises(UnknownServer):
            await pool.execute_for_item({"Id": "42"}, operation(FakeProcedure({})))

    @pytest.mark.asyncio
    async def test_execute_for_item_of_removed_server(self, registry):
        pool = FanOutCoordinator(registry)
        registry.remove("b")

        with pytest.raises(UnknownServer):
            await pool.execute_for_item({"Id": "42", "_serverId": "b"}, operation(FakeProcedure({})))


class TestTagPayload:
    """Tests for origin tagging."""

    def test_paged_payload_and_items_are_tagged(self):
        tagged = tag_payload({"Items": [{"Id": "1"}], "TotalRecordCount": 1}, "a", "Alpha")

        assert tagged["_serverId"] == "a"
        assert tagged["Items"][0] == {"Id": "1", "_serverId": "a", "_serverName": "Alpha"}
        assert tagged["TotalRecordCount"] == 1

    def test_scalars_pass_through(self):
        assert tag_payload(None, "a", "Alpha") is None
        assert tag_payload([1, "x"], "a", "Alpha") == [1, "x"]
