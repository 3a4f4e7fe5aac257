"""
Tests for the polling data resource and the resource registry.

Validates:
- success/failure transitions of a fetch cycle
- interval polling settles repeatedly with increasing last_updated
- the producer is looked up per cycle (replace_producer)
- overlapping cycles: the last one to settle wins
- close() cancels polling and drops late results
"""
import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from fleetview.schemas import ApiResult
from fleetview.services.api_client import FleetApiClient
from fleetview.services.poller import PollingResource
from fleetview.services.resources import RESOURCE_SPECS, ResourceRegistry


def producer_returning(result: ApiResult):
    async def produce():
        return result
    return produce


class TestFetchCycle:

    def test_initial_state_is_loading(self):
        resource = PollingResource(producer_returning(ApiResult.ok([])))
        state = resource.state
        assert state.loading is True
        assert state.data is None and state.error is None and state.last_updated is None

    @pytest.mark.asyncio
    async def test_success_sets_data_and_timestamp(self):
        resource = PollingResource(producer_returning(ApiResult.ok([{"Code": "V1"}])))

        state = await resource.refetch()

        assert state.data == [{"Code": "V1"}]
        assert state.error is None
        assert state.loading is False
        assert state.last_updated is not None

    @pytest.mark.asyncio
    async def test_failure_clears_previous_data(self):
        resource = PollingResource(producer_returning(ApiResult.ok([1, 2])))
        await resource.refetch()

        resource.replace_producer(producer_returning(ApiResult.fail("HTTP error! status: 500")))
        state = await resource.refetch()

        assert state.error == "HTTP error! status: 500"
        assert state.data is None
        assert state.loading is False

    @pytest.mark.asyncio
    async def test_keep_last_good_preserves_data(self):
        resource = PollingResource(producer_returning(ApiResult.ok([1, 2])), keep_last_good=True)
        await resource.refetch()

        resource.replace_producer(producer_returning(ApiResult.fail("boom")))
        state = await resource.refetch()

        assert state.error == "boom"
        assert state.data == [1, 2]

    @pytest.mark.asyncio
    async def test_raising_producer_becomes_error(self):
        async def explode():
            raise RuntimeError("socket closed")

        resource = PollingResource(explode)
        state = await resource.refetch()

        assert state.error == "socket closed"
        assert state.data is None

    @pytest.mark.asyncio
    async def test_loading_while_in_flight(self):
        gate = asyncio.Event()

        async def slow():
            await gate.wait()
            return ApiResult.ok("done")

        resource = PollingResource(producer_returning(ApiResult.ok("first")))
        await resource.refetch()
        assert resource.loading is False

        resource.replace_producer(slow)
        task = asyncio.create_task(resource.refetch())
        await asyncio.sleep(0)
        assert resource.loading is True
        gate.set()
        await task
        assert resource.loading is False

    @pytest.mark.asyncio
    async def test_last_updated_strictly_increases_with_frozen_clock(self):
        frozen = datetime(2025, 1, 1, tzinfo=timezone.utc)
        resource = PollingResource(producer_returning(ApiResult.ok(1)), clock=lambda: frozen)

        first = (await resource.refetch()).last_updated
        second = (await resource.refetch()).last_updated

        assert second > first


class TestProducerIndirection:

    @pytest.mark.asyncio
    async def test_replaced_producer_used_on_next_cycle(self):
        resource = PollingResource(producer_returning(ApiResult.ok("old")))
        await resource.refetch()

        resource.replace_producer(producer_returning(ApiResult.ok("new")))
        state = await resource.refetch()

        assert state.data == "new"

    @pytest.mark.asyncio
    async def test_replacing_producer_keeps_timer(self):
        resource = PollingResource(producer_returning(ApiResult.ok("old")), interval_ms=1000)
        resource.start(immediate=False)
        timer = resource._timer

        resource.replace_producer(producer_returning(ApiResult.ok("new")))

        assert resource._timer is timer
        await resource.close()


class TestOverlappingCycles:

    @pytest.mark.asyncio
    async def test_last_settled_wins(self):
        slow_gate = asyncio.Event()
        calls = []

        async def produce():
            calls.append(len(calls))
            if len(calls) == 1:
                await slow_gate.wait()
                return ApiResult.ok("slow-first")
            return ApiResult.ok("fast-second")

        resource = PollingResource(produce)
        first = asyncio.create_task(resource.refetch())
        await asyncio.sleep(0)
        await resource.refetch()
        assert resource.data == "fast-second"

        slow_gate.set()
        await first

        # The earlier cycle settled last, so its result is what remains
        assert resource.data == "slow-first"
        assert len(calls) == 2


class TestPolling:

    @pytest.mark.asyncio
    async def test_interval_polls_repeatedly(self):
        settled = []
        resource = PollingResource(producer_returning(ApiResult.ok("tick")), interval_ms=40)
        resource.subscribe(settled.append)

        resource.start()
        await asyncio.sleep(0.04 * 3 + 0.05)
        await resource.close()

        assert len(settled) >= 3
        assert all(state.loading is False for state in settled)
        stamps = [state.last_updated for state in settled]
        assert all(later > earlier for earlier, later in zip(stamps, stamps[1:]))

    @pytest.mark.asyncio
    async def test_zero_interval_does_not_poll(self):
        calls = []

        async def produce():
            calls.append(1)
            return ApiResult.ok(None)

        resource = PollingResource(produce, interval_ms=0)
        resource.start()
        await asyncio.sleep(0.05)

        assert len(calls) == 1
        assert not resource.running
        await resource.close()

    @pytest.mark.asyncio
    async def test_close_drops_in_flight_result(self):
        gate = asyncio.Event()
        settled = []

        async def slow():
            await gate.wait()
            return ApiResult.ok("late")

        resource = PollingResource(slow, interval_ms=1000)
        resource.subscribe(settled.append)
        resource.start()
        await asyncio.sleep(0)

        await resource.close()
        gate.set()
        await asyncio.sleep(0)

        assert settled == []
        assert resource.data is None
        assert not resource.running

    @pytest.mark.asyncio
    async def test_closed_resource_cannot_restart(self):
        resource = PollingResource(producer_returning(ApiResult.ok(1)))
        await resource.close()
        with pytest.raises(RuntimeError):
            resource.start()


class TestResourceRegistry:

    @pytest.mark.asyncio
    async def test_acquire_loads_once(self, upstream, api_client):
        upstream.json("GET", "/vehicles", {"Data": [{"Code": "V1"}]})
        registry = ResourceRegistry(api_client)

        first = await registry.acquire("vehicles")
        second = await registry.acquire("vehicles")

        assert first.data == [{"Code": "V1"}]
        assert second.data == first.data
        assert upstream.calls_to("/vehicles") == 1
        assert registry.get("vehicles").interval_ms == 0
        assert registry.get("drivers") is None
        await registry.close()

    @pytest.mark.asyncio
    async def test_concurrent_first_acquire_waits_for_load(self, upstream, api_client):
        gate = asyncio.Event()

        async def slow_vehicles(request):
            await gate.wait()
            return httpx.Response(200, json={"Data": [{"Code": "V1"}]})

        upstream.add("GET", "/vehicles", slow_vehicles)
        registry = ResourceRegistry(api_client)

        first = asyncio.create_task(registry.acquire("vehicles"))
        second = asyncio.create_task(registry.acquire("vehicles"))
        await asyncio.sleep(0.01)
        assert not second.done()

        gate.set()
        first_state, second_state = await asyncio.gather(first, second)

        assert first_state.data == second_state.data == [{"Code": "V1"}]
        assert second_state.loading is False
        assert upstream.calls_to("/vehicles") == 1
        await registry.close()

    @pytest.mark.asyncio
    async def test_refetch_hits_upstream_again(self, upstream, api_client):
        upstream.json("GET", "/drivers", [])
        registry = ResourceRegistry(api_client)

        await registry.acquire("drivers")
        await registry.refetch("drivers")

        assert upstream.calls_to("/drivers") == 2
        await registry.close()

    def test_intervals_only_with_auto_refresh(self, api_client):
        assert ResourceRegistry(api_client).interval_for("vehicles") == 0
        enabled = ResourceRegistry(api_client, auto_refresh=True)
        assert enabled.interval_for("vehicles") == RESOURCE_SPECS["vehicles"].interval_ms == 30_000
        assert enabled.interval_for("drivers") == 60_000
        assert enabled.interval_for("routes") == 0

    @pytest.mark.asyncio
    async def test_unknown_resource(self, api_client):
        registry = ResourceRegistry(api_client)
        with pytest.raises(KeyError):
            await registry.acquire("trailers")

    @pytest.mark.asyncio
    async def test_rebind_switches_client(self, upstream, api_client):
        upstream.json("GET", "/routes", [{"Code": "R1"}])
        registry = ResourceRegistry(api_client)
        await registry.acquire("routes")

        other = FleetApiClient("http://other.test", client=upstream.async_client())
        registry.rebind(other)
        await registry.refetch("routes")

        assert str(upstream.requests[-1].url) == "http://other.test/routes"
        await registry.close()
