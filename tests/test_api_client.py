"""
Transport client tests.

Validates:
- {"Data": X} bodies unwrap to X, other JSON passes through
- non-2xx, malformed bodies and network failures become error results
- OBC commands are skipped entirely while the flag is off
- base URL switches to the proxy for HTTPS origins calling HTTP upstreams
"""
import httpx
import pytest

from fleetview.config import Settings, resolve_api_base_url
from fleetview.schemas import ApiResult, RequestDescriptor
from fleetview.services.api_client import FleetApiClient, unwrap_envelope

UPSTREAM = "http://upstream.test"


class TestEnvelope:

    def test_data_key_is_unwrapped(self):
        assert unwrap_envelope({"Data": [1, 2]}) == [1, 2]

    def test_empty_data_is_still_unwrapped(self):
        assert unwrap_envelope({"Data": []}) == []

    def test_other_shapes_pass_through(self):
        assert unwrap_envelope([{"Code": "V1"}]) == [{"Code": "V1"}]
        assert unwrap_envelope({"data": [1]}) == {"data": [1]}
        assert unwrap_envelope("ok") == "ok"


class TestApiResult:

    def test_ok_and_fail_are_exclusive(self):
        ok = ApiResult.ok([1])
        fail = ApiResult.fail("boom")
        assert ok.is_ok and ok.error is None
        assert not fail.is_ok and fail.data is None

    def test_both_set_is_rejected(self):
        with pytest.raises(ValueError):
            ApiResult(data=[1], error="boom")

    def test_fail_never_has_empty_message(self):
        assert ApiResult.fail("").error == "Unknown error occurred"


class TestCall:

    @pytest.mark.asyncio
    async def test_unwraps_data_envelope(self, upstream, api_client):
        upstream.json("GET", "/vehicles", {"Data": [{"Code": "V1"}]})

        result = await api_client.get_vehicles()

        assert result.is_ok
        assert result.data == [{"Code": "V1"}]

    @pytest.mark.asyncio
    async def test_bare_array_passes_through(self, upstream, api_client):
        upstream.json("GET", "/drivers", [{"Code": "D1"}])

        result = await api_client.get_drivers()

        assert result.data == [{"Code": "D1"}]

    @pytest.mark.asyncio
    async def test_http_error_without_message(self, upstream, api_client):
        upstream.add("GET", "/vehicles/V1/positions", httpx.Response(422, text="nope"))

        result = await api_client.get_vehicle_positions("V1")

        assert result.error == "HTTP error! status: 422"
        assert result.status_code == 422
        assert result.data is None

    @pytest.mark.asyncio
    async def test_http_error_uses_upstream_message(self, upstream, api_client):
        upstream.json("GET", "/routes", {"message": "Route service down"}, status_code=503)

        result = await api_client.get_routes()

        assert result.error == "Route service down"

    @pytest.mark.asyncio
    async def test_malformed_json_is_an_error(self, upstream, api_client):
        upstream.add("GET", "/smartboxes", httpx.Response(200, text="<html>"))

        result = await api_client.get_smartboxes()

        assert not result.is_ok
        assert result.error

    @pytest.mark.asyncio
    async def test_network_failure_does_not_raise(self, upstream, api_client):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        upstream.add("GET", "/vehicles", refuse)

        result = await api_client.get_vehicles()

        assert result.error == "connection refused"

    @pytest.mark.asyncio
    async def test_invalid_url_does_not_raise(self, upstream, api_client):
        def reject(request):
            raise httpx.InvalidURL("Invalid URL component 'host'")

        upstream.add("GET", "/vehicles/V1/positions", reject)

        result = await api_client.get_vehicle_positions("V1")

        assert result.error == "Invalid URL component 'host'"
        assert result.status_code is None

    @pytest.mark.asyncio
    async def test_same_request_twice_is_deterministic(self, upstream, api_client):
        upstream.json("GET", "/tripplans", {"Data": [{"Code": "T1", "Name": "Plan"}]})

        first = await api_client.get_trip_plans()
        second = await api_client.get_trip_plans()

        assert first == second
        assert upstream.calls_to("/tripplans") == 2

    @pytest.mark.asyncio
    async def test_call_sends_params_and_json_content_type(self, upstream, api_client):
        upstream.json("GET", "/informationregionslog", [])

        descriptor = RequestDescriptor(
            path="/informationregionslog",
            params=(("from", "2024-01-01"), ("limit", "5")),
        )
        await api_client.call(descriptor)

        sent = upstream.requests[-1]
        assert sent.url.query == b"from=2024-01-01&limit=5"
        assert sent.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_authorize_vehicle_posts(self, upstream, api_client):
        upstream.json("POST", "/authorizedvehicles/V1", {"ok": True})

        result = await api_client.add_authorized_vehicle("V1")

        assert result.is_ok
        assert upstream.requests[-1].method == "POST"

    @pytest.mark.asyncio
    async def test_path_segments_are_quoted(self, upstream, api_client):
        upstream.json("GET", "/activitypoints/vehicles/AB 12", [])

        await api_client.get_vehicle_activity_points("AB 12")

        assert upstream.requests[-1].url.raw_path == b"/activitypoints/vehicles/AB%2012"


class TestObcCommandGate:

    @pytest.mark.asyncio
    async def test_disabled_gate_makes_no_request(self, upstream, api_client):
        upstream.json("GET", "/obccommands", [{"command": "x"}])

        result = await api_client.get_obc_commands()

        assert result == ApiResult.ok([])
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_enabled_gate_calls_upstream(self, upstream):
        upstream.json("GET", "/obccommands", {"Data": [{"command": "reboot"}]})
        client = FleetApiClient(UPSTREAM, enable_obc_commands=True, client=upstream.async_client())

        result = await client.get_obc_commands()

        assert result.data == [{"command": "reboot"}]
        assert upstream.calls_to("/obccommands") == 1


class TestBaseUrl:

    def test_https_origin_with_http_upstream_uses_proxy(self):
        settings = Settings(public_origin="https://fleet.example.com/", api_base_url="http://10.0.0.5:3000")
        assert resolve_api_base_url(settings) == "https://fleet.example.com/api/proxy"

    def test_http_origin_calls_upstream_directly(self):
        settings = Settings(public_origin="http://localhost:8000", api_base_url="http://10.0.0.5:3000")
        assert resolve_api_base_url(settings) == "http://10.0.0.5:3000"

    def test_https_upstream_needs_no_proxy(self):
        settings = Settings(public_origin="https://fleet.example.com", api_base_url="https://api.example.com")
        assert resolve_api_base_url(settings) == "https://api.example.com"

    def test_unset_upstream_falls_back_to_default(self):
        settings = Settings(api_base_url="")
        assert resolve_api_base_url(settings) == "http://192.168.111.10:3000"

    def test_from_settings_uses_resolved_url(self):
        settings = Settings(public_origin="https://fleet.example.com", api_base_url="http://10.0.0.5:3000")
        client = FleetApiClient.from_settings(settings)
        assert client.url_for("/vehicles") == "https://fleet.example.com/api/proxy/vehicles"
