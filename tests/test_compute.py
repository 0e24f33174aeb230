import json

import httpx
import pytest

from csvrelay.compute import ComputeClient, parse_results
from csvrelay.errors import ComputeError

URL = "http://compute.test/pyigrf"
ROWS = [{"lat": "45", "lon": "-73"}, {"lat": "10", "lon": "20"}, {"lat": "0", "lon": "0"}]


def client_for(handler, **kwargs):
    return ComputeClient(URL, transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_posts_points_json():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["method"] = request.method
        return httpx.Response(200, json=[{"F": 1.5}])

    results = await client_for(handler).compute(ROWS)

    assert seen["method"] == "POST"
    assert seen["body"] == {"points_json": ROWS}
    assert results == [{"F": 1.5}]


@pytest.mark.asyncio
async def test_data_envelope():
    def handler(request):
        return httpx.Response(200, json={"data": [{"F": 1}, {"F": 2}]})

    assert await client_for(handler).compute(ROWS) == [{"F": 1}, {"F": 2}]


@pytest.mark.asyncio
async def test_max_rows_limits_points():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=[])

    await client_for(handler, max_rows=2).compute(ROWS)
    assert seen["body"]["points_json"] == ROWS[:2]


@pytest.mark.asyncio
async def test_http_error_carries_status():
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(ComputeError) as exc_info:
        await client_for(handler).compute(ROWS)
    assert exc_info.value.status == 500
    assert "500" in exc_info.value.reason


@pytest.mark.asyncio
async def test_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ComputeError, match="Request failed"):
        await client_for(handler).compute(ROWS)


@pytest.mark.asyncio
async def test_malformed_url():
    def handler(request):
        return httpx.Response(200, json=[])

    client = ComputeClient("http://compute.test/\x00", transport=httpx.MockTransport(handler))
    with pytest.raises(ComputeError, match="Request failed"):
        await client.compute(ROWS)


@pytest.mark.asyncio
async def test_invalid_json():
    def handler(request):
        return httpx.Response(200, text="not json")

    with pytest.raises(ComputeError, match="Invalid JSON"):
        await client_for(handler).compute(ROWS)


@pytest.mark.parametrize("payload", [{"result": []}, "text", [1, 2], {"data": {"F": 1}}])
def test_parse_results_rejects_other_shapes(payload):
    with pytest.raises(ComputeError):
        parse_results(payload)
