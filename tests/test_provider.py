import json
from datetime import datetime

import httpx
import pytest
import respx

from conftest import load_fixture
from queuewatch.errors import MalformedSourceData, SourceUnavailable
from queuewatch.ingest.provider import PROVIDER_ENDPOINT, ProviderClient, QueueCollector

CAPTURED = datetime(2026, 1, 12, 5, 30, 0)


def _collector(session: httpx.AsyncClient, store_id=19) -> QueueCollector:
    return QueueCollector(ProviderClient(store_id=store_id, session=session), clock=lambda: CAPTURED)


@pytest.mark.asyncio
async def test_collect_builds_snapshot_for_target_store():
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(PROVIDER_ENDPOINT).mock(return_value=httpx.Response(200, text=load_fixture("provider/stores.json")))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            snapshot = await _collector(session).collect()
    assert json.loads(route.calls.last.request.content) == {"search": "禹悦汇"}
    assert snapshot is not None
    assert snapshot.timestamp == CAPTURED
    assert snapshot.total_lineup == 37
    assert dict(snapshot.queue_details) == {"type_a": 5, "type_b": 10, "type_c": 2, "type_f": 0, "type_t": 17}


@pytest.mark.asyncio
async def test_store_ids_match_as_strings():
    async with respx.mock() as router:
        router.post(PROVIDER_ENDPOINT).mock(return_value=httpx.Response(200, text=load_fixture("provider/stores.json")))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            record = await ProviderClient(store_id="18", session=session).fetch_target_store()
    assert record is not None
    assert record["lineup"] == 12


@pytest.mark.asyncio
async def test_missing_target_store_is_not_an_error():
    async with respx.mock() as router:
        router.post(PROVIDER_ENDPOINT).mock(return_value=httpx.Response(200, text=load_fixture("provider/delisted.json")))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            client = ProviderClient(session=session)
            assert await client.fetch_target_store() is None
            assert await QueueCollector(client).collect() is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, text="<html>maintenance</html>"),
        httpx.Response(200, json={"code": 0, "msg": "busy", "data": []}),
    ],
)
async def test_provider_failures_raise_source_unavailable(response):
    async with respx.mock() as router:
        router.post(PROVIDER_ENDPOINT).mock(return_value=response)
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            client = ProviderClient(session=session)
            with pytest.raises(SourceUnavailable):
                await client.fetch_target_store()
            assert await QueueCollector(client).collect() is None


@pytest.mark.asyncio
async def test_transport_errors_are_swallowed_by_collect():
    async with respx.mock() as router:
        router.post(PROVIDER_ENDPOINT).mock(side_effect=httpx.ConnectTimeout("timed out"))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            client = ProviderClient(session=session)
            with pytest.raises(SourceUnavailable):
                await client.fetch_target_store()
            assert await QueueCollector(client).collect() is None


@pytest.mark.asyncio
async def test_malformed_envelope_and_record():
    broken_record = {"code": 1, "msg": "ok", "data": [{"id": 19, "title": "Store", "lineup": "n/a"}]}
    async with respx.mock() as router:
        route = router.post(PROVIDER_ENDPOINT)
        route.mock(return_value=httpx.Response(200, json={"code": 1, "msg": "ok", "data": None}))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            client = ProviderClient(session=session)
            with pytest.raises(MalformedSourceData):
                await client.fetch_target_store()
            route.mock(return_value=httpx.Response(200, json=broken_record))
            assert await QueueCollector(client).collect() is None
