"""
Tests for the HTTP API
"""
from contextlib import asynccontextmanager

import pytest
from aiohttp import test_utils

from conftest import FakeBroker, settle
from coaster_fleet.api.server import ApiServer
from coaster_fleet.cluster.coordinator import Coordinator
from coaster_fleet.monitoring.reporter import StatusReporter
from coaster_fleet.sync.propagator import ChangePropagator


COASTER_BODY = {
    "staffCount": 16,
    "clientCount": 60000,
    "trackLength": 1800,
    "hoursFrom": "8:00",
    "hoursTo": "16:00",
}


@asynccontextmanager
async def api_client(store, broker_server, broker_config, node_id="node-a", reachable=True):
    coordinator = Coordinator(FakeBroker(broker_server, reachable=reachable), broker_config, node_id=node_id)
    propagator = ChangePropagator(store, coordinator)
    await propagator.attach()
    await coordinator.start()
    api = ApiServer(store, propagator, StatusReporter(store, coordinator), coordinator)
    try:
        async with test_utils.TestClient(test_utils.TestServer(api.app)) as client:
            yield client
    finally:
        await coordinator.stop()


async def create(client, **overrides) -> dict:
    response = await client.post("/api/coasters", json={**COASTER_BODY, **overrides})
    assert response.status == 201
    return (await response.json())["data"]


class TestCoasterRoutes:

    @pytest.mark.asyncio
    async def test_create_and_fetch(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            created = await create(client)

            response = await client.get(f"/api/coasters/{created['id']}")
            body = await response.json()

        assert response.status == 200
        assert body["data"]["trackLength"] == 1800
        # no wagons yet: default 30 seats at 1 m/s, 360 riders per wagon a day
        assert body["data"]["status"]["wagonCount"] == {"current": 0, "required": 167, "safe": 18}
        assert body["data"]["status"]["status"] == "PROBLEM"
        assert store.get_coaster(created["id"]) is not None

    @pytest.mark.asyncio
    async def test_list(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            await create(client)
            await create(client, staffCount=3)
            response = await client.get("/api/coasters")
            body = await response.json()

        assert response.status == 200
        assert sorted(c["staffCount"] for c in body["data"]) == [3, 16]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"staffCount": -1},
        {"trackLength": 0},
        {"hoursFrom": "25:00"},
        {"hoursTo": "noon"},
        {"staffCount": True},
        {"trackLength": "1800"},
    ])
    async def test_create_rejects_invalid_fields(self, store, broker_server, broker_config, overrides):
        async with api_client(store, broker_server, broker_config) as client:
            response = await client.post("/api/coasters", json={**COASTER_BODY, **overrides})
            body = await response.json()

        assert response.status == 400
        assert body["success"] is False
        assert store.list_coasters() == []

    @pytest.mark.asyncio
    async def test_create_rejects_missing_fields_and_bad_json(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            missing = await client.post("/api/coasters", json={"staffCount": 3})
            garbage = await client.post("/api/coasters", data="{not json",
                                        headers={"Content-Type": "application/json"})
            not_object = await client.post("/api/coasters", json=[1, 2])

        assert missing.status == 400
        assert garbage.status == 400
        assert not_object.status == 400

    @pytest.mark.asyncio
    async def test_unknown_coaster(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            fetched = await client.get("/api/coasters/missing")
            updated = await client.put("/api/coasters/missing", json={"staffCount": 3})
            wagons = await client.get("/api/coasters/missing/wagons")

        assert fetched.status == 404
        assert updated.status == 404
        assert wagons.status == 404

    @pytest.mark.asyncio
    async def test_update_keeps_track_length(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            created = await create(client)
            response = await client.put(f"/api/coasters/{created['id']}",
                                        json={"staffCount": 20, "trackLength": 10, "id": "other"})
            body = await response.json()

        assert response.status == 200
        assert body["data"]["id"] == created["id"]
        assert body["data"]["staffCount"] == 20
        assert body["data"]["trackLength"] == 1800

    @pytest.mark.asyncio
    async def test_update_rejects_invalid_hours(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            created = await create(client)
            response = await client.put(f"/api/coasters/{created['id']}", json={"hoursTo": "24:30"})

        assert response.status == 400
        assert store.get_coaster(created["id"]).hours_to == "16:00"


class TestWagonRoutes:

    @pytest.mark.asyncio
    async def test_add_list_and_remove(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            coaster = await create(client)
            url = f"/api/coasters/{coaster['id']}/wagons"

            added = await client.post(url, json={"seatCount": 32, "wagonSpeed": 1.2})
            wagon = (await added.json())["data"]
            listed = await (await client.get(url)).json()
            removed = await client.delete(f"{url}/{wagon['id']}")
            removed_again = await client.delete(f"{url}/{wagon['id']}")

        assert added.status == 201
        assert wagon["coasterId"] == coaster["id"]
        assert [w["id"] for w in listed["data"]] == [wagon["id"]]
        assert removed.status == 200
        assert removed_again.status == 404
        assert store.list_wagons(coaster["id"]) == []

    @pytest.mark.asyncio
    async def test_wagon_for_unknown_coaster(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            added = await client.post("/api/coasters/missing/wagons", json={"seatCount": 32, "wagonSpeed": 1.2})
            removed = await client.delete("/api/coasters/missing/wagons/w1")

        assert added.status == 404
        assert removed.status == 404

    @pytest.mark.asyncio
    async def test_invalid_wagon(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            coaster = await create(client)
            response = await client.post(f"/api/coasters/{coaster['id']}/wagons",
                                         json={"seatCount": 0, "wagonSpeed": 1.2})

        assert response.status == 400
        assert store.list_all_wagons() == []


class TestStatusRoutes:

    @pytest.mark.asyncio
    async def test_system_status(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config) as client:
            await create(client)
            response = await client.get("/api/status")
            body = await response.json()

        assert response.status == 200
        assert body["data"]["system"]["coasterCount"] == 1
        assert body["data"]["system"]["connectedNodes"] == 1
        assert body["data"]["coasters"][0]["wagonCount"]["current"] == 0

    @pytest.mark.asyncio
    async def test_health_of_standalone_node(self, store, broker_server, broker_config):
        async with api_client(store, broker_server, broker_config, reachable=False) as client:
            response = await client.get("/health")
            body = await response.json()

        assert response.status == 200
        assert body["status"] == "healthy"
        assert body["node_id"] == "node-a"
        assert body["cluster"]["is_leader"] is True
        assert body["cluster"]["state"] == "DISCONNECTED"

    @pytest.mark.asyncio
    async def test_writes_replicate_to_peer_store(self, store, store_factory, broker_server, broker_config):
        peer_store = store_factory("peer")
        peer = Coordinator(FakeBroker(broker_server), broker_config, node_id="node-b")
        await ChangePropagator(peer_store, peer).attach()
        await peer.start()

        async with api_client(store, broker_server, broker_config) as client:
            created = await create(client)
            await settle(peer)

        assert peer_store.get_coaster(created["id"]) is not None
        await peer.stop()
