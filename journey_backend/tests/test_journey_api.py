"""
HTTP API tests.
"""

import pytest

UNKNOWN_ID = "8e0a2d4c-1111-4c2e-9f00-0123456789ab"


async def plan(client, network, origin="A", destination="C", **extra):
    payload = {
        "user_id": "traveller-1",
        "origin_rank_id": network[origin],
        "destination_rank_id": network[destination],
        **extra,
    }
    return await client.post("/v1/journeys", json=payload)


@pytest.mark.asyncio
async def test_health_and_root(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["redis"] == "up"
    assert "X-Correlation-ID" in response.headers

    response = await client.get("/")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_plan_connected_journey(client, network):
    response = await plan(client, network)

    assert response.status_code == 201
    data = response.json()
    assert data["journey_type"] == "connected"
    assert data["status"] == "planned"
    assert data["hop_count"] == 2
    assert data["total_fare"] == 25
    assert data["route_path"] == [network["A"], network["B"], network["C"]]
    assert [c["sequence_order"] for c in data["connections"]] == [1, 2]
    assert data["connections"][-1]["connection_rank_id"] is None
    assert data["metadata"]["optimize_for"] == "fare"
    assert data["version"] == 1

    fetched = await client.get(f"/v1/journeys/{data['journey_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["journey_id"] == data["journey_id"]


@pytest.mark.asyncio
async def test_plan_without_route_is_created(client, network):
    response = await plan(client, network, destination="D")

    assert response.status_code == 201
    data = response.json()
    assert data["journey_type"] == "no_route_found"
    assert data["hop_count"] == 0
    assert data["total_fare"] == 0
    assert data["connections"] == []


@pytest.mark.asyncio
async def test_plan_errors(client, network):
    response = await plan(client, network, max_hops=0)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_INPUT_001"

    response = await client.post("/v1/journeys", json={
        "user_id": "traveller-1", "origin_rank_id": network["A"], "destination_rank_id": 9999
    })
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"

    response = await client.post("/v1/journeys", json={"user_id": "traveller-1"})
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_get_journey_errors(client, network):
    response = await client.get("/v1/journeys/not-a-uuid")
    assert response.status_code == 400

    response = await client.get(f"/v1/journeys/{UNKNOWN_ID}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_lifecycle_over_http(client, network):
    journey_id = (await plan(client, network)).json()["journey_id"]
    url = f"/v1/journeys/{journey_id}/transitions"

    response = await client.post(url, json={"event": "complete"})
    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_TRANSITION_001"
    assert body["details"] == {"current_state": "planned", "requested": "complete"}

    response = await client.post(url, json={"event": "start", "expected_version": 1})
    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert response.json()["version"] == 2

    response = await client.post(url, json={"event": "cancel", "cancellation_reason": "x", "expected_version": 1})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"

    response = await client.post(url, json={"event": "complete"})
    assert response.json()["status"] == "completed"

    response = await client.post(url, json={"event": "rate", "rating": 9})
    assert response.status_code == 400

    response = await client.post(url, json={"event": "rate", "rating": 5, "feedback": "Quick"})
    assert response.status_code == 200
    assert response.json()["rating"] == 5

    response = await client.post(url, json={"event": "rate", "rating": 4})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRANSITION_002"


@pytest.mark.asyncio
async def test_cancel_needs_reason(client, network):
    journey_id = (await plan(client, network)).json()["journey_id"]

    response = await client.post(f"/v1/journeys/{journey_id}/transitions", json={"event": "cancel"})
    assert response.status_code == 400

    response = await client.post(
        f"/v1/journeys/{journey_id}/transitions",
        json={"event": "cancel", "cancellation_reason": "Found a lift"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "Found a lift"


@pytest.mark.asyncio
async def test_correct_waiting_time_over_http(client, network):
    journey_id = (await plan(client, network)).json()["journey_id"]

    response = await client.patch(
        f"/v1/journeys/{journey_id}/connections/1",
        json={"waiting_time_minutes": 10}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["connections"][0]["waiting_time_minutes"] == 10
    assert data["total_duration_minutes"] == 55

    response = await client.patch(
        f"/v1/journeys/{journey_id}/connections/2",
        json={"waiting_time_minutes": 10}
    )
    assert response.status_code == 400

    response = await client.patch(
        f"/v1/journeys/{journey_id}/connections/5",
        json={"waiting_time_minutes": 10}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_route_options(client, network):
    response = await client.get(
        "/v1/journeys/options",
        params={"origin_rank_id": network["A"], "destination_rank_id": network["C"], "optimize_for": "duration"}
    )

    assert response.status_code == 200
    options = response.json()["options"]
    assert len(options) == 1
    assert options[0]["optimize_for"] == "duration"
    assert options[0]["route_path"] == [network["A"], network["B"], network["C"]]

    response = await client.get(
        "/v1/journeys/options",
        params={"origin_rank_id": network["A"], "destination_rank_id": network["D"]}
    )
    assert response.json()["options"] == []


@pytest.mark.asyncio
async def test_list_stats_and_popular_routes(client, network):
    await plan(client, network)
    await plan(client, network)
    await plan(client, network, destination="D")

    response = await client.get("/v1/journeys", params={"user_id": "traveller-1", "page_size": 2})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert len(body["journeys"]) == 2

    response = await client.get("/v1/journeys", params={"journey_type": "no_route_found"})
    assert response.json()["total"] == 1

    response = await client.get("/v1/journeys/stats", params={"user_id": "traveller-1"})
    assert response.status_code == 200
    assert response.json()["total_journeys"] == 3
    assert response.json()["by_status"]["planned"] == 3

    response = await client.get("/v1/journeys/popular-routes")
    assert response.status_code == 200
    assert response.json()[0]["journey_count"] == 2


@pytest.mark.asyncio
async def test_network_refresh_and_summary(client, network):
    response = await client.get("/v1/network/summary")
    assert response.status_code == 200
    summary = response.json()
    assert summary["loaded"] is True
    assert summary["rank_count"] == 4
    assert summary["edge_count"] == 2

    response = await client.post("/v1/network/refresh")
    assert response.status_code == 200
    assert response.json()["version"] == "1"
    assert response.json()["summary"]["version"] == "1"


@pytest.mark.asyncio
async def test_non_finite_waiting_time_is_rejected(client, network):
    journey_id = (await plan(client, network)).json()["journey_id"]

    for token in ("Infinity", "NaN"):
        response = await client.patch(
            f"/v1/journeys/{journey_id}/connections/1",
            content='{"waiting_time_minutes": %s}' % token,
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_INPUT_001"

    fetched = (await client.get(f"/v1/journeys/{journey_id}")).json()
    assert fetched["total_duration_minutes"] == 45
    assert fetched["version"] == 1
