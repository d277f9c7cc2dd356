"""
Tests for queue API endpoints.
"""
import pytest

from counter_queue.main import app


@pytest.mark.asyncio
async def test_claim_returns_201_envelope(client, make_counter):
    counter = await make_counter(name="Teller")

    response = await client.post("/api/v1/queues/claim")

    assert response.status_code == 201
    body = response.json()
    assert body["status"] is True
    assert body["message"] == "Queue claimed successfully"
    assert body["data"]["counterId"] == counter.id
    assert body["data"]["queueNumber"] == 1
    assert "error" not in body


@pytest.mark.asyncio
async def test_claim_without_counters_is_404_envelope(client):
    response = await client.post("/api/v1/queues/claim")

    assert response.status_code == 404
    assert response.json() == {
        "status": False,
        "message": "No active counters found",
        "error": {"message": "No active counters found"},
    }


@pytest.mark.asyncio
async def test_claim_publishes_to_app_broker(client, make_counter):
    await make_counter()
    subscription = await app.state.event_broker.subscribe("queue_updates")
    try:
        await client.post("/api/v1/queues/claim")
        assert '"event":"queue_called"' in await subscription.get(timeout=0.5)
    finally:
        await subscription.close()


@pytest.mark.asyncio
async def test_release_accepts_camel_case_body(client, make_counter):
    counter = await make_counter()
    await client.post("/api/v1/queues/claim")
    await client.post("/api/v1/queues/claim")

    response = await client.post("/api/v1/queues/release", json={"queueNumber": 2, "counterId": counter.id})

    assert response.status_code == 200
    assert response.json()["message"] == "Queue released successfully"


@pytest.mark.asyncio
async def test_release_invalid_number_reports_field(client, make_counter):
    counter = await make_counter()

    response = await client.post("/api/v1/queues/release", json={"queueNumber": 0, "counterId": counter.id})

    assert response.status_code == 400
    assert response.json()["error"] == {"message": "Invalid queue number", "field": "queueNumber"}


@pytest.mark.asyncio
async def test_release_missing_field_is_400(client):
    response = await client.post("/api/v1/queues/release", json={"counterId": 1})

    assert response.status_code == 400
    body = response.json()
    assert body["status"] is False
    assert body["error"]["field"] == "queueNumber"


@pytest.mark.asyncio
async def test_current_and_metrics_are_public(client, make_counter):
    await make_counter(name="Teller")
    await client.post("/api/v1/queues/claim")

    current = await client.get("/api/v1/queues/current")
    metrics = await client.get("/api/v1/queues/metrics")

    assert current.status_code == 200
    assert current.json()["data"][0]["calledNumber"] == 1
    assert metrics.status_code == 200
    assert metrics.json()["data"]["called"] == 1


@pytest.mark.asyncio
async def test_current_include_inactive_query(client, make_counter):
    await make_counter(name="Open")
    await make_counter(name="Shut", is_active=False)

    default = await client.get("/api/v1/queues/current")
    everything = await client.get("/api/v1/queues/current", params={"includeInactive": "true"})

    assert len(default.json()["data"]) == 1
    assert len(everything.json()["data"]) == 2


@pytest.mark.asyncio
async def test_search(client, make_counter):
    await make_counter(name="Pharmacy")
    await client.post("/api/v1/queues/claim")

    response = await client.get("/api/v1/queues/search", params={"q": "pharm"})

    assert response.status_code == 200
    assert response.json()["data"][0]["counterName"] == "Pharmacy"


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["9" * 30, "²"])
async def test_search_with_unusable_number_still_answers(client, make_counter, query):
    await make_counter(name="Pharmacy")
    await client.post("/api/v1/queues/claim")

    response = await client.get("/api/v1/queues/search", params={"q": query})

    assert response.status_code == 200
    assert response.json()["status"] is True
    assert response.json()["data"] == []


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/v1/queues/next", "/api/v1/queues/skip", "/api/v1/queues/reset"])
async def test_admin_actions_require_token(client, path):
    response = await client.post(path, json={"counterId": 1})

    assert response.status_code == 401
    assert response.json()["status"] is False


@pytest.mark.asyncio
async def test_admin_actions_reject_bad_token(client):
    response = await client.post(
        "/api/v1/queues/next",
        json={"counterId": 1},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Could not validate credentials"


@pytest.mark.asyncio
async def test_next_and_skip_flow(client, make_counter, admin_headers):
    counter = await make_counter()
    for _ in range(3):
        await client.post("/api/v1/queues/claim")

    advanced = await client.post("/api/v1/queues/next", json={"counterId": counter.id}, headers=admin_headers)
    skipped = await client.post("/api/v1/queues/skip", json={"counterId": counter.id}, headers=admin_headers)
    drained = await client.post("/api/v1/queues/skip", json={"counterId": counter.id}, headers=admin_headers)
    empty = await client.post("/api/v1/queues/skip", json={"counterId": counter.id}, headers=admin_headers)

    assert advanced.json()["data"]["queueNumber"] == 2
    assert skipped.json()["data"]["queueNumber"] == 3
    assert drained.json()["message"] == "Queue skipped successfully, no more queues to call"
    assert drained.json()["data"]["queueNumber"] is None
    assert empty.status_code == 404


@pytest.mark.asyncio
async def test_reset_without_body_resets_all(client, make_counter, admin_headers):
    await make_counter()
    await client.post("/api/v1/queues/claim")

    response = await client.post("/api/v1/queues/reset", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "All active queues reset successfully"


@pytest.mark.asyncio
async def test_reset_single_counter(client, make_counter, admin_headers):
    counter = await make_counter(name="Teller")
    await client.post("/api/v1/queues/claim")

    response = await client.post("/api/v1/queues/reset", json={"counterId": counter.id}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Queue for counter Teller reset successfully"
