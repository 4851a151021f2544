"""HTTP surface tests against the FastAPI app with a temporary database."""

from __future__ import annotations

import httpx
import pytest

from nodeflow.core.dependencies import get_db_session, get_wait_tracker, get_workflow_runner
from nodeflow.main import create_app
from nodeflow.services.wait_tracker import WaitTracker

WORKFLOW = {
    "name": "Greeter",
    "nodes": [
        {"name": "Hook", "type": "Webhook", "parameters": {"responseMode": "lastNode"}},
        {
            "name": "Greet",
            "type": "Set",
            "parameters": {"fields": [{"name": "greeting", "value": "=Hi {{ $json.body.name }}"}]},
        },
    ],
    "connections": [{"source_node": "Hook", "target_node": "Greet"}],
}


@pytest.fixture
async def client(runner, session_factory):
    app = create_app()

    async def db_session():
        async with session_factory() as session:
            yield session

    wait_tracker = WaitTracker(runner)
    app.dependency_overrides[get_db_session] = db_session
    app.dependency_overrides[get_workflow_runner] = lambda: runner
    app.dependency_overrides[get_wait_tracker] = lambda: wait_tracker

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def create_workflow(client, definition=WORKFLOW) -> str:
    response = await client.post("/api/workflows", json=definition)
    assert response.status_code == 201
    return response.json()["id"]


async def test_workflow_crud(client):
    workflow_id = await create_workflow(client)

    listed = (await client.get("/api/workflows")).json()
    assert [w["id"] for w in listed] == [workflow_id]
    assert listed[0]["node_count"] == 2

    detail = (await client.get(f"/api/workflows/{workflow_id}")).json()
    assert detail["webhook_url"] == f"/webhook/{workflow_id}"

    renamed = await client.put(f"/api/workflows/{workflow_id}", json={"name": "Renamed"})
    assert renamed.json()["name"] == "Renamed"

    assert (await client.delete(f"/api/workflows/{workflow_id}")).status_code == 200
    assert (await client.get(f"/api/workflows/{workflow_id}")).status_code == 404


async def test_invalid_workflow_is_rejected(client):
    definition = {**WORKFLOW, "connections": [{"source_node": "Hook", "target_node": "Missing"}]}

    response = await client.post("/api/workflows", json=definition)

    assert response.status_code == 400


async def test_webhook_needs_an_active_workflow(client):
    workflow_id = await create_workflow(client)

    inactive = await client.post(f"/webhook/{workflow_id}", json={"name": "Ada"})
    assert inactive.status_code == 400

    toggled = await client.patch(f"/api/workflows/{workflow_id}/active", json={"active": True})
    assert toggled.json() == {"id": workflow_id, "active": True}

    response = await client.post(f"/webhook/{workflow_id}", json={"name": "Ada"})
    assert response.status_code == 200
    assert response.json()[0]["greeting"] == "Hi Ada"


async def test_unknown_webhook_is_404(client):
    response = await client.post("/webhook/wf_missing", json={})

    assert response.status_code == 404


async def test_run_adhoc_and_inspect_the_execution(client):
    adhoc = {
        "workflow": {
            "name": "Adhoc",
            "nodes": [
                {"name": "Start", "type": "Start"},
                {"name": "Set", "type": "Set", "parameters": {"fields": [{"name": "x", "value": 1}]}},
            ],
            "connections": [{"source_node": "Start", "target_node": "Set"}],
        },
        "run": {"input_data": [{"n": 1}]},
    }

    response = await client.post("/api/workflows/run-adhoc", json=adhoc)

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "success"
    assert body["last_node_executed"] == "Set"

    detail = (await client.get(f"/api/executions/{body['execution_id']}")).json()
    assert detail["workflow_name"] == "Adhoc"
    assert detail["finished"] is True

    listed = (await client.get("/api/executions", params={"status": "success"})).json()
    assert [e["id"] for e in listed] == [body["execution_id"]]

    assert (await client.delete(f"/api/executions/{body['execution_id']}")).status_code == 200
    assert (await client.get(f"/api/executions/{body['execution_id']}")).status_code == 404


async def test_retry_of_successful_execution_is_400(client):
    adhoc = {"workflow": {"name": "Once", "nodes": [{"name": "Start", "type": "Start"}]}}
    execution_id = (await client.post("/api/workflows/run-adhoc", json=adhoc)).json()["execution_id"]

    response = await client.post(f"/api/executions/{execution_id}/retry")

    assert response.status_code == 400


async def test_stop_unknown_execution_is_404(client):
    response = await client.post("/api/executions/exec_missing/stop")

    assert response.status_code == 404


async def test_node_listing(client):
    nodes = (await client.get("/api/nodes")).json()
    assert "Set" in {n["type"] for n in nodes}

    merge = (await client.get("/api/nodes/Merge")).json()
    assert merge["inputCount"] == 2

    triggers = (await client.get("/api/nodes", params={"group": "trigger"})).json()
    assert "Webhook" in {n["type"] for n in triggers}

    assert (await client.get("/api/nodes/Nope")).status_code == 404


async def test_health_reports_active_executions(client):
    response = await client.get("/health")

    assert response.json()["status"] == "healthy"
