"""
Tests for the run control HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from crawlqa.core import RunRegistry
from crawlqa.oracle import SystematicOracle
from crawlqa.runner import RunController
from crawlqa.web import create_app

HOME = "https://shop.test/"


@pytest.fixture
def client(site, store, config):
    site.add(HOME, title="Shop",
             elements=[{"selectors": ["#go"], "id": "go", "href": "/next", "text": "Next"}])
    site.add("https://shop.test/next", title="Next")
    config.execution.engines = ["chromium"]
    registry = RunRegistry()

    def controller_factory():
        return RunController(store, config, oracle=SystematicOracle(), registry=registry,
                             session_factory=site.session_factory())

    app = create_app(store, config, registry, controller_factory)
    with TestClient(app) as test_client:
        yield test_client


def test_run_to_completion(client):
    response = client.post("/runs", json={"target_url": HOME, "execute": True, "wait": True})

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "completed"
    assert (body["pages_discovered"], body["test_cases"], body["passed"]) == (2, 3, 3)

    status = client.get(f"/runs/{body['id']}").json()
    assert status["status"] == "completed"
    assert status["active"] is False
    assert status["progress"] is not None


def test_discover_then_execute_selected_cases(client, store):
    run_id = client.post("/runs", json={"target_url": HOME, "wait": True}).json()["id"]

    assert client.get(f"/runs/{run_id}").json()["status"] == "ready_for_execution"
    first = store.list_test_cases(run_id)[0]

    response = client.post(f"/runs/{run_id}/execute", json={"test_case_ids": [first.id], "wait": True})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert (body["test_cases"], body["passed"]) == (3, 1)


def test_illegal_transition_is_conflict(client):
    run_id = client.post("/runs", json={"target_url": HOME, "wait": True}).json()["id"]

    response = client.post(f"/runs/{run_id}/pause")

    assert response.status_code == 409
    assert "ready_for_execution" in response.json()["detail"]


def test_finished_run_no_longer_accepts_commands(client):
    run_id = client.post("/runs", json={"target_url": HOME, "execute": True, "wait": True}).json()["id"]

    assert client.post(f"/runs/{run_id}/cancel").status_code == 409
    assert client.post(f"/runs/{run_id}/execute", json={"wait": True}).status_code == 409


def test_unknown_run_is_not_found(client):
    assert client.get("/runs/999").status_code == 404
    assert client.post("/runs/999/resume").status_code == 404


@pytest.mark.parametrize("payload", [{"target_url": "ftp://shop.test/"}, {"target_url": "shop"}, {}])
def test_bad_target_is_rejected(client, payload):
    assert client.post("/runs", json=payload).status_code == 422


def test_failed_run_reports_error(client, site):
    site.add(HOME, status=503)

    body = client.post("/runs", json={"target_url": HOME, "wait": True}).json()

    assert body["status"] == "failed"
    assert "HTTP 503" in body["error_message"]
