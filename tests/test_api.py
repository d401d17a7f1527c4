"""Tests for the HTTP surface (FastAPI routes, lifespan wiring, error mapping)."""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from main import create_app
from conftest import BASE_URL


def _wait_for_terminal(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/crawl/{job_id}").json()
        if body["status"] != "active":
            return body
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} still active after {timeout}s")


@pytest.fixture
def client(hello_site):
    app = create_app(Settings(base_url=BASE_URL, job_workers=2), transport=hello_site.transport)
    with TestClient(app) as c:
        yield c


class TestCrawlEndpoints:
    """Create / get / list crawl jobs."""

    def test_home(self, client):
        body = client.get("/").json()
        assert body["status"] == "ok"
        assert body["workers"] == "running"

    def test_home_reports_stopped_workers(self, client):
        runner = client.app.state.runner
        runner._closing = True
        try:
            assert client.get("/").json()["workers"] == "stopped"
        finally:
            runner._closing = False

    def test_create_then_poll_until_done(self, client):
        resp = client.post("/crawl", json={"keyword": "hello"})
        assert resp.status_code == 200
        job_id = resp.json()["id"]
        assert len(job_id) == 8

        body = _wait_for_terminal(client, job_id)
        assert body == {"id": job_id, "status": "done", "urls": ["http://site.test"]}

    def test_keyword_not_found(self, client):
        job_id = client.post("/crawl", json={"keyword": "missing"}).json()["id"]
        body = _wait_for_terminal(client, job_id)
        assert body["status"] == "done"
        assert body["urls"] == []

    def test_list_includes_every_job(self, client):
        ids = {client.post("/crawl", json={"keyword": "hello"}).json()["id"] for _ in range(3)}
        for job_id in ids:
            _wait_for_terminal(client, job_id)
        listing = client.get("/crawl").json()
        assert {item["id"] for item in listing} == ids
        assert all(item["status"] == "done" for item in listing)

    def test_unknown_id_is_404(self, client):
        resp = client.get("/crawl/ABCDEFGH")
        assert resp.status_code == 404
        assert "ABCDEFGH" in resp.json()["detail"]


class TestValidation:
    """Malformed input is rejected before any job is created."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"keyword": "abc"},
            {"keyword": "x" * 33},
            {"keyword": "    "},
            {},
        ],
    )
    def test_bad_keyword(self, client, payload):
        assert client.post("/crawl", json=payload).status_code == 422
        assert client.get("/crawl").json() == []

    @pytest.mark.parametrize("job_id", ["ABC", "ABCDEFGHI"])
    def test_bad_id_length(self, client, job_id):
        assert client.get(f"/crawl/{job_id}").status_code == 422


class TestErrors:
    """Configuration and unexpected errors map to 500 responses."""

    def test_missing_base_url(self, hello_site):
        app = create_app(Settings(base_url=None), transport=hello_site.transport)
        with TestClient(app) as c:
            resp = c.post("/crawl", json={"keyword": "hello"})
            assert resp.status_code == 500
            assert "BASE_URL" in resp.json()["detail"]
            assert c.get("/crawl").json() == []

    def test_unexpected_error_is_generic_500(self, hello_site, monkeypatch):
        app = create_app(Settings(base_url=BASE_URL), transport=hello_site.transport)
        with TestClient(app, raise_server_exceptions=False) as c:
            def boom():
                raise RuntimeError("store exploded")

            monkeypatch.setattr(app.state.store, "find_all", boom)
            resp = c.get("/crawl")
            assert resp.status_code == 500
            assert resp.json() == {"detail": "An unexpected server error occurred."}
