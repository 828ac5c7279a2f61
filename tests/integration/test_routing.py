"""Integration tests for unmatched routes, the static UI, CORS and error rendering."""

from __future__ import annotations

import httpx
import pytest
from starlette.testclient import TestClient

from relay.auth.credentials import CredentialStore
from relay.config import Config
from relay.main import create_app
from relay.state import RelayState


@pytest.fixture
def client(active_store: CredentialStore, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        "relay.main.create_http_client",
        lambda upstream=None: httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200))
        ),
    )
    state = RelayState(config=Config.defaults(), credentials=active_store)
    with TestClient(create_app(config=state.config, state=state)) as test_client:
        yield test_client


# ─── Not found ────────────────────────────────────────────────────────────────


class TestNotFound:
    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("GET", "/nope"),
            ("POST", "/nope"),
            ("DELETE", "/api/unknown"),
            ("GET", "/docs"),
            ("POST", "/api/info"),
            ("GET", "/api/setup"),
            ("PUT", "/"),
            ("GET", "/../../etc/passwd"),
        ],
    )
    def test_unmatched_404(self, client: TestClient, method: str, path: str) -> None:
        response = client.request(method, path)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_prefix_lookalike_not_forwarded(self, client: TestClient) -> None:
        response = client.get("/proxy/x")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


# ─── Static UI ────────────────────────────────────────────────────────────────


class TestStaticUi:
    def test_index_served(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert b"/api/info" in response.content

    def test_index_by_name(self, client: TestClient) -> None:
        assert client.get("/index.html").status_code == 200


# ─── Request id + CORS ────────────────────────────────────────────────────────


class TestResponseHeaders:
    def test_request_id_on_every_response(self, client: TestClient) -> None:
        for path in ("/api/info", "/nope", "/health"):
            response = client.get(path)
            assert len(response.headers["x-request-id"]) == 26

    def test_cors_preflight(self, client: TestClient) -> None:
        response = client.options(
            "/api/config",
            headers={
                "origin": "https://ui.example.com",
                "access-control-request-method": "POST",
                "access-control-request-headers": "x-admin-token, content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_cors_simple_request(self, client: TestClient) -> None:
        response = client.get("/api/info", headers={"origin": "https://ui.example.com"})
        assert response.headers["access-control-allow-origin"] == "*"
