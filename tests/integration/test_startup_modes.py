"""Integration tests for startup behaviour per admin mode.

The lifespan builds RelayState from the process environment when no state is
injected; relay.run.main() builds it before uvicorn starts so strict mode can
exit with status 1.
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from starlette.testclient import TestClient

from relay.auth.credentials import Provenance
from relay.config import AdminConfig, AdminMode, Config
from relay.constants import DEFAULT_FALLBACK_TOKEN
from relay.main import create_app
from relay.state import build_state

ENV_TOKEN = "environment-admin-token-01"


def _config(mode: AdminMode, **admin: Any) -> Config:
    return Config(admin=AdminConfig(mode=mode, **admin))


@pytest.fixture(autouse=True)
def mock_http_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "relay.main.create_http_client",
        lambda upstream=None: httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200))
        ),
    )


# ─── build_state() ────────────────────────────────────────────────────────────


class TestBuildState:
    def test_strict_without_token_exits_1(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_state(_config(AdminMode.STRICT), environ={})
        assert exc_info.value.code == 1
        assert "ADMIN_TOKEN" in capsys.readouterr().err

    def test_strict_with_token(self) -> None:
        state = build_state(_config(AdminMode.STRICT), environ={"ADMIN_TOKEN": ENV_TOKEN})
        assert state.credentials.current().provenance is Provenance.ENVIRONMENT
        assert state.target.get() is None

    def test_upstream_timeout_from_config(self) -> None:
        config = _config(AdminMode.DEGRADED)
        config.upstream.timeout_s = 2.5
        state = build_state(config, environ={})
        assert state.upstream_timeout.read == 2.5


# ─── Lifespan ─────────────────────────────────────────────────────────────────


class TestLifespan:
    def test_degraded_starts_and_fails_closed(self) -> None:
        app = create_app(config=_config(AdminMode.DEGRADED))
        with TestClient(app) as client:
            assert client.get("/health").json()["status"] == "degraded"
            assert client.get("/api/info").json()["adminConfigured"] is False
            assert client.get("/p/anything").status_code == 503
            response = client.post(
                "/api/config",
                json={"target": "https://example.com"},
                headers={"x-admin-token": DEFAULT_FALLBACK_TOKEN},
            )
            assert response.status_code == 503

    def test_env_token_used(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ADMIN_TOKEN", ENV_TOKEN)
        app = create_app(config=_config(AdminMode.STRICT))
        with TestClient(app) as client:
            assert client.get("/api/status", headers={"x-admin-token": ENV_TOKEN}).status_code == 200
            assert app.state.relay.credentials.current().provenance is Provenance.ENVIRONMENT

    def test_file_fallback_uses_default_token(self) -> None:
        app = create_app(config=_config(AdminMode.FILE_FALLBACK))
        with TestClient(app) as client:
            response = client.get("/api/status", headers={"x-admin-token": DEFAULT_FALLBACK_TOKEN})
            assert response.status_code == 200
            assert app.state.relay.credentials.current().provenance is Provenance.FILE_FALLBACK

    def test_setup_survives_restart(self, tmp_path) -> None:
        config = _config(AdminMode.FILE_FALLBACK, fallback_token="")
        token = "persisted-across-restart-01"

        with TestClient(create_app(config=config)) as client:
            assert client.post("/api/setup", json={"newToken": token}).status_code == 200
        assert (tmp_path / ".env").is_file()

        restarted = create_app(config=config)
        with TestClient(restarted) as client:
            assert client.get("/api/status", headers={"x-admin-token": token}).status_code == 200
            assert restarted.state.relay.credentials.current().provenance is Provenance.ENVIRONMENT

    def test_runtime_override_lost_on_restart(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ADMIN_TOKEN", ENV_TOKEN)
        config = _config(AdminMode.STRICT)
        new_token = "runtime-only-token-000001"

        with TestClient(create_app(config=config)) as client:
            response = client.post(
                "/api/change-admin-token",
                json={"newToken": new_token},
                headers={"x-admin-token": ENV_TOKEN},
            )
            assert response.status_code == 200

        with TestClient(create_app(config=config)) as client:
            assert client.get("/api/status", headers={"x-admin-token": ENV_TOKEN}).status_code == 200
            assert client.get("/api/status", headers={"x-admin-token": new_token}).status_code == 403

    def test_health_ready_flag(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ADMIN_TOKEN", ENV_TOKEN)
        app = create_app(config=_config(AdminMode.STRICT))
        assert app.state.ready is False
        with TestClient(app) as client:
            assert app.state.ready is True
            assert client.get("/health").json() == {
                "status": "ok",
                "adminConfigured": True,
                "configuredTarget": False,
            }
        assert app.state.ready is False


# ─── relay.run.main() ─────────────────────────────────────────────────────────


class TestRunEntryPoint:
    def test_strict_without_token_exits_before_serving(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import relay.run

        calls: list[Any] = []
        monkeypatch.setattr(relay.run.uvicorn, "run", lambda *a, **kw: calls.append((a, kw)))
        with pytest.raises(SystemExit) as exc_info:
            relay.run.main()
        assert exc_info.value.code == 1
        assert calls == []

    def test_serves_on_configured_port(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import relay.run

        monkeypatch.setenv("ADMIN_TOKEN", ENV_TOKEN)
        monkeypatch.setenv("PORT", "9191")
        calls: list[Any] = []
        monkeypatch.setattr(relay.run.uvicorn, "run", lambda *a, **kw: calls.append((a, kw)))

        relay.run.main()

        assert len(calls) == 1
        _, kwargs = calls[0]
        assert kwargs["port"] == 9191
        assert kwargs["host"] == "0.0.0.0"

    def test_config_loaded_once(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import relay.main
        import relay.run
        from relay.config import load_config

        loads: list[Any] = []

        def counting_load(*args: Any, **kwargs: Any) -> Config:
            loads.append(args)
            return load_config(*args, **kwargs)

        monkeypatch.setenv("ADMIN_TOKEN", ENV_TOKEN)
        monkeypatch.setattr(relay.run, "load_config", counting_load)
        monkeypatch.setattr(relay.main, "load_config", counting_load)
        monkeypatch.setattr(relay.run.uvicorn, "run", lambda *a, **kw: None)

        relay.run.main()

        assert len(loads) == 1


class TestModuleLevelApp:
    def test_built_on_first_access(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import relay.main
        from relay.config import load_config

        loads: list[Any] = []

        def counting_load(*args: Any, **kwargs: Any) -> Config:
            loads.append(args)
            return load_config(*args, **kwargs)

        monkeypatch.setattr(relay.main, "load_config", counting_load)
        module_globals = vars(relay.main)
        module_globals.pop("app", None)
        try:
            first = relay.main.app
            second = relay.main.app
        finally:
            module_globals.pop("app", None)

        assert first is second
        assert first.state.config.server.port == 8080
        assert len(loads) == 1

    def test_unknown_attribute_raises(self) -> None:
        import relay.main

        with pytest.raises(AttributeError):
            relay.main.not_an_attribute  # noqa: B018
