import sys
import time
import types
import pytest
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.testclient import TestClient
from storefront.utils import rate_limit as rate_limit_mod
from storefront.utils.rate_limit import optional_rate_limit, rate_limit_health_info


def _make_app(times=2, seconds=60):
    app = FastAPI()

    @app.post("/summary", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def summary():
        return {"ok": True}

    @app.post("/method", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def method():
        return {"ok": True}

    @app.get("/rl_info")
    def rl_info(request: Request):
        return rate_limit_health_info(request)

    return app


def test_rate_limit_fallback_blocks_after_limit(monkeypatch):
    app = _make_app(times=2, seconds=60)
    client = TestClient(app)
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")

    assert client.post("/summary").status_code == 200
    assert client.post("/summary").status_code == 200
    r3 = client.post("/summary")
    assert r3.status_code == 429
    assert "Trop de requêtes" in r3.text


def test_rate_limit_is_per_path_and_token(monkeypatch):
    app = _make_app(times=2, seconds=60)
    client = TestClient(app)
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")

    # Checkout invité: clé IP + path
    assert client.post("/summary").status_code == 200
    assert client.post("/summary").status_code == 200
    assert client.post("/summary").status_code == 429

    # path différent: indépendant
    assert client.post("/method").status_code == 200

    # Bearer: clé dédiée (hash du token), indépendante de l'IP
    headers = {"Authorization": "Bearer tok-1"}
    assert client.post("/summary", headers=headers).status_code == 200
    assert client.post("/summary", headers=headers).status_code == 200
    assert client.post("/summary", headers=headers).status_code == 429


def test_rate_limit_resets_after_window_sleep(monkeypatch):
    app = _make_app(times=2, seconds=1)
    client = TestClient(app)
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")

    assert client.post("/summary").status_code == 200
    assert client.post("/summary").status_code == 200
    assert client.post("/summary").status_code == 429

    # Attendre > 1s pour vider la fenêtre
    time.sleep(1.1)
    assert client.post("/summary").status_code == 200


def test_rate_limit_disabled_flag_bypasses_limit(monkeypatch):
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)
    app = _make_app(times=2, seconds=60)
    client = TestClient(app)
    app.state.rate_limit_enabled = False

    for _ in range(4):
        assert client.post("/summary").status_code == 200


def test_rate_limiter_429_is_propagated(monkeypatch):
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)

    class RateLimiter:
        def __init__(self, times, seconds, identifier):
            pass

        async def __call__(self, request):
            raise HTTPException(status_code=429, detail="Too Many Requests")

    dummy = types.ModuleType("fastapi_limiter.depends")
    dummy.RateLimiter = RateLimiter
    monkeypatch.setitem(sys.modules, "fastapi_limiter.depends", dummy)

    app = _make_app()
    client = TestClient(app)
    assert client.post("/summary").status_code == 429


def test_rate_limit_health_info(monkeypatch):
    app = _make_app()
    client = TestClient(app)

    # Limiteur non initialisé -> ready False, backend None
    class NotReady:
        redis = None
    not_ready = types.ModuleType("fastapi_limiter")
    not_ready.FastAPILimiter = NotReady
    monkeypatch.setitem(sys.modules, "fastapi_limiter", not_ready)

    app.state.rate_limit_enabled = True
    info = client.get("/rl_info").json()
    assert info["enabled"] is True
    assert info["ready"] is False
    assert info["backend"] is None

    # Faux module fastapi_limiter avec redis prêt
    class Ready:
        redis = object()
    ready = types.ModuleType("fastapi_limiter")
    ready.FastAPILimiter = Ready
    monkeypatch.setitem(sys.modules, "fastapi_limiter", ready)
    monkeypatch.setattr(rate_limit_mod, "RATE_LIMIT_REDIS_URL", "redis://localhost:6379/0")

    info2 = client.get("/rl_info").json()
    assert info2["ready"] is True
    assert info2["backend"] == "redis"
    assert info2["redis"] == {"scheme": "redis", "host": "localhost", "port": 6379}
