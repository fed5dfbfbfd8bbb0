import types
import sys
from typing import Optional
from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from storefront.utils.security import (
    get_current_user,
    get_optional_user,
    require_user,
    COOKIE_NAME,
)

def _make_app():
    app = FastAPI()

    @app.get("/me")
    def me(user=Depends(get_current_user)):
        return user

    @app.get("/invoice")
    def invoice(user=Depends(require_user)):
        return {"id": user["id"]}

    @app.get("/checkout")
    def checkout(user: Optional[dict] = Depends(get_optional_user)):
        return {"guest": user is None, "id": (user or {}).get("id")}

    return app

def _auth_service(monkeypatch, resolver):
    monkeypatch.setitem(sys.modules, "storefront.auth.service", types.SimpleNamespace(get_user_from_token=resolver))

def test_get_current_user_bearer_success(monkeypatch):
    _auth_service(monkeypatch, lambda token: {"id": "u1", "email": "a@b", "token": token})
    client = TestClient(_make_app())

    r = client.get("/me", headers={"Authorization": "Bearer tok-123"})
    assert r.status_code == 200
    assert r.json() == {"id": "u1", "email": "a@b", "token": "tok-123"}

def test_get_current_user_cookie_success(monkeypatch):
    _auth_service(monkeypatch, lambda token: {"id": "u2", "token": token})
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-token")

    r = client.get("/me")
    assert r.status_code == 200
    assert r.json()["token"] == "cookie-token"

def test_bearer_has_priority_over_cookie(monkeypatch):
    _auth_service(monkeypatch, lambda token: {"id": token})
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-token")

    assert client.get("/me", headers={"Authorization": "Bearer header-token"}).json()["id"] == "header-token"

def test_get_current_user_missing_token_401(monkeypatch):
    _auth_service(monkeypatch, lambda token: {"id": "u1"})
    client = TestClient(_make_app())

    r = client.get("/me")
    assert r.status_code == 401
    assert "Non authentifié" in r.text

def test_get_current_user_missing_id_401(monkeypatch):
    _auth_service(monkeypatch, lambda token: {"email": "x@y"})
    client = TestClient(_make_app())

    r = client.get("/invoice", headers={"Authorization": "Bearer tok"})
    assert r.status_code == 401
    assert "Session expirée" in r.text

def test_optional_user_guest_and_invalid_token(monkeypatch):
    def _boom(token):
        raise RuntimeError("jwt expired")
    _auth_service(monkeypatch, _boom)
    client = TestClient(_make_app())

    assert client.get("/checkout").json() == {"guest": True, "id": None}
    # Token expiré: le checkout continue en invité
    r = client.get("/checkout", headers={"Authorization": "Bearer expired"})
    assert r.status_code == 200
    assert r.json()["guest"] is True

def test_optional_user_authenticated(monkeypatch):
    _auth_service(monkeypatch, lambda token: {"id": "u1"})
    client = TestClient(_make_app())

    assert client.get("/checkout", headers={"Authorization": "Bearer tok"}).json() == {"guest": False, "id": "u1"}
