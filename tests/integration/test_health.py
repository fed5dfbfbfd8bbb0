from unittest.mock import MagicMock

def test_health_root(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}

def test_health_checkout_store(client):
    r = client.get("/health/checkout")
    assert r.status_code == 200
    data = r.json()
    assert data["session_store"] == {"ok": True}
    # DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1
    assert data["rate_limit"]["enabled"] is False

def test_health_supabase_tables(client, monkeypatch):
    client_mock = MagicMock()
    client_mock.table.return_value.select.return_value.limit.return_value.execute.return_value = MagicMock(data=[{"id": 1}])
    monkeypatch.setattr("storefront.infra.supabase_client.get_service_supabase", lambda: client_mock)
    monkeypatch.setattr("storefront.health.service.SUPABASE_URL", "")

    data = client.get("/health/supabase").json()
    assert data["connect_ok"] is True
    assert data["tables"]["orders"] == {"ok": True, "rows": 1}
    assert set(data["tables"]) >= {"orders", "order_items", "invoices", "coupons"}

def test_security_headers(client):
    r = client.get("/health")
    assert r.headers["X-Frame-Options"] == "DENY"
    assert "default-src 'self'" in r.headers["Content-Security-Policy"]
