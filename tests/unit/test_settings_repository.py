from decimal import Decimal
from unittest.mock import MagicMock

import storefront.settings.repository as settings_repo
from storefront.checkout.models import PaymentMethod

class _Resp:
    def __init__(self, data=None):
        self.data = data

def _client_with_rows(rows):
    client = MagicMock()
    chain = client.table.return_value.select.return_value.in_.return_value
    chain.execute.return_value = _Resp(data=rows)
    return client

def test_fetch_site_settings_maps_key_values(monkeypatch):
    client = _client_with_rows([
        {"setting_key": "bank_name", "setting_value": "Belfius"},
        {"setting_key": None, "setting_value": "ignored"},
    ])
    monkeypatch.setattr("storefront.infra.supabase_client.get_supabase", lambda: client)
    assert settings_repo.fetch_site_settings(["bank_name"]) == {"bank_name": "Belfius"}
    client.table.assert_called_with("site_settings")
    client.table.return_value.select.return_value.in_.assert_called_with("setting_key", ["bank_name"])

def test_fetch_site_settings_error_returns_empty(monkeypatch):
    monkeypatch.setattr("storefront.infra.supabase_client.get_supabase", lambda: (_ for _ in ()).throw(Exception("boom")))
    assert settings_repo.fetch_site_settings(["tax_rate"]) == {}
    assert settings_repo.fetch_site_settings([]) == {}

def test_tax_settings_from_site_settings(monkeypatch):
    monkeypatch.setattr(settings_repo, "fetch_site_settings", lambda keys: {"tax_enabled": "false", "tax_rate": "6"})
    tax = settings_repo.get_tax_settings()
    assert tax.enabled is False
    assert tax.rate == Decimal("6")

def test_tax_settings_defaults(monkeypatch):
    monkeypatch.setattr(settings_repo, "DEFAULT_TAX_ENABLED", True)
    monkeypatch.setattr(settings_repo, "DEFAULT_TAX_RATE", 21.0)
    monkeypatch.setattr(settings_repo, "fetch_site_settings", lambda keys: {})
    tax = settings_repo.get_tax_settings()
    assert tax.enabled is True
    assert tax.rate == Decimal("21")

    monkeypatch.setattr(settings_repo, "fetch_site_settings", lambda keys: {"tax_rate": "abc"})
    assert settings_repo.get_tax_settings().rate == Decimal("21")

def test_payment_settings_keys(monkeypatch):
    seen = {}
    def _fetch(keys):
        seen["keys"] = list(keys)
        return {"paypal_email": "@atelier"}
    monkeypatch.setattr(settings_repo, "fetch_site_settings", _fetch)
    assert settings_repo.get_payment_settings() == {"paypal_email": "@atelier"}
    assert "bank_account_number" in seen["keys"]
    assert "card_payment_url" in seen["keys"]
    assert "paypal_enabled" in seen["keys"]

def test_method_switches_defaults_and_overrides():
    assert settings_repo.enabled_payment_methods({}) == [PaymentMethod.BANK_TRANSFER, PaymentMethod.CARD]
    settings = {"bank_transfer_enabled": "false", "paypal_enabled": "true", "revolut_enabled": "TRUE", "card_enabled": ""}
    assert settings_repo.enabled_payment_methods(settings) == [PaymentMethod.CARD, PaymentMethod.PAYPAL, PaymentMethod.REVOLUT]
    assert settings_repo.is_method_enabled(PaymentMethod.BANK_TRANSFER, settings) is False

def test_method_switches_read_site_settings(monkeypatch):
    monkeypatch.setattr(settings_repo, "fetch_site_settings", lambda keys: {"card_enabled": "false"})
    assert settings_repo.is_method_enabled(PaymentMethod.CARD) is False
    assert settings_repo.enabled_payment_methods() == [PaymentMethod.BANK_TRANSFER]
