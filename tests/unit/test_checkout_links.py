from decimal import Decimal

import pytest

from storefront.checkout import links as links_mod
from storefront.checkout.links import PaymentLinkBuilder
from storefront.checkout.models import PaymentMethod

@pytest.fixture(autouse=True)
def _no_env_fallbacks(monkeypatch):
    monkeypatch.setattr(links_mod, "CARD_PAYMENT_URL", "")
    monkeypatch.setattr(links_mod, "PAYPAL_ME_ID", "")
    monkeypatch.setattr(links_mod, "REVOLUT_PAYMENT_URL", "")

def test_card_link_carries_reference_and_amount():
    b = PaymentLinkBuilder(lambda: {"card_payment_url": "https://pay.example.com/c?shop=1"})
    assert b.build(PaymentMethod.CARD, Decimal("31.28"), "482KXM") == "https://pay.example.com/c?shop=1&reference=482KXM&amount=31.28"

def test_paypal_link_strips_at_sign():
    b = PaymentLinkBuilder(lambda: {"paypal_email": "@atelier"})
    assert b.build(PaymentMethod.PAYPAL, Decimal("10"), "482KXM") == "https://www.paypal.com/paypalme/atelier/10.00EUR"

def test_env_fallback(monkeypatch):
    monkeypatch.setattr(links_mod, "REVOLUT_PAYMENT_URL", "https://revolut.me/env")
    assert PaymentLinkBuilder(lambda: {}).build(PaymentMethod.REVOLUT, Decimal("1"), "x") == "https://revolut.me/env"

def test_missing_configuration_returns_none():
    b = PaymentLinkBuilder(lambda: {})
    for method in (PaymentMethod.CARD, PaymentMethod.PAYPAL, PaymentMethod.REVOLUT):
        assert b.build(method, Decimal("10"), "482KXM") is None

def test_bank_transfer_has_no_link_but_bank_details():
    b = PaymentLinkBuilder(lambda: {"bank_account_number": "BE71", "bank_name": "Belfius"})
    assert b.build(PaymentMethod.BANK_TRANSFER, Decimal("10"), "482KXM") is None
    details = b.bank_details()
    assert details["bank_account_number"] == "BE71"
    assert details["bank_instructions"] == ""

def test_default_loader_reads_site_settings(monkeypatch):
    monkeypatch.setattr("storefront.settings.repository.get_payment_settings", lambda: {"revolut_link": "https://revolut.me/db"})
    assert PaymentLinkBuilder().build(PaymentMethod.REVOLUT, Decimal("1"), "x") == "https://revolut.me/db"

def test_is_enabled_follows_site_settings():
    b = PaymentLinkBuilder(lambda: {"paypal_enabled": "true", "card_enabled": "false"})
    assert b.is_enabled(PaymentMethod.PAYPAL)
    assert not b.is_enabled(PaymentMethod.CARD)
    assert b.is_enabled(PaymentMethod.BANK_TRANSFER)
    assert not b.is_enabled(PaymentMethod.REVOLUT)
