"""
Accès à la table 'site_settings' (clé/valeur) pour le checkout:
- TVA (tax_enabled, tax_rate)
- coordonnées bancaires et liens de paiement (bank_*, paypal_email, revolut_link, card_payment_url)
- activation par moyen de paiement (bank_transfer_enabled, card_enabled, paypal_enabled, revolut_enabled)
"""
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional
import logging

import storefront.infra.supabase_client as supabase_client
from storefront.config import DEFAULT_TAX_ENABLED, DEFAULT_TAX_RATE
from storefront.checkout.models import PaymentMethod, TaxSettings

logger = logging.getLogger(__name__)

TAX_KEYS = ("tax_enabled", "tax_rate")
PAYMENT_KEYS = (
    "bank_account_number",
    "bank_account_name",
    "bank_name",
    "bank_instructions",
    "company_info",
    "paypal_email",
    "revolut_link",
    "card_payment_url",
    "bank_transfer_enabled",
    "card_enabled",
    "paypal_enabled",
    "revolut_enabled",
)

# Interrupteurs par moyen de paiement et valeur par défaut quand la clé est absente
METHOD_SWITCHES = {
    PaymentMethod.BANK_TRANSFER: ("bank_transfer_enabled", True),
    PaymentMethod.CARD: ("card_enabled", True),
    PaymentMethod.PAYPAL: ("paypal_enabled", False),
    PaymentMethod.REVOLUT: ("revolut_enabled", False),
}

# module storefront.settings.repository
def fetch_site_settings(keys: Iterable[str]) -> Dict[str, str]:
    """
    Retourne {setting_key: setting_value} pour les clés demandées.
    - Retourne {} en cas d'erreur (les appelants appliquent leurs valeurs par défaut).
    """
    keys = list(keys)
    if not keys:
        return {}
    try:
        res = (
            supabase_client.get_supabase()
            .table("site_settings")
            .select("setting_key, setting_value")
            .in_("setting_key", keys)
            .execute()
        )
        rows = res.data or []
        return {str(r.get("setting_key")): r.get("setting_value") for r in rows if r.get("setting_key")}
    except Exception:
        logger.exception("settings.repository.fetch_site_settings failed keys=%s", keys)
        return {}

def get_tax_settings() -> TaxSettings:
    """TVA configurée; défauts (activée, 21%) si absente ou illisible."""
    raw = fetch_site_settings(TAX_KEYS)
    enabled = DEFAULT_TAX_ENABLED
    rate = Decimal(str(DEFAULT_TAX_RATE))
    if "tax_enabled" in raw:
        enabled = str(raw["tax_enabled"]).strip().lower() == "true"
    if raw.get("tax_rate") not in (None, ""):
        try:
            rate = Decimal(str(raw["tax_rate"]).strip())
        except InvalidOperation:
            logger.warning("settings.repository: tax_rate invalide %r, défaut %s", raw.get("tax_rate"), rate)
    return TaxSettings(enabled=enabled, rate=rate)

def get_payment_settings() -> Dict[str, str]:
    return fetch_site_settings(PAYMENT_KEYS)

def is_method_enabled(method: PaymentMethod, settings: Optional[Dict[str, str]] = None) -> bool:
    """Interrupteur du back-office ('true'/'false' en texte); défaut si la clé est absente."""
    key, default = METHOD_SWITCHES[method]
    if settings is None:
        settings = get_payment_settings()
    raw = settings.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    return str(raw).strip().lower() == "true"

def enabled_payment_methods(settings: Optional[Dict[str, str]] = None) -> List[PaymentMethod]:
    if settings is None:
        settings = get_payment_settings()
    return [m for m in PaymentMethod if is_method_enabled(m, settings)]
