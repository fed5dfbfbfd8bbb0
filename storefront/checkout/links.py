"""
Liens de paiement externes (carte, PayPal.me, Revolut).
Le checkout ne fait qu'ouvrir ces URLs: aucune visibilité sur le résultat du paiement.
"""
from decimal import Decimal
from typing import Callable, Dict, Optional
import logging
import urllib.parse

from storefront.config import CARD_PAYMENT_URL, PAYPAL_ME_ID, REVOLUT_PAYMENT_URL
from storefront.checkout.models import PaymentMethod
from storefront.settings import repository as settings_repo

logger = logging.getLogger(__name__)

PAYPAL_ME_BASE = "https://www.paypal.com/paypalme"

def _with_query(url: str, **params: str) -> str:
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urllib.parse.urlencode(params)}"

def _card_link(settings: Dict[str, str], total: Decimal, reference: str) -> Optional[str]:
    base = (settings.get("card_payment_url") or CARD_PAYMENT_URL or "").strip()
    if not base:
        return None
    return _with_query(base, reference=reference, amount=f"{total:.2f}")

def _paypal_link(settings: Dict[str, str], total: Decimal, reference: str) -> Optional[str]:
    # paypal_email est stocké tel quel ("@"); PayPal.me attend l'identifiant sans
    paypal_id = (settings.get("paypal_email") or PAYPAL_ME_ID or "").strip().replace("@", "")
    if not paypal_id:
        return None
    return f"{PAYPAL_ME_BASE}/{paypal_id}/{total:.2f}EUR"

def _revolut_link(settings: Dict[str, str], total: Decimal, reference: str) -> Optional[str]:
    base = (settings.get("revolut_link") or REVOLUT_PAYMENT_URL or "").strip()
    return base or None

_BUILDERS: Dict[PaymentMethod, Callable[[Dict[str, str], Decimal, str], Optional[str]]] = {
    PaymentMethod.CARD: _card_link,
    PaymentMethod.PAYPAL: _paypal_link,
    PaymentMethod.REVOLUT: _revolut_link,
}


class PaymentLinkBuilder:
    """Construit l'URL externe d'un moyen de paiement à partir de site_settings (+ fallbacks .env)."""

    def __init__(self, settings_loader: Optional[Callable[[], Dict[str, str]]] = None):
        self._load = settings_loader or (lambda: settings_repo.get_payment_settings())

    def is_enabled(self, method: PaymentMethod) -> bool:
        return settings_repo.is_method_enabled(method, self._load() or {})

    def build(self, method: PaymentMethod, total: Decimal, reference: str) -> Optional[str]:
        builder = _BUILDERS.get(method)
        if builder is None:
            return None
        url = builder(self._load() or {}, Decimal(total), reference or "")
        if not url:
            logger.warning("checkout.links: aucun lien configuré pour method=%s", method.value)
        return url

    def bank_details(self) -> Dict[str, str]:
        """Coordonnées bancaires affichées pour un virement."""
        settings = self._load() or {}
        return {
            k: settings.get(k) or ""
            for k in ("bank_account_number", "bank_account_name", "bank_name", "bank_instructions", "company_info")
        }
