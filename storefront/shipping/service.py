"""
Devis de livraison pour un panier.

Ordre de priorité:
  1) panier sans produit physique (cartes cadeaux seules) -> gratuit
  2) pas de configuration 'shipping_settings' -> gratuit
  3) configuration par produit: tous 'free' ou tous 'disabled' -> gratuit; 'custom' -> coût custom le plus élevé
  4) système désactivé (sans produit 'standard') -> gratuit
  5) seuil de gratuité atteint -> gratuit
  6) tarif par code postal, puis zone au poids (shipping_zones), puis tarif forfaitaire du pays,
     puis default_shipping_cost
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
import logging

from storefront.config import DEFAULT_COUNTRY, DEFAULT_SHIPPING_COST
from storefront.checkout.models import ShippingQuote
from . import repository

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
# Nom de pays des zones quand shipping_countries ne connaît pas le code
DEFAULT_ZONE_COUNTRY = "Bélgica"

def _money(value: Any, default: Decimal = ZERO) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default

def _free(country: str) -> ShippingQuote:
    return ShippingQuote(cost=ZERO, is_free=True, country=country)

def _match_zone(zones: List[Dict[str, Any]], postal_code: str) -> Optional[Dict[str, Any]]:
    """Préfixe postal correspondant, sinon zone par défaut, sinon zone sans préfixe, sinon la première."""
    for zone in zones:
        prefix = zone.get("postal_code_prefix") or ""
        if prefix and postal_code.startswith(prefix):
            return zone
    for zone in zones:
        if zone.get("is_default") is True:
            return zone
    for zone in zones:
        if not zone.get("postal_code_prefix"):
            return zone
    return zones[0] if zones else None

def _zone_cost(country: str, postal_code: str, products: List[Dict[str, Any]], minimum_fallback: Decimal) -> Optional[Decimal]:
    zones = [
        z for z in repository.fetch_shipping_zones(repository.fetch_country_name(country) or DEFAULT_ZONE_COUNTRY)
        if z.get("applies_to_products") is not False
    ]
    zone = _match_zone(zones, postal_code)
    if zone is None:
        return None
    weight = sum((_money(p.get("weight")) for p in products), ZERO)
    cost = _money(zone.get("base_cost")) + weight / Decimal("1000") * _money(zone.get("cost_per_kg"))
    minimum = _money(zone.get("minimum_cost")) or minimum_fallback
    cost = max(cost, minimum).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    logger.info("shipping.quote: zone %s poids=%sg coût=%s", zone.get("zone_name"), weight, cost)
    return cost

# module storefront.shipping.service
def quote(country: Optional[str], postal_code: Optional[str], cart_total: Decimal, product_ids: Iterable[str]) -> ShippingQuote:
    country = (country or DEFAULT_COUNTRY).strip().upper()
    postal_code = (postal_code or "").strip()
    ids = [str(i) for i in (product_ids or []) if i]
    cart_total = _money(cart_total)

    if not ids:
        logger.info("shipping.quote: aucun produit physique, livraison gratuite")
        return _free(country)

    settings = repository.fetch_shipping_settings()
    if not settings:
        logger.warning("shipping.quote: shipping_settings absent, livraison gratuite")
        return _free(country)

    has_standard = False
    products = repository.fetch_products_shipping(ids)
    if products:
        types = [p.get("shipping_type") or "standard" for p in products]
        if all(t == "free" for t in types) or all(t == "disabled" for t in types):
            return _free(country)
        custom_costs = [
            _money(p.get("custom_shipping_cost"))
            for p in products
            if p.get("shipping_type") == "custom" and _money(p.get("custom_shipping_cost")) > ZERO
        ]
        if custom_costs:
            cost = max(custom_costs)
            logger.info("shipping.quote: coût custom produit %s", cost)
            return ShippingQuote(cost=cost, is_free=False, country=country)
        has_standard = "standard" in types

    if not has_standard and not settings.get("is_enabled", True):
        return _free(country)

    threshold = _money(settings.get("free_shipping_threshold"))
    if threshold > ZERO and cart_total >= threshold:
        logger.info("shipping.quote: seuil de gratuité atteint total=%s seuil=%s", cart_total, threshold)
        return _free(country)

    postal_rate = repository.fetch_postal_code_rate(country, postal_code)
    if postal_rate and postal_rate.get("applies_to_products") is not False:
        return ShippingQuote(cost=_money(postal_rate.get("shipping_cost")), is_free=False, country=country)

    zone_cost = _zone_cost(country, postal_code, products, _money(settings.get("default_shipping_cost")))
    if zone_cost is not None:
        return ShippingQuote(cost=zone_cost, is_free=False, country=country)

    country_rate = repository.fetch_country_rate(country)
    if country_rate and country_rate.get("shipping_cost") is not None:
        return ShippingQuote(cost=_money(country_rate.get("shipping_cost")), is_free=False, country=country)

    default_cost = _money(settings.get("default_shipping_cost"), Decimal(str(DEFAULT_SHIPPING_COST)))
    return ShippingQuote(cost=default_cost, is_free=default_cost <= ZERO, country=country)
