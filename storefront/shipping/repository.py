from typing import Any, Dict, List, Optional
import logging

import storefront.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def fetch_shipping_settings() -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_supabase()
            .table("shipping_settings")
            .select("*")
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("shipping.repository.fetch_shipping_settings failed")
        return None

def fetch_products_shipping(product_ids: List[str]) -> List[Dict[str, Any]]:
    """Configuration d'envoi par produit (shipping_type: standard|free|disabled|custom, weight en grammes)."""
    if not product_ids:
        return []
    try:
        res = (
            supabase_client.get_supabase()
            .table("products")
            .select("id, name, shipping_type, custom_shipping_cost, weight")
            .in_("id", [str(i) for i in product_ids])
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("shipping.repository.fetch_products_shipping failed ids=%s", product_ids)
        return []

def fetch_postal_code_rate(country_code: str, postal_code: str) -> Optional[Dict[str, Any]]:
    if not country_code or not postal_code:
        return None
    try:
        res = (
            supabase_client.get_supabase()
            .table("shipping_postal_codes")
            .select("shipping_cost, applies_to_products")
            .eq("country_code", country_code)
            .eq("postal_code", postal_code)
            .eq("is_enabled", True)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("shipping.repository.fetch_postal_code_rate failed country=%s postal=%s", country_code, postal_code)
        return None

def fetch_country_rate(country_code: str) -> Optional[Dict[str, Any]]:
    if not country_code:
        return None
    try:
        res = (
            supabase_client.get_supabase()
            .table("shipping_countries")
            .select("shipping_cost")
            .eq("country_code", country_code)
            .eq("is_enabled", True)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("shipping.repository.fetch_country_rate failed country=%s", country_code)
        return None

def fetch_country_name(country_code: str) -> Optional[str]:
    """Les zones sont indexées par nom de pays (shipping_countries.country_name)."""
    if not country_code:
        return None
    try:
        res = (
            supabase_client.get_supabase()
            .table("shipping_countries")
            .select("country_name")
            .eq("country_code", country_code)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0].get("country_name") if rows else None
    except Exception:
        logger.exception("shipping.repository.fetch_country_name failed country=%s", country_code)
        return None

def fetch_shipping_zones(country_name: str) -> List[Dict[str, Any]]:
    """Zones actives d'un pays, préfixes postaux les plus longs d'abord."""
    if not country_name:
        return []
    try:
        res = (
            supabase_client.get_supabase()
            .table("shipping_zones")
            .select("*")
            .eq("country", country_name)
            .eq("is_active", True)
            .order("postal_code_prefix", desc=True)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("shipping.repository.fetch_shipping_zones failed country=%s", country_name)
        return []
