"""
Diagnostics: connectivité Supabase (DNS + lecture des tables du checkout) et Redis du pont de session.
"""
from typing import Any, Dict
from urllib.parse import urlparse
import socket
import logging

import storefront.infra.supabase_client as supabase_client
from storefront.config import SUPABASE_URL
from storefront.checkout.bridge import get_bridge

logger = logging.getLogger(__name__)

CHECKOUT_TABLES = ("orders", "order_items", "invoices", "coupons", "site_settings", "shipping_settings")

def _check_table(client, name: str) -> Dict[str, Any]:
    try:
        res = client.table(name).select("*").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": str(e)}

def health_supabase_info() -> Dict[str, Any]:
    parsed = urlparse(SUPABASE_URL) if SUPABASE_URL else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except Exception as e:
            dns_ok = False
            dns_error = str(e)

    info: Dict[str, Any] = {
        "supabase_url": SUPABASE_URL,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    try:
        client = supabase_client.get_service_supabase()
        for t in CHECKOUT_TABLES:
            info["tables"][t] = _check_table(client, t)
        info["connect_ok"] = True
    except Exception as e:
        logger.warning("health.supabase: connexion impossible: %s", e)
        info["error"] = str(e)
    return info

def health_checkout_store_info() -> Dict[str, Any]:
    try:
        return {"ok": bool(get_bridge().ping())}
    except Exception as e:
        return {"ok": False, "error": str(e)}
