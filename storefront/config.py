# storefront.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du backend storefront.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Redis), CORS/hosts
- Paramètres du checkout: TTL de session, échéance des factures, liens de paiement
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

# Supabase: URLs et clés (public/anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("VITE_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / sécurité
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
SESSION_SECRET_KEY = _clean_env(os.getenv("SESSION_SECRET_KEY") or "replace_me_with_a_long_random_secret")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Redis: rate limiting + pont de session du checkout (pending orders)
RATE_LIMIT_REDIS_URL = _clean_env(os.getenv("RATE_LIMIT_REDIS_URL") or "redis://127.0.0.1:6379/0")
CHECKOUT_REDIS_URL = _clean_env(os.getenv("CHECKOUT_REDIS_URL") or RATE_LIMIT_REDIS_URL)
CHECKOUT_SESSION_TTL_SECONDS = int(os.getenv("CHECKOUT_SESSION_TTL_SECONDS", str(24 * 60 * 60)))
# Bail de l'état 'finalizing': un worker tombé en pleine finalisation libère la session après ce délai
FINALIZE_LEASE_SECONDS = int(os.getenv("FINALIZE_LEASE_SECONDS", "120"))

# Factures: échéance (jours) après émission
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "30"))

# TVA par défaut si site_settings est vide ou injoignable
DEFAULT_TAX_ENABLED = (os.getenv("DEFAULT_TAX_ENABLED", "true").lower() == "true")
DEFAULT_TAX_RATE = float(os.getenv("DEFAULT_TAX_RATE", "21"))

# Livraison par défaut si shipping_settings est vide
DEFAULT_SHIPPING_COST = float(os.getenv("DEFAULT_SHIPPING_COST", "5.00"))
DEFAULT_COUNTRY = _clean_env(os.getenv("DEFAULT_COUNTRY") or "BE")

# Liens de paiement externes (fallbacks si site_settings ne les fournit pas)
CARD_PAYMENT_URL = _clean_env(os.getenv("CARD_PAYMENT_URL") or "")
PAYPAL_ME_ID = _clean_env(os.getenv("PAYPAL_ME_ID") or "")
REVOLUT_PAYMENT_URL = _clean_env(os.getenv("REVOLUT_PAYMENT_URL") or "")

# Lien admin utilisé dans les notifications de nouvelle commande
ADMIN_ORDERS_LINK = os.getenv("ADMIN_ORDERS_LINK", "/admin/pedidos")
