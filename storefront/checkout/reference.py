"""
Référence de paiement: 3 chiffres + 3 lettres (ex: 482KXM).
Générée une seule fois par tentative de checkout puis réutilisée comme numéro de commande/facture.
"""
import re
import secrets
import string
from typing import Any, Dict, Optional, Tuple

REFERENCE_PATTERN = re.compile(r"^\d{3}[A-Z]{3}$")

def generate_payment_reference() -> str:
    digits = "".join(secrets.choice(string.digits) for _ in range(3))
    letters = "".join(secrets.choice(string.ascii_uppercase) for _ in range(3))
    return f"{digits}{letters}"

def is_payment_reference(value: Optional[str]) -> bool:
    return bool(value) and bool(REFERENCE_PATTERN.match(str(value)))

def ensure_payment_reference(shipping_info: Optional[Dict[str, Any]]) -> Tuple[Dict[str, Any], str]:
    """
    Retourne (shipping_info, reference):
    - réutilise shipping_info["payment_reference"] s'il est déjà présent et valide
    - sinon en génère une nouvelle (copie de shipping_info, l'original n'est pas modifié)
    """
    info = dict(shipping_info or {})
    existing = info.get("payment_reference")
    if is_payment_reference(existing):
        return info, existing
    reference = generate_payment_reference()
    info["payment_reference"] = reference
    return info, reference
