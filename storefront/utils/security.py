from fastapi import Request, HTTPException, Depends
from typing import Optional, Dict, Any
import logging

COOKIE_NAME = "sb_access"

logger = logging.getLogger(__name__)

def _token_from_request(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    token = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
    if not token:
        token = request.cookies.get(COOKIE_NAME)
    return token or None

def get_current_user(request: Request) -> Dict[str, Any]:
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")

    try:
        # Délégué au service Auth
        from storefront.auth.service import get_user_from_token as _svc_get_user_from_token
        user = _svc_get_user_from_token(token)
        if not user.get("id"):
            raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
        return user
    except HTTPException:
        raise
    except Exception:
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")

def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    """
    Checkout invité autorisé: retourne None sans token ou si le token n'est plus valide.
    Un échec de résolution d'identité n'est jamais bloquant ici.
    """
    if not _token_from_request(request):
        return None
    try:
        return get_current_user(request)
    except HTTPException:
        logger.info("security.get_optional_user: token invalide, poursuite en invité")
        return None

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
