from typing import Dict, Any
from fastapi import Request, HTTPException
from urllib.parse import urlparse
import os
import time
import hashlib
import logging

from storefront.config import RATE_LIMIT_REDIS_URL
from storefront.utils.security import COOKIE_NAME

logger = logging.getLogger(__name__)

def _client_key(req: Request) -> str:
    """
    Identifiant de limitation: jeton d'accès (hashé, Bearer puis cookie) sinon IP, suffixé du chemin.
    Le checkout invité n'a pas de token: il est limité par IP.
    """
    path = req.url.path
    auth_header = req.headers.get("Authorization", "")
    token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else req.cookies.get(COOKIE_NAME)
    if token:
        h = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{h}:{path}"
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{path}"

def _local_hit(request: Request, times: int, seconds: int) -> None:
    # Fenêtre glissante en mémoire (dev/tests)
    now = time.time()
    key = _client_key(request)
    store = getattr(request.app.state, "_rl_store", {})
    hits = [t for t in store.get(key, []) if now - t < seconds]
    if len(hits) >= times:
        raise HTTPException(status_code=429, detail="Trop de requêtes, réessayez dans un instant")
    hits.append(now)
    store[key] = hits
    request.app.state._rl_store = store

def optional_rate_limit(times: int, seconds: int):
    async def _dep(request: Request):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            _local_hit(request, times, seconds)
            return

        # Respecter le flag global posé par le lifespan
        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return

        try:
            from fastapi_limiter.depends import RateLimiter

            async def _identifier(req: Request) -> str:
                return _client_key(req)
            return await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request)
        except HTTPException:
            raise
        except Exception:
            # Limiteur indisponible: pas de 429 en prod (LOCAL_RATE_LIMIT_FALLBACK=1 en dev)
            logger.warning("rate_limit: fastapi-limiter indisponible, requête non limitée")
            return
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    try:
        from fastapi_limiter import FastAPILimiter
        limiter_ready = getattr(FastAPILimiter, "redis", None) is not None
    except Exception:
        limiter_ready = False

    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": limiter_ready,
        "backend": "redis" if limiter_ready else None,
    }
    if limiter_ready and RATE_LIMIT_REDIS_URL:
        p = urlparse(RATE_LIMIT_REDIS_URL)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}
    return info
