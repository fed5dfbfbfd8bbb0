"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Initialise FastAPILimiter (Redis) avec options de test (fakeredis).
- Vérifie la disponibilité du pont de session du checkout (Redis), sans bloquer le démarrage.
- Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement le rate limiting (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests), aussi pour le pont de session
  - LOCAL_RATE_LIMIT_FALLBACK=1: active un fallback local si l'init échoue
"""
import os
import logging
import redis.asyncio as aioredis
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from storefront.config import RATE_LIMIT_REDIS_URL
from storefront.checkout.bridge import get_bridge

try:
    from fakeredis.aioredis import FakeRedis  # tests only
except Exception:
    FakeRedis = None

logger = logging.getLogger("uvicorn.error")

async def _init_rate_limiter(app: FastAPI) -> None:
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            if not FakeRedis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            r = FakeRedis(decode_responses=True)
        else:
            r = aioredis.from_url(RATE_LIMIT_REDIS_URL, encoding="utf-8", decode_responses=True)
        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
    except Exception as e:
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            app.state.rate_limit_enabled = True
            logger.warning("Rate limiting falling back to local in-memory due to init error: %s", e)
        else:
            app.state.rate_limit_enabled = False
            logger.warning("Rate limiting disabled due to init error: %s", e)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await _init_rate_limiter(app)
    try:
        get_bridge().ping()
        logger.info("Checkout session store ready")
    except Exception as e:
        # Le checkout échouera à l'usage; on ne bloque pas le démarrage (health: /health/checkout)
        logger.warning("Checkout session store unavailable: %s", e)
    yield
    if getattr(app.state, "rate_limit_enabled", False):
        try:
            await FastAPILimiter.close()
        except Exception:
            logger.warning("FastAPILimiter.close failed", exc_info=True)
