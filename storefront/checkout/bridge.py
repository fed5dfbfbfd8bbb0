"""
Pont de session du checkout (Redis): stocke le PendingOrder entre l'écran de choix du moyen de
paiement et l'écran d'instructions, ainsi que l'état du checkout.

Contrat:
- put/get/delete du PendingOrder; une absence en lecture n'est pas une erreur
  ("déjà finalisé ou jamais créé", l'appelant fait un no-op)
- état du checkout (CheckoutState) avec compare-and-set transactionnel (WATCH/MULTI):
  deux contextes concurrents (2 onglets, reload en vol) ne peuvent pas revendiquer la même
  finalisation
- meta: petites informations d'affichage (référence, lien externe, is_pending)
Toutes les clés expirent après CHECKOUT_SESSION_TTL_SECONDS.
"""
import logging
import os
from typing import Any, Dict, Iterable, Optional

import redis
from redis.exceptions import WatchError

from storefront.config import CHECKOUT_REDIS_URL, CHECKOUT_SESSION_TTL_SECONDS
from storefront.checkout.models import CheckoutState, PendingOrder

try:
    import fakeredis  # tests only
except Exception:
    fakeredis = None

logger = logging.getLogger(__name__)

KEY_PREFIX = "checkout"

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class CheckoutSessionBridge:
    def __init__(self, client: "redis.Redis", ttl_seconds: int = CHECKOUT_SESSION_TTL_SECONDS):
        self._redis = client
        self._ttl = ttl_seconds

    # --- clés ---
    def _pending_key(self, key: str) -> str:
        return f"{KEY_PREFIX}:{key}:pending"

    def _state_key(self, key: str) -> str:
        return f"{KEY_PREFIX}:{key}:state"

    def _meta_key(self, key: str) -> str:
        return f"{KEY_PREFIX}:{key}:meta"

    # --- PendingOrder ---
    def put(self, key: str, pending: PendingOrder) -> None:
        self._redis.set(self._pending_key(key), pending.model_dump_json(), ex=self._ttl)

    def get(self, key: str) -> Optional[PendingOrder]:
        raw = _text(self._redis.get(self._pending_key(key)))
        if not raw:
            return None
        try:
            return PendingOrder.model_validate_json(raw)
        except ValueError:
            # Payload illisible: traité comme absent, l'entrée est purgée
            logger.exception("checkout.bridge: pending order illisible key=%s", key)
            self.delete(key)
            return None

    def delete(self, key: str) -> None:
        self._redis.delete(self._pending_key(key))

    # --- État du checkout ---
    def get_state(self, key: str) -> CheckoutState:
        raw = _text(self._redis.get(self._state_key(key)))
        try:
            return CheckoutState(raw) if raw else CheckoutState.IDLE
        except ValueError:
            return CheckoutState.IDLE

    def set_state(self, key: str, state: CheckoutState) -> None:
        self._redis.set(self._state_key(key), state.value, ex=self._ttl)

    def compare_and_set_state(
        self, key: str, allowed_from: Iterable[CheckoutState], to: CheckoutState, ttl: Optional[int] = None
    ) -> bool:
        """
        Transition atomique: passe à `to` uniquement si l'état courant est dans `allowed_from`.
        Retourne False si la transition est refusée (autre contexte déjà passé).
        - ttl: durée de vie propre de l'état (bail court de 'finalizing'); défaut: TTL de session
        """
        state_key = self._state_key(key)
        allowed = {s.value for s in allowed_from}
        with self._redis.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(state_key)
                    current = _text(pipe.get(state_key)) or CheckoutState.IDLE.value
                    if current not in allowed:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.set(state_key, to.value, ex=ttl or self._ttl)
                    pipe.execute()
                    return True
                except WatchError:
                    # Clé modifiée entre WATCH et EXEC: on relit l'état
                    continue

    # --- Meta d'affichage ---
    def get_meta(self, key: str) -> Dict[str, str]:
        raw = self._redis.hgetall(self._meta_key(key)) or {}
        return {_text(k): _text(v) for k, v in raw.items()}

    def update_meta(self, key: str, **fields: Any) -> None:
        mapping = {k: ("" if v is None else str(v)) for k, v in fields.items()}
        if not mapping:
            return
        meta_key = self._meta_key(key)
        self._redis.hset(meta_key, mapping=mapping)
        self._redis.expire(meta_key, self._ttl)

    def clear_meta(self, key: str) -> None:
        self._redis.delete(self._meta_key(key))

    def ping(self) -> bool:
        return bool(self._redis.ping())


_bridge: Optional[CheckoutSessionBridge] = None

def get_bridge() -> CheckoutSessionBridge:
    """
    Singleton du pont.
    - USE_FAKE_REDIS_FOR_TESTS=1: fakeredis en mémoire (même bascule que le rate limiter)
    - sinon: CHECKOUT_REDIS_URL
    """
    global _bridge
    if _bridge is None:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            if not fakeredis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            client = fakeredis.FakeRedis(decode_responses=True)
        else:
            client = redis.from_url(CHECKOUT_REDIS_URL, encoding="utf-8", decode_responses=True)
        _bridge = CheckoutSessionBridge(client)
    return _bridge
