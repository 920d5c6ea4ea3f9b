"""
Stockage durable "par session" (équivalent serveur du sessionStorage navigateur).
- Contient le snapshot de commande, le client créé et les tokens d'auth.
- RedisSessionStorage: redis.asyncio, clés `checkout:<sid>:<clé>` avec TTL.
- InMemorySessionStorage: dev local / tests sans Redis.
Variables d'environnement:
  - SESSION_REDIS_URL: URL Redis (vide => mémoire)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
"""
import json
import logging
import os
from typing import Any, Dict, Optional

import redis.asyncio as aioredis

from checkout.config import SESSION_REDIS_URL, SESSION_TTL_SECONDS

logger = logging.getLogger(__name__)

ORDER_KEY = "boulders_checkout_order"
CUSTOMER_KEY = "boulders_checkout_customer"
TOKENS_KEY = "boulders_auth_tokens"


class InMemorySessionStorage:
    def __init__(self):
        self._data: Dict[str, str] = {}

    @staticmethod
    def _key(session_id: str, key: str) -> str:
        return f"checkout:{session_id}:{key}"

    async def get_json(self, session_id: str, key: str) -> Optional[Any]:
        raw = self._data.get(self._key(session_id, key))
        return json.loads(raw) if raw is not None else None

    async def set_json(self, session_id: str, key: str, value: Any) -> None:
        self._data[self._key(session_id, key)] = json.dumps(value)

    async def delete(self, session_id: str, key: str) -> None:
        self._data.pop(self._key(session_id, key), None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()


class RedisSessionStorage(InMemorySessionStorage):
    def __init__(self, client: aioredis.Redis, ttl_seconds: int = SESSION_TTL_SECONDS):
        self._redis = client
        self._ttl = ttl_seconds

    async def get_json(self, session_id: str, key: str) -> Optional[Any]:
        raw = await self._redis.get(self._key(session_id, key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("infra.session_storage.get_json unreadable key=%s sid=%s", key, session_id)
            return None

    async def set_json(self, session_id: str, key: str, value: Any) -> None:
        await self._redis.set(self._key(session_id, key), json.dumps(value), ex=self._ttl)

    async def delete(self, session_id: str, key: str) -> None:
        await self._redis.delete(self._key(session_id, key))

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()


def build_session_storage():
    """
    Construit le stockage selon l'environnement.
    - USE_FAKE_REDIS_FOR_TESTS=1 => fakeredis (doit être installé, extra `test`)
    - SESSION_REDIS_URL défini => Redis
    - sinon => mémoire
    """
    if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
        from fakeredis.aioredis import FakeRedis
        return RedisSessionStorage(FakeRedis(decode_responses=True))
    if SESSION_REDIS_URL:
        client = aioredis.from_url(SESSION_REDIS_URL, encoding="utf-8", decode_responses=True)
        return RedisSessionStorage(client)
    return InMemorySessionStorage()
