"""
Tenant-namespaced Redis cache.

Works against a local Redis (redis.asyncio) or the Upstash REST API.
Every key starts with ``company:{company_id}:`` so tenants can never read
each other's entries. When Redis is unreachable every call degrades to a
cache miss.

Usage:
    from cafm.services.cache import cache_service

    await cache_service.connect()
    stats = await cache_service.get_report_stats(company_id)
    await cache_service.invalidate_reports(company_id)
"""
import json
import logging
import time
from decimal import Decimal
from datetime import date, datetime
from typing import Optional, Any
from uuid import UUID

import aiohttp

from cafm.config import settings

logger = logging.getLogger(__name__)


def _json_serializer(obj):
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


class CacheService:

    def __init__(self):
        self._redis = None
        self._connected = False
        self._use_upstash = False

    async def connect(self):
        if not settings.cache_enabled:
            logger.info("Redis cache disabled by configuration (CACHE_ENABLED=false)")
            return
        if settings.upstash_redis_rest_url and settings.upstash_redis_rest_token:
            await self._connect_upstash()
        else:
            await self._connect_local_redis()

    async def _connect_upstash(self):
        try:
            self._use_upstash = True
            result = await self._upstash_request(["PING"])
            self._connected = result == "PONG"
            if self._connected:
                logger.info(f"Upstash Redis connected to {settings.upstash_redis_rest_url}")
            else:
                logger.warning("Upstash PING failed (caching disabled)")
        except Exception as e:
            logger.warning(f"Failed to connect to Upstash Redis (caching disabled): {e}")
            self._connected = False

    async def _connect_local_redis(self):
        try:
            import redis.asyncio as redis_async
            self._redis = redis_async.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
            await self._redis.ping()
            self._connected = True
            logger.info(f"Redis cache connected to {settings.redis_url}")
        except Exception as e:
            logger.warning(f"Failed to connect to Redis (caching disabled): {e}")
            self._redis = None
            self._connected = False

    async def disconnect(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        if self._use_upstash:
            return self._connected
        return self._connected and self._redis is not None

    @staticmethod
    def _key(company_id, *parts) -> str:
        """company_id is always the first component of the key"""
        return f"company:{company_id}:" + ":".join(str(p) for p in parts)

    async def _upstash_request(self, command: list) -> Any:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                settings.upstash_redis_rest_url,
                headers={"Authorization": f"Bearer {settings.upstash_redis_rest_token}"},
                json=command,
            ) as response:
                if response.status != 200:
                    logger.warning(f"Upstash request failed: {response.status}")
                    return None
                data = await response.json()
                return data.get("result")

    async def ping(self) -> dict:
        """Health check: status plus round trip time"""
        if not settings.cache_enabled:
            return {"status": "DISABLED"}
        if not self.is_connected:
            return {"status": "DOWN", "error": "not connected"}
        started = time.perf_counter()
        try:
            if self._use_upstash:
                ok = await self._upstash_request(["PING"]) == "PONG"
            else:
                ok = bool(await self._redis.ping())
        except Exception as e:
            return {"status": "DOWN", "error": str(e)}
        elapsed = round((time.perf_counter() - started) * 1000, 2)
        return {"status": "UP" if ok else "DOWN", "response_time_ms": elapsed,
                "backend": "upstash" if self._use_upstash else "redis"}

    async def get(self, company_id, *key_parts) -> Optional[Any]:
        if not self.is_connected:
            return None
        key = self._key(company_id, *key_parts)
        try:
            if self._use_upstash:
                data = await self._upstash_request(["GET", key])
            else:
                data = await self._redis.get(key)
            if data:
                logger.debug(f"Cache HIT: {key}")
                return json.loads(data)
            logger.debug(f"Cache MISS: {key}")
            return None
        except Exception as e:
            logger.warning(f"Cache get error: {e}")
            return None

    async def set(self, company_id, *key_parts, value: Any, ttl: int = None):
        if not self.is_connected:
            return
        key = self._key(company_id, *key_parts)
        ttl = ttl or settings.cache_default_ttl
        try:
            payload = json.dumps(value, default=_json_serializer)
            if self._use_upstash:
                await self._upstash_request(["SETEX", key, ttl, payload])
            else:
                await self._redis.setex(key, ttl, payload)
            logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
        except Exception as e:
            logger.warning(f"Cache set error: {e}")

    async def invalidate_pattern(self, company_id, pattern: str):
        if not self.is_connected:
            return
        full_pattern = f"company:{company_id}:{pattern}"
        try:
            if self._use_upstash:
                keys = await self._upstash_request(["KEYS", full_pattern]) or []
                if keys:
                    await self._upstash_request(["DEL", *keys])
            else:
                keys = [key async for key in self._redis.scan_iter(match=full_pattern)]
                if keys:
                    await self._redis.delete(*keys)
            if keys:
                logger.info(f"Cache INVALIDATE: {len(keys)} keys matching '{full_pattern}'")
        except Exception as e:
            logger.warning(f"Cache invalidate error: {e}")

    # ============ Report & work order statistics ============

    async def get_report_stats(self, company_id, scope: str = "all") -> Optional[dict]:
        return await self.get(company_id, "reports", "stats", scope)

    async def set_report_stats(self, company_id, data: dict, scope: str = "all"):
        await self.set(company_id, "reports", "stats", scope, value=data, ttl=300)

    async def invalidate_reports(self, company_id):
        await self.invalidate_pattern(company_id, "reports:*")

    async def get_work_order_stats(self, company_id) -> Optional[dict]:
        return await self.get(company_id, "work_orders", "stats")

    async def set_work_order_stats(self, company_id, data: dict):
        await self.set(company_id, "work_orders", "stats", value=data, ttl=300)

    async def invalidate_work_orders(self, company_id):
        await self.invalidate_pattern(company_id, "work_orders:*")


cache_service = CacheService()
