"""Кэширование через Redis."""
import json
import logging
from typing import Any, Optional
import redis.asyncio as redis
from storefront.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Сервис для работы с кэшем Redis."""

    def __init__(self):
        self._redis: Optional[redis.Redis] = None

    async def connect(self):
        """Подключение к Redis."""
        if self._redis or not settings.redis_url:
            return
        try:
            self._redis = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            # Проверяем подключение
            await self._redis.ping()
        except Exception as e:
            # Если Redis недоступен, продолжаем без кэша
            logger.warning(f"Redis недоступен, работаем без кэша: {e}")
            self._redis = None

    async def disconnect(self):
        """Отключение от Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> Any | None:
        """Получить значение из кэша."""
        if not self._redis:
            return None

        try:
            value = await self._redis.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception:
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Установить значение в кэш."""
        if not self._redis:
            return False

        try:
            serialized = json.dumps(value, default=str)
            await self._redis.set(key, serialized, ex=ttl or settings.cache_ttl_seconds)
            return True
        except Exception:
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Удалить все ключи по паттерну."""
        if not self._redis:
            return 0

        try:
            keys = await self._redis.keys(pattern)
            if keys:
                return await self._redis.delete(*keys)
            return 0
        except Exception:
            return 0


# Глобальный экземпляр
cache_service = CacheService()

ACTIVE_DISCOUNTS_CACHE_KEY = "discounts:active"


def get_cache_key_products(
    season: str | None = None,
    sex: str | None = None,
    model: str | None = None,
    age: str | None = None,
    color: str | None = None,
    size: str | None = None,
    search: str | None = None,
    min_price: str | None = None,
    max_price: str | None = None,
    sort: str | None = None,
) -> str:
    """Генерация ключа кэша для публичного списка товаров."""
    parts = ["products"]
    for name, value in (
        ("season", season),
        ("sex", sex),
        ("model", model),
        ("age", age),
        ("color", color),
        ("size", size),
        ("q", search),
        ("min_price", min_price),
        ("max_price", max_price),
        ("sort", sort),
    ):
        if value:
            parts.append(f"{name}:{value}")
    return ":".join(parts)


async def invalidate_catalog_cache() -> None:
    """Сбросить кэш каталога и активных скидок после изменений."""
    await cache_service.delete_pattern("products*")
    await cache_service.delete_pattern(ACTIVE_DISCOUNTS_CACHE_KEY)
