# src/core/tracking/address_cache.py
"""
Кэш адресов: квантованная координата -> адрес.

Ключ формируется округлением широты и долготы до 6 знаков (~11 см),
поэтому GPS-дрожание схлопывается в одну запись. Вытеснения нет,
записи после создания не меняются. Пишет в кэш только воркер
GeocodeResolver, поэтому блокировки не нужны.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from src.core.tracking.models import Coordinate

if TYPE_CHECKING:
    from src.infra.redis_client import RedisClient


class SessionStore(Protocol):
    """Строковое хранилище с временем жизни сессии."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class InMemorySessionStore:
    """Хранилище в памяти процесса."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


class RedisSessionStore:
    """Хранилище в Redis; записи живут SESSION_TTL секунд."""

    def __init__(self, redis: "RedisClient", ttl: int | None = None) -> None:
        self._redis = redis
        self._ttl = ttl

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(key, value, ttl=self._ttl)


class AddressCache:
    """
    Кэш разрешённых адресов поверх SessionStore.

    Помимо хранилища держит локальную копию записей текущего процесса,
    чтобы повторные чтения не ходили в Redis.
    """

    def __init__(self, store: SessionStore | None = None, precision: int = 6) -> None:
        self._store: SessionStore = store if store is not None else InMemorySessionStore()
        self._precision = precision
        self._local: dict[str, str] = {}

    def key_for(self, coordinate: Coordinate) -> str:
        return coordinate.quantized_key(self._precision)

    async def get(self, coordinate: Coordinate) -> str | None:
        """Адрес для координаты или None."""
        key = self.key_for(coordinate)
        if key in self._local:
            return self._local[key]

        address = await self._store.get(key)
        if address:
            self._local[key] = address
            return address
        return None

    async def put(self, coordinate: Coordinate, address: str) -> None:
        """Сохраняет адрес. Пустые адреса не кэшируются."""
        if not address:
            return
        key = self.key_for(coordinate)
        self._local[key] = address
        await self._store.set(key, address)

    def __len__(self) -> int:
        """Количество записей, известных этому процессу."""
        return len(self._local)
