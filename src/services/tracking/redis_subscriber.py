# src/services/tracking/redis_subscriber.py
"""
Подписчик на Redis Pub/Sub канала геолокации.

Слушает каналы location:trip:{trip_id}, по одному на активную сессию.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from src.common.logger import log_error

if TYPE_CHECKING:
    from src.infra.redis_client import RedisClient


MessageHandler = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisSubscriber:
    """
    Подписчик на Redis Pub/Sub.

    Получает сообщения и передаёт их обработчику (channel, data).
    """

    def __init__(self, redis: "RedisClient", message_handler: MessageHandler) -> None:
        """
        Args:
            redis: Клиент Redis
            message_handler: Callback для обработки сообщений (channel, data)
        """
        self._redis = redis
        self._handler = message_handler
        self._pubsub = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._channels: set[str] = set()

    @property
    def channels(self) -> set[str]:
        return set(self._channels)

    async def start(self) -> None:
        """Запустить подписчика."""
        if self._running:
            return

        self._pubsub = self._redis.pubsub()
        self._running = True
        self._task = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        """Остановить подписчика."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub:
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
        self._channels.clear()

    async def subscribe_channel(self, channel: str) -> None:
        """Подписаться на канал."""
        if self._pubsub and channel not in self._channels:
            await self._pubsub.subscribe(channel)
            self._channels.add(channel)

    async def unsubscribe_channel(self, channel: str) -> None:
        """Отписаться от канала."""
        if self._pubsub and channel in self._channels:
            await self._pubsub.unsubscribe(channel)
            self._channels.discard(channel)

    async def _listen(self) -> None:
        """Слушать сообщения из Redis."""
        while self._running:
            # Без подписок get_message() ничего не вернёт
            if not self._channels:
                await asyncio.sleep(0.5)
                continue

            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None:
                    continue

                await self._process_message(message)

            except asyncio.CancelledError:
                break
            except Exception as e:
                # Логируем ошибку, но продолжаем работу
                await log_error(f"Ошибка подписчика Redis: {e}")
                await asyncio.sleep(1)

    async def _process_message(self, message: dict[str, Any]) -> None:
        """Обработать сообщение из Redis."""
        if message.get("type") not in ("message", "pmessage"):
            return

        channel = message.get("channel", "")
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")

        data = message.get("data", "")
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            parsed_data = json.loads(data)
        except (json.JSONDecodeError, TypeError):
            parsed_data = {"raw": data}

        if not isinstance(parsed_data, dict):
            parsed_data = {"raw": parsed_data}

        await self._handler(channel, parsed_data)
