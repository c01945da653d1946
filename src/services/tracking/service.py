# src/services/tracking/service.py
"""
Бизнес-логика сервиса трекинга: реестр сессий по поездкам.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from src.common.constants import TypeMsg
from src.common.logger import log_info, log_warning
from src.core.geo.service import GeocodingProvider
from src.core.tracking.address_cache import AddressCache
from src.core.tracking.controller import TrackingSessionController
from src.core.tracking.models import TrackingViewModel

if TYPE_CHECKING:
    from src.services.tracking.redis_subscriber import RedisSubscriber


class TrackingSessionManager:
    """
    Владелец сессий трекинга и общего кэша адресов.

    Ответственности:
    - Открытие/обновление сессии по снимку поездки
    - Подписка на канал геолокации поездки и отписка при завершении
    - Маршрутизация сэмплов в контроллер сессии
    - Кэш адресов переживает сессии: повторные координаты не геокодируются
    """

    def __init__(
        self,
        cache: AddressCache,
        provider: GeocodingProvider | None,
        subscriber: "RedisSubscriber | None" = None,
        channel_prefix: str | None = None,
    ) -> None:
        if channel_prefix is None:
            from src.config import settings
            channel_prefix = settings.redis.LOCATION_CHANNEL_PREFIX

        self._cache = cache
        self._provider = provider
        self._subscriber = subscriber
        self._channel_prefix = channel_prefix
        self._sessions: dict[str, TrackingSessionController] = {}

        # Статистика
        self._samples_accepted = 0
        self._samples_rejected = 0

    @property
    def cache(self) -> AddressCache:
        return self._cache

    @property
    def provider(self) -> GeocodingProvider | None:
        return self._provider

    @property
    def subscriber(self) -> "RedisSubscriber | None":
        return self._subscriber

    def attach_subscriber(self, subscriber: "RedisSubscriber") -> None:
        """Подключает подписчика канала геолокации (создаётся после менеджера)."""
        self._subscriber = subscriber

    def channel_for(self, trip_id: str) -> str:
        return f"{self._channel_prefix}{trip_id}"

    def get_session(self, trip_id: str) -> TrackingSessionController | None:
        return self._sessions.get(trip_id)

    async def open_session(
        self,
        trip_id: str,
        trip: dict[str, Any] | None = None,
        employee_id: str | None = None,
        initial_location: dict[str, Any] | None = None,
    ) -> TrackingSessionController:
        """
        Открывает сессию (или возвращает существующую) и применяет снимок поездки.

        Args:
            trip_id: ID поездки
            trip: Описание поездки из бэкенда
            employee_id: Отслеживающий сотрудник
            initial_location: Последняя известная локация до живых обновлений
        """
        session = self._sessions.get(trip_id)
        if session is None:
            session = TrackingSessionController(trip_id, self._cache, self._provider)
            self._sessions[trip_id] = session
            if self._subscriber is not None:
                await self._subscriber.subscribe_channel(self.channel_for(trip_id))
            await log_info(f"Сессия трекинга открыта: {trip_id}", type_msg=TypeMsg.INFO)

        if trip is not None:
            payload = {"_id": trip_id, **trip}
            await session.handle_trip_change(payload, employee_id=employee_id)

        if initial_location is not None and session.gps_points == 0:
            await self.push_location(trip_id, initial_location)

        return session

    async def push_location(self, trip_id: str, data: dict[str, Any]) -> bool:
        """
        Передаёт сэмпл в сессию поездки.

        Returns:
            True если сэмпл принят
        """
        session = self._sessions.get(trip_id)
        if session is None:
            return False

        accepted = await session.handle_location(data)
        if accepted:
            self._samples_accepted += 1
        else:
            self._samples_rejected += 1
        return accepted

    async def handle_channel_message(self, channel: str, data: dict[str, Any]) -> None:
        """Обработчик сообщений канала location:trip:{trip_id}."""
        if not channel.startswith(self._channel_prefix):
            return

        trip_id = channel[len(self._channel_prefix):]
        # Сообщение другой поездки, попавшее в канал, игнорируем
        message_trip_id = data.get("tripId", data.get("trip_id"))
        if message_trip_id is not None and str(message_trip_id) != trip_id:
            await log_warning(
                "Сэмпл другой поездки в канале",
                extra={"channel": channel, "trip_id": message_trip_id},
            )
            return

        await self.push_location(trip_id, data)

    def get_view_model(self, trip_id: str) -> TrackingViewModel | None:
        session = self._sessions.get(trip_id)
        return session.view_model() if session else None

    async def end_session(self, trip_id: str) -> bool:
        """
        Завершает сессию: отписка от канала, остановка резолвера.
        Кэш адресов сохраняется.
        """
        session = self._sessions.pop(trip_id, None)
        if session is None:
            return False

        if self._subscriber is not None:
            await self._subscriber.unsubscribe_channel(self.channel_for(trip_id))
        await session.close()
        await log_info(f"Сессия трекинга завершена: {trip_id}", type_msg=TypeMsg.INFO)
        return True

    async def close(self) -> None:
        """Завершает все сессии."""
        for trip_id in list(self._sessions):
            await self.end_session(trip_id)

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_sessions": len(self._sessions),
            "samples_accepted": self._samples_accepted,
            "samples_rejected": self._samples_rejected,
            "cached_addresses": len(self._cache),
        }
