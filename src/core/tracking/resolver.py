# src/core/tracking/resolver.py
"""
Очередь обратного геокодирования.

Все запросы проходят через одну FIFO-очередь и одну задачу-воркер,
поэтому в каждый момент к внешнему геокодеру идёт не больше одного запроса.
Между запросами выдерживается фиксированная пауза (100 мс по умолчанию),
чтобы не превышать лимиты провайдера.

Алгоритм обработки запроса:
1. Публикуем координаты строкой ("12.9716, 77.5946") — заглушка до ответа.
2. Кэш адресов: попадание -> публикуем адрес, внешний вызов не делаем.
3. Промах -> один вызов геокодера.
4. Успех -> публикуем адрес и пишем в кэш. Неуспех -> остаётся заглушка,
   повтора нет, только warning в лог.
5. Пауза перед следующим запросом.
"""

from __future__ import annotations

import asyncio
import re
from collections import deque
from typing import Awaitable, Callable

from src.common.constants import AddressSlot, ResolverState, TypeMsg
from src.common.logger import log_error, log_info, log_warning
from src.core.geo.service import GeocodingProvider
from src.core.tracking.address_cache import AddressCache
from src.core.tracking.models import Coordinate, GeocodeRequest


AddressHandler = Callable[[AddressSlot, str], Awaitable[None]]

# Адрес, который ещё не разрешён геокодером: "12.9716, 77.5946"
_COORDINATE_TEXT = re.compile(r"^-?\d+\.\d+,\s*-?\d+\.\d+$")


class GeocodeResolver:
    """
    Сериализованный резолвер адресов по слотам.

    Состояния: IDLE -> DRAINING -> IDLE. Воркер запускается первым запросом
    и завершается, когда очередь пуста; следующий запрос запускает его снова.
    """

    def __init__(
        self,
        cache: AddressCache,
        provider: GeocodingProvider | None,
        *,
        delay_ms: int | None = None,
        fallback_precision: int | None = None,
        loading_text: str | None = None,
    ) -> None:
        """
        Args:
            cache: Кэш адресов (общий для сессий)
            provider: Внешний геокодер; None — геокодирование недоступно
            delay_ms: Пауза между запросами
            fallback_precision: Знаков после запятой в строке-заглушке
            loading_text: Текст слота до первой публикации
        """
        if delay_ms is None or fallback_precision is None or loading_text is None:
            from src.config import settings
            delay_ms = settings.tracking.GEOCODE_DELAY_MS if delay_ms is None else delay_ms
            fallback_precision = (
                settings.tracking.FALLBACK_PRECISION if fallback_precision is None else fallback_precision
            )
            loading_text = settings.tracking.LOADING_ADDRESS_TEXT if loading_text is None else loading_text

        self._cache = cache
        self._provider = provider
        self._delay = delay_ms / 1000
        self._fallback_precision = fallback_precision
        self._loading_text = loading_text

        self._queue: deque[GeocodeRequest] = deque()
        self._task: asyncio.Task | None = None
        self._handlers: list[AddressHandler] = []
        self._closed = False

        self._addresses: dict[AddressSlot, str] = {slot: loading_text for slot in AddressSlot}
        # Квантованный ключ координаты, опубликованной в слот
        self._slot_keys: dict[AddressSlot, str] = {}

        # Статистика
        self._provider_calls = 0
        self._cache_hits = 0
        self._failures = 0

    # =========================================================================
    # СОСТОЯНИЕ
    # =========================================================================

    @property
    def state(self) -> ResolverState:
        if self._task is not None and not self._task.done():
            return ResolverState.DRAINING
        return ResolverState.IDLE

    @property
    def addresses(self) -> dict[AddressSlot, str]:
        """Копия опубликованных значений слотов."""
        return dict(self._addresses)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def is_resolved(self, slot: AddressSlot) -> bool:
        """Слот содержит настоящий адрес, а не заглушку и не координаты."""
        value = self._addresses.get(slot)
        if not value or value == self._loading_text:
            return False
        return not _COORDINATE_TEXT.match(value)

    def reset_slot(self, slot: AddressSlot) -> None:
        """Возвращает слот к заглушке загрузки (точка поездки сменилась)."""
        self._addresses[slot] = self._loading_text
        self._slot_keys.pop(slot, None)

    def subscribe(self, handler: AddressHandler) -> None:
        """Подписка на публикации адресов."""
        self._handlers.append(handler)

    def get_stats(self) -> dict[str, int]:
        return {
            "provider_calls": self._provider_calls,
            "cache_hits": self._cache_hits,
            "failures": self._failures,
            "pending": len(self._queue),
        }

    # =========================================================================
    # ОЧЕРЕДЬ
    # =========================================================================

    def request_resolution(self, coordinate: Coordinate, slot: AddressSlot) -> bool:
        """
        Ставит запрос в очередь.

        Повторный запрос игнорируется, если слот уже разрешён
        (для CURRENT — только если координата та же) или такой же запрос
        уже ждёт в очереди.

        Returns:
            True если запрос добавлен
        """
        if self._closed:
            return False

        if self.is_resolved(slot):
            same_point = self._slot_keys.get(slot) == self._cache.key_for(coordinate)
            if slot != AddressSlot.CURRENT or same_point:
                return False

        request = GeocodeRequest(coordinate=coordinate, slot=slot)
        if request in self._queue:
            return False

        self._queue.append(request)

        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._drain())
        return True

    async def wait_idle(self) -> None:
        """Дожидается опустошения очереди."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    async def close(self) -> None:
        """
        Останавливает резолвер: очередь отбрасывается, результаты
        после закрытия не публикуются. Кэш не трогаем.
        """
        self._closed = True
        self._queue.clear()
        self._handlers.clear()

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _drain(self) -> None:
        """Обрабатывает очередь по одному запросу до опустошения."""
        while self._queue and not self._closed:
            request = self._queue.popleft()
            try:
                await self._process(request)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Ошибка одного запроса не останавливает очередь
                await log_error(f"Ошибка обработки запроса геокодирования: {e}", exc_info=True)

            await asyncio.sleep(self._delay)

    async def _process(self, request: GeocodeRequest) -> None:
        coordinate, slot = request.coordinate, request.slot

        await self.publish(slot, coordinate.format(self._fallback_precision), coordinate)

        cached = await self._cache.get(coordinate)
        if cached:
            self._cache_hits += 1
            await self.publish(slot, cached, coordinate)
            return

        if self._provider is None or not self._provider.is_available:
            await log_info(
                "Геокодер недоступен, остаются координаты",
                type_msg=TypeMsg.DEBUG,
                extra={"slot": slot.value},
            )
            return

        self._provider_calls += 1
        try:
            response = await self._provider.reverse_geocode(coordinate)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failures += 1
            await log_warning(
                f"Геокодирование не удалось для слота {slot.value}: {e}",
                extra={"lat": coordinate.lat, "lng": coordinate.lng},
            )
            return

        if not response.is_resolved:
            self._failures += 1
            await log_warning(
                f"Геокодирование не дало результатов для слота {slot.value}",
                extra={"status": response.status, "lat": coordinate.lat, "lng": coordinate.lng},
            )
            return

        await self.publish(slot, response.formatted_address, coordinate)
        await self._cache.put(coordinate, response.formatted_address)

    # =========================================================================
    # ПУБЛИКАЦИЯ
    # =========================================================================

    async def publish(self, slot: AddressSlot, address: str, coordinate: Coordinate | None = None) -> None:
        """Записывает значение слота и уведомляет подписчиков."""
        if self._closed:
            return

        self._addresses[slot] = address
        if coordinate is not None:
            self._slot_keys[slot] = self._cache.key_for(coordinate)

        for handler in list(self._handlers):
            try:
                await handler(slot, address)
            except Exception as e:
                await log_error(f"Ошибка подписчика адресов: {e}", exc_info=True)
