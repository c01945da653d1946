# src/core/tracking/controller.py
"""
Контроллер сессии трекинга одной поездки.

Принимает GPS-сэмплы и снимки поездки, обновляет след, метрики и адреса,
и отдаёт слою отображения готовую view model. Исключения наружу не
пробрасываются: любая ошибка деградирует до заглушек в отображении.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable

from src.common.constants import (
    DESTINATION_LABEL,
    STATIC_SLOTS,
    AddressSlot,
    TypeMsg,
)
from src.common.logger import log_error, log_info, log_warning
from src.core.geo.haversine import bearing
from src.core.geo.service import GeocodingProvider
from src.core.tracking.address_cache import AddressCache
from src.core.tracking.models import (
    Coordinate,
    LocationSample,
    MapMarker,
    StatsSnapshot,
    TrackingViewModel,
    TripDefinition,
    TripStop,
)
from src.core.tracking.resolver import GeocodeResolver
from src.core.tracking.stats import StatsEngine
from src.core.tracking.trace import TraceAggregator


ViewModelListener = Callable[[TrackingViewModel], Awaitable[None]]


class TrackingSessionController:
    """
    Оркестратор сессии: след, метрики, адреса.

    Кэш адресов передаётся снаружи и переживает сессию; всё остальное
    состояние живёт до close().

    Пересчёт на сэмпл синхронный (без точек ожидания), поэтому сэмплы
    обрабатываются строго по порядку и пересчёты не пересекаются.
    """

    def __init__(
        self,
        trip_id: str,
        cache: AddressCache,
        provider: GeocodingProvider | None,
        *,
        resolver: GeocodeResolver | None = None,
        trace: TraceAggregator | None = None,
        stats_engine: StatsEngine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        from src.config import settings

        self.trip_id = trip_id
        self._cache = cache
        self._resolver = resolver if resolver is not None else GeocodeResolver(cache, provider)
        self._trace = trace if trace is not None else TraceAggregator()
        self._stats_engine = stats_engine if stats_engine is not None else StatsEngine(clock=clock)

        self._default_center = Coordinate(
            lat=settings.tracking.DEFAULT_CENTER_LAT,
            lng=settings.tracking.DEFAULT_CENTER_LNG,
        )
        self._zoom = settings.tracking.RECENTER_ZOOM

        self._trip: TripDefinition | None = None
        self._last_sample: LocationSample | None = None
        self._snapshot = StatsSnapshot(accuracy_m=int(settings.tracking.DEFAULT_ACCURACY_M))
        self._gps_points = 0
        self._recenter_seq = 0
        self._listeners: list[ViewModelListener] = []
        self._closed = False

        self._resolver.subscribe(self._on_address_published)

    # =========================================================================
    # СВОЙСТВА
    # =========================================================================

    @property
    def trip(self) -> TripDefinition | None:
        return self._trip

    @property
    def snapshot(self) -> StatsSnapshot:
        return self._snapshot

    @property
    def resolver(self) -> GeocodeResolver:
        return self._resolver

    @property
    def trace(self) -> TraceAggregator:
        return self._trace

    @property
    def gps_points(self) -> int:
        return self._gps_points

    @property
    def is_closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: ViewModelListener) -> None:
        """Подписка слоя отображения на изменения view model."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: ViewModelListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # =========================================================================
    # СОБЫТИЯ
    # =========================================================================

    async def handle_location(self, sample: LocationSample | dict[str, Any]) -> bool:
        """
        Обрабатывает новый GPS-сэмпл.

        Некорректный сэмпл пропускается ("нет обновления в этот тик").

        Returns:
            True если сэмпл принят
        """
        if self._closed:
            return False

        if not isinstance(sample, LocationSample):
            try:
                sample = LocationSample.from_payload(sample)
            except ValueError as e:
                await log_warning(
                    f"Пропущен некорректный сэмпл геолокации: {e}",
                    extra={"trip_id": self.trip_id},
                )
                return False

        try:
            self._trace.append(sample.coordinate)
            self._last_sample = sample
            self._gps_points += 1
            self._recompute()
            # Сигнал отображению центрировать карту на транспорте
            self._recenter_seq += 1
            self._resolver.request_resolution(sample.coordinate, AddressSlot.CURRENT)
        except Exception as e:
            await log_error(f"Ошибка обработки сэмпла: {e}", extra={"trip_id": self.trip_id}, exc_info=True)
            return False

        await self._notify()
        return True

    async def handle_trip_change(
        self,
        trip: TripDefinition | dict[str, Any],
        employee_id: str | None = None,
    ) -> bool:
        """
        Применяет новый снимок поездки.

        Для каждой статичной точки сначала проверяется кэш адресов:
        попадание публикуется сразу, промах уходит в резолвер.

        Returns:
            True если снимок применён
        """
        if self._closed:
            return False

        if not isinstance(trip, TripDefinition):
            try:
                trip = TripDefinition.from_payload(trip, employee_id=employee_id)
            except ValueError as e:
                await log_warning(
                    f"Некорректное описание поездки: {e}",
                    extra={"trip_id": self.trip_id},
                )
                return False
            except Exception as e:
                await log_error(f"Ошибка разбора поездки: {e}", extra={"trip_id": self.trip_id}, exc_info=True)
                return False

        try:
            previous, self._trip = self._trip, trip

            for slot in STATIC_SLOTS:
                stop = trip.stop_for(slot)
                if stop is None:
                    continue

                old_stop = previous.stop_for(slot) if previous else None
                if old_stop is not None and self._cache.key_for(old_stop.coordinate) != self._cache.key_for(stop.coordinate):
                    self._resolver.reset_slot(slot)

                cached = await self._cached_address(stop.coordinate, slot)
                if cached:
                    await self._resolver.publish(slot, cached, stop.coordinate)
                else:
                    self._resolver.request_resolution(stop.coordinate, slot)

            # Цель могла смениться
            if self._last_sample is not None:
                self._recompute()
        except Exception as e:
            await log_error(f"Ошибка применения поездки: {e}", extra={"trip_id": self.trip_id}, exc_info=True)
            return False

        await log_info(
            f"Поездка {self.trip_id} обновлена",
            type_msg=TypeMsg.DEBUG,
            extra={"trip_type": trip.trip_type.value, "status": trip.employee_status.value},
        )
        await self._notify()
        return True

    async def _cached_address(self, coordinate: Coordinate, slot: AddressSlot) -> str | None:
        """Адрес из кэша; недоступное хранилище считается промахом."""
        try:
            return await self._cache.get(coordinate)
        except Exception as e:
            await log_warning(
                f"Кэш адресов недоступен, точка уйдёт в геокодер: {e}",
                extra={"trip_id": self.trip_id, "slot": slot.value},
            )
            return None

    async def close(self) -> None:
        """
        Завершает сессию. Очередь геокодирования отбрасывается,
        кэш адресов остаётся у владельца.
        """
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        await self._resolver.close()
        self._trace.clear()
        self._last_sample = None

    # =========================================================================
    # VIEW MODEL
    # =========================================================================

    def next_stop(self) -> TripStop | None:
        return self._trip.next_stop() if self._trip else None

    def view_model(self) -> TrackingViewModel:
        """Снимок состояния для слоя отображения."""
        addresses = self._resolver.addresses
        vehicle = self._last_sample.coordinate if self._last_sample else None
        target = self.next_stop()

        return TrackingViewModel(
            trip_id=self.trip_id,
            trip_name=self._trip.trip_name if self._trip else None,
            stats=self._snapshot,
            addresses={slot.value: value for slot, value in addresses.items()},
            trace=self._trace.points,
            center=self._center(),
            zoom=self._zoom,
            markers=self._markers(vehicle, addresses),
            route_line=self._route_line(vehicle),
            next_stop_address=self._next_stop_address(addresses),
            heading_to_next_stop=bearing(vehicle, target.coordinate) if vehicle and target else None,
            gps_points=self._gps_points,
            recenter_seq=self._recenter_seq,
        )

    def _recompute(self) -> None:
        target = self.next_stop()
        self._snapshot = self._stats_engine.compute(
            self._last_sample,
            target.coordinate if target else None,
            self._trace.total_distance_km(),
        )

    def _center(self) -> Coordinate:
        """Транспорт, иначе точка посадки, иначе центр по умолчанию."""
        if self._last_sample is not None:
            return self._last_sample.coordinate
        if self._trip is not None and self._trip.pickup is not None:
            return self._trip.pickup.coordinate
        return self._default_center

    def _markers(self, vehicle: Coordinate | None, addresses: dict[AddressSlot, str]) -> list[MapMarker]:
        markers: list[MapMarker] = []
        trip = self._trip

        if trip is not None and trip.pickup is not None:
            markers.append(MapMarker(
                type="pickup",
                title=f"Pickup: {addresses[AddressSlot.PICKUP]}",
                position=trip.pickup.coordinate,
            ))

        if trip is not None:
            if trip.is_office_bound and trip.office is not None:
                markers.append(MapMarker(
                    type="office",
                    title=f"Office: {addresses[AddressSlot.OFFICE]}",
                    position=trip.office.coordinate,
                ))
            elif trip.drop is not None:
                markers.append(MapMarker(
                    type="drop",
                    title=f"Dropoff: {addresses[AddressSlot.DROP]}",
                    position=trip.drop.coordinate,
                ))

        if vehicle is not None:
            markers.append(MapMarker(
                type="vehicle",
                title=f"Driver: {addresses[AddressSlot.CURRENT]}",
                position=vehicle,
            ))

        return markers

    def _route_line(self, vehicle: Coordinate | None) -> list[Coordinate]:
        """Отрезок от транспорта до конечной точки поездки."""
        destination = self._trip.destination() if self._trip else None
        if vehicle is None or destination is None:
            return []
        return [vehicle, destination.coordinate]

    def _next_stop_address(self, addresses: dict[AddressSlot, str]) -> str:
        """Подпись следующей остановки: офис для login, иначе посадка или высадка."""
        trip = self._trip
        if trip is None:
            return DESTINATION_LABEL
        if trip.is_office_bound:
            return addresses[AddressSlot.OFFICE]
        if trip.pickup is not None:
            return addresses[AddressSlot.PICKUP]
        if trip.drop is not None:
            return addresses[AddressSlot.DROP]
        return DESTINATION_LABEL

    # =========================================================================
    # УВЕДОМЛЕНИЯ
    # =========================================================================

    async def _on_address_published(self, slot: AddressSlot, address: str) -> None:
        await self._notify()

    async def _notify(self) -> None:
        if not self._listeners or self._closed:
            return
        view_model = self.view_model()
        for listener in list(self._listeners):
            try:
                await listener(view_model)
            except Exception as e:
                await log_error(f"Ошибка подписчика view model: {e}", extra={"trip_id": self.trip_id})
