# src/core/geo/service.py
"""
Провайдер обратного геокодирования через Google Geocoding API.
Координаты -> человекочитаемый адрес.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from src.common.logger import log_error, log_warning
from src.core.tracking.models import Coordinate


STATUS_OK = "OK"
STATUS_UNAVAILABLE = "UNAVAILABLE"
STATUS_REQUEST_FAILED = "REQUEST_FAILED"


@dataclass(frozen=True)
class GeocodeResponse:
    """Ответ провайдера геокодирования."""
    status: str
    formatted_address: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        """Успех: статус OK и непустой адрес."""
        return self.status == STATUS_OK and bool(self.formatted_address)


class GeocodingProvider(Protocol):
    """Контракт внешнего геокодера."""

    @property
    def is_available(self) -> bool: ...

    async def reverse_geocode(self, coordinate: Coordinate) -> GeocodeResponse: ...


class GeoService:
    """
    Обратное геокодирование через Google Maps.

    Один HTTP-клиент на сервис; закрывается через close().
    """

    GEOCODING_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(
        self,
        api_key: str | None = None,
        language: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Инициализация сервиса.

        Args:
            api_key: API ключ Google Maps (берётся из конфига если None)
            language: Язык ответов (берётся из конфига если None)
            timeout: Таймаут запроса в секундах
            client: Готовый HTTP-клиент (для тестов)
        """
        if api_key is None or language is None or timeout is None:
            from src.config import settings
            api_key = settings.google_maps.GOOGLE_MAPS_API_KEY if api_key is None else api_key
            language = settings.google_maps.GEOCODING_LANGUAGE if language is None else language
            timeout = settings.google_maps.GEOCODING_TIMEOUT if timeout is None else timeout

        self._api_key = api_key
        self._language = language
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def is_available(self) -> bool:
        """Провайдер доступен только с настроенным ключом."""
        return bool(self._api_key)

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        await self._client.aclose()

    async def reverse_geocode(self, coordinate: Coordinate) -> GeocodeResponse:
        """
        Обратное геокодирование: координаты -> адрес.

        Никогда не бросает исключение: сетевые ошибки и неожиданный ответ
        превращаются в неуспешный статус.
        """
        if not self.is_available:
            await log_error("Google Maps API key не настроен")
            return GeocodeResponse(status=STATUS_UNAVAILABLE)

        try:
            response = await self._client.get(
                self.GEOCODING_URL,
                params={
                    "latlng": f"{coordinate.lat},{coordinate.lng}",
                    "key": self._api_key,
                    "language": self._language,
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            await log_warning(
                f"Ошибка обратного геокодирования: {e}",
                extra={"lat": coordinate.lat, "lng": coordinate.lng},
            )
            return GeocodeResponse(status=STATUS_REQUEST_FAILED)

        status = data.get("status", STATUS_REQUEST_FAILED)
        results = data.get("results") or []
        if status != STATUS_OK or not results:
            return GeocodeResponse(status=status)

        return GeocodeResponse(
            status=status,
            formatted_address=results[0].get("formatted_address"),
        )
