# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test_api_key")

from src.core.geo.service import STATUS_OK, GeocodeResponse
from src.core.tracking.address_cache import AddressCache, InMemorySessionStore
from src.core.tracking.models import Coordinate


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "trip_tracker_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "TRACKING_SERVICE_HOST": "127.0.0.1",
        "TRACKING_SERVICE_PORT": 9092,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "GOOGLE_MAPS_API_KEY": "test_api_key",
        "GEOCODING_LANGUAGE": "en",
        "GEOCODING_TIMEOUT": 5.0,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_PASSWORD": "",
        "REDIS_NAMESPACE": "tracker_test",
        "REDIS_MAX_CONNECTIONS": 10,
        "LOCATION_CHANNEL_PREFIX": "location:trip:",
        "SESSION_TTL": 600,
        "TRACE_LIMIT": 5,
        "GEOCODE_DELAY_MS": 10,
        "CACHE_PRECISION": 6,
        "FALLBACK_PRECISION": 4,
        "DEFAULT_ACCURACY_M": 30.0,
        "LOADING_ADDRESS_TEXT": "Loading...",
        "DEFAULT_CENTER_LAT": 50.45,
        "DEFAULT_CENTER_LNG": 30.52,
        "RECENTER_ZOOM": 15,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    return redis


class FakeGeocoder:
    """
    Геокодер для тестов.

    Отвечает адресом из словаря (или "Street N"), запоминает вызовы и
    максимальное число одновременных запросов.
    """

    def __init__(
        self,
        addresses: dict[tuple[float, float], str] | None = None,
        available: bool = True,
        fail: bool = False,
        status: str = STATUS_OK,
    ) -> None:
        self.addresses = addresses or {}
        self.available = available
        self.fail = fail
        self.status = status
        self.calls: list[Coordinate] = []
        self.call_times: list[float] = []
        self.active = 0
        self.max_active = 0

    @property
    def is_available(self) -> bool:
        return self.available

    async def reverse_geocode(self, coordinate: Coordinate) -> GeocodeResponse:
        self.calls.append(coordinate)
        self.call_times.append(asyncio.get_running_loop().time())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if self.fail:
                raise RuntimeError("geocoder is down")
            if self.status != STATUS_OK:
                return GeocodeResponse(status=self.status)
            address = self.addresses.get(
                (coordinate.lat, coordinate.lng),
                f"Street {len(self.calls)}",
            )
            return GeocodeResponse(status=STATUS_OK, formatted_address=address)
        finally:
            self.active -= 1


@pytest.fixture
def make_geocoder() -> Callable[..., FakeGeocoder]:
    """Фабрика тестовых геокодеров."""
    return FakeGeocoder


@pytest.fixture
def geocoder() -> FakeGeocoder:
    """Доступный геокодер с адресами по умолчанию."""
    return FakeGeocoder()


@pytest.fixture
def address_cache() -> AddressCache:
    """Кэш адресов в памяти."""
    return AddressCache(InMemorySessionStore())


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Часы, всегда возвращающие 09:05."""
    return lambda: datetime(2024, 1, 15, 9, 5, 30)


@pytest.fixture
def pickup_point() -> Coordinate:
    return Coordinate(lat=12.9716, lng=77.5946)


@pytest.fixture
def office_point() -> Coordinate:
    return Coordinate(lat=12.9352, lng=77.6245)


@pytest.fixture
def drop_point() -> Coordinate:
    return Coordinate(lat=12.9980, lng=77.5520)


@pytest.fixture
def sample_trip_data() -> dict[str, Any]:
    """Поездка в формате бэкенда (поездка в офис)."""
    return {
        "_id": "trip-1",
        "tripName": "Morning Login",
        "tripType": "login",
        "officeLocation": {
            "coordinates": {"lat": 12.9352, "lng": 77.6245},
            "address": "Tech Park",
        },
        "employees": [
            {
                "employee": {"_id": "emp-1"},
                "pickupLocation": {"coordinates": {"lat": 12.9716, "lng": 77.5946}},
                "dropLocation": {"coordinates": {"lat": 12.9980, "lng": 77.5520}},
                "status": "not_started",
            },
            {
                "employee": {"_id": "emp-2"},
                "pickupLocation": {"coordinates": {"lat": 12.9000, "lng": 77.6000}},
                "dropLocation": {"coordinates": {"lat": 12.9100, "lng": 77.6100}},
                "status": "picked_up",
            },
        ],
    }


@pytest.fixture
def sample_location_data() -> dict[str, Any]:
    """Сообщение канала геолокации."""
    return {
        "tripId": "trip-1",
        "location": {
            "coordinates": {"lat": 12.9716, "lng": 77.5946},
            "accuracy": 12.4,
            "bearing": 100,
        },
        "speed": 30,
        "timestamp": "2024-01-15T09:05:00",
    }
