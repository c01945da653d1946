# tests/services/test_tracking_app.py
"""
Тесты для HTTP и WebSocket API сервиса трекинга.
"""

from __future__ import annotations

from typing import Any, Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from src.core.tracking.address_cache import AddressCache
from src.services.tracking.app import create_app
from src.services.tracking.service import TrackingSessionManager


@pytest.fixture
def manager(address_cache: AddressCache, geocoder: Any) -> TrackingSessionManager:
    """Менеджер без Redis: сэмплы приходят только по HTTP."""
    return TrackingSessionManager(address_cache, geocoder, channel_prefix="location:trip:")


@pytest.fixture
def client(manager: TrackingSessionManager) -> Iterator[TestClient]:
    with TestClient(create_app(manager=manager)) as test_client:
        yield test_client


@pytest.fixture
def trip_body(sample_trip_data: dict[str, Any]) -> dict[str, Any]:
    return {"trip": sample_trip_data, "employee_id": "emp-1"}


def test_health_check(client: TestClient) -> None:
    """Проверяет health check без Redis."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "service": "tracking_service",
        "status": "healthy",
        "version": "1.0.0",
        "dependencies": {},
    }


@pytest.mark.parametrize(
    ("redis_ok", "expected_status", "expected_redis"),
    [
        (True, "healthy", "healthy"),
        (False, "degraded", "unhealthy"),
    ],
)
def test_health_check_reports_redis(
    manager: TrackingSessionManager,
    redis_ok: bool,
    expected_status: str,
    expected_redis: str,
) -> None:
    """Проверяет, что health check опрашивает Redis."""
    redis_client = MagicMock()
    redis_client.health_check = AsyncMock(return_value=redis_ok)

    with TestClient(create_app(manager=manager, redis_client=redis_client)) as test_client:
        data = test_client.get("/health").json()

    assert data["status"] == expected_status
    assert data["dependencies"] == {"redis": expected_redis}
    redis_client.health_check.assert_awaited_once()


def test_open_session(client: TestClient, trip_body: dict[str, Any]) -> None:
    """Проверяет открытие сессии и начальную view model."""
    response = client.put("/api/v1/tracking/trip-1", json=trip_body)

    assert response.status_code == 200
    data = response.json()
    assert data["trip_id"] == "trip-1"
    assert data["trip_name"] == "Morning Login"
    assert data["center"] == {"lat": 12.9716, "lng": 77.5946}
    assert data["stats"]["eta_label"] == "--"
    assert data["gps_points"] == 0


def test_open_session_with_initial_location(client: TestClient, trip_body: dict[str, Any]) -> None:
    """Проверяет применение последней известной локации."""
    trip_body["initial_location"] = {"lat": 12.9716, "lng": 77.5946, "speed": 30}

    data = client.put("/api/v1/tracking/trip-1", json=trip_body).json()

    assert data["gps_points"] == 1
    assert data["stats"]["distance_label"] == "0.0km"


def test_push_location(client: TestClient, trip_body: dict[str, Any], sample_location_data: dict[str, Any]) -> None:
    """Проверяет приём сэмпла по HTTP."""
    client.put("/api/v1/tracking/trip-1", json=trip_body)

    response = client.post("/api/v1/tracking/trip-1/location", json=sample_location_data)

    assert response.status_code == 200
    assert response.json() == {"trip_id": "trip-1", "accepted": True, "gps_points": 1}

    view_model = client.get("/api/v1/tracking/trip-1").json()
    assert view_model["stats"]["speed_kmh"] == 30
    assert view_model["stats"]["direction"] == "E"
    assert len(view_model["trace"]) == 1


def test_push_invalid_location(client: TestClient) -> None:
    """Проверяет, что некорректный сэмпл не является ошибкой запроса."""
    client.put("/api/v1/tracking/trip-1", json={})

    response = client.post("/api/v1/tracking/trip-1/location", json={"lat": "north"})

    assert response.status_code == 200
    assert response.json()["accepted"] is False
    assert client.get("/stats").json()["samples_rejected"] == 1


def test_unknown_session(client: TestClient, sample_location_data: dict[str, Any]) -> None:
    """Проверяет 404 для неизвестной поездки."""
    assert client.get("/api/v1/tracking/missing").status_code == 404
    assert client.post("/api/v1/tracking/missing/location", json=sample_location_data).status_code == 404
    assert client.delete("/api/v1/tracking/missing").status_code == 404


def test_end_session(client: TestClient) -> None:
    """Проверяет завершение сессии."""
    client.put("/api/v1/tracking/trip-1", json={})

    response = client.delete("/api/v1/tracking/trip-1")

    assert response.status_code == 200
    assert response.json() == {"status": "ended", "trip_id": "trip-1"}
    assert client.get("/api/v1/tracking/trip-1").status_code == 404


def test_stats(client: TestClient) -> None:
    """Проверяет статистику сервиса."""
    client.put("/api/v1/tracking/trip-1", json={})
    client.put("/api/v1/tracking/trip-2", json={})

    data = client.get("/stats").json()

    assert data["active_sessions"] == 2
    assert data["samples_accepted"] == 0


def test_websocket_unknown_session(client: TestClient) -> None:
    """Проверяет закрытие WebSocket для неизвестной поездки."""
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/tracking/missing") as websocket:
            websocket.receive_json()

    assert exc_info.value.code == 4404


def test_websocket_stream(client: TestClient, trip_body: dict[str, Any], sample_location_data: dict[str, Any]) -> None:
    """Проверяет поток view model: начальное состояние, ping и обновление по сэмплу."""
    client.put("/api/v1/tracking/trip-1", json=trip_body)

    with client.websocket_connect("/ws/tracking/trip-1") as websocket:
        initial = websocket.receive_json()
        assert initial["type"] == "view_model"
        assert initial["data"]["trip_id"] == "trip-1"

        websocket.send_json({"action": "ping"})
        message = websocket.receive_json()
        while message["type"] != "pong":
            message = websocket.receive_json()

        client.post("/api/v1/tracking/trip-1/location", json=sample_location_data)

        update = websocket.receive_json()
        while update["data"]["gps_points"] == 0:
            update = websocket.receive_json()
        assert update["type"] == "view_model"
        assert update["data"]["gps_points"] == 1
