# src/services/tracking/app.py
"""
FastAPI приложение для сервиса live-трекинга поездки.

REST endpoints:
- GET /health: проверка здоровья
- GET /stats: статистика сессий
- PUT /api/v1/tracking/{trip_id}: открыть/обновить сессию снимком поездки
- POST /api/v1/tracking/{trip_id}/location: сэмпл геолокации по HTTP
- GET /api/v1/tracking/{trip_id}: текущая view model
- DELETE /api/v1/tracking/{trip_id}: завершить сессию

WebSocket endpoints:
- /ws/tracking/{trip_id}: поток view model
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from src.common.logger import log_info, log_warning, setup_logging
from src.core.tracking.models import TrackingViewModel
from src.infra.redis_client import RedisClient
from src.services.tracking.service import TrackingSessionManager


SERVICE_NAME = "tracking_service"
SERVICE_VERSION = "1.0.0"


# === MODELS ===

class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""
    service: str
    status: str = "healthy"
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


class StatsResponse(BaseModel):
    """Статистика сервиса."""
    active_sessions: int
    samples_accepted: int
    samples_rejected: int
    cached_addresses: int


class OpenSessionRequest(BaseModel):
    """Снимок поездки для сессии."""
    trip: dict[str, Any] | None = None
    employee_id: str | None = None
    initial_location: dict[str, Any] | None = None


class LocationAccepted(BaseModel):
    """Результат приёма сэмпла."""
    trip_id: str
    accepted: bool
    gps_points: int


# === MANAGER ===

async def _build_manager(app: FastAPI) -> TrackingSessionManager:
    """Собирает менеджер на реальной инфраструктуре: Redis + Google Maps."""
    from src.config import settings
    from src.core.geo.service import GeoService
    from src.core.tracking.address_cache import AddressCache, RedisSessionStore
    from src.infra.redis_client import init_redis
    from src.services.tracking.redis_subscriber import RedisSubscriber

    redis_client = await init_redis()
    app.state.redis = redis_client
    cache = AddressCache(
        RedisSessionStore(redis_client, ttl=settings.redis_ttl.SESSION_TTL),
        precision=settings.tracking.CACHE_PRECISION,
    )
    manager = TrackingSessionManager(cache, GeoService())
    subscriber = RedisSubscriber(redis_client, manager.handle_channel_message)
    manager.attach_subscriber(subscriber)
    await subscriber.start()
    return manager


async def _shutdown_manager(manager: TrackingSessionManager) -> None:
    from src.infra.redis_client import close_redis

    await manager.close()
    subscriber = manager.subscriber
    if subscriber is not None:
        await subscriber.stop()
    provider = manager.provider
    if provider is not None and hasattr(provider, "close"):
        await provider.close()
    await close_redis()


def get_manager(request: Request) -> TrackingSessionManager:
    """Получить менеджер сессий."""
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise RuntimeError("Service not initialized")
    return manager


# === APP ===

def create_app(
    manager: TrackingSessionManager | None = None,
    redis_client: RedisClient | None = None,
) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        manager: Готовый менеджер (тесты); без него lifespan поднимает Redis и геокодер
        redis_client: Клиент Redis для health check при готовом менеджере
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Жизненный цикл приложения."""
        setup_logging()

        if manager is not None:
            app.state.manager = manager
            app.state.redis = redis_client
            yield
            await manager.close()
            return

        app.state.manager = await _build_manager(app)
        await log_info("Сервис трекинга запущен")

        yield

        await _shutdown_manager(app.state.manager)

    app = FastAPI(
        title="Tracking Service",
        description="Live-трекинг поездки: след, ETA, адреса.",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Проверка здоровья сервиса и Redis."""
        deps: dict[str, str] = {}

        redis_client = getattr(request.app.state, "redis", None)
        if redis_client is not None:
            deps["redis"] = "healthy" if await redis_client.health_check() else "unhealthy"

        overall = "healthy" if all(v == "healthy" for v in deps.values()) else "degraded"

        return HealthStatus(
            service=SERVICE_NAME,
            status=overall,
            version=SERVICE_VERSION,
            dependencies=deps,
        )

    # === STATS ===

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats(request: Request) -> StatsResponse:
        """Получить статистику сервиса."""
        return StatsResponse(**get_manager(request).get_stats())

    # === TRACKING ENDPOINTS ===

    @app.put(
        "/api/v1/tracking/{trip_id}",
        response_model=TrackingViewModel,
        tags=["Tracking"],
        summary="Открыть или обновить сессию",
    )
    async def open_session(trip_id: str, body: OpenSessionRequest, request: Request) -> TrackingViewModel:
        """
        Открыть сессию трекинга поездки или применить новый снимок поездки.

        Адреса статичных точек берутся из кэша или ставятся в очередь геокодирования.
        """
        manager = get_manager(request)
        session = await manager.open_session(
            trip_id,
            trip=body.trip,
            employee_id=body.employee_id,
            initial_location=body.initial_location,
        )
        return session.view_model()

    @app.post(
        "/api/v1/tracking/{trip_id}/location",
        response_model=LocationAccepted,
        responses={404: {"description": "Сессия не найдена"}},
        tags=["Tracking"],
        summary="Сэмпл геолокации",
    )
    async def push_location(trip_id: str, payload: dict[str, Any], request: Request) -> LocationAccepted:
        """
        Передать сэмпл геолокации (альтернатива каналу Redis).

        Некорректный сэмпл не является ошибкой: он пропускается, accepted=false.
        """
        manager = get_manager(request)
        session = manager.get_session(trip_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Сессия не найдена")

        accepted = await manager.push_location(trip_id, payload)
        return LocationAccepted(trip_id=trip_id, accepted=accepted, gps_points=session.gps_points)

    @app.get(
        "/api/v1/tracking/{trip_id}",
        response_model=TrackingViewModel,
        responses={404: {"description": "Сессия не найдена"}},
        tags=["Tracking"],
        summary="Текущая view model",
    )
    async def get_view_model(trip_id: str, request: Request) -> TrackingViewModel:
        """Получить текущее состояние трекинга."""
        view_model = get_manager(request).get_view_model(trip_id)
        if view_model is None:
            raise HTTPException(status_code=404, detail="Сессия не найдена")
        return view_model

    @app.delete(
        "/api/v1/tracking/{trip_id}",
        tags=["Tracking"],
        summary="Завершить сессию",
    )
    async def end_session(trip_id: str, request: Request) -> dict[str, str]:
        """Завершить сессию. Кэш адресов сохраняется для следующих сессий."""
        ended = await get_manager(request).end_session(trip_id)
        if not ended:
            raise HTTPException(status_code=404, detail="Сессия не найдена")
        return {"status": "ended", "trip_id": trip_id}

    # === WEBSOCKET ===

    @app.websocket("/ws/tracking/{trip_id}")
    async def websocket_tracking(websocket: WebSocket, trip_id: str) -> None:
        """
        Поток view model поездки.

        Сразу после подключения отправляется текущее состояние,
        затем каждое изменение. Входящие: {"action": "ping"}.
        """
        manager: TrackingSessionManager = websocket.app.state.manager
        session = manager.get_session(trip_id)
        if session is None:
            await websocket.close(code=4404)
            return

        await websocket.accept()

        async def send_view_model(view_model: TrackingViewModel) -> None:
            await websocket.send_json({"type": "view_model", "data": view_model.model_dump(mode="json")})

        session.subscribe(send_view_model)
        try:
            await send_view_model(session.view_model())
            while True:
                data = await websocket.receive_json()
                if isinstance(data, dict) and data.get("action") == "ping":
                    await websocket.send_json({"type": "pong"})
        except WebSocketDisconnect:
            pass
        except Exception as e:
            await log_warning(f"WebSocket трекинга закрыт с ошибкой: {e}", extra={"trip_id": trip_id})
        finally:
            session.unsubscribe(send_view_model)


app = create_app()


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    from src.config import settings

    uvicorn.run(app, host=settings.deployment.TRACKING_SERVICE_HOST, port=settings.deployment.TRACKING_SERVICE_PORT)
