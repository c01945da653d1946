# src/core/tracking/__init__.py
"""
Конвейер трекинга: GPS-сэмплы -> след, метрики, адреса -> view model.

Компоненты импортируются из своих модулей:
address_cache, resolver, trace, stats, controller.
"""

from src.core.tracking.models import (
    Coordinate,
    GeocodeRequest,
    LocationSample,
    StatsSnapshot,
    TrackingViewModel,
    TripDefinition,
    TripStop,
)

__all__ = [
    "Coordinate",
    "GeocodeRequest",
    "LocationSample",
    "StatsSnapshot",
    "TrackingViewModel",
    "TripDefinition",
    "TripStop",
]
