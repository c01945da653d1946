# src/core/tracking/stats.py
"""
Расчёт метрик поездки для отображения: расстояние и ETA до следующей
остановки, скорость, точность GPS, направление, время обновления.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Callable

from src.common.constants import COMPASS_OCTANTS, PLACEHOLDER_LABEL, SOON_LABEL
from src.core.geo.haversine import distance
from src.core.tracking.models import Coordinate, LocationSample, StatsSnapshot


# ETA не больше этого числа минут показывается как "Soon"
SOON_THRESHOLD_MIN = 2


def round_half_up(value: float) -> int:
    """Округление к ближайшему целому, .5 — вверх (как в отображении)."""
    return int(math.floor(value + 0.5))


def direction_for_bearing(bearing_deg: float | None) -> str:
    """Румб компаса для азимута: round(bearing / 45) mod 8."""
    index = round_half_up((bearing_deg or 0.0) / 45) % len(COMPASS_OCTANTS)
    return COMPASS_OCTANTS[index]


def eta_minutes(distance_km: float, speed_kmh: int) -> int:
    """Минуты до цели; 0 если транспорт стоит."""
    if speed_kmh <= 0:
        return 0
    return max(1, round_half_up(distance_km * 60 / speed_kmh))


def format_eta(minutes: int) -> str:
    # Стоящий транспорт (0 минут) тоже попадает в "Soon"
    if minutes <= SOON_THRESHOLD_MIN:
        return SOON_LABEL
    return f"{minutes}min"


class StatsEngine:
    """
    Собирает StatsSnapshot из последнего сэмпла, цели и следа.

    Чистая функция входных данных и текущего времени; часы подменяются в тестах.
    """

    def __init__(
        self,
        default_accuracy_m: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if default_accuracy_m is None:
            from src.config import settings
            default_accuracy_m = settings.tracking.DEFAULT_ACCURACY_M

        self._default_accuracy_m = default_accuracy_m
        self._clock = clock or datetime.now

    def compute(
        self,
        sample: LocationSample,
        target: Coordinate | None,
        total_distance_km: float,
    ) -> StatsSnapshot:
        """
        Args:
            sample: Последний GPS-сэмпл
            target: Следующая остановка или None
            total_distance_km: Пройденное по следу расстояние

        Returns:
            Новый снимок метрик
        """
        speed = max(0, round_half_up(sample.speed_kmh or 0.0))
        accuracy = round_half_up(
            sample.accuracy_m if sample.accuracy_m is not None else self._default_accuracy_m
        )

        distance_label = eta_label = PLACEHOLDER_LABEL
        if target is not None:
            distance_km = round(distance(sample.coordinate, target) / 1000, 1)
            distance_label = f"{distance_km:.1f}km"
            eta_label = format_eta(eta_minutes(distance_km, speed))

        return StatsSnapshot(
            eta_label=eta_label,
            distance_label=distance_label,
            speed_kmh=speed,
            accuracy_m=accuracy,
            direction=direction_for_bearing(sample.bearing_deg),
            last_update_label=self._clock().strftime("%H:%M"),
            total_distance_km=total_distance_km,
        )
