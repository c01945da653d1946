# src/core/tracking/trace.py
"""
Ограниченный след последних позиций и пройденное расстояние.
"""

from __future__ import annotations

from collections import deque

from src.core.geo.haversine import distance
from src.core.tracking.models import Coordinate


class TraceAggregator:
    """
    Хранит до `limit` последних координат, новые — первыми.

    След только пополняется спереди и обрезается с хвоста, порядок не меняется.
    """

    def __init__(self, limit: int | None = None) -> None:
        if limit is None:
            from src.config import settings
            limit = settings.tracking.TRACE_LIMIT

        self._points: deque[Coordinate] = deque(maxlen=limit)
        self._total_km = 0.0

    @property
    def limit(self) -> int:
        return self._points.maxlen

    @property
    def points(self) -> list[Coordinate]:
        """Координаты следа, новые первыми."""
        return list(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def append(self, coordinate: Coordinate) -> None:
        """Добавляет новую точку в начало; самая старая вытесняется при переполнении."""
        self._points.appendleft(coordinate)
        self._total_km = self._compute_total_km()

    def total_distance_km(self) -> float:
        """Пройденное по следу расстояние, км с точностью 0.1."""
        return self._total_km

    def clear(self) -> None:
        self._points.clear()
        self._total_km = 0.0

    def _compute_total_km(self) -> float:
        # Обход от старых к новым
        chronological = list(reversed(self._points))
        meters = sum(
            distance(prev, curr)
            for prev, curr in zip(chronological, chronological[1:])
        )
        return round(meters / 1000, 1)
