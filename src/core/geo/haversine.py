# src/core/geo/haversine.py
"""
Расстояние и азимут между двумя точками на сфере (формула Haversine).
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.tracking.models import Coordinate


EARTH_RADIUS_M = 6_371_000.0


def distance(a: "Coordinate", b: "Coordinate") -> float:
    """
    Вычисляет расстояние между двумя точками (в метрах) по формуле Haversine.
    """
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) *
         math.sin(dlng / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def bearing(a: "Coordinate", b: "Coordinate") -> float:
    """
    Начальный азимут из точки a в точку b, градусы в диапазоне [0, 360).
    Для совпадающих точек возвращает 0.
    """
    if a.lat == b.lat and a.lng == b.lng:
        return 0.0

    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlng = math.radians(b.lng - a.lng)

    y = math.sin(dlng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlng)

    result = math.degrees(math.atan2(y, x)) % 360.0
    # -0.0 % 360 и погрешности около 360
    return 0.0 if result >= 360.0 else result
