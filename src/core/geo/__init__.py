# src/core/geo/__init__.py
"""
Geo-модуль.
Расстояние и азимут (Haversine), обратное геокодирование через Google Maps API.
"""

from src.core.geo.haversine import bearing, distance
from src.core.geo.service import GeocodeResponse, GeocodingProvider, GeoService

__all__ = [
    "bearing",
    "distance",
    "GeocodeResponse",
    "GeocodingProvider",
    "GeoService",
]
