# src/services/tracking/__init__.py
"""
Tracking Service.

Принимает GPS-сэмплы поездки (Redis Pub/Sub или HTTP) и отдаёт
view model трекинга: след, ETA, расстояние, адреса точек.
"""

__all__: list[str] = []
