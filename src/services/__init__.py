# src/services/__init__.py
"""
Сервисы приложения.

Сервисы:
- tracking: live-трекинг поездки (REST + WebSocket, канал геолокации в Redis)
"""

__all__: list[str] = []
