# src/core/__init__.py
"""
Доменный слой (Core Domain).
Геометрия и конвейер трекинга, независимые от инфраструктуры.
"""
