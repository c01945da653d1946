# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AddressSlot(str, Enum):
    """Роли адресов, которые заполняет резолвер."""
    CURRENT = "current"
    PICKUP = "pickup"
    DROP = "drop"
    OFFICE = "office"

    def __str__(self) -> str:
        return self.value


# Слоты статичных точек поездки (в порядке обработки)
STATIC_SLOTS: tuple[AddressSlot, ...] = (
    AddressSlot.PICKUP,
    AddressSlot.DROP,
    AddressSlot.OFFICE,
)


class TripType(str, Enum):
    """Типы поездок."""
    LOGIN = "login"    # Дом -> офис
    LOGOUT = "logout"  # Офис -> дом


class EmployeeTripStatus(str, Enum):
    """Статус сотрудника внутри поездки."""
    NOT_STARTED = "not_started"
    PICKED_UP = "picked_up"
    DROPPED = "dropped"


class ResolverState(str, Enum):
    """Состояния очереди геокодирования."""
    IDLE = "idle"
    DRAINING = "draining"


# Румбы компаса по 45°
COMPASS_OCTANTS: tuple[str, ...] = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")

# Заглушка для метрик без цели
PLACEHOLDER_LABEL = "--"
SOON_LABEL = "Soon"
DESTINATION_LABEL = "Destination"
