# src/core/tracking/models.py
"""
Модели конвейера трекинга: координаты, GPS-сэмплы, поездка, метрики и view model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from src.common.constants import (
    COMPASS_OCTANTS,
    PLACEHOLDER_LABEL,
    AddressSlot,
    EmployeeTripStatus,
    TripType,
)


class Coordinate(BaseModel):
    """Точка на карте. Неизменяема после создания."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180, validation_alias=AliasChoices("lng", "lon"))

    def quantized_key(self, precision: int = 6) -> str:
        """Ключ кэша: широта и долгота, округлённые независимо."""
        return f"addr_{self.lat:.{precision}f}_{self.lng:.{precision}f}"

    def format(self, precision: int = 4) -> str:
        """Строка вида "12.9716, 77.5946" для отображения до ответа геокодера."""
        return f"{self.lat:.{precision}f}, {self.lng:.{precision}f}"


class LocationSample(BaseModel):
    """Один GPS-фикс транспортного средства."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    speed_kmh: float | None = Field(default=None, ge=0)
    bearing_deg: float | None = Field(default=None, ge=0, lt=360)
    accuracy_m: float | None = Field(default=None, ge=0)
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("bearing_deg", mode="before")
    @classmethod
    def normalize_bearing(cls, v: Any) -> Any:
        """Приводит азимут к [0, 360): 360° и отрицательные значения допустимы на входе."""
        if v is None or isinstance(v, bool) or not isinstance(v, (int, float)):
            return v
        return float(v) % 360.0

    @field_validator("speed_kmh", "accuracy_m", mode="before")
    @classmethod
    def drop_negative(cls, v: Any) -> Any:
        """Отрицательная скорость или точность от GPS означает "нет данных"."""
        if isinstance(v, (int, float)) and not isinstance(v, bool) and v < 0:
            return None
        return v

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "LocationSample":
        """
        Разбирает сообщение канала геолокации.

        Поддерживаемые формы:
        - {"location": {"coordinates": {"lat", "lng"}, "accuracy", "bearing"}, "speed", "timestamp"}
        - {"location": {"lat", "lng"}, "speed", "timestamp"}
        - {"lat", "lon" | "lng", "heading", "speed", "accuracy", "timestamp"}

        Raises:
            ValueError: координаты отсутствуют или некорректны
                (pydantic.ValidationError — подкласс ValueError)
        """
        if not isinstance(data, dict):
            raise ValueError("Сообщение геолокации должно быть объектом")

        location = data.get("location")
        if isinstance(location, dict):
            point = location.get("coordinates", location)
            extras = location
        else:
            point = data
            extras = {}

        if not isinstance(point, dict):
            raise ValueError("Координаты отсутствуют в сообщении")

        bearing = extras.get("bearing", data.get("bearing", data.get("heading")))
        accuracy = extras.get("accuracy", data.get("accuracy"))

        payload: dict[str, Any] = {
            "coordinate": {
                "lat": point.get("lat"),
                "lng": point.get("lng", point.get("lon")),
            },
            "speed_kmh": data.get("speed"),
            "bearing_deg": bearing,
            "accuracy_m": accuracy,
        }
        if data.get("timestamp"):
            payload["timestamp"] = data["timestamp"]

        return cls.model_validate(payload)


class TripStop(BaseModel):
    """Статичная точка поездки (посадка, высадка, офис)."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    address: str | None = None


class TripDefinition(BaseModel):
    """
    Снимок поездки для отслеживаемого сотрудника.

    Любое изменение поездки приходит новым снимком целиком.
    """

    model_config = ConfigDict(frozen=True)

    trip_id: str
    trip_name: str | None = None
    trip_type: TripType = TripType.LOGOUT
    pickup: TripStop | None = None
    drop: TripStop | None = None
    office: TripStop | None = None
    employee_status: EmployeeTripStatus = EmployeeTripStatus.NOT_STARTED

    @property
    def is_office_bound(self) -> bool:
        return self.trip_type == TripType.LOGIN

    def stop_for(self, slot: AddressSlot) -> TripStop | None:
        """Статичная точка для слота. Офис учитывается только для поездок в офис."""
        if slot == AddressSlot.PICKUP:
            return self.pickup
        if slot == AddressSlot.DROP:
            return self.drop
        if slot == AddressSlot.OFFICE:
            return self.office if self.is_office_bound else None
        return None

    def destination(self) -> TripStop | None:
        """Конечная точка: офис для login, иначе адрес высадки."""
        return self.office if self.is_office_bound else self.drop

    def next_stop(self) -> TripStop | None:
        """
        Следующая остановка с учётом прогресса сотрудника.

        До посадки — точка посадки (если задана), после посадки —
        конечная точка, после высадки цели нет.
        """
        if self.employee_status == EmployeeTripStatus.DROPPED:
            return None
        if self.employee_status == EmployeeTripStatus.NOT_STARTED and self.pickup is not None:
            return self.pickup
        return self.destination()

    @classmethod
    def from_payload(cls, data: dict[str, Any], employee_id: str | None = None) -> "TripDefinition":
        """
        Разбирает поездку из формата бэкенда.

        Ожидается {"_id", "tripName", "tripType", "officeLocation", "employees": [...]},
        где каждый сотрудник содержит "employee" ({"_id"} или строку-ID), "pickupLocation",
        "dropLocation", "status". Если employee_id не задан, берётся первый сотрудник.
        Записи сотрудников, не являющиеся объектами, пропускаются.

        Raises:
            ValueError: поездка не объект или некорректный тип поездки
        """
        if not isinstance(data, dict):
            raise ValueError("Описание поездки должно быть объектом")

        employees = data.get("employees")
        if not isinstance(employees, list):
            employees = []

        entry: dict[str, Any] | None = None
        for candidate in employees:
            if not isinstance(candidate, dict):
                continue
            if employee_id is None or _employee_ref_id(candidate.get("employee")) == str(employee_id):
                entry = candidate
                break

        entry = entry or {}
        status = entry.get("status") or EmployeeTripStatus.NOT_STARTED.value
        if not isinstance(status, str) or status not in {s.value for s in EmployeeTripStatus}:
            status = EmployeeTripStatus.NOT_STARTED.value

        return cls(
            trip_id=str(data.get("_id") or data.get("trip_id") or ""),
            trip_name=data.get("tripName"),
            trip_type=data.get("tripType") or TripType.LOGOUT,
            pickup=_parse_stop(entry.get("pickupLocation")),
            drop=_parse_stop(entry.get("dropLocation")),
            office=_parse_stop(data.get("officeLocation")),
            employee_status=status,
        )


def _employee_ref_id(ref: Any) -> str:
    """ID сотрудника: из вложенного объекта {"_id"} или из ссылки-строки."""
    if isinstance(ref, dict):
        ref = ref.get("_id")
    return "" if ref is None else str(ref)


def _parse_stop(raw: Any) -> TripStop | None:
    """Точка из {"coordinates": {"lat", "lng"}, "address"}; некорректные пропускаются."""
    if not isinstance(raw, dict):
        return None
    point = raw.get("coordinates")
    if not isinstance(point, dict):
        return None
    lat, lng = point.get("lat"), point.get("lng")
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    try:
        return TripStop(coordinate=Coordinate(lat=lat, lng=lng), address=raw.get("address"))
    except ValueError:
        return None


class GeocodeRequest(BaseModel):
    """Запрос обратного геокодирования для слота."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    slot: AddressSlot


class StatsSnapshot(BaseModel):
    """Метрики для отображения. Заменяется целиком на каждый сэмпл."""

    model_config = ConfigDict(frozen=True)

    eta_label: str = PLACEHOLDER_LABEL
    distance_label: str = PLACEHOLDER_LABEL
    speed_kmh: int = 0
    accuracy_m: int = 25
    direction: str = COMPASS_OCTANTS[0]
    last_update_label: str = PLACEHOLDER_LABEL
    total_distance_km: float = 0.0


class MapMarker(BaseModel):
    """Маркер на карте."""

    type: str
    title: str
    position: Coordinate


class TrackingViewModel(BaseModel):
    """Состояние, которое получает слой отображения."""

    trip_id: str
    trip_name: str | None = None
    stats: StatsSnapshot = Field(default_factory=StatsSnapshot)
    addresses: dict[str, str] = Field(default_factory=dict)
    trace: list[Coordinate] = Field(default_factory=list)
    center: Coordinate
    zoom: int
    markers: list[MapMarker] = Field(default_factory=list)
    route_line: list[Coordinate] = Field(default_factory=list)
    next_stop_address: str
    heading_to_next_stop: float | None = None
    gps_points: int = 0
    recenter_seq: int = 0
