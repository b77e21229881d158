"""
Data model for one measurement cycle.

A PollutantReading is immutable: every cycle produces a new one, so
subscribers never see fields from two different cycles mixed together.
"""

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional


class Grade(enum.IntEnum):
    """Discrete air-quality level, numbered like the HAP AirQuality values."""
    UNKNOWN = 0
    EXCELLENT = 1
    GOOD = 2
    FAIR = 3
    INFERIOR = 4
    POOR = 5


POLLUTANT_FIELDS = (
    "pm10",
    "pm25",
    "ozone",
    "nitrogen_dioxide",
    "sulphur_dioxide",
    "carbon_monoxide",
)


@dataclass(frozen=True)
class PollutantReading:
    """Typed snapshot of one fetch cycle for a single station."""
    aqi_index: Optional[float] = None
    grade: Grade = Grade.UNKNOWN
    # μg/m³
    pm10: Optional[float] = None
    pm25: Optional[float] = None
    # ppb (reported ppm × 1000)
    ozone: Optional[float] = None
    nitrogen_dioxide: Optional[float] = None
    sulphur_dioxide: Optional[float] = None
    # ppm, as reported
    carbon_monoxide: Optional[float] = None
    observed_at: Optional[datetime] = None
    station_name: Optional[str] = None
    active: bool = False

    @classmethod
    def empty(cls) -> "PollutantReading":
        """All-absent, inactive reading used when a first cycle fails."""
        return cls()

    def deactivated(self) -> "PollutantReading":
        """Copy carrying the same values as last-known, marked inactive."""
        return replace(self, active=False)

    def pollutants(self) -> dict:
        return {name: getattr(self, name) for name in POLLUTANT_FIELDS}
