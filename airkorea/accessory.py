"""
Air-quality sensor accessory adapter.

Maps each published PollutantReading onto sensor characteristics through
an injected sink. The host bridge supplies the sink at construction, so
nothing here reaches for module-level service handles.
"""

import enum
import logging
from datetime import datetime
from typing import Optional, Protocol

from airkorea import __version__
from airkorea.config import AccessoryConfig
from airkorea.engine.poller import PollingEngine
from airkorea.models import Grade, PollutantReading

logger = logging.getLogger(__name__)

MANUFACTURER = "slasherLee"
MODEL = "Air Quality Sensor"
NO_DATE_LABEL = "-일 -시 현재"


class Characteristic(enum.Enum):
    NAME = "Name"
    AIR_QUALITY = "AirQuality"
    PM10_DENSITY = "PM10Density"
    PM2_5_DENSITY = "PM2_5Density"
    OZONE_DENSITY = "OzoneDensity"
    NITROGEN_DIOXIDE_DENSITY = "NitrogenDioxideDensity"
    SULPHUR_DIOXIDE_DENSITY = "SulphurDioxideDensity"
    CARBON_MONOXIDE_LEVEL = "CarbonMonoxideLevel"
    STATUS_ACTIVE = "StatusActive"


# reading field → characteristic
POLLUTANT_CHARACTERISTICS = {
    "pm10": Characteristic.PM10_DENSITY,
    "pm25": Characteristic.PM2_5_DENSITY,
    "ozone": Characteristic.OZONE_DENSITY,
    "nitrogen_dioxide": Characteristic.NITROGEN_DIOXIDE_DENSITY,
    "sulphur_dioxide": Characteristic.SULPHUR_DIOXIDE_DENSITY,
    "carbon_monoxide": Characteristic.CARBON_MONOXIDE_LEVEL,
}


class CharacteristicSink(Protocol):
    def set_value(self, characteristic: Characteristic, value) -> None: ...


def date_label(observed_at: Optional[datetime]) -> str:
    """Short Korean 'as of' label, e.g. '1일 9시 현재'."""
    if observed_at is None:
        return NO_DATE_LABEL
    return f"{observed_at.day}일 {observed_at.hour}시 현재"


class AirQualityAccessory:
    """Sensor-facing subscriber for a PollingEngine."""

    def __init__(self, config: AccessoryConfig, sink: CharacteristicSink,
                 engine: Optional[PollingEngine] = None):
        self.config = config
        self.sink = sink
        self.name = date_label(None) if config.show_last_updated_date else config.name
        self.engine = engine or PollingEngine(config)
        self.engine.subscribe(self.publish)
        if config.polling:
            self.engine.begin()

    def publish(self, reading: PollutantReading) -> None:
        """Push one reading to the sink. Absent pollutants are written as None."""
        if self.config.show_last_updated_date and reading.observed_at is not None:
            self.name = date_label(reading.observed_at)
            self.sink.set_value(Characteristic.NAME, self.name)
            logger.debug("change title => %s", self.name)

        self.sink.set_value(Characteristic.AIR_QUALITY, int(reading.grade))
        for field_name, characteristic in POLLUTANT_CHARACTERISTICS.items():
            self.sink.set_value(characteristic, getattr(reading, field_name))
        self.sink.set_value(Characteristic.STATUS_ACTIVE, reading.active)

    def get_air_quality(self) -> Grade:
        """
        Answer an on-demand read of the air-quality characteristic.

        Without polling every read is a fresh fetch. With polling the timer
        keeps the value current, so the last reading is returned.
        """
        if self.engine.polling and self.engine.reading is not None:
            return self.engine.reading.grade
        return self.engine.refresh().grade

    def accessory_information(self) -> dict:
        return {
            "manufacturer": MANUFACTURER,
            "model": MODEL,
            "name": self.name,
            "serial_number": self.config.station,
            "firmware_revision": __version__,
        }

    def identify(self) -> None:
        logger.debug("Identified")
