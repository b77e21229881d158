"""
Accessory configuration.

Built either from the host's accessory mapping (the JSON block a bridge
passes in) or from environment variables / a .env file. Missing
credentials are fatal; everything else degrades to a default with a
logged warning.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from airkorea.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_NAME = "AirKorea"
DEFAULT_SENSOR = "air_quality"
DEFAULT_INTERVAL_MINUTES = 60
SUPPORTED_SENSORS = ("air_quality",)

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}

# env var → mapping key
ENV_KEYS = {
    "AIRKOREA_NAME": "name",
    "AIRKOREA_API_KEY": "api_key",
    "AIRKOREA_STATION": "station",
    "AIRKOREA_SENSOR": "sensor",
    "AIRKOREA_POLLING": "polling",
    "AIRKOREA_INTERVAL_MINUTES": "interval",
    "AIRKOREA_SHOW_LAST_UPDATED": "show_last_updated_date",
}


def _coerce_bool(value: Any) -> Optional[bool]:
    """Return a bool for real booleans or recognised strings, else None."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _coerce_interval(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return None
    if minutes != minutes or minutes <= 0 or minutes == float("inf"):
        return None
    return minutes


@dataclass(frozen=True)
class AccessoryConfig:
    """Validated settings for one station accessory."""
    api_key: str
    station: str
    name: str = DEFAULT_NAME
    sensor: str = DEFAULT_SENSOR
    polling: bool = False
    interval_minutes: float = DEFAULT_INTERVAL_MINUTES
    show_last_updated_date: bool = False

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "AccessoryConfig":
        """
        Validate a raw accessory mapping.

        Raises:
            ConfigurationError: api_key or station is missing/empty.
        """
        api_key = config.get("api_key")
        if not api_key:
            raise ConfigurationError("API key not specified")
        station = config.get("station")
        if not station:
            raise ConfigurationError("station is not specified")

        sensor = config.get("sensor") or DEFAULT_SENSOR
        if sensor not in SUPPORTED_SENSORS:
            logger.error("Unsupported sensor specified, defaulting to air quality")
            sensor = DEFAULT_SENSOR

        polling = False
        if "polling" in config and config["polling"] is not None:
            parsed = _coerce_bool(config["polling"])
            if parsed is None:
                logger.warning(
                    "Unsupported option specified for polling (%r), defaulting to false",
                    config["polling"],
                )
            else:
                polling = parsed

        interval = _coerce_interval(config.get("interval"))
        if interval is None:
            logger.warning(
                "interval is not specified or invalid (%r), defaulting to %d",
                config.get("interval"), DEFAULT_INTERVAL_MINUTES,
            )
            interval = DEFAULT_INTERVAL_MINUTES

        show_last_updated = _coerce_bool(config.get("show_last_updated_date")) or False

        cfg = cls(
            api_key=str(api_key),
            station=str(station),
            name=str(config.get("name") or DEFAULT_NAME),
            sensor=sensor,
            polling=polling,
            interval_minutes=interval,
            show_last_updated_date=show_last_updated,
        )
        logger.debug("Polling is %s", "enabled" if cfg.polling else "disabled")
        return cfg

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AccessoryConfig":
        """Build from AIRKOREA_* variables, loading a .env file first."""
        if env is None:
            load_dotenv()
            env = os.environ
        mapping = {key: env[var] for var, key in ENV_KEYS.items() if var in env}
        return cls.from_mapping(mapping)

    def __repr__(self) -> str:
        return (
            f"AccessoryConfig(station={self.station!r}, name={self.name!r}, "
            f"polling={self.polling}, interval_minutes={self.interval_minutes})"
        )
