"""
Unit conversion for AirKorea pollutant strings.

The service reports every value as a string and uses "-" when a sensor
produced nothing for the hour. Gaseous pollutants (O3, NO2, SO2) arrive in
ppm and are exposed in ppb. PM10, PM2.5 and CO pass through unchanged.
Any value that is not a finite number comes back as None, never 0 or NaN.
"""

import logging
import math
from typing import Optional

logger = logging.getLogger(__name__)

NOT_MEASURED = "-"
PPM_TO_PPB = 1000


def _safe_float(val) -> Optional[float]:
    """Safely convert a raw field to a finite float, returning None on failure."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, str):
        val = val.strip()
        if val in (NOT_MEASURED, ""):
            return None
    try:
        number = float(val)
    except (TypeError, ValueError):
        logger.debug("Unparseable pollutant value %r treated as not measured", val)
        return None
    if not math.isfinite(number):
        return None
    return number


def _scaled(val, factor: float) -> Optional[float]:
    number = _safe_float(val)
    if number is None:
        return None
    return number * factor


def convert_pm10(val) -> Optional[float]:
    return _safe_float(val)


def convert_pm25(val) -> Optional[float]:
    return _safe_float(val)


def convert_carbon_monoxide(val) -> Optional[float]:
    # CO stays in ppm; the service's other gases are scaled.
    return _safe_float(val)


def convert_ozone(val) -> Optional[float]:
    return _scaled(val, PPM_TO_PPB)


def convert_nitrogen_dioxide(val) -> Optional[float]:
    return _scaled(val, PPM_TO_PPB)


def convert_sulphur_dioxide(val) -> Optional[float]:
    return _scaled(val, PPM_TO_PPB)


def convert_index(val) -> Optional[float]:
    """Composite index (khaiValue) as reported, unitless."""
    return _safe_float(val)


# Payload field → (reading field, converter)
RECORD_FIELDS = {
    "pm10Value": ("pm10", convert_pm10),
    "pm25Value": ("pm25", convert_pm25),
    "o3Value":   ("ozone", convert_ozone),
    "no2Value":  ("nitrogen_dioxide", convert_nitrogen_dioxide),
    "so2Value":  ("sulphur_dioxide", convert_sulphur_dioxide),
    "coValue":   ("carbon_monoxide", convert_carbon_monoxide),
}


def convert_record(record: dict) -> dict:
    """
    Convert every pollutant field of one payload record.

    Missing keys and bad values only blank out their own field.

    Returns:
        Dict keyed by PollutantReading field name.
    """
    result = {}
    for source_key, (field_name, converter) in RECORD_FIELDS.items():
        result[field_name] = converter(record.get(source_key))
        logger.debug("Current %s is: %s", field_name, result[field_name])
    return result
