"""
AirKorea open API connector.

Fetches the most recent hourly record for one measurement station.
Never raises on network or payload problems: every outcome is returned as
one of the FetchResult variants below so the caller can decide what an
inactive cycle looks like.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Union
from urllib.parse import urlencode

import httpx

from airkorea.errors import ConfigurationError

logger = logging.getLogger(__name__)

AIRKOREA_BASE_URL = (
    "https://openapi.airkorea.or.kr/openapi/services/rest/"
    "ArpltnInforInqireSvc/getMsrstnAcctoRltmMesureDnsty"
)
REQUEST_TIMEOUT = 10  # seconds
DATA_TIME_FORMAT = "%Y-%m-%d %H:%M"


@dataclass(frozen=True)
class FetchSuccess:
    """Latest record for the station, plus the station name the API echoed."""
    record: dict = field(default_factory=dict)
    station_name: Optional[str] = None


@dataclass(frozen=True)
class FetchHttpError:
    status_code: int


@dataclass(frozen=True)
class FetchTransportError:
    cause: str


@dataclass(frozen=True)
class FetchMalformed:
    """JSON parsed (or failed to) but lacked the expected record."""
    reason: str


FetchResult = Union[FetchSuccess, FetchHttpError, FetchTransportError, FetchMalformed]


def build_url(station_name: str, api_key: str) -> str:
    """
    Build the request URL for the latest record of a station.

    The service key is appended untouched: portal keys are handed out
    already percent-encoded and must not be encoded twice.
    """
    params = {
        "stationName": station_name,
        "dataTerm": "month",
        "pageNo": 1,
        "numOfRows": 1,
        "_returnType": "json",
    }
    return f"{AIRKOREA_BASE_URL}?{urlencode(params)}&ServiceKey={api_key}"


def parse_data_time(raw) -> Optional[datetime]:
    """
    Parse a 'YYYY-MM-DD HH:MM' dataTime string (station local time).

    AirKorea labels the midnight record as hour 24 of the previous day;
    that is returned as 00:00 of the next day. Returns None if unparseable.
    """
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    try:
        return datetime.strptime(text, DATA_TIME_FORMAT)
    except ValueError:
        pass
    try:
        day, clock = text.split(" ", 1)
        if clock.startswith("24:"):
            base = datetime.strptime(f"{day} 00:{clock[3:]}", DATA_TIME_FORMAT)
            return base + timedelta(days=1)
    except ValueError:
        pass
    logger.warning("Unparseable dataTime %r", raw)
    return None


def fetch_measurement(station_name: str, api_key: str,
                      timeout: float = REQUEST_TIMEOUT) -> FetchResult:
    """
    Fetch the latest measurement record for the named station.

    Args:
        station_name: AirKorea station name (e.g. "종로구").
        api_key: Public data portal service key.
        timeout: Transport timeout in seconds.

    Returns:
        FetchSuccess, FetchHttpError, FetchTransportError or FetchMalformed.
    """
    if not station_name:
        raise ConfigurationError("station is not specified")
    if not api_key:
        raise ConfigurationError("API key not specified")

    url = build_url(station_name, api_key)

    try:
        resp = httpx.get(url, timeout=timeout)
    except httpx.TimeoutException:
        logger.error("AirKorea request timed out for station %s", station_name)
        return FetchTransportError(cause="timeout")
    except httpx.RequestError as e:
        logger.error("AirKorea network error for station %s: %s", station_name, e)
        return FetchTransportError(cause=str(e) or type(e).__name__)

    if resp.status_code != 200:
        logger.error("Response: %s for station %s", resp.status_code, station_name)
        return FetchHttpError(status_code=resp.status_code)

    try:
        payload = resp.json()
    except ValueError:
        logger.error("AirKorea returned malformed JSON for station %s", station_name)
        return FetchMalformed(reason="invalid JSON")

    if not isinstance(payload, dict):
        logger.error("AirKorea payload is not an object for station %s", station_name)
        return FetchMalformed(reason="payload is not an object")

    records = payload.get("list")
    if not isinstance(records, list) or not records:
        logger.error("AirKorea response has no records for station %s", station_name)
        return FetchMalformed(reason="missing 'list' records")

    record = records[0]
    if not isinstance(record, dict):
        logger.error("AirKorea record is not an object for station %s", station_name)
        return FetchMalformed(reason="record is not an object")

    parm = payload.get("parm")
    echoed_name = parm.get("stationName") if isinstance(parm, dict) else None

    logger.debug("Time is: %s", record.get("dataTime"))
    logger.debug("Station is: %s", echoed_name)
    return FetchSuccess(record=record, station_name=echoed_name)
