"""Shared test fixtures for the AirKorea monitor test suite."""

from unittest.mock import MagicMock

import pytest

from airkorea.config import AccessoryConfig
from airkorea.ingestion.airkorea_connector import FetchSuccess


SEOUL_RECORD = {
    "khaiValue": "80",
    "pm10Value": "30",
    "pm25Value": "-",
    "o3Value": "0.05",
    "no2Value": "-",
    "so2Value": "-",
    "coValue": "-",
    "dataTime": "2024-01-01 09:00",
}


@pytest.fixture()
def seoul_payload():
    return {"list": [dict(SEOUL_RECORD)], "parm": {"stationName": "Seoul"}}


@pytest.fixture()
def seoul_success():
    return FetchSuccess(record=dict(SEOUL_RECORD), station_name="Seoul")


@pytest.fixture()
def config():
    return AccessoryConfig(api_key="test_key", station="Seoul")


@pytest.fixture()
def polling_config():
    return AccessoryConfig(api_key="test_key", station="Seoul", polling=True, interval_minutes=5)


@pytest.fixture()
def scheduler():
    """Stand-in APScheduler scheduler that records add_job calls."""
    sched = MagicMock()
    sched.running = False
    return sched
