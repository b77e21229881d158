"""
AirKorea Monitor - Entry Point

Runs one station engine outside a bridge host:
  1. Load AIRKOREA_* settings (environment or .env)
  2. Run one cycle immediately so a reading is available at start-up
  3. If polling is enabled, arm the APScheduler timer; each cycle re-arms
     the next one after it publishes
  4. Block until SIGINT/SIGTERM, then cancel the timer
Readings are published to a logging subscriber.
"""

import logging
import signal
import sys
import time

from airkorea.config import AccessoryConfig
from airkorea.engine.poller import PollingEngine
from airkorea.errors import ConfigurationError
from airkorea.models import PollutantReading

logger = logging.getLogger("airkorea.main")

_running = True


def _shutdown(sig, frame):
    global _running
    logger.info("Shutdown signal (%s) - stopping engine.", sig)
    _running = False


def log_reading(reading: PollutantReading) -> None:
    """Subscriber that writes each published reading to the log."""
    if not reading.active:
        logger.warning("Station %s inactive - keeping last known values", reading.station_name)
        return
    logger.info(
        "station=%s grade=%s aqi=%s pm10=%s pm25=%s o3=%s no2=%s so2=%s co=%s at=%s",
        reading.station_name, reading.grade.name, reading.aqi_index,
        reading.pm10, reading.pm25, reading.ozone, reading.nitrogen_dioxide,
        reading.sulphur_dioxide, reading.carbon_monoxide,
        reading.observed_at.isoformat() if reading.observed_at else "-",
    )


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [AIRKOREA] %(levelname)s %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stdout,
    )

    try:
        config = AccessoryConfig.from_env()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    logger.info("Loaded %r", config)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    engine = PollingEngine(config, subscriber=log_reading)
    engine.start()

    if not config.polling:
        engine.shutdown()
        return 0

    engine.begin()
    try:
        while _running:
            time.sleep(1)
    finally:
        engine.shutdown()
        logger.info("Monitor stopped cleanly.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
