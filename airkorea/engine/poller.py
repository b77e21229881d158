"""
AirKorea Polling Engine.

Owns the fetch → convert → classify → publish cycle for one station and
the only mutable state in the package: the last published reading and the
pending poll timer.

State machine:
  IDLE      no fetch outstanding; holds the last reading (or None)
  FETCHING  one fetch outstanding; further start() calls are no-ops
  UPDATED   reading replaced, subscriber being notified; back to IDLE after

Scheduling is a one-shot APScheduler 'date' job re-armed after each
publish, so a slow fetch pushes the next cycle back instead of overlapping
it. With polling disabled no scheduler is ever created and cycles only run
through refresh().
"""

import enum
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from airkorea.classification.grade import classify
from airkorea.config import AccessoryConfig
from airkorea.conversion.units import convert_index, convert_record
from airkorea.ingestion.airkorea_connector import (
    FetchResult,
    FetchSuccess,
    FetchTransportError,
    fetch_measurement,
    parse_data_time,
)
from airkorea.models import PollutantReading

logger = logging.getLogger(__name__)

POLL_JOB_ID = "airkorea_poll"

Fetcher = Callable[[str, str], FetchResult]
Subscriber = Callable[[PollutantReading], None]


class EngineState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    UPDATED = "updated"


def build_reading(result: FetchResult,
                  previous: Optional[PollutantReading],
                  station: str) -> PollutantReading:
    """
    Turn one fetch result into the next reading.

    A successful fetch yields a wholly new active reading. Any error keeps
    the previous values as last-known but marks them inactive, or yields an
    all-absent inactive reading when nothing was published before.
    """
    if isinstance(result, FetchSuccess):
        record = result.record
        aqi = convert_index(record.get("khaiValue"))
        grade = classify(aqi)
        logger.debug("Current aqi value is: %s", aqi)
        logger.debug("Current aqi grade is: %s", grade.name)
        return PollutantReading(
            aqi_index=aqi,
            grade=grade,
            observed_at=parse_data_time(record.get("dataTime")),
            station_name=result.station_name or station,
            active=True,
            **convert_record(record),
        )

    if previous is None:
        return PollutantReading.empty()
    return previous.deactivated()


class PollingEngine:
    """
    Single-flight poller for one AirKorea station.

    Args:
        config: Validated accessory configuration.
        fetcher: Callable (station, api_key) → FetchResult.
        subscriber: Receives every new reading; may be set later via subscribe().
        scheduler: APScheduler scheduler used for the poll timer. Created on
                   demand when polling is enabled and none is given.
    """

    def __init__(
        self,
        config: AccessoryConfig,
        fetcher: Fetcher = fetch_measurement,
        subscriber: Optional[Subscriber] = None,
        scheduler=None,
    ):
        self._config = config
        self._fetcher = fetcher
        self._subscriber = subscriber
        self._scheduler = scheduler

        self._lock = threading.Lock()
        self._cycle_done = threading.Condition(self._lock)
        self._state = EngineState.IDLE
        self._reading: Optional[PollutantReading] = None
        self._completed_cycles = 0
        self._closed = False
        self._cycle_owner: Optional[int] = None

    # ── Read-only surface ────────────────────────────────────────────────────

    @property
    def reading(self) -> Optional[PollutantReading]:
        return self._reading

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def polling(self) -> bool:
        return self._config.polling

    def subscribe(self, subscriber: Subscriber) -> None:
        """Register the single subscriber, replacing any previous one."""
        self._subscriber = subscriber

    # ── Cycle control ────────────────────────────────────────────────────────

    def start(self) -> bool:
        """
        Run one fetch cycle.

        Returns:
            False without touching the network if a cycle is already in
            flight (or the engine is shut down), True once a cycle ran.
        """
        with self._lock:
            if self._closed:
                logger.debug("Engine shut down, ignoring start()")
                return False
            if self._state is not EngineState.IDLE:
                logger.debug("Cycle already in flight, collapsing start()")
                return False
            self._state = EngineState.FETCHING
            self._cycle_owner = threading.get_ident()
        self._run_cycle()
        return True

    def refresh(self) -> PollutantReading:
        """
        On-demand read: run a full cycle and block until it is published.

        If a cycle is already in flight, wait for it and return its reading
        rather than issuing a second request. Called from the cycle's own
        thread (a subscriber reading back during publish) it returns the
        reading being published. After shutdown() no request is made and
        the last reading (or an empty one) is returned.
        """
        with self._lock:
            if self._closed:
                logger.debug("Engine shut down, refresh() returns last reading")
                return self._reading or PollutantReading.empty()
            if self._state is not EngineState.IDLE:
                if self._cycle_owner == threading.get_ident():
                    return self._reading or PollutantReading.empty()
                target = self._completed_cycles
                while self._completed_cycles == target:
                    self._cycle_done.wait()
                return self._reading
            self._state = EngineState.FETCHING
            self._cycle_owner = threading.get_ident()
        return self._run_cycle()

    def _run_cycle(self) -> PollutantReading:
        station = self._config.station
        logger.debug("Polling station %s", station)
        try:
            try:
                result = self._fetcher(station, self._config.api_key)
            except Exception as exc:
                logger.error("Fetcher raised for station %s: %s", station, exc)
                result = FetchTransportError(cause=str(exc))

            reading = build_reading(result, self._reading, station)
            if not reading.active:
                logger.warning(
                    "Cycle failed for station %s (%s), marking inactive",
                    station, type(result).__name__,
                )
            else:
                logger.info(
                    "Reading for station %s: AQI=%s grade=%s PM10=%s PM2.5=%s",
                    station, reading.aqi_index, reading.grade.name,
                    reading.pm10, reading.pm25,
                )

            with self._lock:
                self._reading = reading
                self._state = EngineState.UPDATED
            self._publish(reading)
        finally:
            with self._lock:
                self._state = EngineState.IDLE
                self._cycle_owner = None
                self._completed_cycles += 1
                self._cycle_done.notify_all()
                rearm = self._config.polling and not self._closed

        if rearm:
            self._arm_timer()
        return reading

    def _publish(self, reading: PollutantReading) -> None:
        if self._subscriber is None:
            return
        try:
            self._subscriber(reading)
        except Exception as exc:
            logger.error("Subscriber failed to accept reading: %s", exc)

    # ── Timer ────────────────────────────────────────────────────────────────

    def begin(self) -> None:
        """Start the scheduler and arm the first poll one interval from now."""
        if not self._config.polling:
            logger.debug("Polling disabled, values are fetched on demand")
            return
        scheduler = self._ensure_scheduler()
        if not scheduler.running:
            scheduler.start()
        self._arm_timer()
        logger.info(
            "Polling station %s every %s minutes",
            self._config.station, self._config.interval_minutes,
        )

    def _ensure_scheduler(self):
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler()
        return self._scheduler

    def _arm_timer(self) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=self._config.interval_seconds)
        self._ensure_scheduler().add_job(
            func=self.start,
            trigger="date",
            run_date=run_date,
            id=POLL_JOB_ID,
            name="AirKorea Poll",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug("Next poll at %s", run_date.isoformat())

    def shutdown(self) -> None:
        """Cancel the pending timer and stop the scheduler. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(POLL_JOB_ID)
        except JobLookupError:
            pass
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Polling engine for station %s stopped", self._config.station)
