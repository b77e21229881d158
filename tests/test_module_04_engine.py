"""
Tests for Module 04 - Polling Engine.
"""
import threading
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from airkorea.engine.poller import POLL_JOB_ID, EngineState, PollingEngine, build_reading
from airkorea.ingestion.airkorea_connector import (
    FetchHttpError,
    FetchMalformed,
    FetchSuccess,
    FetchTransportError,
)
from airkorea.models import Grade, PollutantReading


class FakeFetcher:
    """Returns queued results in order; repeats the last one when exhausted."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def __call__(self, station, api_key):
        self.calls += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class TestBuildReading:
    def test_success_builds_active_reading(self, seoul_success):
        reading = build_reading(seoul_success, None, "Seoul")
        assert reading.active is True
        assert reading.aqi_index == 80.0
        assert reading.grade is Grade.GOOD
        assert reading.observed_at == datetime(2024, 1, 1, 9, 0)
        assert reading.station_name == "Seoul"

    def test_sentinel_index_gives_unknown_grade(self):
        result = FetchSuccess(record={"khaiValue": "-", "pm10Value": "40"})
        reading = build_reading(result, None, "Seoul")
        assert reading.aqi_index is None
        assert reading.grade is Grade.UNKNOWN
        assert reading.pm10 == 40.0
        assert reading.active is True

    def test_error_without_previous_is_empty(self):
        reading = build_reading(FetchHttpError(500), None, "Seoul")
        assert reading == PollutantReading.empty()
        assert reading.active is False
        assert reading.grade is Grade.UNKNOWN

    def test_error_keeps_previous_values(self, seoul_success):
        previous = build_reading(seoul_success, None, "Seoul")
        reading = build_reading(FetchTransportError("timeout"), previous, "Seoul")
        assert reading is not previous
        assert reading.active is False
        assert reading.pollutants() == previous.pollutants()
        assert reading.grade is previous.grade

    def test_station_falls_back_to_config(self):
        reading = build_reading(FetchSuccess(record={"khaiValue": "10"}), None, "Seoul")
        assert reading.station_name == "Seoul"


class TestEndToEnd:
    def test_seoul_scenario(self, config, seoul_success):
        fetcher = FakeFetcher(seoul_success)
        engine = PollingEngine(config, fetcher=fetcher)
        reading = engine.refresh()
        assert reading.aqi_index == 80
        assert reading.grade is Grade.GOOD
        assert reading.pm10 == 30
        assert reading.pm25 is None
        assert reading.ozone == pytest.approx(50)
        assert reading.nitrogen_dioxide is None
        assert reading.active is True
        assert engine.reading is reading
        assert engine.state is EngineState.IDLE

    def test_http_500_keeps_prior_values(self, config, seoul_success):
        fetcher = FakeFetcher(seoul_success, FetchHttpError(500))
        engine = PollingEngine(config, fetcher=fetcher)
        first = engine.refresh()
        second = engine.refresh()
        assert second.active is False
        assert second.pollutants() == first.pollutants()
        assert second.grade is first.grade
        assert second.aqi_index == first.aqi_index

    def test_http_500_on_first_cycle_is_all_absent(self, config):
        engine = PollingEngine(config, fetcher=FakeFetcher(FetchHttpError(500)))
        reading = engine.refresh()
        assert reading.active is False
        assert all(v is None for v in reading.pollutants().values())
        assert reading.grade is Grade.UNKNOWN

    def test_active_recomputed_after_recovery(self, config, seoul_success):
        fetcher = FakeFetcher(FetchMalformed("missing 'list' records"), seoul_success)
        engine = PollingEngine(config, fetcher=fetcher)
        assert engine.refresh().active is False
        assert engine.refresh().active is True

    def test_on_demand_without_polling_never_arms_timer(self, config, seoul_success):
        fetcher = FakeFetcher(seoul_success)
        with patch("airkorea.engine.poller.BackgroundScheduler") as sched_cls:
            engine = PollingEngine(config, fetcher=fetcher)
            engine.refresh()
            engine.refresh()
            engine.begin()
        assert fetcher.calls == 2
        sched_cls.assert_not_called()

    def test_fetcher_exception_is_contained(self, config):
        def exploding(station, api_key):
            raise RuntimeError("boom")
        engine = PollingEngine(config, fetcher=exploding)
        reading = engine.refresh()
        assert reading.active is False
        assert engine.state is EngineState.IDLE


class TestSingleFlight:
    def test_reentrant_start_is_noop(self, config, seoul_success):
        engine = None
        inner_results = []

        def fetcher(station, api_key):
            inner_results.append(engine.start())
            return seoul_success

        counting = MagicMock(side_effect=fetcher)
        engine = PollingEngine(config, fetcher=counting)
        assert engine.start() is True
        assert counting.call_count == 1
        assert inner_results == [False]

    def test_concurrent_start_does_not_fetch_twice(self, config, seoul_success):
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def slow_fetcher(station, api_key):
            calls.append(station)
            entered.set()
            release.wait(timeout=5)
            return seoul_success

        engine = PollingEngine(config, fetcher=slow_fetcher)
        worker = threading.Thread(target=engine.start, daemon=True)
        worker.start()
        assert entered.wait(timeout=5)
        assert engine.state is EngineState.FETCHING
        assert engine.start() is False
        release.set()
        worker.join(timeout=5)
        assert len(calls) == 1
        assert engine.state is EngineState.IDLE

    def test_subscriber_sees_whole_reading_once(self, config, seoul_success):
        subscriber = MagicMock()
        engine = PollingEngine(config, fetcher=FakeFetcher(seoul_success), subscriber=subscriber)
        engine.start()
        subscriber.assert_called_once()
        (published,), _ = subscriber.call_args
        assert published is engine.reading

    def test_subscriber_failure_does_not_break_cycle(self, config, seoul_success):
        subscriber = MagicMock(side_effect=RuntimeError("sink offline"))
        engine = PollingEngine(config, fetcher=FakeFetcher(seoul_success), subscriber=subscriber)
        reading = engine.refresh()
        assert reading.active is True
        assert engine.state is EngineState.IDLE

    def test_subscriber_reading_back_during_publish(self, config, seoul_success):
        fetcher = FakeFetcher(seoul_success)
        seen = []
        engine = PollingEngine(config, fetcher=fetcher)
        engine.subscribe(lambda reading: seen.append(engine.refresh()))
        worker = threading.Thread(target=engine.start, daemon=True)
        worker.start()
        worker.join(timeout=5)
        assert not worker.is_alive()
        assert fetcher.calls == 1
        assert seen == [engine.reading]
        assert engine.state is EngineState.IDLE

    def test_refresh_after_shutdown_makes_no_request(self, config, seoul_success):
        fetcher = FakeFetcher(seoul_success)
        engine = PollingEngine(config, fetcher=fetcher)
        first = engine.refresh()
        engine.shutdown()
        assert engine.refresh() is first
        assert fetcher.calls == 1

    def test_refresh_after_shutdown_without_reading(self, config, seoul_success):
        fetcher = FakeFetcher(seoul_success)
        engine = PollingEngine(config, fetcher=fetcher)
        engine.shutdown()
        assert engine.refresh() == PollutantReading.empty()
        assert fetcher.calls == 0


class TestTimer:
    def test_begin_starts_scheduler_and_arms_one_shot(self, polling_config, scheduler, seoul_success):
        engine = PollingEngine(polling_config, fetcher=FakeFetcher(seoul_success), scheduler=scheduler)
        engine.begin()
        scheduler.start.assert_called_once()
        _, kwargs = scheduler.add_job.call_args
        assert kwargs["trigger"] == "date"
        assert kwargs["id"] == POLL_JOB_ID
        assert kwargs["replace_existing"] is True
        assert kwargs["func"] == engine.start

    def test_each_cycle_rearms_after_publish(self, polling_config, scheduler, seoul_success):
        order = []
        scheduler.add_job.side_effect = lambda **kw: order.append("arm")
        engine = PollingEngine(
            polling_config,
            fetcher=FakeFetcher(seoul_success),
            subscriber=lambda r: order.append("publish"),
            scheduler=scheduler,
        )
        engine.start()
        engine.start()
        assert order == ["publish", "arm", "publish", "arm"]

    def test_failed_cycle_still_rearms(self, polling_config, scheduler):
        engine = PollingEngine(polling_config, fetcher=FakeFetcher(FetchTransportError("timeout")),
                               scheduler=scheduler)
        engine.start()
        assert scheduler.add_job.call_count == 1

    def test_run_date_is_one_interval_ahead(self, polling_config, scheduler, seoul_success):
        engine = PollingEngine(polling_config, fetcher=FakeFetcher(seoul_success), scheduler=scheduler)
        before = datetime.now().astimezone()
        engine.start()
        _, kwargs = scheduler.add_job.call_args
        delta = (kwargs["run_date"] - before).total_seconds()
        assert 299 <= delta <= 301

    def test_shutdown_cancels_and_stops_rearming(self, polling_config, scheduler, seoul_success):
        scheduler.running = True
        fetcher = FakeFetcher(seoul_success)
        engine = PollingEngine(polling_config, fetcher=fetcher, scheduler=scheduler)
        engine.shutdown()
        scheduler.remove_job.assert_called_once_with(POLL_JOB_ID)
        scheduler.shutdown.assert_called_once_with(wait=False)
        assert engine.start() is False
        assert fetcher.calls == 0
        scheduler.add_job.assert_not_called()

    def test_shutdown_is_idempotent(self, polling_config, scheduler):
        engine = PollingEngine(polling_config, fetcher=FakeFetcher(FetchHttpError(500)), scheduler=scheduler)
        engine.shutdown()
        engine.shutdown()
        scheduler.remove_job.assert_called_once()
