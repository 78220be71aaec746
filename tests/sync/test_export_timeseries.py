"""Tests for the ExportTimeSeriesUseCase, the time window and chunking."""

from datetime import datetime, timedelta, timezone

import pytest

from src.swsync.api.exceptions import DiscoveryError, RateLimitError, ServerError, SyncError
from src.swsync.api.resilience import RetryPolicy
from src.swsync.sync.domain.entities import EntryError, ExportStatistics, SeriesResponse
from src.swsync.sync.domain.values import BooleanValue, NumericValue, StringValue
from src.swsync.sync.use_cases.export_timeseries import (
    ExportTimeSeriesUseCase,
    compute_time_window,
    partition_series,
)

NOW = datetime(2024, 5, 1, 10, 7, 30, tzinfo=timezone.utc)
NOW_EPOCH = int(NOW.timestamp())
FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay=0.0)


def series(property_id: str, count: int, start: int = 1714555800, step: int = 300) -> SeriesResponse:
    times = [start + i * step for i in range(count)]
    return SeriesResponse(
        query=f"property.{property_id}",
        times=times,
        values=[float(i) for i in range(count)],
        count=count,
    )


@pytest.fixture
def exporter(source, store):
    return ExportTimeSeriesUseCase(source, store, retry_policy=FAST_RETRY, clock=lambda: NOW)


@pytest.fixture
def sensor(store, source, thing_factory):
    """One thing with a numeric and a string property, bound to one asset."""
    thing = thing_factory("t1", "Sensor", {"temperature": "FLOAT", "label": "CHARSTRING"})
    model = store.add_model("M", ["label", "temperature"])
    store.add_asset(model.id, "Sensor", "t1")
    source.things = [thing]
    return thing


class TestComputeTimeWindow:
    """Test window alignment."""

    def test_short_resolution_shifted(self):
        window = compute_time_window(300, 30, NOW)

        assert window.resolution == 300
        assert window.end == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert window.start == datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    def test_one_minute_raised_to_five(self):
        window = compute_time_window(60, 30, NOW)

        assert window.resolution == 300
        assert window.end == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_fifteen_minutes(self):
        window = compute_time_window(900, 60, NOW)

        assert window.end == datetime(2024, 5, 1, 9, 55, tzinfo=timezone.utc)
        assert window.minutes == 60

    def test_hourly_not_shifted(self):
        window = compute_time_window(3600, 60, NOW)

        assert window.resolution == 3600
        assert window.end == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert window.start == window.end - timedelta(hours=1)

    def test_end_is_aligned(self):
        for resolution in (300, 900, 3600):
            window = compute_time_window(resolution, 30, NOW)
            assert int(window.end.timestamp()) % 300 == 0


class TestPartitionSeries:
    """Test chunking of parallel arrays."""

    def test_chunks_of_ten(self):
        chunks = partition_series(list(range(25)), list(range(25)))

        assert [len(t) for t, _ in chunks] == [10, 10, 5]
        assert [t for chunk, _ in chunks for t in chunk] == list(range(25))

    def test_custom_size(self):
        chunks = partition_series([1, 2, 3], ["a", "b", "c"], size=2)
        assert chunks == [([1, 2], ["a", "b"]), ([3], ["c"])]

    def test_empty(self):
        assert partition_series([], []) == []

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            partition_series([1, 2], [1])


class TestExport:
    """Test the per-asset export."""

    async def test_writes_primary_series_in_ordered_chunks(self, exporter, source, store, sensor):
        source.series["t1"] = [series("t1-temperature", 25)]

        result = await exporter.execute({"t1": sensor}, 300, 30)

        assert result.success
        assert result.operation == "export"
        writes = [w for w in store.writes if w[0] == "/t1/temperature"]
        assert [len(ts) for _, ts, _ in writes] == [10, 10, 5]
        all_times = [t for _, ts, _ in writes for t in ts]
        assert all_times == sorted(all_times)
        assert writes[0][2][0] == NumericValue(0.0)

        thing_id, start, end, interval = source.series_calls[0]
        assert thing_id == "t1"
        assert interval == 300
        assert end == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

        stats = result.statistics
        assert isinstance(stats, ExportStatistics)
        assert stats.assets_processed == 1
        assert stats.chunks_written == 3
        assert stats.points_written == 25

    async def test_hour_window_ends_on_shifted_boundary(self, exporter, source, store, sensor):
        source.series["t1"] = [series("t1-temperature", 12)]

        result = await exporter.execute({"t1": sensor}, 300, 60)

        assert result.success
        _, start, end, interval = source.series_calls[0]
        assert interval == 300
        assert end == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert start == end - timedelta(minutes=60)

    async def test_string_properties_use_sampled_series(self, exporter, source, store, sensor):
        source.sampled["t1-label"] = SeriesResponse(
            query="property.t1-label", times=[1714557000], values=["on"], count=1
        )

        await exporter.execute({"t1": sensor}, 300, 30)

        assert source.sampled_calls == [["t1-label"]]
        assert store.writes == [("/t1/label", [1714557000], [StringValue("on")])]

    async def test_empty_and_unmapped_responses_skipped(self, exporter, source, store, sensor):
        source.series["t1"] = [
            SeriesResponse(query="property.t1-temperature", times=[], values=[], count=0),
            series("unknown-property", 3),
        ]

        result = await exporter.execute({"t1": sensor}, 300, 30)

        assert result.success
        assert store.writes == []

    async def test_only_common_properties_exported(self, exporter, source, store, thing_factory):
        thing = thing_factory("t1", "Sensor", {"temperature": "FLOAT", "pressure": "FLOAT"})
        model = store.add_model("M", ["temperature"])
        store.add_asset(model.id, "Sensor", "t1")
        source.series["t1"] = [series("t1-temperature", 2), series("t1-pressure", 2)]

        await exporter.execute({"t1": thing}, 300, 30)

        assert {alias for alias, _, _ in store.writes} == {"/t1/temperature"}

    async def test_unbound_assets_skipped(self, exporter, source, store, sensor):
        model = next(iter(store.models.values()))
        store.add_asset(model.id, "Unmanaged", None)
        store.add_asset(model.id, "Orphan", "deleted-thing")

        result = await exporter.execute({"t1": sensor}, 300, 30)

        assert result.success
        assert result.statistics.assets_skipped == 2
        assert result.statistics.assets_processed == 1

    async def test_entry_errors_counted(self, exporter, source, store, sensor):
        source.series["t1"] = [series("t1-temperature", 3)]
        store.entry_errors = [EntryError(entry_id="e1", error_code="InvalidRequestException", message="bad")]

        result = await exporter.execute({"t1": sensor}, 300, 30)

        assert result.success
        assert result.statistics.entry_errors == 1


class TestRateLimiting:
    """Test throttled series fetches."""

    async def test_retried_until_success(self, exporter, source, store, sensor):
        source.series["t1"] = [series("t1-temperature", 2)]
        source.series_failures["t1"] = [RateLimitError(), RateLimitError()]

        result = await exporter.execute({"t1": sensor}, 300, 30)

        assert result.success
        assert len(source.series_calls) == 3
        assert len(store.writes) == 1

    async def test_exhausted_retries_fail_only_that_asset(self, exporter, source, store, sensor, thing_factory):
        other = thing_factory("t2", "Other", {"temperature": "FLOAT"})
        model = store.add_model("M2", ["temperature"])
        store.add_asset(model.id, "Other", "t2")
        source.series["t2"] = [series("t2-temperature", 2)]
        source.series_failures["t1"] = [RateLimitError() for _ in range(3)]

        result = await exporter.execute({"t1": sensor, "t2": other}, 300, 30)

        assert not result.success
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], SyncError)
        assert result.errors[0].details["thing_id"] == "t1"
        assert [alias for alias, _, _ in store.writes] == ["/t2/temperature"]

    async def test_other_errors_not_retried(self, exporter, source, store, sensor):
        source.series_failures["t1"] = [ServerError("boom")]

        result = await exporter.execute({"t1": sensor}, 300, 30)

        assert len(result.errors) == 1
        assert len(source.series_calls) == 1


class TestLastValueFallback:
    """Test re-sending cached values of quiet on-change properties."""

    async def test_quiet_properties_resent_at_now(self, exporter, source, store, thing_factory):
        thing = thing_factory(
            "t1",
            "Switch",
            {"temperature": "FLOAT", "state": "CHARSTRING", "color": "COLOR_RGB"},
            last_values={"temperature": 20, "state": "idle", "color": {"r": 1}},
            on_change=True,
        )
        model = store.add_model("M", ["color", "state", "temperature"])
        store.add_asset(model.id, "Switch", "t1")

        result = await exporter.execute({"t1": thing}, 300, 30)

        assert result.success
        assert len(store.batches) == 1
        points = {p.alias: p for p in store.batches[0]}
        assert set(points) == {"/t1/temperature", "/t1/state"}
        assert points["/t1/temperature"].value == NumericValue(20.0)
        assert points["/t1/state"].value == StringValue("idle")
        assert all(p.timestamp == NOW_EPOCH for p in points.values())
        assert result.statistics.fallback_points == 2

    async def test_series_without_writable_samples_resent(self, exporter, source, store, thing_factory):
        thing = thing_factory("t1", "Switch", {"on": "BOOL"}, last_values={"on": True}, on_change=True)
        model = store.add_model("M", ["on"])
        store.add_asset(model.id, "Switch", "t1")
        source.series["t1"] = [
            SeriesResponse(query="property.t1-on", times=[1714555800], values=[None], count=1)
        ]

        result = await exporter.execute({"t1": thing}, 300, 30)

        assert result.success
        assert store.writes == []
        assert len(store.batches) == 1
        [point] = store.batches[0]
        assert point.alias == "/t1/on"
        assert point.value == BooleanValue(True)
        assert point.timestamp == NOW_EPOCH

    async def test_properties_with_samples_not_resent(self, exporter, source, store, thing_factory):
        thing = thing_factory(
            "t1", "Sensor", {"temperature": "FLOAT"}, last_values={"temperature": 20}, on_change=True
        )
        model = store.add_model("M", ["temperature"])
        store.add_asset(model.id, "Sensor", "t1")
        source.series["t1"] = [series("t1-temperature", 2)]

        await exporter.execute({"t1": thing}, 300, 30)

        assert store.batches == []

    async def test_timed_properties_not_resent(self, exporter, source, store, thing_factory):
        thing = thing_factory("t1", "Sensor", {"temperature": "FLOAT"}, last_values={"temperature": 20})
        model = store.add_model("M", ["temperature"])
        store.add_asset(model.id, "Sensor", "t1")

        await exporter.execute({"t1": thing}, 300, 30)

        assert store.batches == []

    async def test_batches_of_ten(self, exporter, source, store, thing_factory):
        names = [f"p{i:02d}" for i in range(12)]
        thing = thing_factory(
            "t1",
            "Wide",
            {n: "FLOAT" for n in names},
            last_values={n: 1 for n in names},
            on_change=True,
        )
        model = store.add_model("M", names)
        store.add_asset(model.id, "Wide", "t1")

        await exporter.execute({"t1": thing}, 300, 30)

        assert [len(b) for b in store.batches] == [10, 2]


class TestFailureIsolation:
    """Test that failures are collected, not raised."""

    async def test_describe_failure_collected(self, exporter, source, store, sensor, thing_factory):
        broken = store.assets_of(next(iter(store.models)))[0]
        store.fail_describe_asset[broken.id] = ServerError("boom")
        other = thing_factory("t2", "Other", {"temperature": "FLOAT"})
        model = store.add_model("M2", ["temperature"])
        store.add_asset(model.id, "Other", "t2")
        source.series["t2"] = [series("t2-temperature", 1)]

        result = await exporter.execute({"t1": sensor, "t2": other}, 300, 30)

        assert len(result.errors) == 1
        assert len(store.writes) == 1

    async def test_catalog_walk_failure_collected(self, exporter, source, store, sensor):
        store.fail_on["list_models"] = ServerError("boom")

        result = await exporter.execute({"t1": sensor}, 300, 30)

        assert not result.success
        assert isinstance(result.errors[0], DiscoveryError)
