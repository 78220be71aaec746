"""Export Time Series Use Case - Copy recent samples from things to assets.

Workflow:
1. Compute an aligned time window for the requested resolution
2. Walk every model and every asset page of the SiteWise catalog
3. For each asset bound to a known thing, spawn a task (bounded pool):
   a. describe the asset and match its properties with the thing's by name
   b. split them into primary (numeric/boolean, aggregated series) and
      char (string/location/structured, sampled series) buckets
   c. fetch each bucket, retrying on rate limiting
   d. write the samples in chunks of at most 10 values per alias
   e. re-send the last known value of on-change properties that produced
      no samples in the window
4. Join and return the collected per-asset errors

A failing asset never cancels the others. Chunks of one alias are written
in order so timestamps stay monotonic in SiteWise.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from ...api.exceptions import DiscoveryError, SyncError
from ...api.resilience import RATE_LIMIT_RETRY, BoundedTaskPool, RetryPolicy, retry_async
from ..domain.entities import (
    AssetDescription,
    AssetSummary,
    DataPoint,
    EntryError,
    ExportStatistics,
    PropertyKind,
    SeriesResponse,
    SyncResult,
    Thing,
    ThingProperty,
    TimeWindow,
)
from ..domain.ports import IAssetStore, IThingSource
from ..domain.property_types import FALLBACK_KINDS, classify, coerce_value
from ..domain.schema_key import property_alias
from .discover_catalog import DiscoverCatalogUseCase

logger = logging.getLogger(__name__)

EXPORT_CONCURRENCY = 10
CHUNK_SIZE = 10

# The IoT Cloud does not aggregate reliably below 5 minutes
MIN_RESOLUTION_SECONDS = 60
SHORT_RESOLUTION_SECONDS = 300
# The tail of short windows is not aggregated yet upstream
TAIL_SHIFT_MAX_RESOLUTION = 900
TAIL_SHIFT_SECONDS = 300


def compute_time_window(
    resolution: int,
    window_minutes: int,
    now: datetime | None = None,
) -> TimeWindow:
    """Aligned [start, end] window and the effective query interval.

    Resolutions up to 60s are raised to 300s. The end is ``now`` truncated
    to a multiple of the resolution (UTC epoch), shifted back 300s more
    when the resolution is at most 900s. The start is ``window_minutes``
    before the end.
    """
    if resolution <= MIN_RESOLUTION_SECONDS:
        resolution = SHORT_RESOLUTION_SECONDS

    now = now or datetime.now(timezone.utc)
    epoch = int(now.timestamp())
    end_epoch = epoch - epoch % resolution
    if resolution <= TAIL_SHIFT_MAX_RESOLUTION:
        end_epoch -= TAIL_SHIFT_SECONDS

    end = datetime.fromtimestamp(end_epoch, tz=timezone.utc)
    start = end - timedelta(minutes=window_minutes)
    return TimeWindow(start=start, end=end, resolution=resolution)


def partition_series(
    times: list[int],
    values: list[Any],
    size: int = CHUNK_SIZE,
) -> list[tuple[list[int], list[Any]]]:
    """Split parallel arrays into ordered chunks of at most ``size`` items."""
    if len(times) != len(values):
        raise ValueError(
            f"times and values must have the same length ({len(times)} != {len(values)})"
        )
    if size < 1:
        raise ValueError("size must be at least 1")
    return [
        (times[i:i + size], values[i:i + size])
        for i in range(0, len(times), size)
    ]


@dataclass
class ExportPlan:
    """Thing properties of one asset, routed by query path."""

    primary: list[ThingProperty] = field(default_factory=list)
    char: list[ThingProperty] = field(default_factory=list)
    aliases: dict[str, str] = field(default_factory=dict)
    kinds: dict[str, PropertyKind] = field(default_factory=dict)

    @property
    def properties(self) -> list[ThingProperty]:
        return self.primary + self.char

    @property
    def is_empty(self) -> bool:
        return not self.primary and not self.char


@dataclass
class AssetExportOutcome:
    """What one asset task wrote."""

    chunks: int = 0
    points: int = 0
    fallback_points: int = 0
    entry_errors: int = 0


def plan_properties(description: AssetDescription, thing: Thing) -> ExportPlan:
    """Match asset properties with thing properties by name."""
    plan = ExportPlan()
    asset_names = {p.name for p in description.properties}
    for prop in thing.properties:
        if prop.name not in asset_names:
            continue
        kind = classify(prop.type)
        plan.kinds[prop.id] = kind
        plan.aliases[prop.id] = property_alias(thing.id, prop.name)
        if kind.is_primary:
            plan.primary.append(prop)
        else:
            plan.char.append(prop)
    return plan


class ExportTimeSeriesUseCase:
    """Copies the samples of a time window into SiteWise.

    Example:
        use_case = ExportTimeSeriesUseCase(source, store)
        result = await use_case.execute(things_by_id, resolution=300, window_minutes=30)
    """

    def __init__(
        self,
        source: IThingSource,
        store: IAssetStore,
        discovery: DiscoverCatalogUseCase | None = None,
        max_concurrent: int = EXPORT_CONCURRENCY,
        retry_policy: RetryPolicy = RATE_LIMIT_RETRY,
        chunk_size: int = CHUNK_SIZE,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the use case with its dependencies.

        Args:
            source: Port for reading samples
            store: Port for the SiteWise catalog and writes
            discovery: Catalog walker (defaults to one over the same store)
            max_concurrent: Asset tasks running at the same time
            retry_policy: Retry applied to throttled sample fetches
            chunk_size: Values per write call
            clock: Returns the current UTC time
        """
        self.source = source
        self.store = store
        self.discovery = discovery or DiscoverCatalogUseCase(store)
        self.max_concurrent = max_concurrent
        self.retry_policy = retry_policy
        self.chunk_size = chunk_size
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def execute(
        self,
        things_by_id: Mapping[str, Thing],
        resolution: int,
        window_minutes: int,
    ) -> SyncResult:
        """Export the current window for every asset bound to a known thing.

        Returns:
            SyncResult whose errors are the failed asset tasks (and a catalog
            walk failure, if any)
        """
        started_at = datetime.now(timezone.utc)
        window = compute_time_window(resolution, window_minutes, self.clock())
        stats = ExportStatistics()
        errors: list[Exception] = []

        logger.info(
            f"Exporting time series - window {window_minutes} minutes "
            f"from {window.start.isoformat()} to {window.end.isoformat()} "
            f"- resolution {window.resolution} seconds"
        )

        async with BoundedTaskPool(self.max_concurrent, name="export-assets") as pool:
            try:
                async for model_id in self.discovery.iter_model_ids():
                    async for asset in self.discovery.iter_assets(model_id):
                        thing = self._thing_for(asset, things_by_id)
                        if thing is None:
                            stats.assets_skipped += 1
                            continue
                        await pool.submit(self._export_asset, asset, thing, window, label=asset.id)
            except DiscoveryError as e:
                logger.error(f"Catalog walk interrupted: {e}")
                errors.append(e)

            outcomes, task_errors = await pool.join()

        errors.extend(task_errors)
        for outcome in outcomes:
            stats.assets_processed += 1
            stats.chunks_written += outcome.chunks
            stats.points_written += outcome.points
            stats.fallback_points += outcome.fallback_points
            stats.entry_errors += outcome.entry_errors

        finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Time series export completed in {(finished_at - started_at).total_seconds():.2f}s: "
            f"{stats.assets_processed} assets, {stats.points_written} points, "
            f"{stats.fallback_points} last values, {len(errors)} errors"
        )
        return SyncResult(
            operation="export",
            started_at=started_at,
            finished_at=finished_at,
            errors=errors,
            statistics=stats,
        )

    def _thing_for(
        self,
        asset: AssetSummary,
        things_by_id: Mapping[str, Thing],
    ) -> Thing | None:
        if not asset.external_id:
            logger.warning(f"Asset {asset.name} has no external id, skipping")
            return None
        thing = things_by_id.get(asset.external_id)
        if thing is None:
            logger.warning(f"Thing {asset.external_id} not found for asset {asset.name}, skipping")
        return thing

    # ----------------------------------------
    # Per-asset task
    # ----------------------------------------

    async def _export_asset(
        self,
        asset: AssetSummary,
        thing: Thing,
        window: TimeWindow,
    ) -> AssetExportOutcome:
        outcome = AssetExportOutcome()
        try:
            description = await self.store.describe_asset(asset.id)
            plan = plan_properties(description, thing)
            if plan.is_empty:
                logger.debug(f"Asset {asset.name}: no property to export")
                return outcome

            exported: set[str] = set()

            if plan.primary:
                series = await retry_async(
                    self.source.fetch_series_by_thing,
                    thing.id,
                    window.start,
                    window.end,
                    window.resolution,
                    policy=self.retry_policy,
                )
                await self._write_series(series, plan, plan.primary, exported, outcome)

            if plan.char:
                series = await retry_async(
                    self.source.fetch_sampled_series,
                    [p.id for p in plan.char],
                    window.start,
                    window.end,
                    window.resolution,
                    policy=self.retry_policy,
                )
                await self._write_series(series, plan, plan.char, exported, outcome)

            await self._write_last_values(plan, exported, outcome)
        except Exception as e:
            logger.error(f"Error exporting asset {asset.name} (thing {thing.id}): {e}")
            raise SyncError(
                f"Exporting asset {asset.id} failed: {e}",
                details={"asset_id": asset.id, "thing_id": thing.id},
                cause=e,
            ) from e
        return outcome

    async def _write_series(
        self,
        series: list[SeriesResponse],
        plan: ExportPlan,
        bucket: list[ThingProperty],
        exported: set[str],
        outcome: AssetExportOutcome,
    ) -> None:
        bucket_ids = {p.id for p in bucket}
        for response in series:
            if response.is_empty:
                continue

            property_id = response.property_id
            if property_id not in bucket_ids:
                logger.debug(f"Property {property_id} not mapped, skipping")
                continue
            alias = plan.aliases.get(property_id)
            if not alias:
                logger.warning(f"Alias not found for property {property_id}, skipping")
                continue

            kind = plan.kinds[property_id]
            written = 0
            for times, raw_values in partition_series(response.times, response.values, self.chunk_size):
                timestamps = []
                values = []
                for ts, raw in zip(times, raw_values):
                    value = coerce_value(raw, kind)
                    if value is None:
                        logger.debug(f"{alias}: unsupported sample {raw!r} at {ts}, skipping")
                        continue
                    timestamps.append(ts)
                    values.append(value)
                if not values:
                    continue

                logger.debug(f"Writing {len(values)} points to {alias} - ts: {timestamps}")
                entry_errors = await self.store.put_values(alias, timestamps, values)
                self._log_entry_errors(alias, entry_errors)
                outcome.chunks += 1
                outcome.points += len(values)
                outcome.entry_errors += len(entry_errors)
                written += len(values)

            # A series with no writable samples still gets the last-value fallback
            if written:
                exported.add(property_id)

    async def _write_last_values(
        self,
        plan: ExportPlan,
        exported: set[str],
        outcome: AssetExportOutcome,
    ) -> None:
        """Re-send the cached value of quiet on-change properties."""
        now = int(self.clock().timestamp())
        points: list[DataPoint] = []

        for prop in plan.properties:
            if prop.id in exported or not prop.is_on_change or prop.last_value is None:
                continue
            kind = plan.kinds[prop.id]
            if kind not in FALLBACK_KINDS:
                logger.debug(f"Property {prop.name}: no last value support for {kind.value}")
                continue
            value = coerce_value(prop.last_value, kind)
            if value is None:
                logger.debug(f"Property {prop.name}: unsupported last value {prop.last_value!r}")
                continue
            points.append(DataPoint(alias=plan.aliases[prop.id], timestamp=now, value=value))

        for i in range(0, len(points), self.chunk_size):
            batch = points[i:i + self.chunk_size]
            logger.debug(f"Writing {len(batch)} last value(s)")
            entry_errors = await self.store.batch_write(batch)
            self._log_entry_errors("last values", entry_errors)
            outcome.fallback_points += len(batch)
            outcome.entry_errors += len(entry_errors)

    @staticmethod
    def _log_entry_errors(target: str, entry_errors: list[EntryError]) -> None:
        for err in entry_errors:
            logger.error(f"{target}: entry {err.entry_id} rejected [{err.error_code}] {err.message}")
