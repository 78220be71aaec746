#!/usr/bin/env python3
"""Import run orchestration: align entities, then export time series.

One run:
    1. List the things matching the tag filter
    2. Align models and assets (at most once every 55 minutes, tracked in
       the last-model-sync parameter); stop there if alignment failed
    3. Export the samples of the current window into SiteWise
    4. Record the alignment time after a fully successful aligned run

Entry points:
    - run_sync(config, ...): build the clients and run once
    - handle_event(event): scheduled handler reading its settings from SSM
    - lambda_handler(event, context): synchronous wrapper of handle_event

Example:
    config = SyncConfig.from_env()
    results = await run_sync(config)
    for result in results:
        print(result.to_dict())
"""
import asyncio
import logging
import os
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from .api.auth import DEV_API_URL, TokenManager
from .api.exceptions import ConfigurationError, ErrorCollector
from .api.iot_client import IoTClient
from .api.parameters import LAST_MODEL_SYNC, ParameterStore
from .api.sitewise_client import SiteWiseClient
from .config import SyncConfig
from .sync.adapters import IoTThingSource, SiteWiseAssetStore
from .sync.domain.entities import SyncResult
from .sync.domain.ports import IAssetStore, IThingSource
from .sync.use_cases import AlignEntitiesUseCase, ExportTimeSeriesUseCase

logger = logging.getLogger(__name__)

# Alignment is skipped when the last one is more recent than this
ALIGN_INTERVAL_SECONDS = 55 * 60

SUCCESS_MESSAGE = "Data aligned and imported successfully"


class SyncRunner:
    """Runs one import cycle over already built ports.

    Attributes:
        config: Settings of the run
        source: IoT Cloud port
        store: SiteWise port
        parameters: Parameter store for the alignment gate (None disables it)
    """

    def __init__(
        self,
        config: SyncConfig,
        source: IThingSource,
        store: IAssetStore,
        parameters: Optional[ParameterStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.source = source
        self.store = store
        self.parameters = parameters
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def should_align(self, now: datetime) -> bool:
        """True unless the last alignment ran less than 55 minutes ago."""
        if self.parameters is None:
            return True

        raw = await self.parameters.read_optional(LAST_MODEL_SYNC)
        try:
            last_sync = int(raw)
        except ValueError:
            logger.debug(f"No usable last model sync time ('{raw}'), aligning")
            return True

        elapsed = int(now.timestamp()) - last_sync
        logger.debug(f"Last model sync was {elapsed} seconds ago")
        return elapsed >= ALIGN_INTERVAL_SECONDS

    async def run(self, align_entities: Optional[bool] = None) -> list[SyncResult]:
        """Run one cycle.

        Args:
            align_entities: Force (True) or skip (False) alignment; None
                applies the 55 minute gate

        Returns:
            The align result (when alignment ran) followed by the export result.
            When alignment fails, only its result is returned.
        """
        now = self.clock()
        if align_entities is None:
            align_entities = await self.should_align(now)

        if self.config.tags:
            logger.info(f"Things - searching by tags: {self.config.tags}")
        else:
            logger.info("Things - searching with no filter")
        things = await self.source.list_things(self.config.tags or None)
        things_by_id = {}
        for thing in things:
            logger.info(f"  Thing: {thing.id} {thing.name}")
            things_by_id[thing.id] = thing

        logger.info(
            f"Resolution {self.config.resolution}s, window {self.config.window_minutes} minutes, "
            f"align entities: {align_entities}"
        )

        results: list[SyncResult] = []
        if align_entities:
            property_types = await self.source.property_type_catalog()
            aligner = AlignEntitiesUseCase(
                self.store,
                max_concurrent=self.config.align_concurrency,
                model_poll=self.config.model_poll,
                asset_poll=self.config.asset_poll,
            )
            align_result = await aligner.execute(things, property_types)
            results.append(align_result)
            if not align_result.success:
                logger.error("Entity alignment failed, skipping time series export")
                return results

        exporter = ExportTimeSeriesUseCase(
            self.source,
            self.store,
            max_concurrent=self.config.export_concurrency,
            retry_policy=self.config.rate_limit_retry,
            clock=self.clock,
        )
        results.append(
            await exporter.execute(things_by_id, self.config.resolution, self.config.window_minutes)
        )

        if align_entities and all(r.success for r in results):
            await self._record_alignment(now)
        return results

    async def _record_alignment(self, now: datetime) -> None:
        if self.parameters is None:
            return
        try:
            await self.parameters.write(LAST_MODEL_SYNC, str(int(now.timestamp())))
        except ConfigurationError as e:
            # Next run aligns again
            logger.error(f"Error updating last model sync time: {e}")


# ============================================
# Entry Points
# ============================================

async def run_sync(
    config: SyncConfig,
    parameters: Optional[ParameterStore] = None,
    align_entities: Optional[bool] = None,
) -> list[SyncResult]:
    """Build the IoT and SiteWise clients from the configuration and run once.

    Raises:
        ConfigurationError: If the configuration is incomplete
    """
    config.validate()

    token_manager = TokenManager(
        client_id=config.api_key,
        client_secret=config.api_secret,
        base_url=config.api_url,
    )
    sitewise = SiteWiseClient(region_name=config.region)

    async with IoTClient(
        token_manager,
        base_url=config.api_url,
        organization_id=config.organization_id,
    ) as client:
        runner = SyncRunner(
            config,
            source=IoTThingSource(client),
            store=SiteWiseAssetStore(sitewise),
            parameters=parameters,
        )
        return await runner.run(align_entities)


def raise_for_errors(results: list[SyncResult]) -> None:
    """Log every collected error and raise them as one PartialSyncError."""
    collector = ErrorCollector()
    succeeded = 0
    for result in results:
        if result.success:
            succeeded += 1
        for error in result.errors:
            logger.error(f"[{result.operation}] {error}")
            collector.add(error, context={"operation": result.operation})

    if collector.has_errors():
        first = collector.exceptions()[0]
        raise collector.to_exception(succeeded=succeeded) from first


async def handle_event(
    event: Optional[Mapping[str, Any]] = None,
    parameters: Optional[ParameterStore] = None,
) -> dict[str, Any]:
    """Scheduled handler: read the stack settings from SSM and run once.

    The event may carry ``{"dev": true}`` to target the development API
    (the ``DEV=true`` environment variable does the same).

    Returns:
        Dict with a message and the result of each pass

    Raises:
        ConfigurationError: If the stack parameters are incomplete
        PartialSyncError: If any pass collected errors
    """
    event = event or {}
    if parameters is None:
        parameters = ParameterStore(
            os.getenv("STACK_NAME", ""),
            region_name=os.getenv("AWS_REGION") or None,
        )

    config = await SyncConfig.from_parameter_store(parameters)
    if event.get("dev") or os.getenv("DEV", "").lower() == "true":
        logger.info("Running in dev mode")
        config.api_url = DEV_API_URL

    logger.info(f"------ Running import. Stack: {config.stack}")
    logger.info(f"organization id: {config.organization_id or 'not set'}")

    results = await run_sync(config, parameters=parameters)
    raise_for_errors(results)
    return {
        "message": SUCCESS_MESSAGE,
        "results": [r.to_dict() for r in results],
    }


def lambda_handler(event: Optional[Mapping[str, Any]], context: Any = None) -> dict[str, Any]:
    """AWS Lambda entry point."""
    logging.getLogger().setLevel(logging.INFO)
    return asyncio.run(handle_event(event))
