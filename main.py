#!/usr/bin/env python3
"""IoT Cloud to AWS IoT SiteWise Importer CLI.

This module provides a command-line interface for mirroring IoT Cloud
things into SiteWise asset models and assets, and importing their recent
samples into the asset properties.

Architecture:
    - IoTClient is the shared HTTP layer for all IoT Cloud calls
    - TokenManager handles the OAuth2 client credentials flow
    - SiteWiseClient wraps boto3 and runs calls in worker threads
    - SyncRunner aligns entities, then exports the time window

Environment Variables Required:
    - IOT_API_KEY: IoT Cloud API client id
    - IOT_API_SECRET: IoT Cloud API client secret
    - AWS credentials and region for SiteWise (standard boto3 chain)

Optional: IOT_ORG_ID, IOT_TAGS, IOT_API_URL, SAMPLES_RESOLUTION, SCHEDULING,
STACK_NAME (used with --from-ssm), see src/swsync/config.py.

Example Usage:
    $ python main.py                              # Align if due, then export
    $ python main.py --force-align                # Always align entities
    $ python main.py --no-align                   # Export only
    $ python main.py --resolution "1 hour" --window "1 hour"
    $ python main.py --tags "site=plant1,line=a"  # Filter things by tags
    $ python main.py --from-ssm                   # Read settings of $STACK_NAME
"""
import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.swsync.api import DEV_API_URL, ParameterStore, SwSyncError
from src.swsync.config import SyncConfig, parse_resolution, parse_tags, parse_window
from src.swsync.runner import raise_for_errors, run_sync

logger = logging.getLogger("swsync")


async def load_config(args) -> tuple[SyncConfig, ParameterStore | None]:
    """Build the configuration from the environment or SSM, then apply flags."""
    parameters = None
    if args.from_ssm:
        parameters = ParameterStore(
            os.getenv("STACK_NAME", ""),
            region_name=os.getenv("AWS_REGION") or None,
        )
        config = await SyncConfig.from_parameter_store(parameters)
    else:
        config = SyncConfig.from_env()

    if args.resolution:
        config.resolution = parse_resolution(args.resolution)
    if args.window:
        config.window_minutes = parse_window(args.window)
    if args.tags is not None:
        config.tags = parse_tags(args.tags)
    if args.dev or os.getenv("DEV", "").lower() == "true":
        logger.info("Running in dev mode")
        config.api_url = DEV_API_URL

    return config, parameters


async def run(args) -> int:
    config, parameters = await load_config(args)
    logger.info(f"Configuration: {config}")

    align_entities = None
    if args.force_align:
        align_entities = True
    elif args.no_align:
        align_entities = False

    results = await run_sync(config, parameters=parameters, align_entities=align_entities)

    for result in results:
        print(json.dumps(result.to_dict(), indent=2))

    raise_for_errors(results)
    logger.info("Data aligned and imported successfully")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Import IoT Cloud things and samples into AWS IoT SiteWise",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                              # Align if due, then export
  python main.py --force-align                # Always align entities
  python main.py --no-align                   # Export only
  python main.py --resolution "15 minutes"    # Aggregate samples per 15 minutes
  python main.py --from-ssm --dev             # Stack settings, development API
        """
    )

    # Alignment
    align_group = parser.add_mutually_exclusive_group()
    align_group.add_argument(
        "--no-align",
        action="store_true",
        help="Skip model and asset alignment"
    )
    align_group.add_argument(
        "--force-align",
        action="store_true",
        help="Align models and assets even if done less than 55 minutes ago"
    )

    # Import options
    import_group = parser.add_argument_group("Import Options")
    import_group.add_argument(
        "--resolution",
        type=str,
        metavar="RES",
        help='Sample resolution: "1 minute", "5 minutes", "15 minutes", "1 hour" or seconds'
    )
    import_group.add_argument(
        "--window",
        type=str,
        metavar="WINDOW",
        help='Export window: "5 minutes", "15 minutes" or "1 hour" (default: 30 minutes)'
    )
    import_group.add_argument(
        "--tags",
        type=str,
        metavar="TAGS",
        help='Only import things carrying these tags, "key=value,key2=value2"'
    )

    # Environment
    env_group = parser.add_argument_group("Environment")
    env_group.add_argument(
        "--from-ssm",
        action="store_true",
        help="Read settings from the SSM parameters of $STACK_NAME"
    )
    env_group.add_argument(
        "--dev",
        action="store_true",
        help="Use the development IoT Cloud API"
    )
    env_group.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    try:
        sys.exit(asyncio.run(run(args)))
    except SwSyncError as e:
        logger.error(f"Import failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
