#!/usr/bin/env python3
"""Runtime configuration for the SiteWise importer.

Settings come from one of two places:
    - Environment variables (and a local .env file), for the CLI
    - The SSM parameter store of a deployed stack, for the scheduled handler

Environment Variables:
    IOT_API_KEY, IOT_API_SECRET: IoT Cloud API credentials (required)
    IOT_ORG_ID: Organization the things belong to (optional)
    IOT_TAGS: Thing tag filter, "key=value,key2=value2" (optional)
    IOT_API_URL: IoT Cloud API base URL (optional)
    SAMPLES_RESOLUTION: "1 minute", "5 minutes", "15 minutes", "1 hour" or seconds
    SCHEDULING: "5 minutes", "15 minutes" or "1 hour" (export window)
    STACK_NAME: Stack whose parameters are read (default: empty)
    AWS_REGION: SiteWise / SSM region (default: provider chain)
    ALIGN_CONCURRENCY: Asset alignment tasks in flight (default: 6)
    EXPORT_CONCURRENCY: Asset export tasks in flight (default: 10)
    MODEL_POLL_ATTEMPTS: Probes while waiting for a model (default: 5)
    ASSET_POLL_ATTEMPTS: Probes while waiting for an asset (default: 10)
    RATE_LIMIT_RETRIES: Attempts for a throttled series fetch (default: 5)

Example:
    config = SyncConfig.from_env()
    config.validate()
    print(config)
"""
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .api.exceptions import ConfigurationError
from .api.parameters import (
    IOT_API_KEY,
    IOT_API_SECRET,
    IOT_ORG_ID,
    IOT_TAGS,
    SAMPLES_RESOLUTION,
    SCHEDULING,
    ParameterStore,
)
from .api.resilience import (
    ASSET_ACTIVE_POLL,
    MODEL_ACTIVE_POLL,
    RATE_LIMIT_RETRY,
    RetryPolicy,
)
from .sync.use_cases.align_entities import ALIGN_CONCURRENCY
from .sync.use_cases.export_timeseries import EXPORT_CONCURRENCY

load_dotenv()

logger = logging.getLogger(__name__)

# ============================================
# Resolution and Window Parsing
# ============================================

DEFAULT_RESOLUTION_SECONDS = 300
MIN_RESOLUTION_SECONDS = 60
MAX_RESOLUTION_SECONDS = 3600
DEFAULT_WINDOW_MINUTES = 30

RESOLUTIONS = {
    "1 minute": 60,
    "5 minutes": 300,
    "15 minutes": 900,
    "1 hour": 3600,
}

WINDOWS = {
    "5 minutes": 5,
    "15 minutes": 15,
    "1 hour": 60,
}


def parse_resolution(value: Optional[str]) -> int:
    """Parse a sample resolution into seconds.

    Accepts the labels of RESOLUTIONS or a number of seconds. Blank and
    unknown labels fall back to the default.

    Raises:
        ConfigurationError: If a number of seconds is outside 60..3600
    """
    if value is None or not value.strip():
        return DEFAULT_RESOLUTION_SECONDS

    label = value.strip().lower()
    if label in RESOLUTIONS:
        return RESOLUTIONS[label]

    try:
        seconds = int(label)
    except ValueError:
        logger.warning(
            f"Unknown resolution '{value}', using {DEFAULT_RESOLUTION_SECONDS} seconds"
        )
        return DEFAULT_RESOLUTION_SECONDS

    if seconds < MIN_RESOLUTION_SECONDS or seconds > MAX_RESOLUTION_SECONDS:
        raise ConfigurationError(
            f"Resolution {seconds} is invalid: must be between "
            f"{MIN_RESOLUTION_SECONDS} and {MAX_RESOLUTION_SECONDS} seconds",
            details={"resolution": seconds},
        )
    return seconds


def parse_window(value: Optional[str]) -> int:
    """Parse the scheduling label into the export window, in minutes."""
    if value is None or not value.strip():
        return DEFAULT_WINDOW_MINUTES
    return WINDOWS.get(value.strip().lower(), DEFAULT_WINDOW_MINUTES)


def parse_tags(value: Optional[str]) -> dict[str, str]:
    """Parse "key=value,key2=value2" into a dict.

    Whitespace around keys and values is trimmed; pairs without exactly one
    '=' or with an empty side are ignored.
    """
    tags: dict[str, str] = {}
    if not value:
        return tags
    for pair in value.split(","):
        parts = pair.split("=")
        if len(parts) != 2:
            continue
        key, val = parts[0].strip(), parts[1].strip()
        if key and val:
            tags[key] = val
    return tags


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")
    if value < 1:
        raise ConfigurationError(f"{name} must be at least 1, got {value}")
    return value


# ============================================
# Configuration
# ============================================

@dataclass
class SyncConfig:
    """Settings of one import run."""

    api_key: str = ""
    api_secret: str = field(default="", repr=False)
    organization_id: str = ""
    tags: dict[str, str] = field(default_factory=dict)
    api_url: Optional[str] = None
    resolution: int = DEFAULT_RESOLUTION_SECONDS
    window_minutes: int = DEFAULT_WINDOW_MINUTES
    stack: str = ""
    region: Optional[str] = None
    align_concurrency: int = ALIGN_CONCURRENCY
    export_concurrency: int = EXPORT_CONCURRENCY
    model_poll_attempts: int = MODEL_ACTIVE_POLL.max_attempts
    asset_poll_attempts: int = ASSET_ACTIVE_POLL.max_attempts
    rate_limit_retries: int = RATE_LIMIT_RETRY.max_attempts

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SyncConfig":
        """Load the configuration from environment variables.

        Args:
            env: Mapping to read instead of os.environ
        """
        env = os.environ if env is None else env
        return cls(
            api_key=env.get("IOT_API_KEY", ""),
            api_secret=env.get("IOT_API_SECRET", ""),
            organization_id=env.get("IOT_ORG_ID", ""),
            tags=parse_tags(env.get("IOT_TAGS")),
            api_url=env.get("IOT_API_URL") or None,
            resolution=parse_resolution(env.get("SAMPLES_RESOLUTION")),
            window_minutes=parse_window(env.get("SCHEDULING")),
            stack=env.get("STACK_NAME", ""),
            region=env.get("AWS_REGION") or None,
            **cls._tuning_from(env),
        )

    @classmethod
    async def from_parameter_store(
        cls,
        parameters: ParameterStore,
        env: Optional[Mapping[str, str]] = None,
    ) -> "SyncConfig":
        """Load the import settings of a stack from SSM.

        Credentials are required; the other parameters fall back to their
        defaults when missing. Tuning knobs still come from the environment.

        Raises:
            ConfigurationError: If the API key or secret cannot be read
        """
        env = os.environ if env is None else env
        logger.info(f"Reading parameters of stack '{parameters.stack}' from SSM")

        missing = []
        api_key = await parameters.read_optional(IOT_API_KEY)
        if not api_key:
            missing.append(parameters.resolve(IOT_API_KEY))
        api_secret = await parameters.read_optional(IOT_API_SECRET)
        if not api_secret:
            missing.append(parameters.resolve(IOT_API_SECRET))
        if missing:
            raise ConfigurationError(
                "API key and secret are required",
                missing_keys=missing,
            )

        return cls(
            api_key=api_key,
            api_secret=api_secret,
            organization_id=await parameters.read_optional(IOT_ORG_ID),
            tags=parse_tags(await parameters.read_optional(IOT_TAGS)),
            api_url=env.get("IOT_API_URL") or None,
            resolution=parse_resolution(await parameters.read_optional(SAMPLES_RESOLUTION)),
            window_minutes=parse_window(await parameters.read_optional(SCHEDULING)),
            stack=parameters.stack,
            region=env.get("AWS_REGION") or None,
            **cls._tuning_from(env),
        )

    @staticmethod
    def _tuning_from(env: Mapping[str, str]) -> dict[str, int]:
        return {
            "align_concurrency": _env_int(env, "ALIGN_CONCURRENCY", ALIGN_CONCURRENCY),
            "export_concurrency": _env_int(env, "EXPORT_CONCURRENCY", EXPORT_CONCURRENCY),
            "model_poll_attempts": _env_int(
                env, "MODEL_POLL_ATTEMPTS", MODEL_ACTIVE_POLL.max_attempts
            ),
            "asset_poll_attempts": _env_int(
                env, "ASSET_POLL_ATTEMPTS", ASSET_ACTIVE_POLL.max_attempts
            ),
            "rate_limit_retries": _env_int(
                env, "RATE_LIMIT_RETRIES", RATE_LIMIT_RETRY.max_attempts
            ),
        }

    def validate(self) -> None:
        """Check that the settings allow a run.

        Raises:
            ConfigurationError: If credentials are missing or the resolution is invalid
        """
        missing = []
        if not self.api_key:
            missing.append("IOT_API_KEY")
        if not self.api_secret:
            missing.append("IOT_API_SECRET")
        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}",
                missing_keys=missing,
            )
        if not MIN_RESOLUTION_SECONDS <= self.resolution <= MAX_RESOLUTION_SECONDS:
            raise ConfigurationError(
                f"Resolution {self.resolution} is invalid: must be between "
                f"{MIN_RESOLUTION_SECONDS} and {MAX_RESOLUTION_SECONDS} seconds"
            )

    # ----------------------------------------
    # Derived Policies
    # ----------------------------------------

    @property
    def model_poll(self) -> RetryPolicy:
        return MODEL_ACTIVE_POLL.with_attempts(self.model_poll_attempts)

    @property
    def asset_poll(self) -> RetryPolicy:
        return ASSET_ACTIVE_POLL.with_attempts(self.asset_poll_attempts)

    @property
    def rate_limit_retry(self) -> RetryPolicy:
        return RATE_LIMIT_RETRY.with_attempts(self.rate_limit_retries)
