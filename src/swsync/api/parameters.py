#!/usr/bin/env python3
"""AWS Systems Manager parameter store access.

Deployed importers keep their settings under a per-stack prefix:

    /arduino/sitewise-importer/<stack>/iot/api-key
    /arduino/sitewise-importer/<stack>/iot/api-secret
    /arduino/sitewise-importer/<stack>/iot/org-id
    /arduino/sitewise-importer/<stack>/iot/filter/tags
    /arduino/sitewise-importer/<stack>/iot/samples-resolution
    /arduino/sitewise-importer/<stack>/iot/scheduling
    /arduino/sitewise-importer/<stack>/iot/last-model-sync

Parameter names are declared with a ``<stack-name>`` placeholder and
resolved against the stack at read time. The literal value ``<empty>`` is
how an intentionally blank parameter is stored (SSM rejects empty strings)
and reads back as "".
"""
import logging
from functools import partial
from typing import Any, Optional

import anyio
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ConfigurationError, NotFoundError

logger = logging.getLogger(__name__)

STACK_PLACEHOLDER = "<stack-name>"
EMPTY_VALUE = "<empty>"

PARAMETER_PREFIX = f"/arduino/sitewise-importer/{STACK_PLACEHOLDER}"
IOT_API_KEY = PARAMETER_PREFIX + "/iot/api-key"
IOT_API_SECRET = PARAMETER_PREFIX + "/iot/api-secret"
IOT_ORG_ID = PARAMETER_PREFIX + "/iot/org-id"
IOT_TAGS = PARAMETER_PREFIX + "/iot/filter/tags"
SAMPLES_RESOLUTION = PARAMETER_PREFIX + "/iot/samples-resolution"
SCHEDULING = PARAMETER_PREFIX + "/iot/scheduling"
LAST_MODEL_SYNC = PARAMETER_PREFIX + "/iot/last-model-sync"


class ParameterStore:
    """Read and write importer settings in SSM for one stack.

    Attributes:
        stack: Stack name substituted into parameter names
    """

    def __init__(
        self,
        stack: str,
        region_name: Optional[str] = None,
        boto_client: Any = None,
    ):
        self.stack = stack
        self._client = boto_client or boto3.client("ssm", region_name=region_name)

    def resolve(self, name: str) -> str:
        """Substitute the stack name into a parameter name."""
        return name.replace(STACK_PLACEHOLDER, self.stack)

    async def read(self, name: str) -> str:
        """Read a (decrypted) parameter value.

        Raises:
            NotFoundError: If the parameter does not exist
            ConfigurationError: If SSM cannot be read
        """
        resolved = self.resolve(name)
        try:
            response = await anyio.to_thread.run_sync(
                partial(self._client.get_parameter, Name=resolved, WithDecryption=True)
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ParameterNotFound":
                raise NotFoundError(resource_type="Parameter", resource_id=resolved, cause=e) from e
            raise ConfigurationError(f"Cannot read parameter {resolved}: {e}", cause=e) from e
        except BotoCoreError as e:
            raise ConfigurationError(f"Cannot read parameter {resolved}: {e}", cause=e) from e

        value = response.get("Parameter", {}).get("Value")
        if value is None or value == EMPTY_VALUE:
            return ""
        return value

    async def read_optional(self, name: str, default: str = "") -> str:
        """Read a parameter, returning ``default`` when it is missing or unreadable."""
        try:
            return await self.read(name)
        except (NotFoundError, ConfigurationError) as e:
            logger.warning(f"Parameter {self.resolve(name)} unavailable, using default: {e.message}")
            return default

    async def write(self, name: str, value: str) -> None:
        """Overwrite a plain string parameter."""
        resolved = self.resolve(name)
        try:
            await anyio.to_thread.run_sync(
                partial(
                    self._client.put_parameter,
                    Name=resolved,
                    Value=value or EMPTY_VALUE,
                    Overwrite=True,
                    Type="String",
                    DataType="text",
                )
            )
        except (ClientError, BotoCoreError) as e:
            raise ConfigurationError(f"Cannot write parameter {resolved}: {e}", cause=e) from e
        logger.debug(f"Parameter {resolved} updated")
