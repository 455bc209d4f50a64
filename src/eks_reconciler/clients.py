"""AWS API boundary.

boto3 clients are synchronous; every call is pushed onto the default executor
so the event loop stays free while node pools are reconciled concurrently.
Retry and backoff for throttling and 5xx responses are delegated to botocore's
"standard" retry mode. Anything that still fails is re-raised as
TransientProviderError carrying the AWS error code.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Config
from .errors import TransientProviderError

logger = logging.getLogger(__name__)

# Error codes meaning "the resource is already gone"
NOT_FOUND_CODES = frozenset(
    {
        "ResourceNotFoundException",
        "NoSuchEntity",
        "InvalidVpcID.NotFound",
        "InvalidSubnetID.NotFound",
        "InvalidInternetGatewayID.NotFound",
        "InvalidRouteTableID.NotFound",
        "InvalidGroup.NotFound",
        "InvalidAllocationID.NotFound",
        "InvalidVpcEndpointId.NotFound",
        "NatGatewayNotFound",
        "InvalidNatGatewayID.NotFound",
        "LoadBalancerNotFound",
    }
)


@dataclass(frozen=True)
class AwsClients:
    """The five service clients one reconcile pass needs."""

    ec2: Any
    eks: Any
    iam: Any
    sts: Any
    elb: Any
    region: str

    @classmethod
    def from_config(cls, region: str, config: Config) -> AwsClients:
        """Build clients from the default credential chain.

        Args:
            region: AWS region every regional client is bound to.
            config: Runtime settings (profile and retry attempts).

        Returns:
            AwsClients sharing one boto3 session.
        """
        session = boto3.session.Session(
            profile_name=config.aws_profile,
            region_name=region,
        )
        boto_config = BotoConfig(
            region_name=region,
            retries={"mode": "standard", "max_attempts": config.max_api_attempts},
        )
        logger.debug(
            "Creating AWS clients",
            extra={"region": region, "profile": config.aws_profile or "default"},
        )
        return cls(
            ec2=session.client("ec2", config=boto_config),
            eks=session.client("eks", config=boto_config),
            iam=session.client("iam", config=boto_config),
            sts=session.client("sts", config=boto_config),
            elb=session.client("elb", config=boto_config),
            region=region,
        )


def _operation_name(method: Callable[..., Any]) -> str:
    return getattr(method, "__name__", repr(method))


def _wrap_error(operation: str, e: Exception) -> TransientProviderError:
    if isinstance(e, ClientError):
        error = e.response.get("Error", {})
        return TransientProviderError(
            operation,
            error.get("Code", "Unknown"),
            error.get("Message", str(e)),
        )
    return TransientProviderError(operation, type(e).__name__, str(e))


async def call(method: Callable[..., Any], **params: Any) -> dict[str, Any]:
    """Invoke one boto3 client method off the event loop.

    Raises:
        TransientProviderError: If AWS rejects the call after botocore retries.
    """
    operation = _operation_name(method)
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, functools.partial(method, **params))
    except (ClientError, BotoCoreError) as e:
        raise _wrap_error(operation, e) from e


async def paginate(client: Any, operation: str, result_key: str, **params: Any) -> list[Any]:
    """Collect every page of a paginated describe/list call.

    Args:
        client: boto3 client exposing get_paginator.
        operation: Python operation name (e.g. "list_nodegroups").
        result_key: Key holding the items in each page.

    Returns:
        Items from all pages, in API order.
    """

    def collect() -> list[Any]:
        items: list[Any] = []
        for page in client.get_paginator(operation).paginate(**params):
            items.extend(page.get(result_key, []))
        return items

    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, collect)
    except (ClientError, BotoCoreError) as e:
        raise _wrap_error(operation, e) from e


def is_not_found(error: BaseException) -> bool:
    """Check whether a provider error means the resource does not exist."""
    if not isinstance(error, TransientProviderError):
        return False
    return error.code in NOT_FOUND_CODES or error.code.endswith(".NotFound")


def has_code(error: BaseException, *codes: str) -> bool:
    return isinstance(error, TransientProviderError) and error.code in codes
