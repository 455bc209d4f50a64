"""Bounded polling for long-running AWS operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .errors import ProvisioningTimeout

logger = logging.getLogger(__name__)


async def wait_until(
    check: Callable[[], Awaitable[bool]],
    *,
    resource: str,
    target_state: str,
    timeout_seconds: float,
    poll_interval_seconds: float,
) -> None:
    """Poll check() until it returns True.

    check() may raise ProvisioningFailed to abort on a terminal failure
    state; that error propagates unchanged.

    Raises:
        ProvisioningTimeout: If the deadline passes first.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_seconds
    attempts = 0

    while True:
        attempts += 1
        if await check():
            logger.debug(
                f"{resource} reached {target_state}",
                extra={"resource": resource, "attempts": attempts},
            )
            return

        if loop.time() >= deadline:
            logger.error(
                f"{resource} did not reach {target_state} in time",
                extra={"resource": resource, "timeout_seconds": timeout_seconds},
            )
            raise ProvisioningTimeout(resource, target_state, timeout_seconds)

        await asyncio.sleep(poll_interval_seconds)
