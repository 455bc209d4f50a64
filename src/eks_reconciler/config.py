"""Runtime configuration with validation.

These settings control how the engine runs (deadlines, waiter timeouts,
fan-out), not what it builds; the desired infrastructure comes from the spec
file (see models.py). Waiter timeouts encode real AWS provisioning SLAs and are
named so tests can shrink them for fast simulated waits.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError

__all__ = [
    "Config",
    "ConfigurationError",
    "WaiterTimeouts",
]

# Overall deadline for one reconcile pass
DEFAULT_RECONCILE_TIMEOUT_SECONDS = 30 * 60
MIN_RECONCILE_TIMEOUT_SECONDS = 60
MAX_RECONCILE_TIMEOUT_SECONDS = 4 * 60 * 60

DEFAULT_POLL_INTERVAL_SECONDS = 15
MAX_POLL_INTERVAL_SECONDS = 300

# Waiter timeouts per resource kind
NAT_GATEWAY_TIMEOUT_SECONDS = 10 * 60
VPC_ENDPOINT_TIMEOUT_SECONDS = 10 * 60
CLUSTER_CREATE_TIMEOUT_SECONDS = 20 * 60
CLUSTER_UPDATE_TIMEOUT_SECONDS = 20 * 60
CLUSTER_DELETE_TIMEOUT_SECONDS = 15 * 60
NODE_POOL_CREATE_TIMEOUT_SECONDS = 15 * 60
NODE_POOL_UPDATE_TIMEOUT_SECONDS = 15 * 60
NODE_POOL_DELETE_TIMEOUT_SECONDS = 15 * 60

DEFAULT_NODE_POOL_CONCURRENCY = 4
MAX_NODE_POOL_CONCURRENCY = 32

# botocore retry policy; retry/backoff belongs to the SDK boundary
DEFAULT_MAX_API_ATTEMPTS = 10

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
DEFAULT_SPEC_FILE = "/specs/cluster.yaml"


@dataclass(frozen=True)
class WaiterTimeouts:
    """Timeouts in seconds for each blocking wait."""

    nat_gateway: float = NAT_GATEWAY_TIMEOUT_SECONDS
    vpc_endpoint: float = VPC_ENDPOINT_TIMEOUT_SECONDS
    cluster_create: float = CLUSTER_CREATE_TIMEOUT_SECONDS
    cluster_update: float = CLUSTER_UPDATE_TIMEOUT_SECONDS
    cluster_delete: float = CLUSTER_DELETE_TIMEOUT_SECONDS
    node_pool_create: float = NODE_POOL_CREATE_TIMEOUT_SECONDS
    node_pool_update: float = NODE_POOL_UPDATE_TIMEOUT_SECONDS
    node_pool_delete: float = NODE_POOL_DELETE_TIMEOUT_SECONDS

    def invalid_fields(self) -> list[str]:
        return [name for name, value in vars(self).items() if value <= 0]


@dataclass(frozen=True)
class Config:
    """Engine configuration.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-reconcile.
    """

    spec_file: Path = field(default_factory=lambda: Path(DEFAULT_SPEC_FILE))

    # Timing
    reconcile_timeout_seconds: float = DEFAULT_RECONCILE_TIMEOUT_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    timeouts: WaiterTimeouts = field(default_factory=WaiterTimeouts)

    # Node-pool fan-out
    max_concurrent_node_pools: int = DEFAULT_NODE_POOL_CONCURRENCY

    # AWS session
    aws_profile: str | None = None
    max_api_attempts: int = DEFAULT_MAX_API_ATTEMPTS

    # Logging
    json_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if self.reconcile_timeout_seconds <= 0:
            errors.append("RECONCILE_TIMEOUT must be positive")
        elif self.reconcile_timeout_seconds < MIN_RECONCILE_TIMEOUT_SECONDS:
            errors.append(
                f"RECONCILE_TIMEOUT must be at least {MIN_RECONCILE_TIMEOUT_SECONDS} seconds"
            )
        elif self.reconcile_timeout_seconds > MAX_RECONCILE_TIMEOUT_SECONDS:
            errors.append(
                f"RECONCILE_TIMEOUT cannot exceed {MAX_RECONCILE_TIMEOUT_SECONDS} seconds"
            )

        if self.poll_interval_seconds < 0:
            errors.append("POLL_INTERVAL cannot be negative")
        elif self.poll_interval_seconds > MAX_POLL_INTERVAL_SECONDS:
            errors.append(f"POLL_INTERVAL cannot exceed {MAX_POLL_INTERVAL_SECONDS} seconds")

        for name in self.timeouts.invalid_fields():
            errors.append(f"{name.upper()}_TIMEOUT must be positive")

        if not (1 <= self.max_concurrent_node_pools <= MAX_NODE_POOL_CONCURRENCY):
            errors.append(
                f"NODE_POOL_CONCURRENCY must be between 1 and {MAX_NODE_POOL_CONCURRENCY}"
            )

        if self.max_api_attempts < 1:
            errors.append("MAX_API_ATTEMPTS must be at least 1")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            SPEC_FILE: Path to the desired cluster spec (default: /specs/cluster.yaml)
            RECONCILE_TIMEOUT: Overall deadline for one pass in seconds (default: 1800)
            POLL_INTERVAL: Seconds between status polls (default: 15)
            NODE_POOL_CONCURRENCY: Max node pools reconciled at once (default: 4)
            AWS_PROFILE: Optional named profile for the boto3 session
            MAX_API_ATTEMPTS: botocore retry attempts per call (default: 10)
            ENABLE_JSON_LOGGING: Emit JSON logs to stdout (default: true)

        Waiter Timeout Variables (seconds):
            NAT_GATEWAY_TIMEOUT (600), VPC_ENDPOINT_TIMEOUT (600),
            CLUSTER_CREATE_TIMEOUT (1200), CLUSTER_UPDATE_TIMEOUT (1200),
            CLUSTER_DELETE_TIMEOUT (900), NODE_POOL_CREATE_TIMEOUT (900),
            NODE_POOL_UPDATE_TIMEOUT (900), NODE_POOL_DELETE_TIMEOUT (900)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        timeouts = WaiterTimeouts(
            nat_gateway=get_int("NAT_GATEWAY_TIMEOUT", NAT_GATEWAY_TIMEOUT_SECONDS),
            vpc_endpoint=get_int("VPC_ENDPOINT_TIMEOUT", VPC_ENDPOINT_TIMEOUT_SECONDS),
            cluster_create=get_int("CLUSTER_CREATE_TIMEOUT", CLUSTER_CREATE_TIMEOUT_SECONDS),
            cluster_update=get_int("CLUSTER_UPDATE_TIMEOUT", CLUSTER_UPDATE_TIMEOUT_SECONDS),
            cluster_delete=get_int("CLUSTER_DELETE_TIMEOUT", CLUSTER_DELETE_TIMEOUT_SECONDS),
            node_pool_create=get_int(
                "NODE_POOL_CREATE_TIMEOUT", NODE_POOL_CREATE_TIMEOUT_SECONDS
            ),
            node_pool_update=get_int(
                "NODE_POOL_UPDATE_TIMEOUT", NODE_POOL_UPDATE_TIMEOUT_SECONDS
            ),
            node_pool_delete=get_int(
                "NODE_POOL_DELETE_TIMEOUT", NODE_POOL_DELETE_TIMEOUT_SECONDS
            ),
        )

        return cls(
            spec_file=Path(os.environ.get("SPEC_FILE", DEFAULT_SPEC_FILE)),
            reconcile_timeout_seconds=get_int(
                "RECONCILE_TIMEOUT", DEFAULT_RECONCILE_TIMEOUT_SECONDS
            ),
            poll_interval_seconds=get_int("POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            timeouts=timeouts,
            max_concurrent_node_pools=get_int(
                "NODE_POOL_CONCURRENCY", DEFAULT_NODE_POOL_CONCURRENCY
            ),
            aws_profile=os.environ.get("AWS_PROFILE") or None,
            max_api_attempts=get_int("MAX_API_ATTEMPTS", DEFAULT_MAX_API_ATTEMPTS),
            json_logging=get_bool("ENABLE_JSON_LOGGING", True),
        )
