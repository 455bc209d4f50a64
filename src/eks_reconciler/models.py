"""Pydantic models for the desired cluster configuration.

These models provide:
1. Type-safe YAML parsing
2. Validation at the boundary (fail fast, fail loudly)
3. Resolved defaults the reconcilers can rely on without re-checking

The engine never parses raw configuration itself; it receives a validated
ClusterSpec produced once by spec_loader.
"""

from __future__ import annotations

import ipaddress
import re
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# =============================================================================
# Constants
# =============================================================================

DEFAULT_KUBERNETES_VERSION = "1.34"
DEFAULT_VPC_CIDR = "10.10.0.0/16"
DEFAULT_PUBLIC_ACCESS_CIDRS = ("0.0.0.0/0",)
DEFAULT_MIN_NODES = 1
DEFAULT_MAX_NODES = 3

# EKS cluster names: alphanumerics, hyphens and underscores, starting alphanumeric
VALID_PROJECT_NAME_PATTERN = r"^[0-9A-Za-z][A-Za-z0-9\-_]{0,99}$"
VALID_POOL_NAME_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"
VALID_VERSION_PATTERN = r"^\d+\.\d+$"
MAX_NODEGROUP_NAME_LENGTH = 63
AUTO_AVAILABILITY_ZONES = "auto"


class EndpointAccess(str, Enum):
    """Control-plane API endpoint exposure."""

    PUBLIC = "public"
    PRIVATE = "private"
    PUBLIC_AND_PRIVATE = "public-and-private"


class TaintEffect(str, Enum):
    """Kubernetes taint effects as written in the spec file."""

    NO_SCHEDULE = "NoSchedule"
    NO_EXECUTE = "NoExecute"
    PREFER_NO_SCHEDULE = "PreferNoSchedule"


# =============================================================================
# Node pools
# =============================================================================


class TaintSpec(BaseModel):
    """A Kubernetes taint applied to every node in a pool."""

    model_config = {"extra": "ignore"}

    key: Annotated[str, Field(min_length=1, max_length=253)]
    value: str = ""
    effect: TaintEffect = TaintEffect.NO_SCHEDULE


class NodePoolSpec(BaseModel):
    """Desired configuration for one logical node pool."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    instance_type: Annotated[str, Field(min_length=1, alias="instance")]
    min_nodes: Annotated[int, Field(ge=0)] = 0
    max_nodes: Annotated[int, Field(ge=0)] = 0
    spot: bool = False
    gpu: bool = False
    ami_type: str | None = None
    single_subnet: bool = False
    taints: list[TaintSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_scaling(self) -> NodePoolSpec:
        if self.min_nodes > 0 and self.max_nodes > 0 and self.min_nodes > self.max_nodes:
            raise ValueError(
                f"min_nodes ({self.min_nodes}) cannot be greater than max_nodes ({self.max_nodes})"
            )
        return self

    @property
    def resolved_min(self) -> int:
        return self.min_nodes or DEFAULT_MIN_NODES

    @property
    def resolved_max(self) -> int:
        # An explicit min above the default max must still produce a valid range
        return self.max_nodes or max(DEFAULT_MAX_NODES, self.resolved_min)


# =============================================================================
# AWS provider block
# =============================================================================


class AwsSpec(BaseModel):
    """The amazon_web_services block of the desired spec."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    region: Annotated[str, Field(min_length=1)]
    kubernetes_version: str = DEFAULT_KUBERNETES_VERSION
    vpc_cidr_block: str = DEFAULT_VPC_CIDR
    availability_zones: list[str] = Field(default_factory=list)
    endpoint_access: EndpointAccess = Field(
        EndpointAccess.PUBLIC_AND_PRIVATE, alias="eks_endpoint_access"
    )
    public_access_cidrs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PUBLIC_ACCESS_CIDRS), alias="eks_public_access_cidrs"
    )
    kms_key_arn: str = Field("", alias="eks_kms_arn")
    permissions_boundary: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)
    node_groups: dict[str, NodePoolSpec] = Field(default_factory=dict)

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        if not re.match(r"^[a-z]{2}(-[a-z]+)+-\d$", v):
            raise ValueError(f"region must be a valid AWS region name: {v}")
        return v

    @field_validator("kubernetes_version", mode="before")
    @classmethod
    def validate_version(cls, v: object) -> str:
        # YAML turns an unquoted 1.30 into the float 1.3
        if isinstance(v, float):
            raise ValueError("kubernetes_version must be quoted in YAML (e.g. \"1.30\")")
        if v is None or v == "":
            return DEFAULT_KUBERNETES_VERSION
        value = str(v)
        if not re.match(VALID_VERSION_PATTERN, value):
            raise ValueError(f"kubernetes_version must be in format 'major.minor': {value}")
        return value

    @field_validator("vpc_cidr_block")
    @classmethod
    def validate_vpc_cidr(cls, v: str) -> str:
        try:
            network = ipaddress.IPv4Network(v, strict=True)
        except ValueError as e:
            raise ValueError(f"vpc_cidr_block is not a valid IPv4 network: {v}") from e
        if network.prefixlen != 16:
            raise ValueError(f"vpc_cidr_block must be a /16 network: {v}")
        return v

    @field_validator("availability_zones", mode="before")
    @classmethod
    def validate_availability_zones(cls, v: object) -> list[str]:
        if v is None or v == AUTO_AVAILABILITY_ZONES:
            return []
        if isinstance(v, list) and v == [AUTO_AVAILABILITY_ZONES]:
            return []
        if not isinstance(v, list):
            raise ValueError("availability_zones must be a list or 'auto'")
        if len(set(v)) != len(v):
            raise ValueError("availability_zones must not contain duplicates")
        if v and len(v) < 2:
            raise ValueError("at least 2 availability zones are required")
        if len(v) > 8:
            raise ValueError("at most 8 availability zones fit the /20 subnet layout")
        return v

    @field_validator("public_access_cidrs", mode="before")
    @classmethod
    def validate_public_access_cidrs(cls, v: object) -> list[str]:
        if not v:
            return list(DEFAULT_PUBLIC_ACCESS_CIDRS)
        if not isinstance(v, list):
            raise ValueError("eks_public_access_cidrs must be a list")
        for cidr in v:
            try:
                ipaddress.IPv4Network(str(cidr), strict=False)
            except ValueError as e:
                raise ValueError(f"invalid CIDR in eks_public_access_cidrs: {cidr}") from e
        return [str(cidr) for cidr in v]

    @field_validator("endpoint_access", mode="before")
    @classmethod
    def default_endpoint_access(cls, v: object) -> object:
        return v or EndpointAccess.PUBLIC_AND_PRIVATE

    @field_validator("node_groups")
    @classmethod
    def validate_node_groups(cls, v: dict[str, NodePoolSpec]) -> dict[str, NodePoolSpec]:
        if not v:
            raise ValueError("at least one node group is required")
        for name in v:
            if not re.match(VALID_POOL_NAME_PATTERN, name):
                raise ValueError(
                    f"node group name must match {VALID_POOL_NAME_PATTERN}: {name}"
                )
        return v

    @property
    def endpoint_flags(self) -> tuple[bool, bool]:
        """(public, private) endpoint access flags for the EKS API."""
        match self.endpoint_access:
            case EndpointAccess.PUBLIC:
                return True, False
            case EndpointAccess.PRIVATE:
                return False, True
            case _:
                return True, True

    @property
    def requires_private_access(self) -> bool:
        return self.endpoint_flags[1]


class ClusterSpec(BaseModel):
    """Top-level desired cluster configuration."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    project_name: Annotated[str, Field(min_length=1)]
    provider: Literal["aws"] = "aws"
    aws: AwsSpec = Field(alias="amazon_web_services")

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        if not re.match(VALID_PROJECT_NAME_PATTERN, v):
            raise ValueError(f"project_name must match {VALID_PROJECT_NAME_PATTERN}: {v}")
        return v

    @model_validator(mode="after")
    def validate_nodegroup_names(self) -> ClusterSpec:
        for pool_name in self.aws.node_groups:
            physical = nodegroup_name(self.project_name, pool_name)
            if len(physical) > MAX_NODEGROUP_NAME_LENGTH:
                raise ValueError(
                    f"node group '{pool_name}' produces name '{physical}' longer than "
                    f"{MAX_NODEGROUP_NAME_LENGTH} characters"
                )
        return self

    @property
    def cluster_name(self) -> str:
        return self.project_name


def nodegroup_name(cluster_name: str, pool_name: str) -> str:
    """Physical EKS node group name for a logical pool."""
    return f"{cluster_name}-ng-{pool_name}"
