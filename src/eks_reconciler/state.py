"""Actual-state records built by discovery.

Records are rebuilt from AWS on every call and never cached across calls.
Lists of ids are derived from the richer per-resource records so that the
topology reconciler can key its fill-in logic by AZ and carve index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class SubnetRecord:
    subnet_id: str
    cidr: str
    availability_zone: str
    public: bool


@dataclass(frozen=True)
class NatGatewayRecord:
    nat_gateway_id: str
    subnet_id: str
    state: str
    allocation_id: str = ""


@dataclass(frozen=True)
class RouteTableRecord:
    route_table_id: str
    name: str
    public: bool
    subnet_ids: tuple[str, ...] = ()
    association_ids: tuple[str, ...] = ()
    default_route_target: str = ""


@dataclass(frozen=True)
class EndpointRecord:
    endpoint_id: str
    service_name: str
    endpoint_type: str
    state: str
    security_group_ids: tuple[str, ...] = ()


@dataclass
class NetworkState:
    """Discovered VPC and its networking components."""

    vpc_id: str
    cidr: str
    tags: dict[str, str] = field(default_factory=dict)
    subnets: list[SubnetRecord] = field(default_factory=list)
    internet_gateway_id: str = ""
    internet_gateway_attached: bool = False
    nat_gateways: list[NatGatewayRecord] = field(default_factory=list)
    route_tables: list[RouteTableRecord] = field(default_factory=list)
    security_group_ids: list[str] = field(default_factory=list)
    endpoints: list[EndpointRecord] = field(default_factory=list)

    @property
    def public_subnets(self) -> list[SubnetRecord]:
        return sorted((s for s in self.subnets if s.public), key=_cidr_sort_key)

    @property
    def private_subnets(self) -> list[SubnetRecord]:
        return sorted((s for s in self.subnets if not s.public), key=_cidr_sort_key)

    @property
    def public_subnet_ids(self) -> list[str]:
        return [s.subnet_id for s in self.public_subnets]

    @property
    def private_subnet_ids(self) -> list[str]:
        return [s.subnet_id for s in self.private_subnets]

    @property
    def availability_zones(self) -> list[str]:
        """AZs in carve order, taken from the public subnets first."""
        azs: list[str] = []
        for subnet in self.public_subnets + self.private_subnets:
            if subnet.availability_zone not in azs:
                azs.append(subnet.availability_zone)
        return azs

    @property
    def nat_gateway_ids(self) -> list[str]:
        return [n.nat_gateway_id for n in self.nat_gateways]

    @property
    def public_route_table_id(self) -> str:
        for table in self.route_tables:
            if table.public:
                return table.route_table_id
        return ""

    @property
    def private_route_table_ids(self) -> list[str]:
        return [t.route_table_id for t in self.route_tables if not t.public]

    @property
    def route_table_ids(self) -> list[str]:
        return [t.route_table_id for t in self.route_tables]

    @property
    def vpc_endpoint_ids(self) -> list[str]:
        return [e.endpoint_id for e in self.endpoints]

    def subnet(self, subnet_id: str) -> SubnetRecord | None:
        for subnet in self.subnets:
            if subnet.subnet_id == subnet_id:
                return subnet
        return None

    def nat_gateway_for_az(self, availability_zone: str) -> NatGatewayRecord | None:
        for nat in self.nat_gateways:
            subnet = self.subnet(nat.subnet_id)
            if subnet is not None and subnet.availability_zone == availability_zone:
                return nat
        return None

    def private_route_table_for_subnet(self, subnet_id: str) -> RouteTableRecord | None:
        for table in self.route_tables:
            if not table.public and subnet_id in table.subnet_ids:
                return table
        return None

    def route_table_named(self, name: str) -> RouteTableRecord | None:
        for table in self.route_tables:
            if table.name == name:
                return table
        return None

    def endpoint_for_service(self, service_name: str) -> EndpointRecord | None:
        for endpoint in self.endpoints:
            if endpoint.service_name == service_name:
                return endpoint
        return None


def _cidr_sort_key(subnet: SubnetRecord) -> tuple[int, ...]:
    address = subnet.cidr.split("/", 1)[0]
    try:
        return tuple(int(octet) for octet in address.split("."))
    except ValueError:
        return (999,)


@dataclass
class ClusterState:
    """Discovered EKS control plane."""

    name: str
    arn: str = ""
    endpoint: str = ""
    version: str = ""
    status: str = ""
    certificate_authority: str = ""
    vpc_id: str = ""
    subnet_ids: list[str] = field(default_factory=list)
    security_group_ids: list[str] = field(default_factory=list)
    cluster_security_group_id: str = ""
    endpoint_public: bool = False
    endpoint_private: bool = False
    public_access_cidrs: list[str] = field(default_factory=list)
    oidc_issuer: str = ""
    encryption_key_arn: str = ""
    enabled_log_types: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    platform_version: str = ""
    created_at: datetime | None = None


@dataclass(frozen=True)
class Taint:
    """A node taint in EKS API form (effect is NO_SCHEDULE etc.)."""

    key: str
    value: str
    effect: str

    def to_api(self) -> dict[str, str]:
        return {"key": self.key, "value": self.value, "effect": self.effect}


@dataclass
class NodePoolState:
    """Discovered EKS managed node group."""

    name: str
    pool_name: str
    cluster_name: str
    arn: str = ""
    status: str = ""
    instance_types: list[str] = field(default_factory=list)
    min_size: int = 0
    max_size: int = 0
    desired_size: int = 0
    subnet_ids: list[str] = field(default_factory=list)
    node_role_arn: str = ""
    ami_type: str = ""
    disk_size: int = 0
    labels: dict[str, str] = field(default_factory=dict)
    taints: list[Taint] = field(default_factory=list)
    capacity_type: str = ""
    health_issues: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None
    modified_at: datetime | None = None


@dataclass(frozen=True)
class IamRoles:
    """The two trust roles the cluster needs."""

    cluster_role_arn: str
    node_role_arn: str
    cluster_role_name: str = ""
    node_role_name: str = ""


@dataclass
class InfrastructureState:
    """Summary of everything discovered for one project."""

    cluster_name: str
    region: str
    network: NetworkState | None = None
    cluster: ClusterState | None = None
    node_pools: list[NodePoolState] = field(default_factory=list)
    roles: IamRoles | None = None

    @property
    def exists(self) -> bool:
        return any(
            (self.network is not None, self.cluster is not None, self.node_pools, self.roles)
        )

    def to_dict(self) -> dict[str, Any]:
        """Flatten into a JSON-serializable summary."""
        summary: dict[str, Any] = {
            "cluster_name": self.cluster_name,
            "provider": "aws",
            "region": self.region,
        }
        if self.network is not None:
            summary["network"] = {
                "vpc_id": self.network.vpc_id,
                "cidr": self.network.cidr,
                "availability_zones": self.network.availability_zones,
                "public_subnet_ids": self.network.public_subnet_ids,
                "private_subnet_ids": self.network.private_subnet_ids,
                "internet_gateway_id": self.network.internet_gateway_id,
                "nat_gateway_ids": self.network.nat_gateway_ids,
                "public_route_table_id": self.network.public_route_table_id,
                "private_route_table_ids": self.network.private_route_table_ids,
                "security_group_ids": self.network.security_group_ids,
                "vpc_endpoint_ids": self.network.vpc_endpoint_ids,
            }
        if self.cluster is not None:
            summary["cluster"] = {
                "name": self.cluster.name,
                "arn": self.cluster.arn,
                "endpoint": self.cluster.endpoint,
                "version": self.cluster.version,
                "status": self.cluster.status,
                "platform_version": self.cluster.platform_version,
                "endpoint_public": self.cluster.endpoint_public,
                "endpoint_private": self.cluster.endpoint_private,
                "oidc_issuer": self.cluster.oidc_issuer,
            }
        summary["node_pools"] = [
            {
                "name": pool.pool_name,
                "nodegroup": pool.name,
                "status": pool.status,
                "instance_types": pool.instance_types,
                "min_size": pool.min_size,
                "max_size": pool.max_size,
                "desired_size": pool.desired_size,
                "capacity_type": pool.capacity_type,
            }
            for pool in sorted(self.node_pools, key=lambda p: p.pool_name)
        ]
        if self.roles is not None:
            summary["roles"] = {
                "cluster_role_arn": self.roles.cluster_role_arn,
                "node_role_arn": self.roles.node_role_arn,
            }
        return summary
