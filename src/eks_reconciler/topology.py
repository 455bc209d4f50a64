"""Topology builder: VPC, subnets, gateways, routing, security group, endpoints.

The full build and the converge path share one fill-in routine. Each step
looks for its piece in the discovered NetworkState, keyed by carve index or
AZ, and creates only what is missing. A run that failed half way therefore
re-enters at the first missing piece on the next pass.

SUBNET LAYOUT (public contract, /16 VPC):
- public subnet i:  a.b.(16*i).0/20
- private subnet i: a.b.(128+16*i).0/20
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Any

from .clients import call, has_code
from .context import ReconcileContext
from .discovery import DEFAULT_ROUTE_CIDR, PUBLIC_ROUTE_TABLE_SUFFIX, discover_network
from .errors import (
    ConfigurationError,
    ImmutableFieldViolation,
    ProvisioningFailed,
    TransientProviderError,
)
from .models import ClusterSpec
from .state import NetworkState, RouteTableRecord, SubnetRecord
from .tags import (
    PRIVATE_ELB_TAG,
    PUBLIC_ELB_TAG,
    ResourceKind,
    from_ec2_tags,
    is_owned,
    resource_name,
    tag_filters,
    tag_specification,
    tags_for,
)
from .waiters import wait_until

logger = logging.getLogger(__name__)

DEFAULT_AZ_COUNT = 3
MIN_AZ_COUNT = 2

SUBNET_PREFIX_LENGTH = 20
SUBNET_BLOCK = 16
PRIVATE_SUBNET_OFFSET = 128

INTERFACE_ENDPOINT_SERVICES = (
    "ec2",
    "ecr.api",
    "ecr.dkr",
    "sts",
    "eks",
    "eks-auth",
    "logs",
    "elasticloadbalancing",
    "autoscaling",
)
GATEWAY_ENDPOINT_SERVICES = ("s3",)

# (protocol, from_port, to_port, description); every rule references the group itself
CLUSTER_INGRESS_RULES = (
    ("tcp", 443, 443, "Allow nodes to communicate with cluster API server"),
    ("tcp", 10250, 10250, "Allow control plane to communicate with nodes kubelet"),
    ("tcp", 53, 53, "Allow DNS TCP communication within cluster"),
    ("udp", 53, 53, "Allow DNS UDP communication within cluster"),
    ("tcp", 1025, 65535, "Allow node-to-node communication"),
)

DUPLICATE_PERMISSION = "InvalidPermission.Duplicate"


# =============================================================================
# Pure helpers
# =============================================================================


def carve_subnet_cidr(vpc_cidr: str, index: int, public: bool) -> str:
    """Return the /20 for the given carve index within a /16 VPC.

    Raises:
        ConfigurationError: If the VPC is not a /16 or the index is out of range.
    """
    try:
        network = ipaddress.IPv4Network(vpc_cidr, strict=False)
    except ValueError as e:
        raise ConfigurationError(f"Invalid VPC CIDR: {vpc_cidr}") from e
    if network.prefixlen != 16:
        raise ConfigurationError(f"VPC CIDR must be a /16: {vpc_cidr}")
    if not 0 <= index < PRIVATE_SUBNET_OFFSET // SUBNET_BLOCK:
        raise ConfigurationError(f"Subnet index out of range: {index}")

    octets = str(network.network_address).split(".")
    third = SUBNET_BLOCK * index + (0 if public else PRIVATE_SUBNET_OFFSET)
    return f"{octets[0]}.{octets[1]}.{third}.0/{SUBNET_PREFIX_LENGTH}"


def carve_index(cidr: str) -> tuple[int, bool] | None:
    """Inverse of carve_subnet_cidr: (index, public) or None if off-layout."""
    try:
        network = ipaddress.IPv4Network(cidr, strict=False)
    except ValueError:
        return None
    if network.prefixlen != SUBNET_PREFIX_LENGTH:
        return None
    third = int(str(network.network_address).split(".")[2])
    public = third < PRIVATE_SUBNET_OFFSET
    offset = third if public else third - PRIVATE_SUBNET_OFFSET
    if offset % SUBNET_BLOCK:
        return None
    return offset // SUBNET_BLOCK, public


def endpoint_service_name(region: str, service: str) -> str:
    return f"com.amazonaws.{region}.{service}"


def validate_network_immutable(spec: ClusterSpec, actual: NetworkState) -> None:
    """Reject desired changes that would require a new VPC.

    Raises:
        ImmutableFieldViolation: On a CIDR change, or an explicit AZ list that
            does not match the AZs of existing subnets.
    """
    desired_cidr = spec.aws.vpc_cidr_block
    if actual.cidr != desired_cidr:
        raise ImmutableFieldViolation("VPC", actual.vpc_id, "cidr_block", actual.cidr, desired_cidr)

    explicit = spec.aws.availability_zones
    if not explicit:
        return
    for subnet in actual.subnets:
        carved = carve_index(subnet.cidr)
        if carved is None:
            continue
        index, _ = carved
        expected = explicit[index] if index < len(explicit) else None
        if subnet.availability_zone != expected:
            raise ImmutableFieldViolation(
                "VPC",
                actual.vpc_id,
                "availability_zones",
                actual.availability_zones,
                explicit,
            )


# =============================================================================
# Availability zones
# =============================================================================


async def resolve_availability_zones(
    ctx: ReconcileContext,
    spec: ClusterSpec,
    actual: NetworkState | None = None,
) -> list[str]:
    """Decide the AZ for every carve index.

    An explicit list wins. Otherwise AZs already used by existing subnets keep
    their index and the remaining indexes are filled from the region's
    available zones.

    Raises:
        ConfigurationError: If fewer than two AZs are available.
    """
    if spec.aws.availability_zones:
        return list(spec.aws.availability_zones)

    existing: dict[int, str] = {}
    for subnet in actual.subnets if actual else []:
        carved = carve_index(subnet.cidr)
        if carved is not None:
            existing.setdefault(carved[0], subnet.availability_zone)

    response = await call(
        ctx.clients.ec2.describe_availability_zones,
        Filters=[
            {"Name": "region-name", "Values": [ctx.region]},
            {"Name": "state", "Values": ["available"]},
        ],
    )
    candidates = [
        zone["ZoneName"]
        for zone in response.get("AvailabilityZones", [])
        if zone.get("State", "available") == "available"
    ]

    count = max([DEFAULT_AZ_COUNT] + [index + 1 for index in existing])
    spare = [zone for zone in candidates if zone not in existing.values()]
    zones: list[str] = []
    for index in range(count):
        if index in existing:
            zones.append(existing[index])
        elif spare:
            zones.append(spare.pop(0))
        else:
            break

    if len(zones) < MIN_AZ_COUNT:
        raise ConfigurationError(
            f"Region {ctx.region} has {len(zones)} available AZ(s); "
            f"at least {MIN_AZ_COUNT} required"
        )
    return zones


# =============================================================================
# Entry point
# =============================================================================


async def ensure_network(
    ctx: ReconcileContext,
    spec: ClusterSpec,
    actual: NetworkState | None,
) -> NetworkState:
    """Build the network or converge the discovered one.

    Args:
        ctx: Reconcile context.
        spec: Desired cluster spec.
        actual: Discovered network, or None to build from scratch.

    Returns:
        Freshly discovered NetworkState after all changes.

    Raises:
        ImmutableFieldViolation: If the CIDR or explicit AZs changed.
        ProvisioningTimeout: If NAT gateways or endpoints do not come up in time.
    """
    cluster_name = spec.cluster_name

    if actual is not None:
        validate_network_immutable(spec, actual)
        network = actual
    else:
        network = await _create_vpc(ctx, spec)

    zones = await resolve_availability_zones(ctx, spec, network)
    builder = _NetworkBuilder(ctx, spec, network, zones)
    await builder.fill_in()

    refreshed = await discover_network(ctx, cluster_name)
    if refreshed is None:
        raise ProvisioningFailed("VPC", "missing", "VPC not found after reconciliation")

    if builder.changes:
        ctx.status.success(
            "Network reconciled",
            resource="vpc",
            action="reconciled",
            vpc_id=refreshed.vpc_id,
            changes=builder.changes,
        )
    return refreshed


async def _create_vpc(ctx: ReconcileContext, spec: ClusterSpec) -> NetworkState:
    cluster_name = spec.cluster_name
    cidr = spec.aws.vpc_cidr_block
    ec2 = ctx.clients.ec2

    ctx.status.progress("Creating VPC", resource="vpc", action="creating", cidr=cidr)
    tags = tags_for(
        ResourceKind.VPC,
        cluster_name,
        extra={"Name": resource_name(cluster_name, "vpc")},
        user_tags=spec.aws.tags,
    )
    response = await call(
        ec2.create_vpc, CidrBlock=cidr, TagSpecifications=tag_specification("vpc", tags)
    )
    vpc_id = response["Vpc"]["VpcId"]

    # EKS requires both DNS attributes; ModifyVpcAttribute takes one per call
    await call(ec2.modify_vpc_attribute, VpcId=vpc_id, EnableDnsSupport={"Value": True})
    await call(ec2.modify_vpc_attribute, VpcId=vpc_id, EnableDnsHostnames={"Value": True})

    logger.info("Created VPC", extra={"vpc_id": vpc_id, "cidr": cidr})
    ctx.status.success("VPC created", resource="vpc", action="created", vpc_id=vpc_id)
    return NetworkState(vpc_id=vpc_id, cidr=cidr, tags=tags)


class _NetworkBuilder:
    """Creates the missing pieces of one VPC, in dependency order."""

    def __init__(
        self,
        ctx: ReconcileContext,
        spec: ClusterSpec,
        network: NetworkState,
        zones: list[str],
    ) -> None:
        self._ctx = ctx
        self._ec2 = ctx.clients.ec2
        self._spec = spec
        self._cluster = spec.cluster_name
        self._net = network
        self._zones = zones
        self.changes = 0

    def _tags(self, kind: ResourceKind, name: str, **extra: str) -> dict[str, str]:
        return tags_for(
            kind,
            self._cluster,
            extra={"Name": name, **extra},
            user_tags=self._spec.aws.tags,
        )

    async def fill_in(self) -> None:
        await self._ensure_internet_gateway()
        public, private = await self._ensure_subnets()
        nat_by_zone = await self._ensure_nat_gateways(public)
        await self._ensure_public_route_table(public)
        await self._ensure_private_route_tables(private, nat_by_zone)
        security_group_id = await self._ensure_security_group()
        if self._spec.aws.requires_private_access:
            await self._ensure_endpoints(private, security_group_id)

    # -------------------------------------------------------------------------
    # Internet gateway
    # -------------------------------------------------------------------------

    async def _ensure_internet_gateway(self) -> None:
        net = self._net
        if net.internet_gateway_id and net.internet_gateway_attached:
            return

        if not net.internet_gateway_id:
            self._ctx.status.progress(
                "Creating internet gateway", resource="internet-gateway", action="creating"
            )
            tags = self._tags(
                ResourceKind.INTERNET_GATEWAY, resource_name(self._cluster, "igw")
            )
            response = await call(
                self._ec2.create_internet_gateway,
                TagSpecifications=tag_specification("internet-gateway", tags),
            )
            net.internet_gateway_id = response["InternetGateway"]["InternetGatewayId"]
            self.changes += 1

        await call(
            self._ec2.attach_internet_gateway,
            InternetGatewayId=net.internet_gateway_id,
            VpcId=net.vpc_id,
        )
        net.internet_gateway_attached = True
        self.changes += 1
        logger.info(
            "Internet gateway attached",
            extra={"igw_id": net.internet_gateway_id, "vpc_id": net.vpc_id},
        )

    # -------------------------------------------------------------------------
    # Subnets
    # -------------------------------------------------------------------------

    async def _ensure_subnets(self) -> tuple[list[SubnetRecord], list[SubnetRecord]]:
        by_cidr = {subnet.cidr: subnet for subnet in self._net.subnets}
        public: list[SubnetRecord] = []
        private: list[SubnetRecord] = []

        for index, zone in enumerate(self._zones):
            for is_public, bucket in ((True, public), (False, private)):
                cidr = carve_subnet_cidr(self._net.cidr, index, is_public)
                subnet = by_cidr.get(cidr)
                if subnet is None:
                    subnet = await self._create_subnet(index, zone, cidr, is_public)
                    self._net.subnets.append(subnet)
                bucket.append(subnet)

        return public, private

    async def _create_subnet(
        self, index: int, zone: str, cidr: str, public: bool
    ) -> SubnetRecord:
        tier = "public" if public else "private"
        elb_tag = PUBLIC_ELB_TAG if public else PRIVATE_ELB_TAG
        tags = self._tags(
            ResourceKind.SUBNET,
            resource_name(self._cluster, "subnet", f"{tier}-{index}"),
            **{elb_tag: "1"},
        )
        self._ctx.status.progress(
            f"Creating {tier} subnet {cidr} in {zone}",
            resource="subnet",
            action="creating",
            cidr=cidr,
            availability_zone=zone,
        )
        response = await call(
            self._ec2.create_subnet,
            VpcId=self._net.vpc_id,
            CidrBlock=cidr,
            AvailabilityZone=zone,
            TagSpecifications=tag_specification("subnet", tags),
        )
        subnet_id = response["Subnet"]["SubnetId"]
        if public:
            await call(
                self._ec2.modify_subnet_attribute,
                SubnetId=subnet_id,
                MapPublicIpOnLaunch={"Value": True},
            )
        self.changes += 1
        logger.info(
            "Created subnet",
            extra={"subnet_id": subnet_id, "cidr": cidr, "az": zone, "tier": tier},
        )
        return SubnetRecord(subnet_id=subnet_id, cidr=cidr, availability_zone=zone, public=public)

    # -------------------------------------------------------------------------
    # NAT gateways
    # -------------------------------------------------------------------------

    async def _ensure_nat_gateways(self, public: list[SubnetRecord]) -> dict[str, str]:
        """One NAT per public subnet. Returns {az: nat_gateway_id}."""
        nat_by_zone: dict[str, str] = {}
        pending: list[str] = []

        for index, subnet in enumerate(public):
            existing = self._net.nat_gateway_for_az(subnet.availability_zone)
            if existing is not None:
                nat_by_zone[subnet.availability_zone] = existing.nat_gateway_id
                if existing.state != "available":
                    pending.append(existing.nat_gateway_id)
                continue

            allocation_id = await self._ensure_elastic_ip(index)
            tags = self._tags(
                ResourceKind.NAT_GATEWAY, resource_name(self._cluster, "nat", str(index))
            )
            self._ctx.status.progress(
                f"Creating NAT gateway in {subnet.availability_zone}",
                resource="nat-gateway",
                action="creating",
                subnet_id=subnet.subnet_id,
            )
            response = await call(
                self._ec2.create_nat_gateway,
                SubnetId=subnet.subnet_id,
                AllocationId=allocation_id,
                TagSpecifications=tag_specification("natgateway", tags),
            )
            nat_id = response["NatGateway"]["NatGatewayId"]
            nat_by_zone[subnet.availability_zone] = nat_id
            pending.append(nat_id)
            self.changes += 1

        if pending:
            await self._wait_for_nat_gateways(pending)
        return nat_by_zone

    async def _ensure_elastic_ip(self, index: int) -> str:
        """Reuse an unassociated owned EIP for this index, or allocate one."""
        name = resource_name(self._cluster, "eip", f"nat-{index}")
        response = await call(
            self._ec2.describe_addresses,
            Filters=tag_filters(self._cluster, ResourceKind.ELASTIC_IP),
        )
        for address in response.get("Addresses", []):
            tags = from_ec2_tags(address.get("Tags"))
            if (
                is_owned(tags, self._cluster)
                and tags.get("Name") == name
                and not address.get("AssociationId")
            ):
                return address["AllocationId"]

        tags = self._tags(ResourceKind.ELASTIC_IP, name)
        response = await call(
            self._ec2.allocate_address,
            Domain="vpc",
            TagSpecifications=tag_specification("elastic-ip", tags),
        )
        self.changes += 1
        return response["AllocationId"]

    async def _wait_for_nat_gateways(self, nat_ids: list[str]) -> None:
        ctx = self._ctx

        async def all_available() -> bool:
            response = await call(self._ec2.describe_nat_gateways, NatGatewayIds=nat_ids)
            states = {
                g["NatGatewayId"]: g.get("State", "") for g in response.get("NatGateways", [])
            }
            for nat_id, state in states.items():
                if state in ("failed", "deleted", "deleting"):
                    raise ProvisioningFailed(f"NAT gateway {nat_id}", state)
            return len(states) == len(nat_ids) and all(
                state == "available" for state in states.values()
            )

        ctx.status.progress(
            "Waiting for NAT gateways to become available",
            resource="nat-gateway",
            action="waiting",
            count=len(nat_ids),
        )
        await wait_until(
            all_available,
            resource="NAT gateways",
            target_state="available",
            timeout_seconds=ctx.config.timeouts.nat_gateway,
            poll_interval_seconds=ctx.poll_interval,
        )

    # -------------------------------------------------------------------------
    # Route tables
    # -------------------------------------------------------------------------

    async def _ensure_route_table(self, name: str) -> RouteTableRecord:
        existing = self._net.route_table_named(name)
        if existing is not None:
            return existing
        tags = self._tags(ResourceKind.ROUTE_TABLE, name)
        response = await call(
            self._ec2.create_route_table,
            VpcId=self._net.vpc_id,
            TagSpecifications=tag_specification("route-table", tags),
        )
        table = RouteTableRecord(
            route_table_id=response["RouteTable"]["RouteTableId"],
            name=name,
            public=name.endswith(PUBLIC_ROUTE_TABLE_SUFFIX),
        )
        self._net.route_tables.append(table)
        self.changes += 1
        logger.info(
            "Created route table",
            extra={"route_table_id": table.route_table_id, "name": name},
        )
        return table

    async def _ensure_default_route(self, table: RouteTableRecord, **target: str) -> None:
        if table.default_route_target:
            return
        await call(
            self._ec2.create_route,
            RouteTableId=table.route_table_id,
            DestinationCidrBlock=DEFAULT_ROUTE_CIDR,
            **target,
        )
        self.changes += 1

    async def _ensure_association(self, table: RouteTableRecord, subnet_id: str) -> None:
        if subnet_id in table.subnet_ids:
            return
        await call(
            self._ec2.associate_route_table,
            RouteTableId=table.route_table_id,
            SubnetId=subnet_id,
        )
        self.changes += 1

    async def _ensure_public_route_table(self, public: list[SubnetRecord]) -> None:
        table = await self._ensure_route_table(resource_name(self._cluster, "rtb", "public"))
        await self._ensure_default_route(table, GatewayId=self._net.internet_gateway_id)
        for subnet in public:
            await self._ensure_association(table, subnet.subnet_id)

    async def _ensure_private_route_tables(
        self, private: list[SubnetRecord], nat_by_zone: dict[str, str]
    ) -> None:
        for index, subnet in enumerate(private):
            nat_id = nat_by_zone.get(subnet.availability_zone)
            if not nat_id:
                raise ProvisioningFailed(
                    f"private route table {index}",
                    "missing-nat",
                    f"no NAT gateway in {subnet.availability_zone}",
                )
            table = await self._ensure_route_table(
                resource_name(self._cluster, "rtb", f"private-{index}")
            )
            await self._ensure_default_route(table, NatGatewayId=nat_id)
            await self._ensure_association(table, subnet.subnet_id)

    # -------------------------------------------------------------------------
    # Security group
    # -------------------------------------------------------------------------

    async def _ensure_security_group(self) -> str:
        if self._net.security_group_ids:
            return self._net.security_group_ids[0]

        name = resource_name(self._cluster, "sg", "cluster")
        tags = self._tags(ResourceKind.SECURITY_GROUP, name)
        self._ctx.status.progress(
            "Creating cluster security group", resource="security-group", action="creating"
        )
        response = await call(
            self._ec2.create_security_group,
            GroupName=name,
            Description=f"Security group for {self._cluster} EKS cluster",
            VpcId=self._net.vpc_id,
            TagSpecifications=tag_specification("security-group", tags),
        )
        group_id = response["GroupId"]
        self._net.security_group_ids.append(group_id)
        self.changes += 1

        ingress = [
            {
                "IpProtocol": protocol,
                "FromPort": from_port,
                "ToPort": to_port,
                "UserIdGroupPairs": [{"GroupId": group_id, "Description": description}],
            }
            for protocol, from_port, to_port, description in CLUSTER_INGRESS_RULES
        ]
        egress = [
            {
                "IpProtocol": "-1",
                "IpRanges": [
                    {"CidrIp": DEFAULT_ROUTE_CIDR, "Description": "Allow all outbound traffic"}
                ],
            }
        ]
        await self._authorize(self._ec2.authorize_security_group_ingress, group_id, ingress)
        await self._authorize(self._ec2.authorize_security_group_egress, group_id, egress)
        logger.info("Created security group", extra={"group_id": group_id})
        return group_id

    async def _authorize(
        self, method: Any, group_id: str, permissions: list[dict[str, Any]]
    ) -> None:
        try:
            await call(method, GroupId=group_id, IpPermissions=permissions)
        except TransientProviderError as e:
            if has_code(e, DUPLICATE_PERMISSION):
                logger.debug("Security group rule already present", extra={"group_id": group_id})
                return
            raise

    # -------------------------------------------------------------------------
    # VPC endpoints
    # -------------------------------------------------------------------------

    async def _ensure_endpoints(self, private: list[SubnetRecord], security_group_id: str) -> None:
        region = self._ctx.region
        pending: list[str] = []

        for service in INTERFACE_ENDPOINT_SERVICES:
            service_name = endpoint_service_name(region, service)
            existing = self._net.endpoint_for_service(service_name)
            if existing is not None:
                if existing.state != "available":
                    pending.append(existing.endpoint_id)
                continue
            endpoint_id = await self._create_endpoint(
                service,
                VpcEndpointType="Interface",
                SubnetIds=[subnet.subnet_id for subnet in private],
                SecurityGroupIds=[security_group_id],
                PrivateDnsEnabled=True,
            )
            pending.append(endpoint_id)

        for service in GATEWAY_ENDPOINT_SERVICES:
            if self._net.endpoint_for_service(endpoint_service_name(region, service)):
                continue
            await self._create_endpoint(
                service,
                VpcEndpointType="Gateway",
                RouteTableIds=self._net.route_table_ids,
            )

        if pending:
            await self._wait_for_endpoints(pending)

    async def _create_endpoint(self, service: str, **params: Any) -> str:
        service_name = endpoint_service_name(self._ctx.region, service)
        tags = self._tags(
            ResourceKind.VPC_ENDPOINT,
            resource_name(self._cluster, "vpce", service.replace(".", "-")),
        )
        self._ctx.status.progress(
            f"Creating VPC endpoint for {service}",
            resource="vpc-endpoint",
            action="creating",
            service=service,
        )
        response = await call(
            self._ec2.create_vpc_endpoint,
            VpcId=self._net.vpc_id,
            ServiceName=service_name,
            TagSpecifications=tag_specification("vpc-endpoint", tags),
            **params,
        )
        self.changes += 1
        return response["VpcEndpoint"]["VpcEndpointId"]

    async def _wait_for_endpoints(self, endpoint_ids: list[str]) -> None:
        ctx = self._ctx

        async def all_available() -> bool:
            response = await call(self._ec2.describe_vpc_endpoints, VpcEndpointIds=endpoint_ids)
            states = {
                e["VpcEndpointId"]: str(e.get("State", "")).lower()
                for e in response.get("VpcEndpoints", [])
            }
            for endpoint_id, state in states.items():
                if state in ("failed", "rejected", "deleted"):
                    raise ProvisioningFailed(f"VPC endpoint {endpoint_id}", state)
            return len(states) == len(endpoint_ids) and all(
                state == "available" for state in states.values()
            )

        ctx.status.progress(
            "Waiting for VPC endpoints to become available",
            resource="vpc-endpoint",
            action="waiting",
            count=len(endpoint_ids),
        )
        await wait_until(
            all_available,
            resource="VPC endpoints",
            target_state="available",
            timeout_seconds=ctx.config.timeouts.vpc_endpoint,
            poll_interval_seconds=ctx.poll_interval,
        )


async def attach_cluster_security_group(
    ctx: ReconcileContext,
    network: NetworkState,
    security_group_id: str,
) -> int:
    """Add the EKS-managed cluster security group to interface endpoints.

    Nodes use the EKS-managed group, so endpoints must admit it as well.
    Returns the number of endpoints modified.
    """
    if not security_group_id:
        return 0
    modified = 0
    for endpoint in network.endpoints:
        if endpoint.endpoint_type.lower() != "interface":
            continue
        if security_group_id in endpoint.security_group_ids:
            continue
        await call(
            ctx.clients.ec2.modify_vpc_endpoint,
            VpcEndpointId=endpoint.endpoint_id,
            AddSecurityGroupIds=[security_group_id],
        )
        modified += 1
    if modified:
        ctx.status.success(
            "EKS-managed security group added to VPC endpoints",
            resource="vpc-endpoint",
            action="updated",
            endpoint_count=modified,
        )
    return modified
