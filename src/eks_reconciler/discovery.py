"""Resource discoverers.

Each discoverer queries AWS for resources matching the ownership tags and
converts the responses into state records. Nothing is cached: every call
hits the API, so any reconciler can call a discoverer after a mutation and
see the result.

EC2 lookups pass the ownership tags as server-side filters and re-check them
client-side with is_owned(). EKS and IAM lookups go by deterministic name and
check ownership on the returned tags.
"""

from __future__ import annotations

import logging
from typing import Any

from .clients import call, is_not_found, paginate
from .context import ReconcileContext
from .errors import DiscoveryError, TransientProviderError
from .state import (
    ClusterState,
    EndpointRecord,
    IamRoles,
    NatGatewayRecord,
    NetworkState,
    NodePoolState,
    RouteTableRecord,
    SubnetRecord,
    Taint,
)
from .tags import (
    PUBLIC_ELB_TAG,
    ResourceKind,
    from_ec2_tags,
    from_iam_tags,
    is_owned,
    logical_pool_name,
    resource_name,
    tag_filters,
)

logger = logging.getLogger(__name__)

# NAT gateways still coming up count as present so a re-run does not
# create a second one in the same subnet
LIVE_NAT_GATEWAY_STATES = ["pending", "available"]
DEAD_ENDPOINT_STATES = frozenset({"deleting", "deleted", "failed", "rejected", "expired"})

PUBLIC_ROUTE_TABLE_SUFFIX = "-rtb-public"
DEFAULT_ROUTE_CIDR = "0.0.0.0/0"

CLUSTER_ROLE_SUFFIX = "cluster-role"
NODE_ROLE_SUFFIX = "node-role"


def cluster_role_name(cluster_name: str) -> str:
    return resource_name(cluster_name, CLUSTER_ROLE_SUFFIX)


def node_role_name(cluster_name: str) -> str:
    return resource_name(cluster_name, NODE_ROLE_SUFFIX)


# =============================================================================
# Network
# =============================================================================


def _vpc_filter(vpc_id: str) -> dict[str, Any]:
    return {"Name": "vpc-id", "Values": [vpc_id]}


async def discover_network(ctx: ReconcileContext, cluster_name: str) -> NetworkState | None:
    """Find the owned VPC and every owned component inside it.

    Returns:
        NetworkState, or None if no owned VPC exists.

    Raises:
        DiscoveryError: If more than one owned VPC exists.
    """
    ec2 = ctx.clients.ec2

    vpcs = await paginate(
        ec2, "describe_vpcs", "Vpcs", Filters=tag_filters(cluster_name, ResourceKind.VPC)
    )
    owned = [v for v in vpcs if is_owned(from_ec2_tags(v.get("Tags")), cluster_name)]
    if not owned:
        logger.debug("No owned VPC found", extra={"cluster_name": cluster_name})
        return None
    if len(owned) > 1:
        vpc_ids = sorted(v["VpcId"] for v in owned)
        raise DiscoveryError(
            f"Found {len(owned)} VPCs owned by cluster '{cluster_name}' ({', '.join(vpc_ids)}); "
            "expected at most one"
        )

    vpc = owned[0]
    vpc_id = vpc["VpcId"]
    network = NetworkState(
        vpc_id=vpc_id,
        cidr=vpc.get("CidrBlock", ""),
        tags=from_ec2_tags(vpc.get("Tags")),
    )

    network.subnets = await _discover_subnets(ctx, cluster_name, vpc_id)
    network.internet_gateway_id, network.internet_gateway_attached = await _discover_igw(
        ctx, cluster_name, vpc_id
    )
    network.nat_gateways = await _discover_nat_gateways(ctx, cluster_name, vpc_id)
    network.route_tables = await _discover_route_tables(ctx, cluster_name, vpc_id)
    network.security_group_ids = await _discover_security_groups(ctx, cluster_name, vpc_id)
    network.endpoints = await _discover_endpoints(ctx, cluster_name, vpc_id)

    logger.info(
        "Discovered network",
        extra={
            "cluster_name": cluster_name,
            "vpc_id": vpc_id,
            "subnets": len(network.subnets),
            "nat_gateways": len(network.nat_gateways),
            "route_tables": len(network.route_tables),
            "endpoints": len(network.endpoints),
        },
    )
    return network


async def _discover_subnets(
    ctx: ReconcileContext, cluster_name: str, vpc_id: str
) -> list[SubnetRecord]:
    subnets = await paginate(
        ctx.clients.ec2,
        "describe_subnets",
        "Subnets",
        Filters=tag_filters(cluster_name, ResourceKind.SUBNET) + [_vpc_filter(vpc_id)],
    )
    records = []
    for subnet in subnets:
        tags = from_ec2_tags(subnet.get("Tags"))
        if not is_owned(tags, cluster_name):
            continue
        records.append(
            SubnetRecord(
                subnet_id=subnet["SubnetId"],
                cidr=subnet.get("CidrBlock", ""),
                availability_zone=subnet.get("AvailabilityZone", ""),
                public=PUBLIC_ELB_TAG in tags,
            )
        )
    return records


async def _discover_igw(
    ctx: ReconcileContext, cluster_name: str, vpc_id: str
) -> tuple[str, bool]:
    """Return (igw id, attached). An owned IGW that never got attached is still found."""
    gateways = await paginate(
        ctx.clients.ec2,
        "describe_internet_gateways",
        "InternetGateways",
        Filters=tag_filters(cluster_name, ResourceKind.INTERNET_GATEWAY),
    )
    detached = ""
    for gateway in gateways:
        if not is_owned(from_ec2_tags(gateway.get("Tags")), cluster_name):
            continue
        attachments = gateway.get("Attachments") or []
        if any(a.get("VpcId") == vpc_id for a in attachments):
            return gateway["InternetGatewayId"], True
        if not attachments and not detached:
            detached = gateway["InternetGatewayId"]
    return detached, False


async def _discover_nat_gateways(
    ctx: ReconcileContext, cluster_name: str, vpc_id: str
) -> list[NatGatewayRecord]:
    # DescribeNatGateways takes "Filter", not "Filters"
    gateways = await paginate(
        ctx.clients.ec2,
        "describe_nat_gateways",
        "NatGateways",
        Filter=tag_filters(cluster_name, ResourceKind.NAT_GATEWAY)
        + [
            _vpc_filter(vpc_id),
            {"Name": "state", "Values": LIVE_NAT_GATEWAY_STATES},
        ],
    )
    records = []
    for gateway in gateways:
        if not is_owned(from_ec2_tags(gateway.get("Tags")), cluster_name):
            continue
        addresses = gateway.get("NatGatewayAddresses") or [{}]
        records.append(
            NatGatewayRecord(
                nat_gateway_id=gateway["NatGatewayId"],
                subnet_id=gateway.get("SubnetId", ""),
                state=gateway.get("State", ""),
                allocation_id=addresses[0].get("AllocationId", ""),
            )
        )
    return records


async def _discover_route_tables(
    ctx: ReconcileContext, cluster_name: str, vpc_id: str
) -> list[RouteTableRecord]:
    tables = await paginate(
        ctx.clients.ec2,
        "describe_route_tables",
        "RouteTables",
        Filters=tag_filters(cluster_name, ResourceKind.ROUTE_TABLE) + [_vpc_filter(vpc_id)],
    )
    records = []
    for table in tables:
        tags = from_ec2_tags(table.get("Tags"))
        if not is_owned(tags, cluster_name):
            continue
        associations = [
            a for a in table.get("Associations") or [] if not a.get("Main") and a.get("SubnetId")
        ]
        name = tags.get("Name", "")
        default_target = ""
        for route in table.get("Routes") or []:
            if route.get("DestinationCidrBlock") == DEFAULT_ROUTE_CIDR:
                default_target = route.get("GatewayId") or route.get("NatGatewayId") or ""
        records.append(
            RouteTableRecord(
                route_table_id=table["RouteTableId"],
                name=name,
                public=name.endswith(PUBLIC_ROUTE_TABLE_SUFFIX),
                subnet_ids=tuple(a["SubnetId"] for a in associations),
                association_ids=tuple(a["RouteTableAssociationId"] for a in associations),
                default_route_target=default_target,
            )
        )
    return records


async def _discover_security_groups(
    ctx: ReconcileContext, cluster_name: str, vpc_id: str
) -> list[str]:
    groups = await paginate(
        ctx.clients.ec2,
        "describe_security_groups",
        "SecurityGroups",
        Filters=tag_filters(cluster_name, ResourceKind.SECURITY_GROUP) + [_vpc_filter(vpc_id)],
    )
    return [
        group["GroupId"]
        for group in groups
        if is_owned(from_ec2_tags(group.get("Tags")), cluster_name)
    ]


async def _discover_endpoints(
    ctx: ReconcileContext, cluster_name: str, vpc_id: str
) -> list[EndpointRecord]:
    endpoints = await paginate(
        ctx.clients.ec2,
        "describe_vpc_endpoints",
        "VpcEndpoints",
        Filters=tag_filters(cluster_name, ResourceKind.VPC_ENDPOINT) + [_vpc_filter(vpc_id)],
    )
    records = []
    for endpoint in endpoints:
        if not is_owned(from_ec2_tags(endpoint.get("Tags")), cluster_name):
            continue
        state = str(endpoint.get("State", "")).lower()
        if state in DEAD_ENDPOINT_STATES:
            continue
        records.append(
            EndpointRecord(
                endpoint_id=endpoint["VpcEndpointId"],
                service_name=endpoint.get("ServiceName", ""),
                endpoint_type=endpoint.get("VpcEndpointType", ""),
                state=state,
                security_group_ids=tuple(
                    g.get("GroupId", "") for g in endpoint.get("Groups") or []
                ),
            )
        )
    return records


# =============================================================================
# Cluster
# =============================================================================


async def describe_cluster_raw(ctx: ReconcileContext, cluster_name: str) -> dict[str, Any] | None:
    """DescribeCluster, with ResourceNotFoundException mapped to None."""
    try:
        response = await call(ctx.clients.eks.describe_cluster, name=cluster_name)
    except TransientProviderError as e:
        if is_not_found(e):
            return None
        raise
    return response.get("cluster")


async def discover_cluster(ctx: ReconcileContext, cluster_name: str) -> ClusterState | None:
    """Find the owned EKS cluster, or None if absent or not owned."""
    raw = await describe_cluster_raw(ctx, cluster_name)
    if raw is None:
        return None

    tags = raw.get("tags") or {}
    if not is_owned(tags, cluster_name):
        logger.warning(
            "EKS cluster exists but is not managed by this tool; treating as absent",
            extra={"cluster_name": cluster_name},
        )
        return None

    return cluster_state_from_api(raw)


def cluster_state_from_api(raw: dict[str, Any]) -> ClusterState:
    vpc_config = raw.get("resourcesVpcConfig") or {}
    encryption = raw.get("encryptionConfig") or []
    key_arn = ""
    if encryption:
        key_arn = (encryption[0].get("provider") or {}).get("keyArn", "")

    enabled_logs: list[str] = []
    for setup in (raw.get("logging") or {}).get("clusterLogging") or []:
        if setup.get("enabled"):
            enabled_logs.extend(setup.get("types") or [])

    return ClusterState(
        name=raw.get("name", ""),
        arn=raw.get("arn", ""),
        endpoint=raw.get("endpoint", ""),
        version=raw.get("version", ""),
        status=raw.get("status", ""),
        certificate_authority=(raw.get("certificateAuthority") or {}).get("data", ""),
        vpc_id=vpc_config.get("vpcId", ""),
        subnet_ids=list(vpc_config.get("subnetIds") or []),
        security_group_ids=list(vpc_config.get("securityGroupIds") or []),
        cluster_security_group_id=vpc_config.get("clusterSecurityGroupId", ""),
        endpoint_public=bool(vpc_config.get("endpointPublicAccess")),
        endpoint_private=bool(vpc_config.get("endpointPrivateAccess")),
        public_access_cidrs=list(vpc_config.get("publicAccessCidrs") or []),
        oidc_issuer=((raw.get("identity") or {}).get("oidc") or {}).get("issuer", ""),
        encryption_key_arn=key_arn,
        enabled_log_types=sorted(set(enabled_logs)),
        tags=dict(raw.get("tags") or {}),
        platform_version=raw.get("platformVersion", ""),
        created_at=raw.get("createdAt"),
    )


# =============================================================================
# Node pools
# =============================================================================


async def discover_node_pools(ctx: ReconcileContext, cluster_name: str) -> list[NodePoolState]:
    """List owned node groups of the cluster. A missing cluster yields []."""
    try:
        names = await paginate(
            ctx.clients.eks, "list_nodegroups", "nodegroups", clusterName=cluster_name
        )
    except TransientProviderError as e:
        if is_not_found(e):
            return []
        raise

    pools: list[NodePoolState] = []
    for name in names:
        try:
            response = await call(
                ctx.clients.eks.describe_nodegroup,
                clusterName=cluster_name,
                nodegroupName=name,
            )
        except TransientProviderError as e:
            # Deleted between list and describe
            if is_not_found(e):
                continue
            raise

        raw = response.get("nodegroup") or {}
        tags = raw.get("tags") or {}
        if not is_owned(tags, cluster_name):
            logger.debug(
                "Skipping node group not managed by this tool",
                extra={"cluster_name": cluster_name, "nodegroup": name},
            )
            continue
        if logical_pool_name(tags) is None:
            logger.warning(
                "Managed node group is missing its node-pool tag; skipping",
                extra={"cluster_name": cluster_name, "nodegroup": name},
            )
            continue
        pools.append(node_pool_state_from_api(raw))

    return pools


def node_pool_state_from_api(raw: dict[str, Any]) -> NodePoolState:
    scaling = raw.get("scalingConfig") or {}
    tags = dict(raw.get("tags") or {})
    return NodePoolState(
        name=raw.get("nodegroupName", ""),
        pool_name=logical_pool_name(tags) or "",
        cluster_name=raw.get("clusterName", ""),
        arn=raw.get("nodegroupArn", ""),
        status=raw.get("status", ""),
        instance_types=list(raw.get("instanceTypes") or []),
        min_size=int(scaling.get("minSize", 0)),
        max_size=int(scaling.get("maxSize", 0)),
        desired_size=int(scaling.get("desiredSize", 0)),
        subnet_ids=list(raw.get("subnets") or []),
        node_role_arn=raw.get("nodeRole", ""),
        ami_type=raw.get("amiType", ""),
        disk_size=int(raw.get("diskSize") or 0),
        labels=dict(raw.get("labels") or {}),
        taints=[
            Taint(key=t.get("key", ""), value=t.get("value", ""), effect=t.get("effect", ""))
            for t in raw.get("taints") or []
        ],
        capacity_type=raw.get("capacityType", ""),
        health_issues=[
            issue.get("code", "") for issue in (raw.get("health") or {}).get("issues") or []
        ],
        tags=tags,
        created_at=raw.get("createdAt"),
        modified_at=raw.get("modifiedAt"),
    )


# =============================================================================
# IAM roles
# =============================================================================


async def get_role(ctx: ReconcileContext, role_name: str) -> dict[str, Any] | None:
    """GetRole, with NoSuchEntity mapped to None."""
    try:
        response = await call(ctx.clients.iam.get_role, RoleName=role_name)
    except TransientProviderError as e:
        if is_not_found(e):
            return None
        raise
    return response.get("Role")


def role_is_owned(role: dict[str, Any], cluster_name: str) -> bool:
    return is_owned(from_iam_tags(role.get("Tags")), cluster_name)


async def discover_roles(ctx: ReconcileContext, cluster_name: str) -> IamRoles | None:
    """Return both cluster roles, or None unless both exist.

    Roles are looked up by their deterministic names.
    """
    cluster_role = await get_role(ctx, cluster_role_name(cluster_name))
    if cluster_role is None:
        return None
    node_role = await get_role(ctx, node_role_name(cluster_name))
    if node_role is None:
        return None

    return IamRoles(
        cluster_role_arn=cluster_role["Arn"],
        node_role_arn=node_role["Arn"],
        cluster_role_name=cluster_role["RoleName"],
        node_role_name=node_role["RoleName"],
    )
