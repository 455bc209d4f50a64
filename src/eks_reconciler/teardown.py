"""Network teardown and cleanup of resources Kubernetes created on our behalf.

DELETE ORDER (dependencies first):
1. VPC endpoints
2. NAT gateways, then their elastic IPs
3. Internet gateway
4. Route tables (associations first)
5. Subnets
6. Non-default security groups
7. The VPC itself

Classic load balancers created by Kubernetes Service objects hold ENIs in the
cluster subnets and must be removed before step 5 can succeed.
"""

from __future__ import annotations

import logging
from typing import Any

from .clients import call, has_code, is_not_found, paginate
from .context import ReconcileContext
from .discovery import discover_network
from .errors import ProvisioningTimeout, TransientProviderError
from .state import NetworkState
from .tags import TAG_CLUSTER_NAME, from_ec2_tags, is_owned
from .waiters import wait_until

logger = logging.getLogger(__name__)

# ELB DescribeTags accepts at most 20 names per call
ELB_TAG_BATCH_SIZE = 20
K8S_ELB_SECURITY_GROUP_PREFIX = "k8s-elb-"

# Security groups of just-deleted ELBs stay in use until AWS releases the ENIs
SECURITY_GROUP_DELETE_TIMEOUT_SECONDS = 60
DEPENDENCY_VIOLATION = "DependencyViolation"


def kubernetes_cluster_tag(cluster_name: str) -> str:
    return f"kubernetes.io/cluster/{cluster_name}"


async def _ignore_not_found(method: Any, **params: Any) -> None:
    try:
        await call(method, **params)
    except TransientProviderError as e:
        if not is_not_found(e):
            raise


# =============================================================================
# Network
# =============================================================================


async def delete_network(ctx: ReconcileContext, cluster_name: str) -> bool:
    """Delete the owned VPC and everything in it.

    When no VPC exists, only orphaned elastic IPs are released.

    Returns:
        True if a VPC was deleted.
    """
    network = await discover_network(ctx, cluster_name)
    if network is None:
        ctx.status.info(
            "VPC not found, checking for orphaned resources", resource="vpc", action="discovering"
        )
        await release_orphaned_eips(ctx, cluster_name)
        return False

    vpc_id = network.vpc_id
    ctx.status.progress(
        "Deleting VPC and networking resources", resource="vpc", action="deleting", vpc_id=vpc_id
    )

    await _delete_endpoints(ctx, network)
    await _delete_nat_gateways(ctx, network)
    await _delete_internet_gateway(ctx, network)
    await _delete_route_tables(ctx, network)
    await _delete_subnets(ctx, network)
    await _delete_security_groups(ctx, vpc_id)
    await _ignore_not_found(ctx.clients.ec2.delete_vpc, VpcId=vpc_id)

    await release_orphaned_eips(ctx, cluster_name)

    logger.info("Deleted VPC", extra={"cluster_name": cluster_name, "vpc_id": vpc_id})
    ctx.status.success(
        "VPC and networking resources deleted", resource="vpc", action="deleted", vpc_id=vpc_id
    )
    return True


async def _delete_endpoints(ctx: ReconcileContext, network: NetworkState) -> None:
    endpoint_ids = network.vpc_endpoint_ids
    if not endpoint_ids:
        return
    ec2 = ctx.clients.ec2
    await call(ec2.delete_vpc_endpoints, VpcEndpointIds=endpoint_ids)

    async def all_gone() -> bool:
        try:
            response = await call(ec2.describe_vpc_endpoints, VpcEndpointIds=endpoint_ids)
        except TransientProviderError as e:
            if is_not_found(e):
                return True
            raise
        return all(
            str(e.get("State", "")).lower() == "deleted" for e in response.get("VpcEndpoints", [])
        )

    await wait_until(
        all_gone,
        resource="VPC endpoints",
        target_state="deleted",
        timeout_seconds=ctx.config.timeouts.vpc_endpoint,
        poll_interval_seconds=ctx.poll_interval,
    )


async def _delete_nat_gateways(ctx: ReconcileContext, network: NetworkState) -> None:
    if not network.nat_gateways:
        return
    ec2 = ctx.clients.ec2

    # Allocation ids must be read before the NATs go away
    allocation_ids = [n.allocation_id for n in network.nat_gateways if n.allocation_id]
    nat_ids = network.nat_gateway_ids

    for nat_id in nat_ids:
        await _ignore_not_found(ec2.delete_nat_gateway, NatGatewayId=nat_id)

    async def all_deleted() -> bool:
        response = await call(ec2.describe_nat_gateways, NatGatewayIds=nat_ids)
        return all(g.get("State") == "deleted" for g in response.get("NatGateways", []))

    ctx.status.progress(
        "Waiting for NAT gateways to be deleted",
        resource="nat-gateway",
        action="waiting",
        count=len(nat_ids),
    )
    await wait_until(
        all_deleted,
        resource="NAT gateways",
        target_state="deleted",
        timeout_seconds=ctx.config.timeouts.nat_gateway,
        poll_interval_seconds=ctx.poll_interval,
    )

    for allocation_id in allocation_ids:
        await _ignore_not_found(ec2.release_address, AllocationId=allocation_id)


async def _delete_internet_gateway(ctx: ReconcileContext, network: NetworkState) -> None:
    igw_id = network.internet_gateway_id
    if not igw_id:
        return
    ec2 = ctx.clients.ec2
    if network.internet_gateway_attached:
        await _ignore_not_found(
            ec2.detach_internet_gateway, InternetGatewayId=igw_id, VpcId=network.vpc_id
        )
    await _ignore_not_found(ec2.delete_internet_gateway, InternetGatewayId=igw_id)


async def _delete_route_tables(ctx: ReconcileContext, network: NetworkState) -> None:
    ec2 = ctx.clients.ec2
    for table in network.route_tables:
        for association_id in table.association_ids:
            await _ignore_not_found(ec2.disassociate_route_table, AssociationId=association_id)
        await _ignore_not_found(ec2.delete_route_table, RouteTableId=table.route_table_id)


async def _delete_subnets(ctx: ReconcileContext, network: NetworkState) -> None:
    for subnet in network.subnets:
        await _ignore_not_found(ctx.clients.ec2.delete_subnet, SubnetId=subnet.subnet_id)


async def _delete_security_groups(ctx: ReconcileContext, vpc_id: str) -> None:
    """Delete every non-default group in the VPC, including ones EKS created."""
    groups = await paginate(
        ctx.clients.ec2,
        "describe_security_groups",
        "SecurityGroups",
        Filters=[{"Name": "vpc-id", "Values": [vpc_id]}],
    )
    for group in groups:
        if group.get("GroupName") == "default":
            continue
        await _revoke_referencing_rules(ctx, group["GroupId"])
    for group in groups:
        if group.get("GroupName") == "default":
            continue
        await _delete_security_group(ctx, group["GroupId"])


async def _revoke_referencing_rules(ctx: ReconcileContext, group_id: str) -> None:
    """Remove ingress rules in other groups that reference group_id."""
    ec2 = ctx.clients.ec2
    referencing = await paginate(
        ec2,
        "describe_security_groups",
        "SecurityGroups",
        Filters=[{"Name": "ip-permission.group-id", "Values": [group_id]}],
    )
    for group in referencing:
        if group["GroupId"] == group_id:
            continue
        permissions = []
        for perm in group.get("IpPermissions") or []:
            for pair in perm.get("UserIdGroupPairs") or []:
                if pair.get("GroupId") != group_id:
                    continue
                permission: dict[str, Any] = {
                    "IpProtocol": perm.get("IpProtocol"),
                    "UserIdGroupPairs": [{"GroupId": group_id}],
                }
                if "FromPort" in perm:
                    permission["FromPort"] = perm["FromPort"]
                    permission["ToPort"] = perm["ToPort"]
                permissions.append(permission)
        if not permissions:
            continue
        logger.info(
            "Revoking ingress rules referencing security group",
            extra={
                "group_id": group["GroupId"],
                "referenced_group": group_id,
                "count": len(permissions),
            },
        )
        await call(
            ec2.revoke_security_group_ingress, GroupId=group["GroupId"], IpPermissions=permissions
        )


async def _delete_security_group(ctx: ReconcileContext, group_id: str) -> None:
    """Delete a group, retrying while AWS still reports it in use."""
    last_error: TransientProviderError | None = None

    async def deleted() -> bool:
        nonlocal last_error
        try:
            await call(ctx.clients.ec2.delete_security_group, GroupId=group_id)
        except TransientProviderError as e:
            if is_not_found(e):
                return True
            if has_code(e, DEPENDENCY_VIOLATION):
                last_error = e
                return False
            raise
        return True

    try:
        await wait_until(
            deleted,
            resource=f"security group {group_id}",
            target_state="deleted",
            timeout_seconds=SECURITY_GROUP_DELETE_TIMEOUT_SECONDS,
            poll_interval_seconds=ctx.poll_interval,
        )
    except ProvisioningTimeout:
        if last_error is not None:
            raise last_error from None
        raise


async def release_orphaned_eips(ctx: ReconcileContext, cluster_name: str) -> list[str]:
    """Release cluster-tagged elastic IPs with no association.

    Returns:
        Allocation ids released.
    """
    response = await call(
        ctx.clients.ec2.describe_addresses,
        Filters=[
            {"Name": "domain", "Values": ["vpc"]},
            {"Name": f"tag:{TAG_CLUSTER_NAME}", "Values": [cluster_name]},
        ],
    )
    released: list[str] = []
    for address in response.get("Addresses", []):
        if address.get("AssociationId"):
            continue
        if not is_owned(from_ec2_tags(address.get("Tags")), cluster_name):
            continue
        allocation_id = address["AllocationId"]
        await _ignore_not_found(ctx.clients.ec2.release_address, AllocationId=allocation_id)
        released.append(allocation_id)

    if released:
        logger.info(
            "Released orphaned elastic IPs",
            extra={"cluster_name": cluster_name, "allocation_ids": released},
        )
        ctx.status.success(
            f"Released {len(released)} orphaned elastic IP(s)",
            resource="elastic-ip",
            action="released",
        )
    return released


# =============================================================================
# Kubernetes-created load balancers
# =============================================================================


async def find_kubernetes_load_balancers(ctx: ReconcileContext, cluster_name: str) -> list[str]:
    """Names of classic ELBs tagged for this cluster by Kubernetes."""
    elb = ctx.clients.elb
    descriptions = await paginate(elb, "describe_load_balancers", "LoadBalancerDescriptions")
    names = [d["LoadBalancerName"] for d in descriptions]

    tag_key = kubernetes_cluster_tag(cluster_name)
    matched: list[str] = []
    for start in range(0, len(names), ELB_TAG_BATCH_SIZE):
        batch = names[start : start + ELB_TAG_BATCH_SIZE]
        response = await call(elb.describe_tags, LoadBalancerNames=batch)
        for description in response.get("TagDescriptions", []):
            if any(tag.get("Key") == tag_key for tag in description.get("Tags") or []):
                matched.append(description["LoadBalancerName"])
    return matched


async def cleanup_kubernetes_load_balancers(ctx: ReconcileContext, cluster_name: str) -> list[str]:
    """Delete Kubernetes-created classic ELBs and their leftover security groups.

    Returns:
        Names of the load balancers deleted.
    """
    names = await find_kubernetes_load_balancers(ctx, cluster_name)
    if not names:
        ctx.status.info("No load balancers found", resource="load-balancer", action="discovering")

    for name in names:
        ctx.status.info(
            f"Deleting Kubernetes-created load balancer: {name}",
            resource="load-balancer",
            action="deleting",
        )
        await _ignore_not_found(ctx.clients.elb.delete_load_balancer, LoadBalancerName=name)

    ctx.status.success(
        f"Kubernetes load balancer cleanup complete: {len(names)} deleted",
        resource="load-balancer",
        action="cleanup",
    )

    await _cleanup_elb_security_groups(ctx, cluster_name)
    return names


async def _cleanup_elb_security_groups(ctx: ReconcileContext, cluster_name: str) -> int:
    groups = await paginate(
        ctx.clients.ec2,
        "describe_security_groups",
        "SecurityGroups",
        Filters=[{"Name": "group-name", "Values": [f"{K8S_ELB_SECURITY_GROUP_PREFIX}*"]}],
    )
    tag_key = kubernetes_cluster_tag(cluster_name)
    deleted = 0
    for group in groups:
        if not group.get("GroupName", "").startswith(K8S_ELB_SECURITY_GROUP_PREFIX):
            continue
        if tag_key not in from_ec2_tags(group.get("Tags")):
            continue
        await _revoke_referencing_rules(ctx, group["GroupId"])
        await _delete_security_group(ctx, group["GroupId"])
        deleted += 1
    return deleted
