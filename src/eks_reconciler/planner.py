"""Dry-run planning.

build_plan() diffs the desired spec against discovered state using the same
pure diff functions the reconcilers use, so the plan and the real pass can
never disagree about what changes. It makes no API calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .cluster import compute_config_update, validate_cluster_immutable
from .errors import ImmutableFieldViolation, UpgradePathViolation
from .models import ClusterSpec, nodegroup_name
from .nodepools import (
    compute_node_pool_update,
    plan_node_pools,
    resolve_ami_type,
    resolve_capacity_type,
    validate_node_pool_immutable,
)
from .state import ClusterState, IamRoles, NetworkState, NodePoolState
from .topology import (
    DEFAULT_AZ_COUNT,
    GATEWAY_ENDPOINT_SERVICES,
    INTERFACE_ENDPOINT_SERVICES,
    carve_index,
    endpoint_service_name,
    validate_network_immutable,
)
from .version import validate_upgrade


class PlanActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NO_CHANGE = "no-change"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class PlanAction:
    """One planned change to one resource."""

    resource: str
    action: PlanActionType
    name: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "action": self.action.value,
            "name": self.name,
            "details": self.details,
        }


@dataclass
class ReconcilePlan:
    """Ordered list of planned actions for one project."""

    cluster_name: str
    actions: list[PlanAction] = field(default_factory=list)

    def add(
        self, resource: str, action: PlanActionType, name: str, **details: Any
    ) -> None:
        self.actions.append(PlanAction(resource, action, name, details))

    @property
    def has_changes(self) -> bool:
        return any(
            a.action not in (PlanActionType.NO_CHANGE, PlanActionType.BLOCKED)
            for a in self.actions
        )

    @property
    def blocked(self) -> list[PlanAction]:
        return [a for a in self.actions if a.action == PlanActionType.BLOCKED]

    def summary(self) -> dict[str, int]:
        counts = {action.value: 0 for action in PlanActionType}
        for planned in self.actions:
            counts[planned.action.value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_name": self.cluster_name,
            "summary": self.summary(),
            "actions": [a.to_dict() for a in self.actions],
        }


def build_plan(
    spec: ClusterSpec,
    network: NetworkState | None,
    roles: IamRoles | None,
    cluster: ClusterState | None,
    node_pools: list[NodePoolState],
    region: str | None = None,
) -> ReconcilePlan:
    """Compute the actions a reconcile pass would take."""
    plan = ReconcilePlan(cluster_name=spec.cluster_name)
    _plan_network(plan, spec, network, region or spec.aws.region)
    _plan_roles(plan, spec, roles)
    _plan_cluster(plan, spec, network, cluster)
    _plan_node_pools(plan, spec, cluster, node_pools)
    return plan


def _plan_network(
    plan: ReconcilePlan, spec: ClusterSpec, network: NetworkState | None, region: str
) -> None:
    name = spec.cluster_name
    if network is None:
        plan.add("vpc", PlanActionType.CREATE, name, cidr=spec.aws.vpc_cidr_block)
        return

    try:
        validate_network_immutable(spec, network)
    except ImmutableFieldViolation as e:
        plan.add("vpc", PlanActionType.BLOCKED, network.vpc_id, reason=str(e))
        return

    indexes = {carve_index(s.cidr) for s in network.subnets} - {None}
    zone_count = len(spec.aws.availability_zones) or max(
        [DEFAULT_AZ_COUNT] + [index + 1 for index, _ in indexes]
    )

    missing: dict[str, int] = {}
    subnets = sum(
        1
        for index in range(zone_count)
        for public in (True, False)
        if (index, public) not in indexes
    )
    if subnets:
        missing["subnets"] = subnets
    if not network.internet_gateway_id or not network.internet_gateway_attached:
        missing["internet_gateway"] = 1
    if len(network.nat_gateways) < zone_count:
        missing["nat_gateways"] = zone_count - len(network.nat_gateways)
    if len(network.route_tables) < zone_count + 1:
        missing["route_tables"] = zone_count + 1 - len(network.route_tables)
    if not network.security_group_ids:
        missing["security_group"] = 1
    if spec.aws.requires_private_access:
        services = INTERFACE_ENDPOINT_SERVICES + GATEWAY_ENDPOINT_SERVICES
        endpoints = sum(
            1
            for service in services
            if network.endpoint_for_service(endpoint_service_name(region, service)) is None
        )
        if endpoints:
            missing["vpc_endpoints"] = endpoints

    if missing:
        plan.add("vpc", PlanActionType.UPDATE, network.vpc_id, missing=missing)
    else:
        plan.add("vpc", PlanActionType.NO_CHANGE, network.vpc_id)


def _plan_roles(plan: ReconcilePlan, spec: ClusterSpec, roles: IamRoles | None) -> None:
    if roles is None:
        plan.add("iam-roles", PlanActionType.CREATE, spec.cluster_name)
    else:
        plan.add(
            "iam-roles",
            PlanActionType.NO_CHANGE,
            spec.cluster_name,
            cluster_role_arn=roles.cluster_role_arn,
            node_role_arn=roles.node_role_arn,
        )


def _plan_cluster(
    plan: ReconcilePlan,
    spec: ClusterSpec,
    network: NetworkState | None,
    cluster: ClusterState | None,
) -> None:
    name = spec.cluster_name
    if cluster is None:
        plan.add(
            "eks-cluster",
            PlanActionType.CREATE,
            name,
            version=spec.aws.kubernetes_version,
            endpoint_access=spec.aws.endpoint_access.value,
        )
        return

    try:
        if network is not None:
            validate_cluster_immutable(spec, network, cluster)
        if cluster.version != spec.aws.kubernetes_version:
            validate_upgrade(cluster.version, spec.aws.kubernetes_version)
    except (ImmutableFieldViolation, UpgradePathViolation) as e:
        plan.add("eks-cluster", PlanActionType.BLOCKED, name, reason=str(e))
        return

    details: dict[str, Any] = {}
    if cluster.version != spec.aws.kubernetes_version:
        details["version"] = {"current": cluster.version, "desired": spec.aws.kubernetes_version}
    config_update = compute_config_update(spec, cluster)
    if config_update:
        details["config"] = sorted(config_update)

    if details:
        plan.add("eks-cluster", PlanActionType.UPDATE, name, **details)
    else:
        plan.add("eks-cluster", PlanActionType.NO_CHANGE, name)


def _plan_node_pools(
    plan: ReconcilePlan,
    spec: ClusterSpec,
    cluster: ClusterState | None,
    node_pools: list[NodePoolState],
) -> None:
    desired = spec.aws.node_groups
    # Without a cluster there can be no node groups
    actual = node_pools if cluster is not None else []
    pool_plan = plan_node_pools(list(desired), actual)
    by_name = {pool.pool_name: pool for pool in actual}

    for pool_name in pool_plan.create:
        pool = desired[pool_name]
        plan.add(
            "node-pool",
            PlanActionType.CREATE,
            pool_name,
            nodegroup=nodegroup_name(spec.cluster_name, pool_name),
            instance_type=pool.instance_type,
            ami_type=resolve_ami_type(pool),
            capacity_type=resolve_capacity_type(pool),
            min_size=pool.resolved_min,
            max_size=pool.resolved_max,
        )

    for pool_name in pool_plan.update:
        pool = desired[pool_name]
        current = by_name[pool_name]
        try:
            validate_node_pool_immutable(pool_name, pool, current)
        except ImmutableFieldViolation as e:
            plan.add("node-pool", PlanActionType.BLOCKED, pool_name, reason=str(e))
            continue
        update = compute_node_pool_update(pool_name, pool, current)
        if update:
            plan.add("node-pool", PlanActionType.UPDATE, pool_name, changes=update)
        else:
            plan.add("node-pool", PlanActionType.NO_CHANGE, pool_name)

    for orphan in pool_plan.delete:
        plan.add("node-pool", PlanActionType.DELETE, orphan.pool_name, nodegroup=orphan.name)
