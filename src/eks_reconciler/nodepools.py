"""EKS managed node group reconciler.

Node pools are matched by the logical node-pool tag, not by physical name.
Each desired pool is created or updated and each owned pool that is no
longer desired is deleted. All of it runs as independent asyncio tasks
bounded by a semaphore; one pool failing never stops the others.

UPDATE RULES:
- Instance type, AMI type and capacity type are immutable. A mismatch fails
  before any update call is made.
- Scaling bounds, required labels and taints are mutable and go into one
  combined UpdateNodegroupConfig call.
- desiredSize is left to external autoscalers. It is only sent when the new
  bounds no longer contain it, because EKS rejects desired outside [min, max].
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .clients import call, is_not_found
from .context import ReconcileContext
from .discovery import discover_node_pools, node_pool_state_from_api
from .errors import (
    AggregatedPartialFailure,
    ImmutableFieldViolation,
    ProvisioningFailed,
    TransientProviderError,
)
from .models import ClusterSpec, NodePoolSpec, nodegroup_name
from .state import ClusterState, IamRoles, NetworkState, NodePoolState, Taint
from .tags import TAG_NODE_POOL, node_pool_tags
from .waiters import wait_until

logger = logging.getLogger(__name__)

DEFAULT_DISK_SIZE_GB = 20
AMI_TYPE_STANDARD = "AL2023_x86_64_STANDARD"
AMI_TYPE_GPU = "AL2023_x86_64_NVIDIA"
CAPACITY_SPOT = "SPOT"
CAPACITY_ON_DEMAND = "ON_DEMAND"

LABEL_NODE_GROUP = "node-group"

# Kubernetes spelling -> EKS API spelling
TAINT_EFFECTS = {
    "NoSchedule": "NO_SCHEDULE",
    "NoExecute": "NO_EXECUTE",
    "PreferNoSchedule": "PREFER_NO_SCHEDULE",
}
DEFAULT_TAINT_EFFECT = "NO_SCHEDULE"

ACTIVE = "ACTIVE"
FAILED_STATES = frozenset({"CREATE_FAILED", "DELETE_FAILED"})


# =============================================================================
# Pure translation
# =============================================================================


def to_api_effect(effect: Any) -> str:
    """Translate a taint effect to EKS form; unknown values become NO_SCHEDULE."""
    value = getattr(effect, "value", effect)
    if value in TAINT_EFFECTS.values():
        return str(value)
    return TAINT_EFFECTS.get(str(value), DEFAULT_TAINT_EFFECT)


def desired_taints(pool: NodePoolSpec) -> list[Taint]:
    return [Taint(key=t.key, value=t.value, effect=to_api_effect(t.effect)) for t in pool.taints]


def taints_equal(desired: list[Taint], actual: list[Taint]) -> bool:
    """Set equality on (key, value, effect)."""
    return len(desired) == len(actual) and set(desired) == set(actual)


def required_labels(pool_name: str) -> dict[str, str]:
    return {LABEL_NODE_GROUP: pool_name, TAG_NODE_POOL: pool_name}


def resolve_ami_type(pool: NodePoolSpec) -> str:
    if pool.ami_type:
        return pool.ami_type
    return AMI_TYPE_GPU if pool.gpu else AMI_TYPE_STANDARD


def resolve_capacity_type(pool: NodePoolSpec) -> str:
    return CAPACITY_SPOT if pool.spot else CAPACITY_ON_DEMAND


def build_create_request(
    spec: ClusterSpec,
    pool_name: str,
    pool: NodePoolSpec,
    network: NetworkState,
    roles: IamRoles,
) -> dict[str, Any]:
    """Parameters for eks.create_nodegroup."""
    subnets = network.private_subnet_ids
    if pool.single_subnet:
        subnets = subnets[:1]

    request: dict[str, Any] = {
        "clusterName": spec.cluster_name,
        "nodegroupName": nodegroup_name(spec.cluster_name, pool_name),
        "nodeRole": roles.node_role_arn,
        "subnets": subnets,
        "instanceTypes": [pool.instance_type],
        "amiType": resolve_ami_type(pool),
        "capacityType": resolve_capacity_type(pool),
        "diskSize": DEFAULT_DISK_SIZE_GB,
        "scalingConfig": {
            "minSize": pool.resolved_min,
            "maxSize": pool.resolved_max,
            "desiredSize": pool.resolved_min,
        },
        "labels": required_labels(pool_name),
        "tags": node_pool_tags(spec.cluster_name, pool_name, spec.aws.tags),
    }
    taints = desired_taints(pool)
    if taints:
        request["taints"] = [t.to_api() for t in taints]
    return request


def validate_node_pool_immutable(pool_name: str, pool: NodePoolSpec, actual: NodePoolState) -> None:
    """Raise ImmutableFieldViolation if the node group would need recreation."""
    current_instance = actual.instance_types[0] if actual.instance_types else ""
    if current_instance != pool.instance_type:
        raise ImmutableFieldViolation(
            "node pool", pool_name, "instance_type", current_instance, pool.instance_type
        )

    ami_type = resolve_ami_type(pool)
    if actual.ami_type != ami_type:
        raise ImmutableFieldViolation("node pool", pool_name, "ami_type", actual.ami_type, ami_type)

    capacity = resolve_capacity_type(pool)
    if actual.capacity_type != capacity:
        raise ImmutableFieldViolation(
            "node pool", pool_name, "capacity_type", actual.capacity_type, capacity
        )


def compute_node_pool_update(
    pool_name: str,
    pool: NodePoolSpec,
    actual: NodePoolState,
) -> dict[str, Any]:
    """Combined UpdateNodegroupConfig parameters, or {} when nothing differs."""
    update: dict[str, Any] = {}

    new_min, new_max = pool.resolved_min, pool.resolved_max
    if (actual.min_size, actual.max_size) != (new_min, new_max):
        scaling: dict[str, int] = {"minSize": new_min, "maxSize": new_max}
        clamped = min(max(actual.desired_size, new_min), new_max)
        if clamped != actual.desired_size:
            scaling["desiredSize"] = clamped
        update["scalingConfig"] = scaling

    labels = required_labels(pool_name)
    if any(actual.labels.get(key) != value for key, value in labels.items()):
        update["labels"] = {"addOrUpdateLabels": labels}

    wanted = desired_taints(pool)
    if not taints_equal(wanted, actual.taints):
        taint_update: dict[str, Any] = {}
        if wanted:
            taint_update["addOrUpdateTaints"] = [t.to_api() for t in wanted]
        # Taint identity is (key, effect); a changed value is an update, not a removal
        kept = {(t.key, t.effect) for t in wanted}
        stale = [t.to_api() for t in actual.taints if (t.key, t.effect) not in kept]
        if stale:
            taint_update["removeTaints"] = stale
        if taint_update:
            update["taints"] = taint_update

    return update


@dataclass
class NodePoolPlan:
    """Which logical pools to create, update and delete."""

    create: list[str] = field(default_factory=list)
    update: list[str] = field(default_factory=list)
    delete: list[NodePoolState] = field(default_factory=list)


def plan_node_pools(desired_names: list[str], actual: list[NodePoolState]) -> NodePoolPlan:
    """Diff desired logical names against discovered pools (pure)."""
    by_name = {pool.pool_name: pool for pool in actual}
    plan = NodePoolPlan()
    for name in sorted(desired_names):
        if name in by_name:
            plan.update.append(name)
        else:
            plan.create.append(name)
    wanted = set(desired_names)
    plan.delete = sorted(
        (pool for pool in actual if pool.pool_name not in wanted),
        key=lambda p: p.pool_name,
    )
    return plan


# =============================================================================
# Single-pool operations
# =============================================================================


async def _describe_nodegroup(
    ctx: ReconcileContext, cluster_name: str, name: str
) -> dict[str, Any] | None:
    try:
        response = await call(
            ctx.clients.eks.describe_nodegroup, clusterName=cluster_name, nodegroupName=name
        )
    except TransientProviderError as e:
        if is_not_found(e):
            return None
        raise
    return response.get("nodegroup")


async def _wait_for_active(
    ctx: ReconcileContext, cluster_name: str, name: str, timeout: float
) -> NodePoolState:
    latest: dict[str, Any] = {}

    async def is_active() -> bool:
        raw = await _describe_nodegroup(ctx, cluster_name, name)
        if raw is None:
            raise ProvisioningFailed(f"node group {name}", "missing")
        status = raw.get("status", "")
        if status in FAILED_STATES:
            issues = [i.get("message", "") for i in (raw.get("health") or {}).get("issues") or []]
            raise ProvisioningFailed(f"node group {name}", status, "; ".join(issues))
        latest.update(raw)
        return status == ACTIVE

    await wait_until(
        is_active,
        resource=f"node group {name}",
        target_state=ACTIVE,
        timeout_seconds=timeout,
        poll_interval_seconds=ctx.poll_interval,
    )
    return node_pool_state_from_api(latest)


async def create_node_pool(
    ctx: ReconcileContext,
    spec: ClusterSpec,
    pool_name: str,
    pool: NodePoolSpec,
    network: NetworkState,
    roles: IamRoles,
) -> NodePoolState:
    request = build_create_request(spec, pool_name, pool, network, roles)
    name = request["nodegroupName"]

    ctx.status.progress(
        f"Creating node pool {pool_name}",
        resource="node-pool",
        action="creating",
        node_pool=pool_name,
        instance_type=pool.instance_type,
    )
    await call(ctx.clients.eks.create_nodegroup, **request)
    state = await _wait_for_active(
        ctx, spec.cluster_name, name, ctx.config.timeouts.node_pool_create
    )
    ctx.status.success(
        f"Node pool {pool_name} created",
        resource="node-pool",
        action="created",
        node_pool=pool_name,
    )
    return state


async def reconcile_node_pool(
    ctx: ReconcileContext,
    spec: ClusterSpec,
    pool_name: str,
    pool: NodePoolSpec,
    actual: NodePoolState,
) -> bool:
    """Converge one existing node pool.

    Returns:
        True if an update was applied, False if already up to date.

    Raises:
        ImmutableFieldViolation: Instance, AMI or capacity type differs.
    """
    validate_node_pool_immutable(pool_name, pool, actual)

    update = compute_node_pool_update(pool_name, pool, actual)
    if not update:
        logger.debug(
            "Node pool up to date",
            extra={"node_pool": pool_name, "nodegroup": actual.name},
        )
        return False

    ctx.status.progress(
        f"Updating node pool {pool_name}",
        resource="node-pool",
        action="updating",
        node_pool=pool_name,
        fields=sorted(update),
    )
    await call(
        ctx.clients.eks.update_nodegroup_config,
        clusterName=spec.cluster_name,
        nodegroupName=actual.name,
        **update,
    )
    await _wait_for_active(
        ctx, spec.cluster_name, actual.name, ctx.config.timeouts.node_pool_update
    )
    ctx.status.success(
        f"Node pool {pool_name} updated",
        resource="node-pool",
        action="updated",
        node_pool=pool_name,
    )
    return True


async def delete_node_pool(ctx: ReconcileContext, cluster_name: str, actual: NodePoolState) -> None:
    """Delete one node group and wait until it is gone."""
    ctx.status.progress(
        f"Deleting node pool {actual.pool_name}",
        resource="node-pool",
        action="deleting",
        node_pool=actual.pool_name,
    )
    try:
        await call(
            ctx.clients.eks.delete_nodegroup, clusterName=cluster_name, nodegroupName=actual.name
        )
    except TransientProviderError as e:
        if is_not_found(e):
            return
        raise

    async def is_gone() -> bool:
        raw = await _describe_nodegroup(ctx, cluster_name, actual.name)
        if raw is not None and raw.get("status") == "DELETE_FAILED":
            raise ProvisioningFailed(f"node group {actual.name}", "DELETE_FAILED")
        return raw is None

    await wait_until(
        is_gone,
        resource=f"node group {actual.name}",
        target_state="deleted",
        timeout_seconds=ctx.config.timeouts.node_pool_delete,
        poll_interval_seconds=ctx.poll_interval,
    )
    ctx.status.success(
        f"Node pool {actual.pool_name} deleted",
        resource="node-pool",
        action="deleted",
        node_pool=actual.pool_name,
    )


# =============================================================================
# Fan-out
# =============================================================================


@dataclass
class NodePoolReport:
    """Outcome of one node-pool pass, by logical name."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failures: dict[str, BaseException] = field(default_factory=dict)

    @property
    def succeeded(self) -> list[str]:
        return sorted(self.created + self.updated + self.unchanged + self.deleted)

    @property
    def changes(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted)


# (logical name, job) where job returns the report bucket to record on success
_Job = tuple[str, Callable[[], Awaitable[str]]]


async def _run_concurrently(ctx: ReconcileContext, jobs: list[_Job]) -> NodePoolReport:
    report = NodePoolReport()
    semaphore = asyncio.Semaphore(ctx.config.max_concurrent_node_pools)
    lock = asyncio.Lock()

    async def run(pool_name: str, job: Callable[[], Awaitable[str]]) -> None:
        async with semaphore:
            try:
                bucket = await job()
            except Exception as e:
                logger.error(
                    "Node pool operation failed",
                    extra={
                        "node_pool": pool_name,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                ctx.status.error(
                    f"Node pool {pool_name} failed: {e}",
                    resource="node-pool",
                    action="failed",
                    node_pool=pool_name,
                )
                async with lock:
                    report.failures[pool_name] = e
                return
        async with lock:
            getattr(report, bucket).append(pool_name)

    tasks = [asyncio.create_task(run(name, job)) for name, job in jobs]
    if tasks:
        await asyncio.gather(*tasks)
    for bucket in (report.created, report.updated, report.unchanged, report.deleted):
        bucket.sort()
    return report


async def reconcile_node_pools(
    ctx: ReconcileContext,
    spec: ClusterSpec,
    network: NetworkState,
    cluster: ClusterState,
    roles: IamRoles,
    actual: list[NodePoolState],
) -> NodePoolReport:
    """Create, update and delete node pools concurrently.

    Raises:
        AggregatedPartialFailure: If any pool failed. Pools that succeeded
            stay applied and are listed on the error.
    """
    desired = spec.aws.node_groups
    plan = plan_node_pools(list(desired), actual)
    by_name = {pool.pool_name: pool for pool in actual}

    logger.info(
        "Reconciling node pools",
        extra={
            "cluster_name": cluster.name,
            "create": plan.create,
            "update": plan.update,
            "delete": [p.pool_name for p in plan.delete],
        },
    )

    def create_job(name: str) -> Callable[[], Awaitable[str]]:
        async def job() -> str:
            await create_node_pool(ctx, spec, name, desired[name], network, roles)
            return "created"

        return job

    def update_job(name: str) -> Callable[[], Awaitable[str]]:
        async def job() -> str:
            changed = await reconcile_node_pool(ctx, spec, name, desired[name], by_name[name])
            return "updated" if changed else "unchanged"

        return job

    def delete_job(pool: NodePoolState) -> Callable[[], Awaitable[str]]:
        async def job() -> str:
            await delete_node_pool(ctx, cluster.name, pool)
            return "deleted"

        return job

    jobs: list[_Job] = [(name, create_job(name)) for name in plan.create]
    jobs += [(name, update_job(name)) for name in plan.update]
    jobs += [(pool.pool_name, delete_job(pool)) for pool in plan.delete]

    report = await _run_concurrently(ctx, jobs)
    if report.failures:
        raise AggregatedPartialFailure(report.failures, report.succeeded)
    return report


async def delete_all_node_pools(ctx: ReconcileContext, cluster_name: str) -> list[str]:
    """Delete every owned node pool concurrently.

    Returns:
        Logical names of deleted pools.

    Raises:
        AggregatedPartialFailure: If any deletion failed.
    """
    pools = await discover_node_pools(ctx, cluster_name)
    if not pools:
        return []

    def delete_job(pool: NodePoolState) -> Callable[[], Awaitable[str]]:
        async def job() -> str:
            await delete_node_pool(ctx, cluster_name, pool)
            return "deleted"

        return job

    report = await _run_concurrently(ctx, [(p.pool_name, delete_job(p)) for p in pools])
    if report.failures:
        raise AggregatedPartialFailure(report.failures, report.succeeded)
    return report.deleted
