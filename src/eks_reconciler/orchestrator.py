"""Reconcile orchestrator.

Sequences the per-resource reconcilers for one project. Each stage starts
from a fresh discovery, so a pass that failed part way can simply be run
again: the next pass finds what exists and continues from there.

RECONCILE ORDER:
1. Network (VPC topology)
2. IAM roles
3. EKS control plane
4. Node pools (concurrent)

DESTROY ORDER:
1. Node pools
2. EKS control plane
3. Load balancers Kubernetes created
4. Network
5. IAM roles
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .clients import AwsClients, call
from .cluster import delete_cluster, reconcile_cluster
from .config import Config
from .context import ReconcileContext
from .discovery import (
    cluster_role_name,
    discover_cluster,
    discover_network,
    discover_node_pools,
    discover_roles,
    get_role,
    node_role_name,
)
from .errors import AggregatedPartialFailure, ProvisioningTimeout, ReconcileError
from .iam import delete_roles, ensure_roles
from .models import ClusterSpec
from .nodepools import NodePoolReport, delete_all_node_pools, reconcile_node_pools
from .planner import PlanActionType, ReconcilePlan, build_plan
from .state import ClusterState, IamRoles, InfrastructureState, NetworkState
from .status import StatusLevel, StatusReporter
from .teardown import (
    cleanup_kubernetes_load_balancers,
    delete_network,
    find_kubernetes_load_balancers,
)
from .topology import attach_cluster_security_group, ensure_network

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Stages of a reconcile or destroy pass."""

    NETWORK = "network"
    IAM = "iam"
    CLUSTER = "cluster"
    NODE_POOLS = "node-pools"
    LOAD_BALANCERS = "load-balancers"


@dataclass
class ReconcileResult:
    """Result of a single reconcile pass."""

    cluster_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    stages_completed: list[Stage] = field(default_factory=list)
    network: NetworkState | None = None
    roles: IamRoles | None = None
    cluster: ClusterState | None = None
    node_pools: NodePoolReport | None = None
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if reconciliation succeeded."""
        return self.error is None

    @property
    def partial_failure(self) -> bool:
        """True if only some node pools failed."""
        return isinstance(self.error, AggregatedPartialFailure)


@dataclass
class DestroyResult:
    """Result of a destroy pass (or a dry run of one)."""

    cluster_name: str
    dry_run: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    deleted: dict[str, list[str]] = field(default_factory=dict)
    would_delete: dict[str, list[str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        return self.error is None


class Orchestrator:
    """Runs reconcile, destroy, plan and query for one project.

    The orchestrator holds no AWS state between calls. Everything it needs
    comes in through the ReconcileContext.
    """

    def __init__(self, ctx: ReconcileContext) -> None:
        self._ctx = ctx

    @classmethod
    def for_spec(
        cls,
        spec: ClusterSpec,
        config: Config,
        status: StatusReporter | None = None,
    ) -> Orchestrator:
        """Build an orchestrator with AWS clients bound to the spec's region."""
        clients = AwsClients.from_config(spec.aws.region, config)
        ctx = ReconcileContext(clients=clients, config=config, status=status or StatusReporter())
        return cls(ctx)

    @property
    def context(self) -> ReconcileContext:
        return self._ctx

    # =========================================================================
    # Reconcile
    # =========================================================================

    async def reconcile(self, spec: ClusterSpec) -> ReconcileResult:
        """Converge AWS toward the spec under the overall deadline.

        Errors are recorded on the result, never raised, apart from
        programming errors and cancellation.
        """
        result = ReconcileResult(cluster_name=spec.cluster_name)
        timeout = self._ctx.config.reconcile_timeout_seconds

        try:
            await asyncio.wait_for(self._reconcile(spec, result), timeout=timeout)
        except TimeoutError:
            result.error = ProvisioningTimeout("reconcile pass", "complete", timeout)
        except ReconcileError as e:
            result.error = e
        finally:
            result.end_time = datetime.now(UTC)

        self._log_result(result)
        return result

    async def _reconcile(self, spec: ClusterSpec, result: ReconcileResult) -> None:
        ctx = self._ctx
        name = spec.cluster_name

        ctx.status.info(
            f"Reconciling cluster {name}",
            resource="cluster",
            action="reconciling",
            region=spec.aws.region,
        )

        network = await ensure_network(ctx, spec, await discover_network(ctx, name))
        result.network = network
        result.stages_completed.append(Stage.NETWORK)

        roles = await ensure_roles(ctx, name, spec.aws.permissions_boundary, spec.aws.tags)
        result.roles = roles
        result.stages_completed.append(Stage.IAM)

        cluster = await reconcile_cluster(
            ctx, spec, network, roles, await discover_cluster(ctx, name)
        )
        result.cluster = cluster
        if spec.aws.requires_private_access:
            await attach_cluster_security_group(ctx, network, cluster.cluster_security_group_id)
        result.stages_completed.append(Stage.CLUSTER)

        result.node_pools = await reconcile_node_pools(
            ctx, spec, network, cluster, roles, await discover_node_pools(ctx, name)
        )
        result.stages_completed.append(Stage.NODE_POOLS)

        ctx.status.success(
            f"Cluster {name} reconciled",
            resource="cluster",
            action="reconciled",
            node_pool_changes=result.node_pools.changes,
        )

    # =========================================================================
    # Destroy
    # =========================================================================

    async def destroy(
        self,
        spec: ClusterSpec,
        force: bool = False,
        dry_run: bool = False,
    ) -> DestroyResult:
        """Delete everything this tool owns for the project.

        Args:
            spec: Desired spec (only the project name and region are used).
            force: Downgrade load-balancer cleanup failures to warnings.
            dry_run: Report what would be deleted without deleting it.
        """
        result = DestroyResult(cluster_name=spec.cluster_name, dry_run=dry_run)
        timeout = self._ctx.config.reconcile_timeout_seconds

        try:
            if dry_run:
                result.would_delete = await asyncio.wait_for(
                    self._destroy_preview(spec.cluster_name), timeout=timeout
                )
            else:
                await asyncio.wait_for(
                    self._destroy(spec.cluster_name, force, result), timeout=timeout
                )
        except TimeoutError:
            result.error = ProvisioningTimeout("destroy pass", "complete", timeout)
        except ReconcileError as e:
            result.error = e
        finally:
            result.end_time = datetime.now(UTC)

        extra: dict[str, Any] = {
            "cluster_name": result.cluster_name,
            "dry_run": dry_run,
            "duration_seconds": result.duration_seconds,
            "deleted": result.deleted,
            "warnings": result.warnings,
        }
        if result.error is not None:
            extra["error"] = str(result.error)
            logger.error("Destroy failed", extra=extra)
        else:
            logger.info("Destroy result", extra=extra)
        return result

    async def _destroy(self, name: str, force: bool, result: DestroyResult) -> None:
        ctx = self._ctx
        ctx.status.info(f"Destroying cluster {name}", resource="cluster", action="destroying")

        result.deleted[Stage.NODE_POOLS.value] = await delete_all_node_pools(ctx, name)

        if await delete_cluster(ctx, name):
            result.deleted[Stage.CLUSTER.value] = [name]

        try:
            result.deleted[Stage.LOAD_BALANCERS.value] = await cleanup_kubernetes_load_balancers(
                ctx, name
            )
        except ReconcileError as e:
            if not force:
                raise
            message = f"Load balancer cleanup failed, continuing: {e}"
            result.warnings.append(message)
            ctx.status.warning(message, resource="load-balancer", action="cleanup")

        network = await discover_network(ctx, name)
        if await delete_network(ctx, name) and network is not None:
            result.deleted[Stage.NETWORK.value] = [network.vpc_id]

        result.deleted[Stage.IAM.value] = await delete_roles(ctx, name)

        ctx.status.success(f"Cluster {name} destroyed", resource="cluster", action="destroyed")

    async def _destroy_preview(self, name: str) -> dict[str, list[str]]:
        ctx = self._ctx
        preview: dict[str, list[str]] = {}

        cluster = await discover_cluster(ctx, name)
        pools = await discover_node_pools(ctx, name) if cluster else []
        if pools:
            preview[Stage.NODE_POOLS.value] = sorted(p.pool_name for p in pools)
        if cluster:
            preview[Stage.CLUSTER.value] = [cluster.name]

        load_balancers = await find_kubernetes_load_balancers(ctx, name)
        if load_balancers:
            preview[Stage.LOAD_BALANCERS.value] = load_balancers

        network = await discover_network(ctx, name)
        if network:
            preview[Stage.NETWORK.value] = [network.vpc_id]

        roles = [
            role_name
            for role_name in (cluster_role_name(name), node_role_name(name))
            if await get_role(ctx, role_name) is not None
        ]
        if roles:
            preview[Stage.IAM.value] = roles

        for stage, names in preview.items():
            ctx.status.info(
                f"Would delete {stage}: {', '.join(names)}",
                resource=stage,
                action="would-delete",
            )
        return preview

    # =========================================================================
    # Read-only operations
    # =========================================================================

    async def plan(self, spec: ClusterSpec) -> ReconcilePlan:
        """Discover and diff without making any mutating call."""
        state = await self._discover_all(spec)
        plan = build_plan(
            spec,
            state.network,
            state.roles,
            state.cluster,
            state.node_pools,
            region=self._ctx.region,
        )

        for planned in plan.actions:
            level = (
                StatusLevel.WARNING
                if planned.action == PlanActionType.BLOCKED
                else StatusLevel.INFO
            )
            self._ctx.status.emit(
                level,
                f"{planned.action.value}: {planned.resource} {planned.name}",
                resource=planned.resource,
                action=planned.action.value,
                **planned.details,
            )
        logger.info("Plan computed", extra={"cluster_name": spec.cluster_name, **plan.summary()})
        return plan

    async def query(self, spec: ClusterSpec) -> InfrastructureState | None:
        """Summarize what exists for the project, or None if nothing does."""
        state = await self._discover_all(spec)
        return state if state.exists else None

    async def validate_credentials(self) -> dict[str, str]:
        """Preflight check that the credential chain resolves to an identity."""
        response = await call(self._ctx.clients.sts.get_caller_identity)
        identity = {
            "account": response.get("Account", ""),
            "arn": response.get("Arn", ""),
            "user_id": response.get("UserId", ""),
        }
        logger.info("AWS credentials validated", extra=identity)
        return identity

    async def _discover_all(self, spec: ClusterSpec) -> InfrastructureState:
        ctx = self._ctx
        name = spec.cluster_name
        cluster = await discover_cluster(ctx, name)
        return InfrastructureState(
            cluster_name=name,
            region=ctx.region,
            network=await discover_network(ctx, name),
            cluster=cluster,
            node_pools=await discover_node_pools(ctx, name) if cluster else [],
            roles=await discover_roles(ctx, name),
        )

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconcile result with structured data."""
        extra: dict[str, Any] = {
            "cluster_name": result.cluster_name,
            "duration_seconds": result.duration_seconds,
            "stages_completed": [stage.value for stage in result.stages_completed],
        }
        if result.node_pools is not None:
            extra["node_pools_created"] = result.node_pools.created
            extra["node_pools_updated"] = result.node_pools.updated
            extra["node_pools_deleted"] = result.node_pools.deleted

        if isinstance(result.error, AggregatedPartialFailure):
            extra["failed_pools"] = result.error.failed_pools
            extra["succeeded_pools"] = result.error.succeeded
            extra["error"] = str(result.error)
            logger.warning("Reconciliation partially failed", extra=extra)
        elif result.error is not None:
            extra["error"] = str(result.error)
            extra["error_type"] = type(result.error).__name__
            logger.error("Reconciliation failed", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)
