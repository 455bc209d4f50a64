"""EKS control plane reconciler.

CREATE: one CreateCluster call on the private subnets, then wait for ACTIVE.

UPDATE: immutable fields (VPC, KMS key) are checked before any call. Then:
1. Version change: validate the upgrade path, UpdateClusterVersion, wait.
2. Endpoint flags, public CIDRs and log export: one combined
   UpdateClusterConfig carrying only the parts that differ, then wait.

Every path ends with a fresh discovery.
"""

from __future__ import annotations

import logging
from typing import Any

from .clients import call, is_not_found
from .context import ReconcileContext
from .discovery import describe_cluster_raw, discover_cluster
from .errors import (
    ImmutableFieldViolation,
    ProvisioningFailed,
    TransientProviderError,
)
from .models import ClusterSpec
from .state import ClusterState, IamRoles, NetworkState
from .tags import ResourceKind, tags_for
from .version import validate_upgrade
from .waiters import wait_until

logger = logging.getLogger(__name__)

# Every control-plane log category EKS offers; the desired policy is "all on"
CLUSTER_LOG_TYPES = ("api", "audit", "authenticator", "controllerManager", "scheduler")

ACTIVE = "ACTIVE"
FAILED = "FAILED"


# =============================================================================
# Request builders (pure)
# =============================================================================


def build_create_request(
    spec: ClusterSpec,
    network: NetworkState,
    roles: IamRoles,
) -> dict[str, Any]:
    """Parameters for eks.create_cluster."""
    public, private = spec.aws.endpoint_flags
    vpc_config: dict[str, Any] = {
        "subnetIds": network.private_subnet_ids,
        "securityGroupIds": list(network.security_group_ids),
        "endpointPublicAccess": public,
        "endpointPrivateAccess": private,
    }
    if public:
        vpc_config["publicAccessCidrs"] = list(spec.aws.public_access_cidrs)

    request: dict[str, Any] = {
        "name": spec.cluster_name,
        "version": spec.aws.kubernetes_version,
        "roleArn": roles.cluster_role_arn,
        "resourcesVpcConfig": vpc_config,
        "logging": {"clusterLogging": [{"types": list(CLUSTER_LOG_TYPES), "enabled": True}]},
        "tags": tags_for(ResourceKind.EKS_CLUSTER, spec.cluster_name, user_tags=spec.aws.tags),
    }
    if spec.aws.kms_key_arn:
        request["encryptionConfig"] = [
            {"resources": ["secrets"], "provider": {"keyArn": spec.aws.kms_key_arn}}
        ]
    return request


def validate_cluster_immutable(
    spec: ClusterSpec,
    network: NetworkState,
    actual: ClusterState,
) -> None:
    """Raise ImmutableFieldViolation if the cluster would need recreation."""
    if actual.vpc_id and actual.vpc_id != network.vpc_id:
        raise ImmutableFieldViolation(
            "EKS cluster", actual.name, "vpc_id", actual.vpc_id, network.vpc_id
        )

    desired_key = spec.aws.kms_key_arn or ""
    current_key = actual.encryption_key_arn or ""
    if desired_key != current_key:
        raise ImmutableFieldViolation(
            "EKS cluster", actual.name, "kms_key_arn", current_key, desired_key
        )


def compute_config_update(spec: ClusterSpec, actual: ClusterState) -> dict[str, Any]:
    """Combined UpdateClusterConfig parameters, or {} when nothing differs.

    Public CIDRs are compared as sets and only while public access is on.
    """
    update: dict[str, Any] = {}

    public, private = spec.aws.endpoint_flags
    flags_differ = (actual.endpoint_public, actual.endpoint_private) != (public, private)
    cidrs_differ = public and set(actual.public_access_cidrs) != set(spec.aws.public_access_cidrs)
    if flags_differ or cidrs_differ:
        vpc_config: dict[str, Any] = {
            "endpointPublicAccess": public,
            "endpointPrivateAccess": private,
        }
        if public:
            vpc_config["publicAccessCidrs"] = list(spec.aws.public_access_cidrs)
        update["resourcesVpcConfig"] = vpc_config

    missing_logs = [t for t in CLUSTER_LOG_TYPES if t not in actual.enabled_log_types]
    if missing_logs:
        update["logging"] = {
            "clusterLogging": [{"types": list(CLUSTER_LOG_TYPES), "enabled": True}]
        }

    return update


# =============================================================================
# Reconcile
# =============================================================================


async def reconcile_cluster(
    ctx: ReconcileContext,
    spec: ClusterSpec,
    network: NetworkState,
    roles: IamRoles,
    actual: ClusterState | None,
) -> ClusterState:
    """Create the control plane or converge the existing one.

    Raises:
        ImmutableFieldViolation: VPC or KMS key differs.
        UpgradePathViolation: Version change is not a single minor step.
        ProvisioningTimeout: Cluster did not become ACTIVE in time.
        ProvisioningFailed: Cluster entered FAILED.
    """
    if actual is None:
        return await create_cluster(ctx, spec, network, roles)
    return await update_cluster(ctx, spec, network, actual)


async def create_cluster(
    ctx: ReconcileContext,
    spec: ClusterSpec,
    network: NetworkState,
    roles: IamRoles,
) -> ClusterState:
    name = spec.cluster_name
    request = build_create_request(spec, network, roles)

    ctx.status.progress(
        f"Creating EKS cluster {name}",
        resource="eks-cluster",
        action="creating",
        version=spec.aws.kubernetes_version,
    )
    await call(ctx.clients.eks.create_cluster, **request)
    logger.info(
        "CreateCluster accepted",
        extra={"cluster_name": name, "version": spec.aws.kubernetes_version},
    )

    await wait_for_cluster_active(ctx, name, ctx.config.timeouts.cluster_create)
    return await _rediscover(ctx, name, "created")


async def update_cluster(
    ctx: ReconcileContext,
    spec: ClusterSpec,
    network: NetworkState,
    actual: ClusterState,
) -> ClusterState:
    name = actual.name
    validate_cluster_immutable(spec, network, actual)

    desired_version = spec.aws.kubernetes_version
    version_changed = actual.version != desired_version
    if version_changed:
        validate_upgrade(actual.version, desired_version)

    config_update = compute_config_update(spec, actual)

    if not version_changed and not config_update:
        logger.debug("EKS cluster up to date", extra={"cluster_name": name})
        return actual

    if version_changed:
        ctx.status.progress(
            f"Upgrading EKS cluster {name} from {actual.version} to {desired_version}",
            resource="eks-cluster",
            action="upgrading",
            current_version=actual.version,
            desired_version=desired_version,
        )
        await call(ctx.clients.eks.update_cluster_version, name=name, version=desired_version)
        await wait_for_cluster_active(ctx, name, ctx.config.timeouts.cluster_update)

    if config_update:
        ctx.status.progress(
            f"Updating EKS cluster {name} configuration",
            resource="eks-cluster",
            action="updating",
            fields=sorted(config_update),
        )
        await call(ctx.clients.eks.update_cluster_config, name=name, **config_update)
        await wait_for_cluster_active(ctx, name, ctx.config.timeouts.cluster_update)

    return await _rediscover(ctx, name, "updated")


async def _rediscover(ctx: ReconcileContext, name: str, verb: str) -> ClusterState:
    cluster = await discover_cluster(ctx, name)
    if cluster is None:
        raise ProvisioningFailed(f"EKS cluster {name}", "missing", f"not found after being {verb}")
    ctx.status.success(
        f"EKS cluster {name} {verb}",
        resource="eks-cluster",
        action=verb,
        version=cluster.version,
        endpoint=cluster.endpoint,
    )
    return cluster


async def wait_for_cluster_active(ctx: ReconcileContext, name: str, timeout: float) -> None:
    async def is_active() -> bool:
        raw = await describe_cluster_raw(ctx, name)
        if raw is None:
            raise ProvisioningFailed(f"EKS cluster {name}", "missing")
        status = raw.get("status", "")
        if status == FAILED:
            raise ProvisioningFailed(f"EKS cluster {name}", status)
        return status == ACTIVE

    await wait_until(
        is_active,
        resource=f"EKS cluster {name}",
        target_state=ACTIVE,
        timeout_seconds=timeout,
        poll_interval_seconds=ctx.poll_interval,
    )


# =============================================================================
# Delete
# =============================================================================


async def delete_cluster(ctx: ReconcileContext, cluster_name: str) -> bool:
    """Delete the owned cluster and wait until it is gone.

    Returns:
        True if a cluster was deleted, False if none was found.
    """
    cluster = await discover_cluster(ctx, cluster_name)
    if cluster is None:
        logger.info("No EKS cluster to delete", extra={"cluster_name": cluster_name})
        return False

    ctx.status.progress(
        f"Deleting EKS cluster {cluster_name}", resource="eks-cluster", action="deleting"
    )
    try:
        await call(ctx.clients.eks.delete_cluster, name=cluster_name)
    except TransientProviderError as e:
        if not is_not_found(e):
            raise

    async def is_gone() -> bool:
        return await describe_cluster_raw(ctx, cluster_name) is None

    await wait_until(
        is_gone,
        resource=f"EKS cluster {cluster_name}",
        target_state="deleted",
        timeout_seconds=ctx.config.timeouts.cluster_delete,
        poll_interval_seconds=ctx.poll_interval,
    )
    ctx.status.success(
        f"EKS cluster {cluster_name} deleted", resource="eks-cluster", action="deleted"
    )
    return True
