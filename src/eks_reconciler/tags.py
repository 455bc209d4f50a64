"""Tag ownership protocol.

Every resource this tool creates carries a fixed set of tags. Discovery uses
them as server-side filters and checks them again client-side, so a resource
missing either the tool marker or the matching cluster-name tag is invisible:
it is never adopted, updated or deleted.

All functions in this module are pure.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

TAG_MANAGED_BY = "nic.nebari.dev/managed-by"
TAG_CLUSTER_NAME = "nic.nebari.dev/cluster-name"
TAG_RESOURCE_TYPE = "nic.nebari.dev/resource-type"
TAG_VERSION = "nic.nebari.dev/version"
TAG_NODE_POOL = "nic.nebari.dev/node-pool"

RESERVED_TAG_PREFIX = "nic.nebari.dev/"

MANAGED_BY_VALUE = "nic"
TOOL_VERSION = "0.1.0"

# Kubernetes load-balancer subnet discovery tags
PUBLIC_ELB_TAG = "kubernetes.io/role/public-elb"
PRIVATE_ELB_TAG = "kubernetes.io/role/private-elb"


class ResourceKind(str, Enum):
    """Value of the resource-type tag for each kind of managed resource."""

    VPC = "vpc"
    SUBNET = "subnet"
    INTERNET_GATEWAY = "internet-gateway"
    NAT_GATEWAY = "nat-gateway"
    ELASTIC_IP = "elastic-ip"
    ROUTE_TABLE = "route-table"
    SECURITY_GROUP = "security-group"
    VPC_ENDPOINT = "vpc-endpoint"
    EKS_CLUSTER = "eks-cluster"
    NODE_POOL = "node-pool"
    IAM_CLUSTER_ROLE = "iam-cluster-role"
    IAM_NODE_ROLE = "iam-node-role"


def merge_tags(nic_tags: dict[str, str], user_tags: dict[str, str] | None) -> dict[str, str]:
    """Merge user tags under tool tags.

    User tags are applied first so they can never override a reserved key.
    """
    merged = {
        key: value
        for key, value in (user_tags or {}).items()
        if not key.startswith(RESERVED_TAG_PREFIX)
    }
    merged.update(nic_tags)
    return merged


def tags_for(
    kind: ResourceKind,
    cluster_name: str,
    extra: dict[str, str] | None = None,
    user_tags: dict[str, str] | None = None,
) -> dict[str, str]:
    """Build the full tag set for a resource of the given kind.

    Args:
        kind: Resource kind recorded in the resource-type tag.
        cluster_name: Project / cluster name that owns the resource.
        extra: Additional non-reserved tags (Name, ELB role tags, ...).
        user_tags: Tags from the desired spec; reserved keys are dropped.

    Returns:
        Tag mapping with the ownership tags always present.
    """
    nic_tags = {
        TAG_MANAGED_BY: MANAGED_BY_VALUE,
        TAG_CLUSTER_NAME: cluster_name,
        TAG_RESOURCE_TYPE: kind.value,
        TAG_VERSION: TOOL_VERSION,
    }
    for key, value in (extra or {}).items():
        if key not in nic_tags:
            nic_tags[key] = value
    return merge_tags(nic_tags, user_tags)


def node_pool_tags(
    cluster_name: str,
    pool_name: str,
    user_tags: dict[str, str] | None = None,
) -> dict[str, str]:
    """Tags for a node pool, including the logical pool-name tag."""
    return tags_for(
        ResourceKind.NODE_POOL,
        cluster_name,
        extra={TAG_NODE_POOL: pool_name},
        user_tags=user_tags,
    )


def is_owned(tags: dict[str, str] | None, cluster_name: str) -> bool:
    """Check whether a resource is owned by this tool for the given cluster.

    Both the tool marker and the cluster-name tag must match exactly. Any
    other combination means "not owned", which callers treat as absent.
    """
    if not tags or not cluster_name:
        return False
    return (
        tags.get(TAG_MANAGED_BY) == MANAGED_BY_VALUE
        and tags.get(TAG_CLUSTER_NAME) == cluster_name
    )


def logical_pool_name(tags: dict[str, str] | None) -> str | None:
    """Return the logical node-pool name recorded on a node group, if any."""
    if not tags:
        return None
    return tags.get(TAG_NODE_POOL) or None


def resource_name(cluster_name: str, kind: str, suffix: str = "") -> str:
    """Consistent physical name with the cluster as prefix."""
    if suffix:
        return f"{cluster_name}-{kind}-{suffix}"
    return f"{cluster_name}-{kind}"


def tag_filters(cluster_name: str, kind: ResourceKind) -> list[dict[str, Any]]:
    """EC2 describe filters selecting owned resources of one kind."""
    return [
        {"Name": f"tag:{TAG_MANAGED_BY}", "Values": [MANAGED_BY_VALUE]},
        {"Name": f"tag:{TAG_CLUSTER_NAME}", "Values": [cluster_name]},
        {"Name": f"tag:{TAG_RESOURCE_TYPE}", "Values": [kind.value]},
    ]


# =============================================================================
# Wire format conversion
# =============================================================================
# EC2 and IAM use a list of {"Key", "Value"} pairs; EKS uses a plain mapping.


def to_ec2_tags(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in sorted(tags.items())]


def from_ec2_tags(tags: list[dict[str, str]] | None) -> dict[str, str]:
    result: dict[str, str] = {}
    for tag in tags or []:
        key = tag.get("Key")
        value = tag.get("Value")
        if key is not None and value is not None:
            result[key] = value
    return result


def tag_specification(resource_type: str, tags: dict[str, str]) -> list[dict[str, Any]]:
    """EC2 TagSpecifications parameter for create calls."""
    return [{"ResourceType": resource_type, "Tags": to_ec2_tags(tags)}]


to_iam_tags = to_ec2_tags
from_iam_tags = from_ec2_tags
