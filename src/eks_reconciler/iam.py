"""IAM trust roles for the control plane and worker nodes."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .clients import call, is_not_found, paginate
from .context import ReconcileContext
from .discovery import cluster_role_name, get_role, node_role_name, role_is_owned
from .errors import TransientProviderError
from .state import IamRoles
from .tags import ResourceKind, tags_for, to_iam_tags

logger = logging.getLogger(__name__)

MANAGED_POLICY_ARN_PREFIX = "arn:aws:iam::aws:policy/"

CLUSTER_ROLE_POLICIES = (
    "AmazonEKSClusterPolicy",
    "AmazonEKSVPCResourceController",
)
NODE_ROLE_POLICIES = (
    "AmazonEKSWorkerNodePolicy",
    "AmazonEKS_CNI_Policy",
    "AmazonEC2ContainerRegistryReadOnly",
)

EKS_SERVICE_PRINCIPAL = "eks.amazonaws.com"
EC2_SERVICE_PRINCIPAL = "ec2.amazonaws.com"


def trust_policy(service: str) -> str:
    """AssumeRole trust policy document for one AWS service principal."""
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Service": service},
                    "Action": "sts:AssumeRole",
                }
            ],
        }
    )


def policy_arns(names: tuple[str, ...]) -> list[str]:
    return [f"{MANAGED_POLICY_ARN_PREFIX}{name}" for name in names]


@dataclass(frozen=True)
class RoleTemplate:
    name_fn: Callable[[str], str]
    kind: ResourceKind
    principal: str
    policies: tuple[str, ...]
    description: str


ROLE_TEMPLATES = (
    RoleTemplate(
        cluster_role_name,
        ResourceKind.IAM_CLUSTER_ROLE,
        EKS_SERVICE_PRINCIPAL,
        CLUSTER_ROLE_POLICIES,
        "EKS cluster role",
    ),
    RoleTemplate(
        node_role_name,
        ResourceKind.IAM_NODE_ROLE,
        EC2_SERVICE_PRINCIPAL,
        NODE_ROLE_POLICIES,
        "EKS node role",
    ),
)


async def ensure_roles(
    ctx: ReconcileContext,
    cluster_name: str,
    permissions_boundary: str | None = None,
    user_tags: dict[str, str] | None = None,
) -> IamRoles:
    """Return both roles, creating whichever is missing.

    Owned roles that already exist get any missing managed policies attached
    again. Roles not tagged as ours are used as-is.
    """
    arns: dict[ResourceKind, tuple[str, str]] = {}

    for template in ROLE_TEMPLATES:
        role_name = template.name_fn(cluster_name)
        role = await get_role(ctx, role_name)
        if role is None:
            role = await _create_role(
                ctx,
                cluster_name,
                role_name,
                template,
                permissions_boundary,
                user_tags,
            )
        elif not role_is_owned(role, cluster_name):
            logger.warning(
                "IAM role exists but is not tagged as managed by this tool; using it as-is",
                extra={"role_name": role_name, "cluster_name": cluster_name},
            )
        else:
            await _attach_missing_policies(ctx, role_name, template)
        arns[template.kind] = (role["Arn"], role["RoleName"])

    cluster_arn, cluster_role = arns[ResourceKind.IAM_CLUSTER_ROLE]
    node_arn, node_role = arns[ResourceKind.IAM_NODE_ROLE]
    return IamRoles(
        cluster_role_arn=cluster_arn,
        node_role_arn=node_arn,
        cluster_role_name=cluster_role,
        node_role_name=node_role,
    )


async def _create_role(
    ctx: ReconcileContext,
    cluster_name: str,
    role_name: str,
    template: RoleTemplate,
    permissions_boundary: str | None,
    user_tags: dict[str, str] | None,
) -> dict[str, Any]:
    ctx.status.progress(
        f"Creating IAM role {role_name}", resource=template.kind.value, action="creating"
    )
    params: dict[str, Any] = {
        "RoleName": role_name,
        "AssumeRolePolicyDocument": trust_policy(template.principal),
        "Description": f"{template.description} for {cluster_name}",
        "Tags": to_iam_tags(tags_for(template.kind, cluster_name, user_tags=user_tags)),
    }
    if permissions_boundary:
        params["PermissionsBoundary"] = permissions_boundary

    response = await call(ctx.clients.iam.create_role, **params)
    role = response["Role"]

    for arn in policy_arns(template.policies):
        await call(ctx.clients.iam.attach_role_policy, RoleName=role_name, PolicyArn=arn)

    logger.info(
        "Created IAM role",
        extra={
            "role_name": role_name,
            "role_arn": role["Arn"],
            "policies": list(template.policies),
        },
    )
    ctx.status.success(
        f"IAM role {role_name} created", resource=template.kind.value, action="created"
    )
    return role


async def _attach_missing_policies(
    ctx: ReconcileContext, role_name: str, template: RoleTemplate
) -> list[str]:
    """Attach template policies absent from an existing owned role.

    Covers a previous pass that created the role but failed part way
    through attaching its policies.
    """
    iam = ctx.clients.iam
    attached = await paginate(
        iam, "list_attached_role_policies", "AttachedPolicies", RoleName=role_name
    )
    present = {policy["PolicyArn"] for policy in attached}
    missing = [arn for arn in policy_arns(template.policies) if arn not in present]

    for arn in missing:
        await call(iam.attach_role_policy, RoleName=role_name, PolicyArn=arn)

    if missing:
        logger.warning(
            "Re-attached missing managed policies to IAM role",
            extra={"role_name": role_name, "policies": missing},
        )
    return missing


async def delete_roles(ctx: ReconcileContext, cluster_name: str) -> list[str]:
    """Delete both roles if present and owned.

    Managed policies are detached and inline policies deleted first, since
    IAM refuses to delete a role that still has either.

    Returns:
        Names of the roles deleted.
    """
    deleted: list[str] = []
    for role_name in (cluster_role_name(cluster_name), node_role_name(cluster_name)):
        role = await get_role(ctx, role_name)
        if role is None:
            continue
        if not role_is_owned(role, cluster_name):
            logger.warning(
                "Skipping IAM role not managed by this tool",
                extra={"role_name": role_name, "cluster_name": cluster_name},
            )
            continue
        await _delete_role(ctx, role_name)
        deleted.append(role_name)
    return deleted


async def _delete_role(ctx: ReconcileContext, role_name: str) -> None:
    iam = ctx.clients.iam
    ctx.status.progress(f"Deleting IAM role {role_name}", resource="iam-role", action="deleting")

    attached = await paginate(
        iam, "list_attached_role_policies", "AttachedPolicies", RoleName=role_name
    )
    for policy in attached:
        await call(iam.detach_role_policy, RoleName=role_name, PolicyArn=policy["PolicyArn"])

    inline = await paginate(iam, "list_role_policies", "PolicyNames", RoleName=role_name)
    for policy_name in inline:
        await call(iam.delete_role_policy, RoleName=role_name, PolicyName=policy_name)

    try:
        await call(iam.delete_role, RoleName=role_name)
    except TransientProviderError as e:
        if not is_not_found(e):
            raise
    logger.info("Deleted IAM role", extra={"role_name": role_name})
