"""Mock IAM and STS clients."""

from __future__ import annotations

import copy
from datetime import UTC, datetime
from typing import Any

from .state import ACCOUNT_ID, MockClient, api


class MockIamClient(MockClient):
    """In-memory IAM roles with managed and inline policies."""

    @api("iam")
    def get_role(self, RoleName: str) -> dict:
        return {"Role": copy.deepcopy(self._role(RoleName, "get_role"))}

    @api("iam")
    def create_role(
        self,
        RoleName: str,
        AssumeRolePolicyDocument: str,
        Description: str = "",
        Tags: list[dict[str, str]] | None = None,
        PermissionsBoundary: str | None = None,
    ) -> dict:
        if RoleName in self.state.roles:
            raise self._error(
                "EntityAlreadyExists", f"Role with name {RoleName} already exists.", "create_role"
            )
        role: dict[str, Any] = {
            "RoleName": RoleName,
            "RoleId": self.state.new_id("AROA").upper(),
            "Arn": f"arn:aws:iam::{ACCOUNT_ID}:role/{RoleName}",
            "Path": "/",
            "CreateDate": datetime.now(UTC),
            "AssumeRolePolicyDocument": AssumeRolePolicyDocument,
            "Description": Description,
            "Tags": copy.deepcopy(Tags or []),
        }
        if PermissionsBoundary:
            role["PermissionsBoundary"] = {
                "PermissionsBoundaryType": "Policy",
                "PermissionsBoundaryArn": PermissionsBoundary,
            }
        self.state.roles[RoleName] = role
        self.state.attached_policies[RoleName] = []
        self.state.inline_policies[RoleName] = {}
        return {"Role": copy.deepcopy(role)}

    @api("iam")
    def attach_role_policy(self, RoleName: str, PolicyArn: str) -> dict:
        self._role(RoleName, "attach_role_policy")
        attached = self.state.attached_policies[RoleName]
        if PolicyArn not in attached:
            attached.append(PolicyArn)
        return {}

    @api("iam")
    def detach_role_policy(self, RoleName: str, PolicyArn: str) -> dict:
        self._role(RoleName, "detach_role_policy")
        attached = self.state.attached_policies[RoleName]
        if PolicyArn not in attached:
            raise self._error(
                "NoSuchEntity", f"Policy {PolicyArn} was not found.", "detach_role_policy"
            )
        attached.remove(PolicyArn)
        return {}

    @api("iam")
    def list_attached_role_policies(self, RoleName: str) -> dict:
        self._role(RoleName, "list_attached_role_policies")
        return {
            "AttachedPolicies": [
                {"PolicyName": arn.rsplit("/", 1)[-1], "PolicyArn": arn}
                for arn in self.state.attached_policies[RoleName]
            ],
            "IsTruncated": False,
        }

    @api("iam")
    def put_role_policy(self, RoleName: str, PolicyName: str, PolicyDocument: str) -> dict:
        self._role(RoleName, "put_role_policy")
        self.state.inline_policies[RoleName][PolicyName] = PolicyDocument
        return {}

    @api("iam")
    def list_role_policies(self, RoleName: str) -> dict:
        self._role(RoleName, "list_role_policies")
        return {"PolicyNames": sorted(self.state.inline_policies[RoleName]), "IsTruncated": False}

    @api("iam")
    def delete_role_policy(self, RoleName: str, PolicyName: str) -> dict:
        self._role(RoleName, "delete_role_policy")
        if self.state.inline_policies[RoleName].pop(PolicyName, None) is None:
            raise self._error(
                "NoSuchEntity", f"Policy {PolicyName} was not found.", "delete_role_policy"
            )
        return {}

    @api("iam")
    def delete_role(self, RoleName: str) -> dict:
        self._role(RoleName, "delete_role")
        if self.state.attached_policies[RoleName] or self.state.inline_policies[RoleName]:
            raise self._error(
                "DeleteConflict",
                "Cannot delete entity, must detach all policies first.",
                "delete_role",
            )
        del self.state.roles[RoleName]
        del self.state.attached_policies[RoleName]
        del self.state.inline_policies[RoleName]
        return {}

    def _role(self, name: str, operation: str) -> dict[str, Any]:
        role = self.state.roles.get(name)
        if role is None:
            raise self._error(
                "NoSuchEntity", f"The role with name {name} cannot be found.", operation
            )
        return role


class MockStsClient(MockClient):
    @api("sts")
    def get_caller_identity(self) -> dict:
        return {
            "UserId": "AIDAMOCKUSER",
            "Account": ACCOUNT_ID,
            "Arn": f"arn:aws:iam::{ACCOUNT_ID}:user/reconciler",
        }
