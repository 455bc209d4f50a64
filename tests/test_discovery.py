"""Tests for tag-based discovery."""

import logging

import pytest

from aws_mock import MockAwsContext
from eks_reconciler.context import ReconcileContext
from eks_reconciler.discovery import (
    cluster_state_from_api,
    discover_cluster,
    discover_network,
    discover_node_pools,
    discover_roles,
    node_pool_state_from_api,
)
from eks_reconciler.errors import DiscoveryError
from eks_reconciler.tags import (
    TAG_CLUSTER_NAME,
    TAG_MANAGED_BY,
    ResourceKind,
    node_pool_tags,
    tag_specification,
    tags_for,
)


def create_vpc(aws: MockAwsContext, tags: dict[str, str], cidr: str = "10.10.0.0/16") -> str:
    response = aws.ec2.create_vpc(CidrBlock=cidr, TagSpecifications=tag_specification("vpc", tags))
    return response["Vpc"]["VpcId"]


def create_subnet(aws: MockAwsContext, vpc_id: str) -> str:
    response = aws.ec2.create_subnet(
        VpcId=vpc_id, CidrBlock="10.10.0.0/20", AvailabilityZone="us-west-2a"
    )
    return response["Subnet"]["SubnetId"]


def create_cluster(aws: MockAwsContext, name: str, tags: dict[str, str]) -> None:
    vpc_id = create_vpc(aws, {})
    aws.eks.create_cluster(
        name=name,
        version="1.33",
        roleArn="arn:aws:iam::123456789012:role/x",
        resourcesVpcConfig={"subnetIds": [create_subnet(aws, vpc_id)]},
        tags=tags,
    )
    aws.state.clusters[name]["status"] = "ACTIVE"


class TestDiscoverNetwork:
    """Tests for discover_network."""

    @pytest.mark.asyncio
    async def test_nothing_found(self, ctx: ReconcileContext) -> None:
        """Test that an empty account yields None."""
        assert await discover_network(ctx, "demo") is None

    @pytest.mark.asyncio
    async def test_owned_vpc_found(self, aws: MockAwsContext, ctx: ReconcileContext) -> None:
        """Test that a VPC with the full ownership tags is discovered."""
        vpc_id = create_vpc(aws, tags_for(ResourceKind.VPC, "demo"))

        network = await discover_network(ctx, "demo")

        assert network is not None
        assert network.vpc_id == vpc_id
        assert network.cidr == "10.10.0.0/16"
        assert network.subnets == []
        assert network.internet_gateway_id == ""

    @pytest.mark.asyncio
    async def test_other_cluster_ignored(self, aws: MockAwsContext, ctx: ReconcileContext) -> None:
        """Test that a VPC owned by another cluster is invisible."""
        create_vpc(aws, tags_for(ResourceKind.VPC, "other"))
        assert await discover_network(ctx, "demo") is None

    @pytest.mark.asyncio
    async def test_partial_tags_ignored(self, aws: MockAwsContext, ctx: ReconcileContext) -> None:
        """Test that a cluster-name tag without the tool marker is not ownership."""
        create_vpc(aws, {TAG_CLUSTER_NAME: "demo", "Name": "demo-vpc"})
        create_vpc(aws, {TAG_MANAGED_BY: "someone-else", TAG_CLUSTER_NAME: "demo"})

        assert await discover_network(ctx, "demo") is None

    @pytest.mark.asyncio
    async def test_two_owned_vpcs(self, aws: MockAwsContext, ctx: ReconcileContext) -> None:
        """Test that two owned VPCs break the ownership invariant."""
        create_vpc(aws, tags_for(ResourceKind.VPC, "demo"))
        create_vpc(aws, tags_for(ResourceKind.VPC, "demo"), cidr="10.20.0.0/16")

        with pytest.raises(DiscoveryError) as exc_info:
            await discover_network(ctx, "demo")

        assert "2 VPCs" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unowned_subnet_ignored(self, aws: MockAwsContext, ctx: ReconcileContext) -> None:
        """Test that an untagged subnet inside the owned VPC is not adopted."""
        vpc_id = create_vpc(aws, tags_for(ResourceKind.VPC, "demo"))
        create_subnet(aws, vpc_id)

        network = await discover_network(ctx, "demo")

        assert network is not None
        assert network.subnets == []


class TestDiscoverCluster:
    """Tests for discover_cluster."""

    @pytest.mark.asyncio
    async def test_missing(self, ctx: ReconcileContext) -> None:
        """Test that a missing cluster yields None."""
        assert await discover_cluster(ctx, "demo") is None

    @pytest.mark.asyncio
    async def test_owned(self, aws: MockAwsContext, ctx: ReconcileContext) -> None:
        """Test that an owned cluster is converted to ClusterState."""
        create_cluster(aws, "demo", tags_for(ResourceKind.EKS_CLUSTER, "demo"))

        cluster = await discover_cluster(ctx, "demo")

        assert cluster is not None
        assert cluster.name == "demo"
        assert cluster.version == "1.33"
        assert cluster.status == "ACTIVE"
        assert cluster.cluster_security_group_id in aws.state.security_groups
        assert cluster.oidc_issuer.startswith("https://oidc.eks.us-west-2")

    @pytest.mark.asyncio
    async def test_unowned_treated_as_absent(
        self, aws: MockAwsContext, ctx: ReconcileContext, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a same-named cluster without our tags is not adopted."""
        create_cluster(aws, "demo", {"team": "data"})

        with caplog.at_level(logging.WARNING, logger="eks_reconciler.discovery"):
            assert await discover_cluster(ctx, "demo") is None

        assert "not managed by this tool" in caplog.text


class TestClusterStateFromApi:
    """Tests for cluster_state_from_api."""

    def test_conversion(self) -> None:
        """Test the DescribeCluster payload mapping."""
        state = cluster_state_from_api(
            {
                "name": "demo",
                "version": "1.33",
                "status": "ACTIVE",
                "resourcesVpcConfig": {
                    "vpcId": "vpc-1",
                    "subnetIds": ["subnet-1", "subnet-2"],
                    "clusterSecurityGroupId": "sg-eks",
                    "endpointPublicAccess": True,
                    "endpointPrivateAccess": False,
                    "publicAccessCidrs": ["203.0.113.0/24"],
                },
                "encryptionConfig": [
                    {"resources": ["secrets"], "provider": {"keyArn": "arn:aws:kms:key/1"}}
                ],
                "logging": {
                    "clusterLogging": [
                        {"types": ["audit", "api"], "enabled": True},
                        {"types": ["scheduler"], "enabled": False},
                    ]
                },
            }
        )

        assert state.vpc_id == "vpc-1"
        assert state.subnet_ids == ["subnet-1", "subnet-2"]
        assert state.endpoint_public is True
        assert state.endpoint_private is False
        assert state.public_access_cidrs == ["203.0.113.0/24"]
        assert state.encryption_key_arn == "arn:aws:kms:key/1"
        assert state.enabled_log_types == ["api", "audit"]

    def test_sparse_payload(self) -> None:
        """Test that missing sections produce empty defaults."""
        state = cluster_state_from_api({"name": "demo"})
        assert state.enabled_log_types == []
        assert state.encryption_key_arn == ""
        assert state.oidc_issuer == ""


class TestDiscoverNodePools:
    """Tests for discover_node_pools."""

    @pytest.mark.asyncio
    async def test_missing_cluster(self, ctx: ReconcileContext) -> None:
        """Test that a missing cluster yields no node pools."""
        assert await discover_node_pools(ctx, "demo") == []

    @pytest.mark.asyncio
    async def test_filters_by_ownership(self, aws: MockAwsContext, ctx: ReconcileContext) -> None:
        """Test that only owned node groups carrying a pool tag are returned."""
        create_cluster(aws, "demo", tags_for(ResourceKind.EKS_CLUSTER, "demo"))
        common = {"nodeRole": "arn:aws:iam::123456789012:role/n", "subnets": ["subnet-1"]}
        aws.eks.create_nodegroup(
            clusterName="demo",
            nodegroupName="demo-ng-general",
            tags=node_pool_tags("demo", "general"),
            **common,
        )
        aws.eks.create_nodegroup(
            clusterName="demo",
            nodegroupName="demo-ng-untagged",
            tags=tags_for(ResourceKind.NODE_POOL, "demo"),
            **common,
        )
        aws.eks.create_nodegroup(
            clusterName="demo", nodegroupName="manual", tags={"team": "x"}, **common
        )

        pools = await discover_node_pools(ctx, "demo")

        assert [p.pool_name for p in pools] == ["general"]
        assert pools[0].name == "demo-ng-general"
        assert pools[0].cluster_name == "demo"


class TestNodePoolStateFromApi:
    """Tests for node_pool_state_from_api."""

    def test_conversion(self) -> None:
        """Test the DescribeNodegroup payload mapping."""
        state = node_pool_state_from_api(
            {
                "nodegroupName": "demo-ng-gpu",
                "clusterName": "demo",
                "status": "DEGRADED",
                "scalingConfig": {"minSize": 1, "maxSize": 4, "desiredSize": 2},
                "instanceTypes": ["g4dn.xlarge"],
                "capacityType": "SPOT",
                "taints": [{"key": "gpu", "value": "true", "effect": "NO_SCHEDULE"}],
                "health": {"issues": [{"code": "AsgInstanceLaunchFailures"}]},
                "tags": node_pool_tags("demo", "gpu"),
            }
        )

        assert state.pool_name == "gpu"
        assert (state.min_size, state.max_size, state.desired_size) == (1, 4, 2)
        assert state.taints[0].effect == "NO_SCHEDULE"
        assert state.health_issues == ["AsgInstanceLaunchFailures"]
        assert state.capacity_type == "SPOT"


class TestDiscoverRoles:
    """Tests for discover_roles."""

    @pytest.mark.asyncio
    async def test_requires_both_roles(self, aws: MockAwsContext, ctx: ReconcileContext) -> None:
        """Test that one role alone is reported as no roles."""
        aws.iam.create_role(RoleName="demo-cluster-role", AssumeRolePolicyDocument="{}")
        assert await discover_roles(ctx, "demo") is None

        aws.iam.create_role(RoleName="demo-node-role", AssumeRolePolicyDocument="{}")
        roles = await discover_roles(ctx, "demo")

        assert roles is not None
        assert roles.cluster_role_arn.endswith(":role/demo-cluster-role")
        assert roles.node_role_name == "demo-node-role"
