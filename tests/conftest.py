"""Pytest configuration and fixtures."""

import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for aws_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from aws_mock import MockAwsContext  # noqa: E402
from eks_reconciler.cluster import reconcile_cluster  # noqa: E402
from eks_reconciler.context import ReconcileContext  # noqa: E402
from eks_reconciler.models import ClusterSpec  # noqa: E402
from eks_reconciler.spec_loader import parse_cluster_spec  # noqa: E402
from eks_reconciler.state import ClusterState, IamRoles, NetworkState  # noqa: E402
from eks_reconciler.status import StatusEvent, StatusReporter  # noqa: E402
from eks_reconciler.topology import ensure_network  # noqa: E402

# Role ARNs are not validated by the mock, so tests that skip IAM use these
ROLES = IamRoles(
    cluster_role_arn="arn:aws:iam::123456789012:role/demo-cluster-role",
    node_role_arn="arn:aws:iam::123456789012:role/demo-node-role",
    cluster_role_name="demo-cluster-role",
    node_role_name="demo-node-role",
)


def make_spec(
    project_name: str = "demo",
    node_groups: dict[str, Any] | None = None,
    **aws: Any,
) -> ClusterSpec:
    """Build a validated spec with one general pool unless told otherwise."""
    settings: dict[str, Any] = {
        "region": "us-west-2",
        "kubernetes_version": "1.33",
        "node_groups": node_groups or {"general": {"instance": "m5.large"}},
    }
    settings.update(aws)
    return parse_cluster_spec(
        {"project_name": project_name, "amazon_web_services": settings}
    )


@pytest.fixture
def spec() -> ClusterSpec:
    return make_spec()


@pytest.fixture
def aws() -> Generator[MockAwsContext, None, None]:
    """A mock AWS account with four zones in us-west-2."""
    with MockAwsContext() as ctx:
        yield ctx


@pytest.fixture
def events() -> list[StatusEvent]:
    """Collects status events emitted through the ctx fixture."""
    return []


@pytest.fixture
def ctx(aws: MockAwsContext, events: list[StatusEvent]) -> ReconcileContext:
    return aws.reconcile_context(status=StatusReporter(handler=events.append))


async def control_plane(
    ctx: ReconcileContext, spec: ClusterSpec
) -> tuple[NetworkState, ClusterState]:
    """Build the network and an ACTIVE cluster for node pool tests."""
    network = await ensure_network(ctx, spec, None)
    cluster = await reconcile_cluster(ctx, spec, network, ROLES, None)
    return network, cluster
