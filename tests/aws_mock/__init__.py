"""In-memory AWS mocks for integration testing.

The mock clients implement the subset of EC2, EKS, IAM, STS and classic ELB
that the reconciler calls, with realistic response shapes, tag filters,
dependency errors and delayed state transitions.
"""

from .context import MockAwsContext, fast_config, mock_aws_context
from .state import ACCOUNT_ID, MockAwsState, MockCall, client_error

__all__ = [
    "ACCOUNT_ID",
    "MockAwsContext",
    "MockAwsState",
    "MockCall",
    "client_error",
    "fast_config",
    "mock_aws_context",
]
