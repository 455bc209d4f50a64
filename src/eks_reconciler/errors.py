"""Error taxonomy for the reconciliation engine.

Every error raised by the engine derives from ReconcileError so that callers
can distinguish engine failures from programming errors.

ERROR CLASSES:
- ConfigurationError: invalid desired spec or runtime settings, raised before
  any API call is made. Never retried.
- ImmutableFieldViolation: a live resource differs from the desired spec on a
  field that cannot be changed in place. Carries remediation text.
- UpgradePathViolation: a Kubernetes version change that skips, downgrades or
  crosses a major version.
- ProvisioningTimeout: a bounded wait ran out. Safe to retry the whole pass.
- ProvisioningFailed: AWS reported a terminal failure state.
- TransientProviderError: surfaced from the AWS API boundary. The engine does
  not retry it; botocore's retry policy already has.
- DiscoveryError: the ownership invariant is broken (e.g. two owned VPCs).
- AggregatedPartialFailure: one or more node pools failed while others were
  applied successfully.
"""

from __future__ import annotations

from typing import Any


class ReconcileError(Exception):
    """Base class for all reconciliation errors."""

    pass


class ConfigurationError(ReconcileError):
    """Raised when configuration or desired spec validation fails."""

    pass


class DiscoveryError(ReconcileError):
    """Raised when discovery finds state that violates ownership invariants."""

    pass


class ImmutableFieldViolation(ReconcileError):
    """Raised when an immutable field differs between desired and actual state."""

    def __init__(
        self,
        resource: str,
        name: str,
        field: str,
        current: Any,
        desired: Any,
    ) -> None:
        self.resource = resource
        self.name = name
        self.field = field
        self.current = current
        self.desired = desired
        super().__init__(
            f"{resource} '{name}': {field} is immutable and cannot be changed "
            f"(current: {current!r}, desired: {desired!r}). Manual recreation required: "
            f"destroy and recreate the {resource}, or update the configuration "
            f"to match the current value."
        )


class UpgradePathViolation(ReconcileError):
    """Raised when a Kubernetes version change is not a single minor step."""

    pass


class ProvisioningTimeout(ReconcileError):
    """Raised when a resource does not reach its target state in time."""

    def __init__(self, resource: str, target_state: str, timeout_seconds: float) -> None:
        self.resource = resource
        self.target_state = target_state
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds:.0f}s waiting for {resource} "
            f"to become {target_state}"
        )


class ProvisioningFailed(ReconcileError):
    """Raised when AWS reports a terminal failure state for a resource."""

    def __init__(self, resource: str, status: str, detail: str = "") -> None:
        self.resource = resource
        self.status = status
        message = f"{resource} entered terminal state {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TransientProviderError(ReconcileError):
    """Raised when an AWS API call fails.

    Wraps botocore's ClientError/BotoCoreError, keeping the operation name and
    AWS error code so callers can branch on specific codes (NotFound,
    InvalidPermission.Duplicate, ...).
    """

    def __init__(self, operation: str, code: str, message: str) -> None:
        self.operation = operation
        self.code = code
        self.message = message
        super().__init__(f"{operation} failed ({code}): {message}")


class AggregatedPartialFailure(ReconcileError):
    """Raised when some node pools failed while the others were applied.

    Successful pools stay applied; re-running reconciliation retries only the
    failing subset because discovery finds the succeeded ones unchanged.
    """

    def __init__(
        self,
        failures: dict[str, BaseException],
        succeeded: list[str] | None = None,
    ) -> None:
        self.failures = dict(failures)
        self.succeeded = sorted(succeeded or [])
        lines = [f"  - {name}: {error}" for name, error in sorted(self.failures.items())]
        super().__init__(
            f"{len(self.failures)} node pool(s) failed to reconcile "
            f"({len(self.succeeded)} succeeded):\n" + "\n".join(lines)
        )

    @property
    def failed_pools(self) -> list[str]:
        """Logical names of the pools that failed."""
        return sorted(self.failures)
