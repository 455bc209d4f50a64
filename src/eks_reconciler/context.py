"""Per-pass dependencies passed explicitly to every reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field

from .clients import AwsClients
from .config import Config
from .status import StatusReporter


@dataclass(frozen=True)
class ReconcileContext:
    """Bundle of API clients, runtime config and status sink.

    One context is built per reconcile, destroy or query call. Nothing here
    caches AWS state.
    """

    clients: AwsClients
    config: Config = field(default_factory=Config)
    status: StatusReporter = field(default_factory=StatusReporter)

    @property
    def region(self) -> str:
        return self.clients.region

    @property
    def poll_interval(self) -> float:
        return self.config.poll_interval_seconds
