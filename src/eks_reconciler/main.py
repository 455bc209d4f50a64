"""Main entry point for the EKS reconciler.

Runs one reconcile pass against the spec named by SPEC_FILE and exits. The
process keeps no state between runs: scheduling (cron, CI, a controller
loop) lives outside, and every run rediscovers what exists from AWS tags.

EXIT CODES:
- 0: cluster matches the spec
- 1: reconcile failed
- 2: configuration or spec error
- 3: some node pools failed, the rest were applied
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import UTC

from .config import Config
from .errors import AggregatedPartialFailure, ConfigurationError
from .orchestrator import Orchestrator, ReconcileResult
from .spec_loader import SpecLoadError, load_cluster_spec

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_PARTIAL_FAILURE = 3


def setup_logging(json_output: bool = True) -> None:
    """Configure structured logging with JSON output for production."""
    import json
    from datetime import datetime

    class JsonFormatter(logging.Formatter):
        """Format logs as JSON for structured logging."""

        # Attributes every LogRecord carries; anything else came from extra=
        reserved = frozenset(
            vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "taskName"}
        )

        def format(self, record: logging.LogRecord) -> str:
            log_data = {
                "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
                "level": record.levelname,
                "message": record.getMessage(),
                "logger": record.name,
            }
            for key, value in record.__dict__.items():
                if key not in self.reserved:
                    log_data[key] = value

            if record.exc_info:
                log_data["exception"] = self.formatException(record.exc_info)

            return json.dumps(log_data, default=str)

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    # Reduce noise from the AWS SDK
    for noisy in ("boto3", "botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def exit_code_for(result: ReconcileResult) -> int:
    """Map a reconcile result to a process exit code."""
    if result.success:
        return EXIT_SUCCESS
    if isinstance(result.error, AggregatedPartialFailure):
        return EXIT_PARTIAL_FAILURE
    if isinstance(result.error, ConfigurationError):
        return EXIT_CONFIG_ERROR
    return EXIT_FAILURE


async def main() -> int:
    """Run one reconcile pass.

    Returns:
        Exit code (see module docstring).
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Configuration error", extra={"error": str(e)})
        return EXIT_CONFIG_ERROR

    setup_logging(config.json_logging)
    logger = logging.getLogger(__name__)

    try:
        spec = load_cluster_spec(config.spec_file)
    except SpecLoadError as e:
        logger.error(
            "Failed to load cluster spec",
            extra={"error": str(e), "spec_file": str(config.spec_file)},
        )
        return EXIT_CONFIG_ERROR

    logger.info(
        "Starting EKS reconciler",
        extra={
            "cluster_name": spec.cluster_name,
            "region": spec.aws.region,
            "kubernetes_version": spec.aws.kubernetes_version,
            "node_pools": sorted(spec.aws.node_groups),
        },
    )

    orchestrator = Orchestrator.for_spec(spec, config)

    # A signal cancels the pass; cancellation reaches every poll sleep
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal, cancelling reconcile", extra={"signal": sig.name})
        if task is not None:
            task.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        result = await orchestrator.reconcile(spec)
    except asyncio.CancelledError:
        logger.warning("Reconcile cancelled", extra={"cluster_name": spec.cluster_name})
        return EXIT_FAILURE
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return EXIT_FAILURE
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    return exit_code_for(result)


def run() -> None:
    """Entry point for the reconciler process."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
