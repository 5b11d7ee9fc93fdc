"""Periodic sweep that expires generated assets past their retention window."""

import logging
import os
import time

from colorbook_assets import AssetError, AssetLifecycleManager, build_lifecycle_from_env
from colorbook_observability import (
    record_worker_heartbeat,
    setup_logging,
    start_metrics_server,
)

SERVICE_NAME = "asset_sweeper"
METRICS_PORT = int(os.getenv("SWEEPER_METRICS_PORT", "9500"))
SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", "3600"))
SWEEP_BATCH_SIZE = int(os.getenv("SWEEP_BATCH_SIZE", "100"))
# Upper bound on consecutive batches in one cycle so a backlog cannot starve the heartbeat.
MAX_BATCHES_PER_CYCLE = 50

setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)


def run_cycle(manager: AssetLifecycleManager, batch_size: int = SWEEP_BATCH_SIZE) -> int:
    """Sweep until no expired rows remain (or the per-cycle cap is hit); return rows expired."""

    deleted = 0
    for _ in range(MAX_BATCHES_PER_CYCLE):
        report = manager.sweep_expired(batch_size)
        deleted += report.deleted
        # Rows that failed stay eligible; stop instead of re-reading the same failures.
        if not report.has_more or report.deleted == 0:
            break
    return deleted


def main() -> None:
    manager = build_lifecycle_from_env(service_name=SERVICE_NAME)
    if manager is None:
        raise RuntimeError("DATABASE_URL and STORAGE_ROOT are required for the asset sweeper")

    start_metrics_server(METRICS_PORT)
    logger.info(
        "asset sweeper booted",
        extra={"metrics_port": METRICS_PORT, "interval_seconds": SWEEP_INTERVAL_SECONDS},
    )
    while True:
        record_worker_heartbeat(SERVICE_NAME)
        try:
            deleted = run_cycle(manager)
        except AssetError:
            logger.exception("asset sweep cycle failed; retrying next interval")
        else:
            logger.info("asset sweep cycle finished", extra={"deleted": deleted})
        time.sleep(SWEEP_INTERVAL_SECONDS)


if __name__ == "__main__":
    main()
