"""Background worker: recovery, review timers and notification delivery.

    python -m contentflow.worker --init-db
    python -m contentflow.worker --once

On start the worker recovers every live instance (pending projections,
undelivered inbox events, overdue timers), then polls for parked
projections, due review timers and pending notifications until stopped.
"""

import argparse
import signal
import sys
import threading
from typing import Optional

from contentflow.config import LOG_JSON, LOG_LEVEL, TIMER_POLL_SECONDS, load_workflow_config
from contentflow.db import init_db
from contentflow.engine import WorkflowRuntime
from contentflow.exceptions import ContentFlowError
from contentflow.logging import configure_structlog, get_logger
from contentflow.notifications import NotificationDispatcher

logger = get_logger(__name__)


class Worker:
    """Drives timers and the notification outbox on a fixed interval."""

    def __init__(
        self,
        runtime: WorkflowRuntime,
        dispatcher: NotificationDispatcher,
        poll_interval: float = TIMER_POLL_SECONDS,
    ):
        self.runtime = runtime
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()

    def run_once(self) -> dict[str, int]:
        settled = self.runtime.settle_parked()
        fired = self.runtime.fire_due_timers()
        delivered = self.dispatcher.dispatch_pending()
        return {
            "projections_settled": settled,
            "timers_fired": fired,
            "notifications_delivered": delivered,
        }

    def run(self) -> None:
        recovered = self.runtime.recover()
        logger.info("worker_started", recovered=recovered, poll_interval_s=self.poll_interval)
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                # Retried on the next poll
                logger.exception("worker_poll_failed")
            self._stop_event.wait(self.poll_interval)
        logger.info("worker_stopped")

    def stop(self) -> None:
        self._stop_event.set()


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Content approval worker")
    parser.add_argument(
        "--config",
        "-c",
        help="Path to approval workflow YAML (validated on start)",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create tables before starting",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Recover, run a single poll and exit",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=TIMER_POLL_SECONDS,
        help="Seconds between timer polls",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=LOG_JSON,
        help="Emit JSON log lines",
    )

    args = parser.parse_args(argv)
    configure_structlog(json_format=args.json_logs, log_level=LOG_LEVEL)

    try:
        config = load_workflow_config(args.config)
        logger.info(
            "config_loaded",
            review_timeout_s=config.review_timeout.total_seconds(),
            max_revision_count=config.max_revision_count,
            validation_enabled=config.validation_enabled,
        )

        if args.init_db:
            init_db()

        worker = Worker(
            WorkflowRuntime(),
            NotificationDispatcher(),
            poll_interval=args.poll_interval,
        )

        if args.once:
            worker.runtime.recover()
            result = worker.run_once()
            logger.info("worker_poll_complete", **result)
            return

        signal.signal(signal.SIGTERM, lambda signum, frame: worker.stop())
        signal.signal(signal.SIGINT, lambda signum, frame: worker.stop())
        worker.run()

    except ContentFlowError as e:
        logger.error("worker_failed", **e.to_dict())
        sys.exit(1)


if __name__ == "__main__":
    main()
