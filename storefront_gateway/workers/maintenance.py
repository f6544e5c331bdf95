"""Periodic maintenance: expire stale payments and repair missing loyalty credits"""

import logging
import signal
import threading
from dataclasses import dataclass

from storefront_gateway.config import settings
from storefront_gateway.domain.exceptions import DomainException
from storefront_gateway.domain.loyalty import min_creditable_amount
from storefront_gateway.infrastructure.observability.logging import setup_logging
from storefront_gateway.services.container import build_orchestrator
from storefront_gateway.services.orchestrator import TransactionOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: int = 0
    credited: int = 0
    failed: int = 0


def sweep_expired_payments(orchestrator: TransactionOrchestrator, limit: int | None = None) -> SweepReport:
    """Expire open payments past their window, one batch at a time"""
    report = SweepReport()
    for payment_id in orchestrator.payments.find_expired_ids(limit=limit or settings.sweep_batch_size):
        try:
            if orchestrator.payments.expire(payment_id):
                report.expired += 1
        except DomainException as e:
            report.failed += 1
            logger.error(f"Failed to expire payment {payment_id}: {e}", extra={"payment_id": payment_id})
    return report


def repair_missing_credits(orchestrator: TransactionOrchestrator, limit: int | None = None) -> SweepReport:
    """
    Credit completed payments that never received their PURCHASE points.

    Safe to rerun: the credit is idempotent per payment. Payments too small
    to earn a point never get an entry, so they are left out of the batch.
    """
    report = SweepReport()
    min_amount = min_creditable_amount(orchestrator.points_per_unit)
    if min_amount is None:
        return report

    for payment in orchestrator.payments.find_uncredited(min_amount, limit=limit or settings.sweep_batch_size):
        try:
            change = orchestrator.credit_purchase(payment)
        except DomainException as e:
            report.failed += 1
            logger.error(f"Loyalty repair failed for payment {payment.id}: {e}", extra={"payment_id": payment.id})
            continue
        if change is not None and not change.duplicate:
            report.credited += 1
            logger.info(f"Repaired loyalty credit for payment {payment.id}", extra={"payment_id": payment.id})
    return report


def run_once(orchestrator: TransactionOrchestrator) -> SweepReport:
    expired = sweep_expired_payments(orchestrator)
    repaired = repair_missing_credits(orchestrator)
    report = SweepReport(
        expired=expired.expired,
        credited=repaired.credited,
        failed=expired.failed + repaired.failed,
    )
    if report.expired or report.credited or report.failed:
        logger.info(
            "Maintenance pass finished",
            extra={"expired": report.expired, "credited": report.credited, "failed": report.failed},
        )
    return report


class MaintenanceWorker:
    """
    Runs maintenance passes on an interval until shut down.

    SIGINT and SIGTERM stop the loop after the current pass.
    """

    def __init__(self, orchestrator: TransactionOrchestrator, interval_seconds: float | None = None):
        self.orchestrator = orchestrator
        self.interval_seconds = settings.sweep_interval_seconds if interval_seconds is None else interval_seconds
        self.running = False
        self._wakeup = threading.Event()

    def install_signal_handlers(self) -> None:
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, stopping maintenance worker")
            self.shutdown()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def shutdown(self) -> None:
        self.running = False
        self._wakeup.set()

    def run(self) -> int:
        """Loop until shutdown; returns the number of passes made"""
        self.running = True
        self._wakeup.clear()
        passes = 0
        logger.info(f"Maintenance worker started, interval {self.interval_seconds}s")

        while self.running:
            try:
                run_once(self.orchestrator)
            except DomainException as e:
                logger.error(f"Maintenance pass aborted: {e}")
            passes += 1
            if self.running:
                self._wakeup.wait(self.interval_seconds)

        logger.info(f"Maintenance worker stopped after {passes} passes")
        return passes


def main() -> None:
    setup_logging(settings.log_level)
    worker = MaintenanceWorker(build_orchestrator())
    worker.install_signal_handlers()
    worker.run()


if __name__ == "__main__":
    main()
