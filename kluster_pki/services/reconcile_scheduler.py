"""
Background scheduler re-running the certificate reconcile of all clusters.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

import schedule
from sqlalchemy.exc import SQLAlchemyError

from .certificate_service import CertificateService, ReconcileResult


class ReconcileScheduler:
    """Runs ``CertificateService.reconcile_all`` every few minutes in a daemon thread."""

    def __init__(self, certificate_service: CertificateService, interval_minutes: int = 60,
                 poll_seconds: float = 30.0):
        """
        Initialize the scheduler.

        Args:
            certificate_service: Service doing the actual reconcile
            interval_minutes: Minutes between two runs
            poll_seconds: How often the loop looks for due jobs
        """
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        self.certificate_service = certificate_service
        self.interval_minutes = interval_minutes
        self.poll_seconds = poll_seconds
        self.logger = logging.getLogger(__name__)

        self._scheduler = schedule.Scheduler()
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._running = False
        self._total_runs = 0
        self._last_results: List[ReconcileResult] = []
        self._last_run: Optional[datetime] = None

    def start(self) -> None:
        if self._running:
            self.logger.warning("Reconcile scheduler is already running")
            return

        self._scheduler.clear()
        self._scheduler.every(self.interval_minutes).minutes.do(self.run_once)
        self._stop.clear()
        self._running = True

        self._thread = threading.Thread(target=self._run_loop, name="reconcile-scheduler", daemon=True)
        self._thread.start()
        self.logger.info(f"Reconcile scheduler started, running every {self.interval_minutes} minutes")

    def stop(self) -> None:
        if not self._running:
            return

        self._stop.set()
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._scheduler.clear()
        self.logger.info("Reconcile scheduler stopped")

    def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self._scheduler.run_pending()
            except Exception:
                self.logger.exception("Scheduled reconcile job raised, keeping the scheduler alive")
            self._stop.wait(self.poll_seconds)

    def run_once(self) -> List[ReconcileResult]:
        """Reconcile all clusters now; a failing run is logged and never ends the scheduler."""
        self.logger.info("Starting scheduled certificate reconcile")
        try:
            results = self.certificate_service.reconcile_all()
        except SQLAlchemyError as e:
            self.logger.error(f"Scheduled reconcile failed: {e}")
            results = []
        except Exception:
            self.logger.exception("Scheduled reconcile failed unexpectedly")
            results = []
        self._total_runs += 1
        self._last_results = results
        self._last_run = datetime.now()
        return results

    def is_running(self) -> bool:
        return self._running

    def next_run(self) -> Optional[datetime]:
        if not self._running or not self._scheduler.jobs:
            return None
        return self._scheduler.next_run

    def get_stats(self) -> Dict[str, Any]:
        next_run = self.next_run()
        return {
            'running': self._running,
            'interval_minutes': self.interval_minutes,
            'total_runs': self._total_runs,
            'last_run': self._last_run.isoformat() if self._last_run else None,
            'next_run': next_run.isoformat() if next_run else None,
            'last_failures': [r.cluster for r in self._last_results if not r.success],
        }
