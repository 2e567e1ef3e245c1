"""
Tests for the background reconcile scheduler.
"""
import time
import unittest
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from kluster_pki.services.certificate_service import ReconcileResult
from kluster_pki.services.reconcile_scheduler import ReconcileScheduler


class TestReconcileScheduler(unittest.TestCase):

    def setUp(self):
        self.certificate_service = MagicMock()
        self.certificate_service.reconcile_all.return_value = [
            ReconcileResult("a"),
            ReconcileResult("b", error_message="Cluster not found: b"),
        ]
        self.scheduler = ReconcileScheduler(self.certificate_service, interval_minutes=5, poll_seconds=0.01)

    def tearDown(self):
        self.scheduler.stop()

    def test_interval_must_be_positive(self):
        with self.assertRaises(ValueError):
            ReconcileScheduler(self.certificate_service, interval_minutes=0)

    def test_run_once(self):
        results = self.scheduler.run_once()

        self.assertEqual(len(results), 2)
        stats = self.scheduler.get_stats()
        self.assertEqual(stats["total_runs"], 1)
        self.assertEqual(stats["last_failures"], ["b"])
        self.assertIsNotNone(stats["last_run"])

    def test_database_errors_do_not_escape(self):
        self.certificate_service.reconcile_all.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        self.assertEqual(self.scheduler.run_once(), [])
        self.assertEqual(self.scheduler.get_stats()["total_runs"], 1)

    def test_unexpected_errors_do_not_escape(self):
        self.certificate_service.reconcile_all.side_effect = RuntimeError("boom")

        with self.assertLogs("kluster_pki.services.reconcile_scheduler", level="ERROR"):
            self.assertEqual(self.scheduler.run_once(), [])
        self.assertEqual(self.scheduler.get_stats()["total_runs"], 1)

    def test_loop_survives_a_failing_job(self):
        calls = []

        def run_pending():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("job blew up")

        self.scheduler._scheduler.run_pending = run_pending
        self.scheduler.start()
        deadline = time.monotonic() + 5
        while len(calls) < 3 and time.monotonic() < deadline:
            time.sleep(0.01)

        self.assertGreaterEqual(len(calls), 3)
        self.assertTrue(self.scheduler._thread.is_alive())

    def test_initial_stats(self):
        stats = self.scheduler.get_stats()
        self.assertEqual(stats, {
            'running': False,
            'interval_minutes': 5,
            'total_runs': 0,
            'last_run': None,
            'next_run': None,
            'last_failures': [],
        })

    def test_start_and_stop(self):
        self.scheduler.start()
        self.assertTrue(self.scheduler.is_running())
        self.assertIsNotNone(self.scheduler.next_run())
        self.assertEqual(len(self.scheduler._scheduler.jobs), 1)

        # a second start keeps the single job
        self.scheduler.start()
        self.assertEqual(len(self.scheduler._scheduler.jobs), 1)

        self.scheduler.stop()
        self.assertFalse(self.scheduler.is_running())
        self.assertIsNone(self.scheduler.next_run())
        self.assertFalse(self.scheduler._thread.is_alive())
        # the job is not due yet
        self.certificate_service.reconcile_all.assert_not_called()


if __name__ == '__main__':
    unittest.main()
