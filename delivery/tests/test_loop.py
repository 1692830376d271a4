"""
Tests for the worker loop and management commands.
"""

from io import StringIO
from unittest.mock import MagicMock, patch

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase

from delivery.loop import run_loop


class StopLoop(Exception):
    pass


class RunLoopTests(SimpleTestCase):
    """Test suite for run_loop."""

    def setUp(self):
        """Set up test fixtures."""
        patcher = patch("delivery.loop.close_old_connections")
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_once_returns_tick_result(self):
        """Test --once runs a single tick and returns its result."""
        tick = MagicMock(return_value={"sent": 3})
        sleep = MagicMock()

        result = run_loop("test", tick, interval=5, heartbeat_interval=30, once=True, sleep=sleep)

        self.assertEqual(result, {"sent": 3})
        tick.assert_called_once_with()
        sleep.assert_not_called()

    def test_tick_error_does_not_stop_loop(self):
        """Test a failing tick is logged and the loop keeps going."""
        tick = MagicMock(side_effect=[RuntimeError("db gone"), {"ok": True}, {"ok": True}])
        sleep = MagicMock(side_effect=[None, None, StopLoop()])

        with self.assertRaises(StopLoop):
            run_loop("test", tick, interval=5, heartbeat_interval=30, sleep=sleep)

        self.assertEqual(tick.call_count, 3)
        sleep.assert_called_with(5)

    def test_heartbeat_logged(self):
        """Test a heartbeat is logged once the interval has passed."""
        clock = MagicMock(side_effect=[0, 31, 31, 40])
        sleep = MagicMock(side_effect=StopLoop())

        with self.assertLogs("delivery.loop", level="INFO") as logs:
            with self.assertRaises(StopLoop):
                run_loop("test", MagicMock(), interval=5, heartbeat_interval=30, sleep=sleep, clock=clock)

        self.assertTrue(any("test heartbeat" in line for line in logs.output))


class WorkerCommandTests(TestCase):
    """Test suite for the worker management commands."""

    def setUp(self):
        """Set up test fixtures."""
        patcher = patch("delivery.loop.close_old_connections")
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_sender_once(self):
        """Test run_sender_worker --once runs a tick and reports it."""
        out = StringIO()
        with patch("delivery.management.commands.run_sender_worker.get_transport") as get_transport, \
                patch("delivery.management.commands.run_sender_worker.SenderWorker") as worker_cls:
            worker_cls.return_value.owner_id = "w-1"
            worker_cls.return_value.tick.return_value = {"c-1": 2, "c-2": 1}
            call_command("run_sender_worker", "--once", "--transport", "api", stdout=out)

        get_transport.assert_called_once_with("api")
        self.assertIn("3 recipients processed", out.getvalue())

    def test_stats_once(self):
        """Test run_stats_worker --once runs a tick and reports it."""
        out = StringIO()
        with patch("delivery.management.commands.run_stats_worker.StatsWorker") as worker_cls:
            worker_cls.return_value.client.configured = False
            worker_cls.return_value.tick.return_value = {"completed": 1, "inserted": 4}
            call_command("run_stats_worker", "--once", stdout=out)

        output = out.getvalue()
        self.assertIn("log polling disabled", output)
        self.assertIn("1 completed, 4 events recorded", output)
